"""Normalisation helpers for amounts, dates and times found in raw text.

Receipts print amounts with a comma as decimal separator ("43,85"), so every
amount goes through ``parse_amount`` before it becomes a number.
"""

import re
from datetime import date

UNKNOWN = "unknown"

# Placeholders a model (or an older export) may use instead of the sentinel
UNKNOWN_ALIASES = frozenset(
    {"", "unknown", "onbekend", "niet bepaald", "nb", "n/a", "na", "none", "null", "-"}
)

MONTHS = {
    "jan": 1,
    "feb": 2,
    "mrt": 3,
    "mar": 3,
    "maa": 3,
    "apr": 4,
    "mei": 5,
    "may": 5,
    "jun": 6,
    "jul": 7,
    "aug": 8,
    "sep": 9,
    "okt": 10,
    "oct": 10,
    "nov": 11,
    "dec": 12,
}

_CURRENCY_NOISE = re.compile(r"(?:€|EUR|\s)", re.IGNORECASE)
_NUMERIC = re.compile(r"^[+-]?\d+(?:[.,]\d+)*[.,]?\d*$")

_ISO_DATE = re.compile(r"(\d{4})-(\d{1,2})-(\d{1,2})")
_DMY_DATE = re.compile(r"(\d{1,2})[/.-](\d{1,2})[/.-](\d{2,4})")
_NAMED_MONTH_DATE = re.compile(r"(\d{1,2})\s*([A-Za-z]{3})[a-z]*\.?\s*(\d{4})")
_TIME = re.compile(r"(\d{1,2})[:.](\d{2})")


def is_unknown(value: object) -> bool:
    """Return True for None and for any textual 'unknown' placeholder."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip().lower() in UNKNOWN_ALIASES
    return False


def parse_amount(raw: str | float | int | None) -> float | None:
    """Convert a printed amount to a float.

    Handles comma decimals ("43,85"), thousands separators ("1.234,56" and
    "1,234.56"), currency markers and a leading minus sign.

    Returns:
        The parsed value, or None when the input is not an amount.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int | float):
        return float(raw)

    cleaned = _CURRENCY_NOISE.sub("", str(raw))
    negative = cleaned.startswith("-") or cleaned.endswith("-")
    cleaned = cleaned.strip("+-")
    if not cleaned or not _NUMERIC.match(cleaned):
        return None

    if "," in cleaned and "." in cleaned:
        # The right-most separator is the decimal one
        if cleaned.rfind(",") > cleaned.rfind("."):
            cleaned = cleaned.replace(".", "").replace(",", ".")
        else:
            cleaned = cleaned.replace(",", "")
    else:
        cleaned = cleaned.replace(",", ".")
        if cleaned.count(".") > 1:
            head, _, tail = cleaned.rpartition(".")
            cleaned = head.replace(".", "") + "." + tail

    try:
        value = float(cleaned)
    except ValueError:
        return None
    return -value if negative else value


def make_date(day: int | str, month: int | str, year: int | str) -> str | None:
    """Build an ISO-8601 date, or None if the parts do not form a real date."""
    try:
        year_number = int(year)
        if year_number < 100:
            year_number += 2000
        return date(year_number, int(month), int(day)).isoformat()
    except (TypeError, ValueError):
        return None


def make_time(hours: int | str, minutes: int | str) -> str | None:
    """Build an HH:MM string, or None for impossible clock times."""
    try:
        h, m = int(hours), int(minutes)
    except (TypeError, ValueError):
        return None
    if 0 <= h < 24 and 0 <= m < 60:
        return f"{h:02d}:{m:02d}"
    return None


def parse_date(raw: str) -> str | None:
    """Parse a free-form date ("22/08/2025", "2025-08-22", "22 aug 2025")."""
    text = raw.strip()

    match = _ISO_DATE.search(text)
    if match:
        return make_date(match.group(3), match.group(2), match.group(1))

    match = _DMY_DATE.search(text)
    if match:
        return make_date(match.group(1), match.group(2), match.group(3))

    match = _NAMED_MONTH_DATE.search(text)
    if match:
        month = MONTHS.get(match.group(2).lower())
        if month:
            return make_date(match.group(1), month, match.group(3))

    return None


def parse_time(raw: str) -> str | None:
    """Parse the first clock time ("12:55", "9.05") in ``raw``."""
    match = _TIME.search(raw.strip())
    if match:
        return make_time(match.group(1), match.group(2))
    return None


def compress(text: str) -> str:
    """Remove all whitespace inside each line, keeping the line breaks."""
    return "\n".join(re.sub(r"\s+", "", line) for line in text.split("\n"))
