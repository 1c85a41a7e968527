"""Shrinking large document text before it is sent to the model."""

import logging
import re

from kassabon.extraction.patterns import RECEIPT_PROFILE, PatternProfile

logger = logging.getLogger(__name__)

HEAD_SHARE = 0.6
TAIL_SHARE = 0.4
TRUNCATION_MARKER = "\n\n[... truncated ...]\n\n"

KEY_INFORMATION_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"totaal|total|sum|eindtotaal",
        r"btw|vat|tax",
        r"€\s*\d+[.,]\d{2}",
        r"\d+[.,]\d{2}",
        r"\d{1,2}[/.-]\d{1,2}[/.-]\d{2,4}",
        r"\d{1,2}:\d{2}",
        r"filiaal|kassa|medewerker|employee",
        r"pin|kaart|card|contant|cash",
        r"bonus|voordeel|korting|koopzegels|air\s*miles|loyalty",
        r"albert\s*heijn|jumbo|lidl|aldi|etos|kruidvat",
        r"factuur|invoice|iban|bic|kvk",
    )
)


def truncate(text: str, max_chars: int) -> str:
    """Keep the first 60% and the last 40% of the character budget."""
    if len(text) <= max_chars:
        return text
    budget = max(max_chars - len(TRUNCATION_MARKER), 0)
    head = int(budget * HEAD_SHARE)
    tail = int(budget * TAIL_SHARE)
    return f"{text[:head]}{TRUNCATION_MARKER}{text[len(text) - tail:]}"


def _is_key_line(line: str, profile: PatternProfile) -> bool:
    if any(pattern.search(line) for pattern in KEY_INFORMATION_PATTERNS):
        return True
    return any(pattern.search(line) for pattern in profile.all_patterns())


def summarize(text: str, max_chars: int, profile: PatternProfile = RECEIPT_PROFILE) -> str:
    """Reduce ``text`` to at most ``max_chars`` characters.

    Keeps every line a key-information pattern or a pattern of ``profile``
    matches, so nothing the pattern path can read is lost, then truncates
    head and tail if that is still too long.
    """
    if len(text) <= max_chars:
        return text

    key_lines = [line for line in text.splitlines() if line.strip() and _is_key_line(line, profile)]
    if not key_lines:
        logger.debug("No key lines in %d characters, truncating", len(text))
        return truncate(text, max_chars)

    summary = "\n".join(key_lines)
    logger.debug("Summarised %d characters to %d key lines", len(text), len(key_lines))
    return truncate(summary, max_chars)
