"""Field extractors.

One pure function per field group. Each reads its ordered pattern list from a
``PatternProfile`` and never raises: a miss yields ``UNKNOWN`` (or an empty
container) and an unexpected error is logged and turned into the same
default by ``field_extractor``.
"""

import logging
import re

from kassabon.extraction.patterns import (
    PAYMENT_METHODS,
    PROFESSIONAL_INVOICE_PROFILE,
    RECEIPT_PROFILE,
    PatternProfile,
)
from kassabon.extraction.resolver import (
    field_extractor,
    first_match,
    first_value,
    iter_line_matches,
    matches_on_line,
)
from kassabon.models import LineItem
from kassabon.utils.parsing import MONTHS, UNKNOWN, make_date, make_time, parse_amount, parse_date

logger = logging.getLogger(__name__)

MIN_ITEM_NAME_LENGTH = 3
MAX_ITEM_PRICE = 1000.0

# Fields read from a single labeled pattern, grouped by record section
TRANSACTION_IDENTIFIERS = ("store_id", "transaction_id", "terminal_id", "merchant_id", "poi", "period")
BANK_IDENTIFIERS = ("bank_name", "card_type", "card_number", "authorization_code", "reading_method")
LOYALTY_IDENTIFIERS = ("loyalty_card", "miles")

_HEADER_NAME = re.compile(r"[A-Z][A-Z&'.\- ]{2,}")
_SQUEEZE = re.compile(r"\s+")


def _lines(text: str) -> list[str]:
    return text.splitlines()


def _clean(raw: str) -> str:
    return " ".join(raw.split())


def _squeezed(raw: str) -> str:
    return _SQUEEZE.sub("", raw).upper()


def _to_int(raw: str) -> int | None:
    try:
        return int(raw)
    except ValueError:
        return None


def _date_from_match(match: re.Match[str]) -> str | None:
    groups = match.groupdict()
    month = groups.get("month")
    if month is None and groups.get("month_name"):
        month = MONTHS.get(groups["month_name"][:3].lower())
    return make_date(groups["day"], month, groups["year"])


@field_extractor()
def extract_date(text: str, profile: PatternProfile = RECEIPT_PROFILE) -> str:
    """Document date as ISO-8601. Labeled invoice dates win over bare dates."""
    lines = _lines(text)
    labeled = first_value(profile.patterns("invoice_date"), lines, convert=parse_date)
    if labeled:
        return labeled

    for pattern in profile.patterns("date"):
        for match in iter_line_matches(pattern, lines):
            value = _date_from_match(match)
            if value:
                logger.debug("date %s matched by %s", value, pattern.pattern)
                return value
    return UNKNOWN


@field_extractor()
def extract_time(text: str, profile: PatternProfile = RECEIPT_PROFILE) -> str:
    lines = _lines(text)
    for pattern in profile.patterns("time"):
        for match in iter_line_matches(pattern, lines):
            value = make_time(match.group("hours"), match.group("minutes"))
            if value:
                return value
    return UNKNOWN


@field_extractor(default=lambda: (UNKNOWN, UNKNOWN))
def extract_subtotals(
    text: str, profile: PatternProfile = RECEIPT_PROFILE
) -> tuple[float | str, float | str]:
    """Subtotal before and after discounts.

    The first printed SUBTOTAAL is the amount before discounts. A later one
    that is not larger than the first is the amount after discounts.
    """
    found: list[float] = []
    for line in _lines(text):
        for match in matches_on_line(profile.patterns("subtotal"), line):
            amount = parse_amount(match.group("value"))
            if amount is not None:
                found.append(abs(amount))

    if not found:
        return UNKNOWN, UNKNOWN
    before = found[0]
    after = next((amount for amount in found[1:] if amount <= before), UNKNOWN)
    return before, after


@field_extractor(default=lambda: (UNKNOWN, UNKNOWN))
def extract_vat_section_total(
    text: str, profile: PatternProfile = RECEIPT_PROFILE
) -> tuple[float | str, float | str]:
    """The "TOTAAL: base tax" row closing the VAT section."""
    match = first_match(profile.patterns("vat_section_total"), _lines(text))
    if not match:
        return UNKNOWN, UNKNOWN
    base = parse_amount(match.group("base"))
    tax = parse_amount(match.group("value"))
    return (UNKNOWN if base is None else base), (UNKNOWN if tax is None else tax)


@field_extractor(default=lambda: (UNKNOWN, UNKNOWN))
def extract_total(
    text: str, profile: PatternProfile = RECEIPT_PROFILE
) -> tuple[float | str, float | str]:
    """Grand total and, for a negative total, the refunded amount.

    A candidate is only accepted when it is larger than the VAT-section
    total, which repeats the TOTAAL label with the sum of the tax bases.
    Falls back to "Totaal betaald" and then to the PIN amount.
    """
    lines = _lines(text)
    secondary, _ = extract_vat_section_total(text, profile)

    for pattern in profile.patterns("total"):
        for match in iter_line_matches(pattern, lines):
            amount = parse_amount(match.group("value"))
            if amount is None:
                continue
            amount = abs(amount)
            if secondary != UNKNOWN and amount <= secondary:
                logger.debug("Skipping total %.2f, not above VAT-section total %.2f", amount, secondary)
                continue
            refund = amount if match.groupdict().get("sign") else UNKNOWN
            return amount, refund

    paid = first_value(profile.patterns("paid_total"), lines, convert=parse_amount)
    if paid is not None:
        return abs(paid), UNKNOWN

    pin = first_value(profile.patterns("payment_pin"), lines, convert=parse_amount)
    if pin is not None:
        return abs(pin), UNKNOWN
    return UNKNOWN, UNKNOWN


@field_extractor(default=lambda: ({}, {}))
def extract_tax(
    text: str, profile: PatternProfile = RECEIPT_PROFILE
) -> tuple[dict[str, float], dict[str, float]]:
    """Per-rate tax amounts and bases from "9%: 31,98 2,88" rows."""
    tax: dict[str, float] = {}
    bases: dict[str, float] = {}
    for line in _lines(text):
        for match in matches_on_line(profile.patterns("tax_line"), line):
            rate = f"{int(match.group('rate'))}%"
            amount = parse_amount(match.group("value"))
            if amount is None or rate in tax:
                continue
            tax[rate] = abs(amount)
            base = parse_amount(match.group("base"))
            if base is not None:
                bases[rate] = abs(base)
    return tax, bases


def _rate_from(tax: float, subtotal: float | str) -> str | None:
    if subtotal == UNKNOWN or not subtotal:
        return None
    return f"{round(tax / subtotal * 100)}%"


@field_extractor(default=lambda: (UNKNOWN, UNKNOWN))
def extract_invoice_totals(
    text: str, profile: PatternProfile = PROFESSIONAL_INVOICE_PROFILE
) -> tuple[float | str, float | str]:
    """Invoice totals excluding and including VAT."""
    lines = _lines(text)
    excl = first_value(profile.patterns("subtotal_excl"), lines, convert=parse_amount)
    incl = first_value(profile.patterns("total_incl"), lines, convert=parse_amount)
    return (
        UNKNOWN if excl is None else abs(excl),
        UNKNOWN if incl is None else abs(incl),
    )


@field_extractor(default=dict)
def extract_invoice_tax(
    text: str, profile: PatternProfile = PROFESSIONAL_INVOICE_PROFILE
) -> dict[str, float]:
    """Invoice VAT per rate.

    Rows that print their rate are used as is. Otherwise the rate is derived
    from the VAT amount and the subtotal excluding VAT, falling back to the
    Dutch high/low rates for "Btw hoog"/"Btw laag".
    """
    lines = _lines(text)
    tax: dict[str, float] = {}
    for pattern in profile.patterns("invoice_tax_rated"):
        for match in iter_line_matches(pattern, lines):
            amount = parse_amount(match.group("value"))
            if amount is not None:
                tax.setdefault(f"{int(match.group('rate'))}%", abs(amount))
    if tax:
        return tax

    subtotal, _ = extract_invoice_totals(text, profile)
    for field_name, default_rate in (
        ("invoice_tax_high", "21%"),
        ("invoice_tax_low", "9%"),
        ("invoice_tax_amount", None),
    ):
        amount = first_value(profile.patterns(field_name), lines, convert=parse_amount)
        if amount is None:
            continue
        rate = _rate_from(abs(amount), subtotal) or default_rate
        if rate:
            tax.setdefault(rate, abs(amount))
    return tax


@field_extractor(default=list)
def extract_bonus_lines(text: str, profile: PatternProfile = RECEIPT_PROFILE) -> list[tuple[str, float]]:
    """Itemised discount lines as (label, absolute amount) pairs."""
    discounts: list[tuple[str, float]] = []
    for line in _lines(text):
        for match in matches_on_line(profile.patterns("bonus_line"), line):
            amount = parse_amount(match.group("value"))
            if amount:
                discounts.append((_clean(match.group("label")), abs(amount)))
    return discounts


@field_extractor()
def extract_advantage(text: str, profile: PatternProfile = RECEIPT_PROFILE) -> float | str:
    """The printed total advantage ("UW VOORDEEL")."""
    amount = first_value(profile.patterns("advantage"), _lines(text), convert=parse_amount)
    return UNKNOWN if amount is None else abs(amount)


@field_extractor(default=lambda: (UNKNOWN, UNKNOWN))
def extract_stamps(
    text: str, profile: PatternProfile = RECEIPT_PROFILE
) -> tuple[int | str, float | str]:
    """Koopzegels: number of stamps bought and their price."""
    match = first_match(profile.patterns("stamps"), _lines(text))
    if not match:
        return UNKNOWN, UNKNOWN
    count = _to_int(match.group("count"))
    amount = parse_amount(match.group("value"))
    return (UNKNOWN if count is None else count), (UNKNOWN if amount is None else abs(amount))


@field_extractor(default=lambda: (UNKNOWN, {}))
def extract_payments(
    text: str, profile: PatternProfile = RECEIPT_PROFILE
) -> tuple[str, dict[str, float]]:
    """Payment amounts per method and the main payment method.

    The main method is the one carrying the largest amount. Without any
    amounts, payment keywords (PINNEN, Maestro, CONTANT) decide.
    """
    lines = _lines(text)
    amounts: dict[str, float] = {}
    for method in PAYMENT_METHODS:
        amount = first_value(profile.patterns(f"payment_{method.lower()}"), lines, convert=parse_amount)
        if amount is not None:
            amounts[method] = abs(amount)

    if amounts:
        method = max(amounts, key=lambda name: amounts[name])
        return method, amounts

    match = first_match(profile.patterns("payment_keyword"), lines)
    if match and match.lastgroup:
        return match.lastgroup, amounts
    return UNKNOWN, amounts


@field_extractor()
def extract_item_count(text: str, profile: PatternProfile = RECEIPT_PROFILE) -> int | str:
    """Printed item count, e.g. the 21 in "21 SUBTOTAAL: 40,24"."""
    count = first_value(profile.patterns("item_count"), _lines(text), convert=_to_int)
    return UNKNOWN if count is None else count


@field_extractor()
def extract_identifier(text: str, field_name: str, profile: PatternProfile = RECEIPT_PROFILE) -> str:
    """A single label-based identifier such as ``terminal_id`` or ``loyalty_card``."""
    value = first_value(profile.patterns(field_name), _lines(text), convert=_clean)
    return value or UNKNOWN


def extract_identifiers(
    text: str, field_names: tuple[str, ...], profile: PatternProfile = RECEIPT_PROFILE
) -> dict[str, str]:
    return {name: extract_identifier(text, name, profile) for name in field_names}


@field_extractor()
def extract_currency(text: str, profile: PatternProfile = RECEIPT_PROFILE) -> str:
    match = first_match(profile.patterns("currency"), _lines(text))
    return match.lastgroup if match and match.lastgroup else UNKNOWN


def _header_name(lines: list[str]) -> str | None:
    """First upper-case line in the document header, usually the shop name."""
    header = [line.strip() for line in lines if line.strip()][:5]
    for line in header:
        if _HEADER_NAME.fullmatch(line) and not any(
            word in _squeezed(line) for word in ("FACTUUR", "INVOICE", "KASSABON")
        ):
            return _clean(line)
    return None


def _address(lines: list[str], profile: PatternProfile) -> str | None:
    for pattern in profile.patterns("address"):
        for index, line in enumerate(lines):
            match = pattern.search(line)
            if not match:
                continue
            address = _clean(match.group("value"))
            following = lines[index + 1] if index + 1 < len(lines) else ""
            postal = first_match(profile.patterns("postal_code"), [following])
            if postal:
                address = f"{address}, {_clean(postal.group('value'))}"
            return address
    return None


@field_extractor(default=dict)
def extract_company(text: str, profile: PatternProfile = RECEIPT_PROFILE) -> dict[str, str]:
    """Company block: name, address and contact and registration details."""
    lines = _lines(text)
    info = {
        "name": first_value(profile.patterns("company_name"), lines, convert=_clean)
        or profile.merchant_name
        or _header_name(lines)
        or UNKNOWN,
        "address": _address(lines, profile) or UNKNOWN,
    }
    for field_name in ("phone", "email", "website"):
        info[field_name] = first_value(profile.patterns(field_name), lines, convert=_clean) or UNKNOWN
    for field_name in ("tax_id", "registration_id", "iban", "bic"):
        value = first_value(profile.patterns(field_name), lines, convert=_squeezed)
        info[field_name] = value or UNKNOWN
    return info


def _is_denied(line: str, profile: PatternProfile) -> bool:
    return any(pattern.search(line) for pattern in profile.item_denylist)


def _attach_discounts(items: list[LineItem], discounts: list[tuple[str, float]]) -> None:
    """Credit each discount line to the first item whose name it starts with."""
    for label, amount in discounts:
        key = _squeezed(label)
        if not key:
            continue
        for item in items:
            name = _squeezed(item.name)
            if name and (key.startswith(name) or name.startswith(key)):
                item.bonus_flag = True
                item.bonus_amount = round(item.bonus_amount + amount, 2)
                break


@field_extractor(default=list)
def extract_items(text: str, profile: PatternProfile = RECEIPT_PROFILE) -> list[LineItem]:
    """Receipt line items ("1 AH SALADE: 3,29 B").

    Lines whose label starts with a denylisted word (totals, payment,
    loyalty, tax and footer vocabulary) are skipped. A trailing "B" marks a
    bonus article.
    """
    items: list[LineItem] = []
    for line in _lines(text):
        if not line.strip() or _is_denied(line, profile):
            continue
        match = next(
            (m for m in (p.match(line) for p in profile.patterns("item_line")) if m), None
        )
        if not match:
            continue

        name = _clean(match.group("name"))
        price = parse_amount(match.group("price"))
        quantity = int(match.group("qty"))
        if len(name) < MIN_ITEM_NAME_LENGTH or price is None or not 0 < price < MAX_ITEM_PRICE:
            logger.debug("Rejected item line %r", line)
            continue
        if quantity <= 0:
            continue

        items.append(
            LineItem(
                name=name,
                quantity=quantity,
                unit_price=price,
                total_price=round(price * quantity, 2),
                bonus_flag=match.group("rest").strip().upper().startswith("B"),
            )
        )

    _attach_discounts(items, extract_bonus_lines(text, profile))
    return items


@field_extractor(default=list)
def extract_invoice_items(
    text: str, profile: PatternProfile = PROFESSIONAL_INVOICE_PROFILE
) -> list[LineItem]:
    """Invoice rows: "qty description € excl € incl"."""
    items: list[LineItem] = []
    for line in _lines(text):
        match = next(
            (m for m in (p.match(line) for p in profile.patterns("invoice_item_line")) if m),
            None,
        )
        if not match:
            continue
        name = _clean(match.group("name"))
        price = parse_amount(match.group("price"))
        total = parse_amount(match.group("total"))
        if len(name) < MIN_ITEM_NAME_LENGTH or price is None or total is None:
            continue
        items.append(
            LineItem(
                name=name,
                quantity=int(match.group("qty")),
                unit_price=price,
                total_price=total,
            )
        )
    return items


@field_extractor()
def extract_invoice_number(text: str, profile: PatternProfile = PROFESSIONAL_INVOICE_PROFILE) -> str:
    return first_value(profile.patterns("invoice_number"), _lines(text)) or UNKNOWN


@field_extractor()
def extract_due_date(text: str, profile: PatternProfile = PROFESSIONAL_INVOICE_PROFILE) -> str:
    return first_value(profile.patterns("due_date"), _lines(text), convert=parse_date) or UNKNOWN


@field_extractor()
def extract_customer(text: str, profile: PatternProfile = PROFESSIONAL_INVOICE_PROFILE) -> str:
    return first_value(profile.patterns("customer_name"), _lines(text), convert=_clean) or UNKNOWN


@field_extractor(default=lambda: (UNKNOWN, UNKNOWN))
def extract_payment_terms(
    text: str, profile: PatternProfile = PROFESSIONAL_INVOICE_PROFILE
) -> tuple[str, str]:
    """Payment terms text and the due date they mention, if any."""
    match = first_match(profile.patterns("payment_terms"), _lines(text))
    if not match:
        return UNKNOWN, UNKNOWN
    if "due" in match.groupdict() and match.group("due"):
        return _clean(match.string), parse_date(match.group("due")) or UNKNOWN
    return _clean(match.group("value")), UNKNOWN
