"""Additive confidence scoring over a fixed checklist of resolved fields."""

from collections.abc import Callable

from kassabon.models import ExtractedRecord
from kassabon.utils.parsing import UNKNOWN

BASE_SCORE = 70
INCREMENT = 5
MAX_SCORE = 100


def _known(value: object) -> bool:
    return value is not None and value != UNKNOWN


CHECKLIST: tuple[tuple[str, Callable[[ExtractedRecord], bool]], ...] = (
    ("date", lambda r: _known(r.transaction_info.date)),
    ("time", lambda r: _known(r.transaction_info.time)),
    ("subtotal after discount", lambda r: _known(r.financial_info.subtotal_after_discount)),
    ("subtotal before discount", lambda r: _known(r.financial_info.subtotal_before_discount)),
    ("tax 9%", lambda r: "9%" in r.financial_info.tax),
    ("tax 21%", lambda r: "21%" in r.financial_info.tax),
    ("bonus", lambda r: _known(r.financial_info.discount_amount)),
    ("advantage", lambda r: _known(r.financial_info.advantage_amount)),
    ("stamps", lambda r: _known(r.financial_info.stamps_amount)),
    ("total amount", lambda r: _known(r.financial_info.total_amount)),
    ("payment amount", lambda r: bool(r.financial_info.payment_amounts_by_method)),
    ("item count", lambda r: _known(r.item_count)),
    ("store id", lambda r: _known(r.transaction_info.store_id)),
    ("transaction id", lambda r: _known(r.transaction_info.transaction_id)),
    ("terminal id", lambda r: _known(r.transaction_info.terminal_id)),
    ("merchant id", lambda r: _known(r.transaction_info.merchant_id)),
    ("loyalty card", lambda r: _known(r.loyalty_info.card_number)),
    ("miles", lambda r: _known(r.loyalty_info.miles_number)),
)


def checklist(record: ExtractedRecord) -> list[tuple[str, bool]]:
    """Per-entry outcome of the confidence checklist, in checklist order."""
    return [(name, check(record)) for name, check in CHECKLIST]


def score(record: ExtractedRecord) -> int:
    """Base score plus a fixed increment per resolved checklist entry, capped."""
    found = sum(1 for _, resolved in checklist(record) if resolved)
    return min(MAX_SCORE, BASE_SCORE + INCREMENT * found)
