"""Data models for document classification, extracted records and pipeline results."""

from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

from kassabon.utils.parsing import (
    UNKNOWN,
    is_unknown,
    parse_amount,
    parse_date,
    parse_time,
)


class DocumentType(str, Enum):
    RECEIPT = "receipt"
    PROFESSIONAL_INVOICE = "professional_invoice"
    UNKNOWN = "unknown"


class Language(str, Enum):
    DUTCH = "nl"
    ENGLISH = "en"
    MIXED = "mixed"


class ExtractionMethod(str, Enum):
    PATTERNS = "patterns"
    MODEL = "model"


def _coerce_text(value: Any) -> Any:
    if is_unknown(value):
        return UNKNOWN
    if isinstance(value, int | float) and not isinstance(value, bool):
        return str(value)
    if isinstance(value, str):
        return value.strip()
    return value


def _coerce_amount(value: Any) -> Any:
    if is_unknown(value):
        return UNKNOWN
    amount = parse_amount(value)
    return UNKNOWN if amount is None else amount


def _coerce_count(value: Any) -> Any:
    if is_unknown(value):
        return UNKNOWN
    amount = parse_amount(value)
    return UNKNOWN if amount is None else int(amount)


def _coerce_date(value: Any) -> Any:
    if is_unknown(value):
        return UNKNOWN
    return parse_date(str(value)) or UNKNOWN


def _coerce_time(value: Any) -> Any:
    if is_unknown(value):
        return UNKNOWN
    return parse_time(str(value)) or UNKNOWN


def _coerce_amount_map(value: Any) -> Any:
    """Turn {"9": "2,88", "21%": 0.28, "0%": "onbekend"} into {"9%": 2.88, "21%": 0.28}."""
    if not isinstance(value, dict):
        return {}
    result = {}
    for key, raw in value.items():
        amount = None if is_unknown(raw) else parse_amount(raw)
        if amount is None:
            continue
        label = str(key).strip().upper()
        if label.replace(".", "").isdigit():
            label = f"{label}%"
        result[label] = amount
    return result


Text = Annotated[str, BeforeValidator(_coerce_text)]
Amount = Annotated[float | Literal["unknown"], BeforeValidator(_coerce_amount)]
Count = Annotated[int | Literal["unknown"], BeforeValidator(_coerce_count)]
IsoDate = Annotated[str, BeforeValidator(_coerce_date)]
ClockTime = Annotated[str, BeforeValidator(_coerce_time)]
AmountMap = Annotated[dict[str, float], BeforeValidator(_coerce_amount_map)]


class DocumentClassification(BaseModel):
    """Outcome of classifying a document's raw text."""

    model_config = ConfigDict(frozen=True)

    type: DocumentType = DocumentType.UNKNOWN
    subtype: str = "general"
    language: Language = Language.MIXED


class DocumentInfo(BaseModel):
    type: DocumentType = DocumentType.UNKNOWN
    subtype: str = "general"
    language: Language = Language.MIXED
    extraction_method: ExtractionMethod = ExtractionMethod.PATTERNS
    profile: str = "receipt"


class CompanyInfo(BaseModel):
    name: Text = UNKNOWN
    address: Text = UNKNOWN
    phone: Text = UNKNOWN
    email: Text = UNKNOWN
    website: Text = UNKNOWN
    tax_id: Text = UNKNOWN  # BTW / VAT number
    registration_id: Text = UNKNOWN  # KVK / company number
    iban: Text = UNKNOWN
    bic: Text = UNKNOWN


class TransactionInfo(BaseModel):
    date: IsoDate = UNKNOWN  # YYYY-MM-DD
    time: ClockTime = UNKNOWN  # HH:MM
    invoice_number: Text = UNKNOWN
    transaction_id: Text = UNKNOWN
    terminal_id: Text = UNKNOWN
    merchant_id: Text = UNKNOWN
    store_id: Text = UNKNOWN
    poi: Text = UNKNOWN
    period: Text = UNKNOWN
    due_date: IsoDate = UNKNOWN
    customer_name: Text = UNKNOWN


class FinancialInfo(BaseModel):
    subtotal_before_discount: Amount = UNKNOWN
    subtotal_after_discount: Amount = UNKNOWN
    total_amount: Amount = UNKNOWN
    currency: Text = "EUR"
    tax: AmountMap = Field(default_factory=dict)
    tax_bases: AmountMap = Field(default_factory=dict)
    tax_total: Amount = UNKNOWN
    discount_amount: Amount = UNKNOWN
    loyalty_discount_amount: Amount = UNKNOWN
    advantage_amount: Amount = UNKNOWN
    refund_amount: Amount = UNKNOWN
    stamps_amount: Amount = UNKNOWN
    stamps_count: Count = UNKNOWN
    payment_method: Text = UNKNOWN
    payment_amounts_by_method: AmountMap = Field(default_factory=dict)
    payment_terms: Text = UNKNOWN


class LoyaltyInfo(BaseModel):
    card_number: Text = UNKNOWN
    miles_number: Text = UNKNOWN


class BankInfo(BaseModel):
    bank_name: Text = UNKNOWN
    card_type: Text = UNKNOWN
    card_number: Text = UNKNOWN
    authorization_code: Text = UNKNOWN
    reading_method: Text = UNKNOWN


class LineItem(BaseModel):
    """Individual line item on a receipt or invoice."""

    name: Text = UNKNOWN
    quantity: Count = 1
    unit_price: Amount = UNKNOWN
    total_price: Amount = UNKNOWN
    bonus_flag: bool = False
    bonus_amount: Amount = 0.0


class ExtractedRecord(BaseModel):
    """Structured data extracted from a receipt or invoice."""

    document_info: DocumentInfo = Field(default_factory=DocumentInfo)
    company_info: CompanyInfo = Field(default_factory=CompanyInfo)
    transaction_info: TransactionInfo = Field(default_factory=TransactionInfo)
    financial_info: FinancialInfo = Field(default_factory=FinancialInfo)
    loyalty_info: LoyaltyInfo = Field(default_factory=LoyaltyInfo)
    bank_info: BankInfo = Field(default_factory=BankInfo)
    items: list[LineItem] = Field(default_factory=list)
    item_count: Count = UNKNOWN
    confidence: int = Field(default=70, ge=0, le=100)
    notes: str = ""
    raw_text: str = ""


class ProcessingResult(BaseModel):
    """Outcome of running one document through the pipeline."""

    file_name: str
    mime_type: str | None = None
    ocr_text: str | None = None
    ocr_error: str | None = None
    record: ExtractedRecord | None = None
    persist_error: str | None = None
    processing_time: float = 0.0  # in seconds
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
