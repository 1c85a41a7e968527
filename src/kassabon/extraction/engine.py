"""Fallback/merge controller: Classify -> TryModel -> PatternExtract -> Validate."""

import logging
from typing import Any

from kassabon.extraction import fields
from kassabon.extraction.classifier import MERCHANT_KEYWORDS, classify
from kassabon.extraction.model_assisted import ModelAssistedExtractor
from kassabon.extraction.patterns import (
    PAYMENT_METHODS,
    PROFESSIONAL_INVOICE_PROFILE,
    PROFILES,
    PatternProfile,
    select_profile,
)
from kassabon.extraction.scoring import MAX_SCORE, checklist, score
from kassabon.models import (
    BankInfo,
    CompanyInfo,
    DocumentClassification,
    DocumentInfo,
    DocumentType,
    ExtractedRecord,
    ExtractionMethod,
    FinancialInfo,
    Language,
    LineItem,
    LoyaltyInfo,
    TransactionInfo,
)
from kassabon.utils.parsing import UNKNOWN

logger = logging.getLogger(__name__)

MAX_RAW_TEXT_CHARS = 50_000
TAX_RATES = ("9%", "21%")


def _known(value: Any) -> bool:
    return value is not None and value != UNKNOWN


def _receipt_financials(text: str, profile: PatternProfile) -> dict[str, Any]:
    before, after = fields.extract_subtotals(text, profile)
    total, refund = fields.extract_total(text, profile)
    tax, bases = fields.extract_tax(text, profile)
    _, section_tax = fields.extract_vat_section_total(text, profile)
    discounts = fields.extract_bonus_lines(text, profile)
    advantage = fields.extract_advantage(text, profile)
    stamps_count, stamps_amount = fields.extract_stamps(text, profile)
    method, payments = fields.extract_payments(text, profile)

    discount = round(sum(amount for _, amount in discounts), 2) if discounts else UNKNOWN
    return {
        "subtotal_before_discount": before,
        "subtotal_after_discount": after,
        "total_amount": total,
        "refund_amount": refund,
        "tax": tax,
        "tax_bases": bases,
        "tax_total": section_tax,
        "discount_amount": discount,
        "advantage_amount": advantage,
        # The printed advantage is authoritative, itemised lines are a fallback
        "loyalty_discount_amount": advantage if _known(advantage) else discount,
        "stamps_count": stamps_count,
        "stamps_amount": stamps_amount,
        "payment_method": method,
        "payment_amounts_by_method": payments,
    }


def _invoice_financials(text: str, profile: PatternProfile) -> dict[str, Any]:
    excl, incl = fields.extract_invoice_totals(text, profile)
    terms, _ = fields.extract_payment_terms(text, profile)
    method, payments = fields.extract_payments(text, profile)
    total = incl
    if not _known(total):
        total, _ = fields.extract_total(text, profile)
    return {
        "subtotal_before_discount": excl,
        "total_amount": total,
        "tax": fields.extract_invoice_tax(text, profile),
        "payment_method": method if _known(method) else "INVOICE",
        "payment_amounts_by_method": payments,
        "payment_terms": terms,
    }


def extract_with_patterns(
    text: str, classification: DocumentClassification, profile: PatternProfile
) -> ExtractedRecord:
    """PatternExtract: run every field extractor of ``profile`` and score the result."""
    invoice = profile is PROFESSIONAL_INVOICE_PROFILE

    company = fields.extract_company(text, profile)
    transaction = fields.extract_identifiers(text, fields.TRANSACTION_IDENTIFIERS, profile)
    bank = fields.extract_identifiers(text, fields.BANK_IDENTIFIERS, profile)
    loyalty = fields.extract_identifiers(text, fields.LOYALTY_IDENTIFIERS, profile)

    if invoice:
        financial = _invoice_financials(text, profile)
        _, terms_due = fields.extract_payment_terms(text, profile)
        due_date = fields.extract_due_date(text, profile)
        transaction.update(
            invoice_number=fields.extract_invoice_number(text, profile),
            due_date=due_date if _known(due_date) else terms_due,
            customer_name=fields.extract_customer(text, profile),
        )
        items = fields.extract_invoice_items(text, profile)
    else:
        financial = _receipt_financials(text, profile)
        items = fields.extract_items(text, profile)

    currency = fields.extract_currency(text, profile)
    if not _known(currency) and any(
        _known(financial.get(key)) for key in ("total_amount", "subtotal_before_discount")
    ):
        currency = "EUR"
    financial["currency"] = currency

    record = ExtractedRecord(
        document_info=DocumentInfo(
            type=classification.type,
            subtype=classification.subtype,
            language=classification.language,
            extraction_method=ExtractionMethod.PATTERNS,
            profile=profile.name,
        ),
        company_info=CompanyInfo(**company),
        transaction_info=TransactionInfo(
            date=fields.extract_date(text, profile),
            time=fields.extract_time(text, profile),
            **transaction,
        ),
        financial_info=FinancialInfo(**financial),
        loyalty_info=LoyaltyInfo(
            card_number=loyalty["loyalty_card"],
            miles_number=loyalty["miles"],
        ),
        bank_info=BankInfo(**bank),
        items=items,
        item_count=fields.extract_item_count(text, profile),
        raw_text=text,
    )
    record.confidence = score(record)
    return record


def validate(record: ExtractedRecord, model_error: str | None = None) -> ExtractedRecord:
    """Validate: normalise signs, derive totals and counts, write the notes trail."""
    financial = record.financial_info

    for name in (
        "subtotal_before_discount",
        "subtotal_after_discount",
        "tax_total",
        "discount_amount",
        "loyalty_discount_amount",
        "advantage_amount",
        "refund_amount",
        "stamps_amount",
    ):
        value = getattr(financial, name)
        if _known(value) and value < 0:
            setattr(financial, name, abs(value))

    if _known(financial.total_amount) and financial.total_amount < 0:
        # Sign meaning moves to the refund, the total itself stays non-negative
        financial.refund_amount = abs(financial.total_amount)
        financial.total_amount = abs(financial.total_amount)

    financial.tax = {rate: abs(amount) for rate, amount in financial.tax.items()}
    financial.payment_amounts_by_method = {
        method: abs(amount) for method, amount in financial.payment_amounts_by_method.items()
    }

    if not _known(financial.tax_total) and financial.tax:
        financial.tax_total = round(sum(financial.tax.values()), 2)

    if (
        not _known(financial.subtotal_after_discount)
        and _known(financial.subtotal_before_discount)
        and _known(financial.advantage_amount)
    ):
        financial.subtotal_after_discount = round(
            financial.subtotal_before_discount - financial.advantage_amount, 2
        )

    if not _known(financial.loyalty_discount_amount):
        if _known(financial.advantage_amount):
            financial.loyalty_discount_amount = financial.advantage_amount
        elif _known(financial.discount_amount):
            financial.loyalty_discount_amount = financial.discount_amount

    if not _known(record.item_count) and record.items:
        record.item_count = len(record.items)

    record.confidence = max(0, min(MAX_SCORE, record.confidence))
    record.raw_text = record.raw_text[:MAX_RAW_TEXT_CHARS]
    record.notes = _notes(record, model_error)
    return record


def _notes(record: ExtractedRecord, model_error: str | None) -> str:
    outcome = checklist(record)
    found = [name for name, resolved in outcome if resolved]
    missing = [name for name, resolved in outcome if not resolved]
    parts = [
        f"method: {record.document_info.extraction_method.value}",
        f"profile: {record.document_info.profile}",
    ]
    if model_error:
        parts.append(f"model fallback: {model_error}")
    parts.append(f"found: {', '.join(found) if found else 'none'}")
    parts.append(f"missing: {', '.join(missing) if missing else 'none'}")
    if record.items and _known(record.item_count) and record.item_count != len(record.items):
        parts.append(f"parsed {len(record.items)} of {record.item_count} items")
    return "; ".join(parts)


class DocumentAnalyzer:
    """
    Turns raw document text into an ``ExtractedRecord``.

    With a model extractor the model is tried first and the pattern path is
    the fallback; without one only the pattern path runs. ``analyze`` never
    raises.
    """

    def __init__(self, model_extractor: ModelAssistedExtractor | None = None) -> None:
        self.model_extractor = model_extractor

    def analyze_patterns(self, text: str) -> ExtractedRecord:
        """Pattern path only: Classify -> PatternExtract -> Validate."""
        text = text or ""
        classification = classify(text)
        return self._pattern_record(text, classification, None)

    async def analyze(self, text: str) -> ExtractedRecord:
        """Full path: Classify -> TryModel -> PatternExtract -> Validate."""
        text = text or ""
        classification = classify(text)

        model_error = None
        if self.model_extractor is not None:
            try:
                record, model_error = await self.model_extractor.try_extract(text, classification)
            except Exception as e:
                logger.warning("Model extractor raised: %s", e, exc_info=True)
                record, model_error = None, f"model extractor raised: {e}"
            if record is not None:
                return self._finish(record, None, classification)

        return self._pattern_record(text, classification, model_error)

    def _pattern_record(
        self, text: str, classification: DocumentClassification, model_error: str | None
    ) -> ExtractedRecord:
        profile = select_profile(classification)
        try:
            record = extract_with_patterns(text, classification, profile)
        except Exception:
            logger.warning("Pattern extraction failed", exc_info=True)
            record = ExtractedRecord(
                document_info=DocumentInfo(
                    type=classification.type,
                    subtype=classification.subtype,
                    language=classification.language,
                    profile=profile.name,
                ),
                raw_text=text,
            )
        return self._finish(record, model_error, classification)

    def _finish(
        self,
        record: ExtractedRecord,
        model_error: str | None,
        classification: DocumentClassification,
    ) -> ExtractedRecord:
        try:
            return validate(record, model_error)
        except Exception:
            logger.warning("Validation failed", exc_info=True)
            return ExtractedRecord(
                document_info=DocumentInfo(
                    type=classification.type,
                    subtype=classification.subtype,
                    language=classification.language,
                ),
                raw_text=record.raw_text[:MAX_RAW_TEXT_CHARS],
                notes="validation failed",
            )


def analyze(text: str) -> ExtractedRecord:
    """Pattern-path analysis of raw document text."""
    return DocumentAnalyzer().analyze_patterns(text)


def get_supported_field_groups() -> dict[str, Any]:
    """Describe the enums and field groups the engine produces."""
    return {
        "document_types": [document_type.value for document_type in DocumentType],
        "subtypes": ["general", *sorted(set(MERCHANT_KEYWORDS.values()))],
        "languages": [language.value for language in Language],
        "extraction_methods": [method.value for method in ExtractionMethod],
        "profiles": list(PROFILES),
        "tax_rates": list(TAX_RATES),
        "payment_methods": [*PAYMENT_METHODS, "INVOICE"],
        "unknown": UNKNOWN,
        "groups": {
            "document_info": list(DocumentInfo.model_fields),
            "company_info": list(CompanyInfo.model_fields),
            "transaction_info": list(TransactionInfo.model_fields),
            "financial_info": list(FinancialInfo.model_fields),
            "loyalty_info": list(LoyaltyInfo.model_fields),
            "bank_info": list(BankInfo.model_fields),
            "items": list(LineItem.model_fields),
            "record": ["item_count", "confidence", "notes", "raw_text"],
        },
    }
