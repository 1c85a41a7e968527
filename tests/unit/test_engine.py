"""Unit tests for the analysis engine: classify, model, patterns, validate."""

from unittest.mock import AsyncMock, Mock

import pytest

from kassabon.extraction.engine import (
    MAX_RAW_TEXT_CHARS,
    DocumentAnalyzer,
    analyze,
    get_supported_field_groups,
    validate,
)
from kassabon.extraction.model_assisted import ModelAssistedExtractor
from kassabon.models import (
    DocumentType,
    ExtractedRecord,
    ExtractionMethod,
    FinancialInfo,
    Language,
    LineItem,
)
from kassabon.utils.parsing import UNKNOWN, compress

pytestmark = pytest.mark.unit


class ReplyClient:
    def __init__(self, reply: str):
        self.reply = reply

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        return self.reply


MODEL_REPLY = """{
  "company_info": {"name": "Albert Heijn"},
  "transaction_info": {"date": "22-08-2025", "time": "12:55"},
  "financial_info": {"total_amount": "43,85", "tax": {"9": 2.88, "21": 0.28}},
  "item_count": 21,
  "confidence": 88
}"""


class TestReferenceReceipt:
    def test_end_to_end(self, ah_receipt):
        record = analyze(ah_receipt)

        info = record.document_info
        assert info.type == DocumentType.RECEIPT
        assert info.subtype == "albert_heijn"
        assert info.language == Language.DUTCH
        assert info.extraction_method == ExtractionMethod.PATTERNS
        assert info.profile == "albert_heijn"

        assert record.company_info.name == "Albert Heijn"
        assert record.transaction_info.date == "2025-08-22"
        assert record.transaction_info.time == "12:55"
        assert record.transaction_info.store_id == "1427"

        financial = record.financial_info
        assert financial.subtotal_before_discount == 40.24
        assert financial.subtotal_after_discount == 36.45
        assert financial.total_amount == 43.85
        assert financial.refund_amount == UNKNOWN
        assert financial.tax == {"9%": 2.88, "21%": 0.28}
        assert financial.tax_total == 3.16
        assert financial.discount_amount == 3.79
        assert financial.advantage_amount == 3.79
        assert financial.loyalty_discount_amount == 3.79
        assert (financial.stamps_count, financial.stamps_amount) == (74, 7.4)
        assert financial.payment_method == "PIN"
        assert financial.payment_amounts_by_method == {"PIN": 43.85}
        assert financial.currency == "EUR"

        assert record.loyalty_info.card_number == "xx0802"
        assert record.loyalty_info.miles_number == "xx6254"
        assert record.bank_info.card_type == "Maestro"

        assert record.item_count == 21
        assert len(record.items) == 18
        assert record.confidence == 100

    def test_notes_trail(self, ah_receipt):
        notes = analyze(ah_receipt).notes

        assert notes.startswith("method: patterns; profile: albert_heijn; found: date, time,")
        assert "missing: none" in notes
        assert notes.endswith("parsed 18 of 21 items")

    def test_more_resolved_fields_never_lower_confidence(self):
        text = "ALBERT HEIJN\n22/08/2025 12:55\nTOTAAL: 10,00"
        scores = [analyze(text).confidence]
        for line in ("Terminal: 5F2GVM", "Merchant: 1315641", "Transactie: 02286653"):
            text += "\n" + line
            scores.append(analyze(text).confidence)

        assert scores == sorted(scores)
        assert scores[-1] > scores[0]

    def test_analysis_is_deterministic(self, ah_receipt):
        assert analyze(ah_receipt).model_dump() == analyze(ah_receipt).model_dump()

    def test_missing_whitespace_gives_same_amounts(self, ah_receipt):
        spaced = analyze(ah_receipt)
        compressed = analyze(compress(ah_receipt))

        assert compressed.document_info.type == DocumentType.RECEIPT
        assert compressed.transaction_info.date == spaced.transaction_info.date
        assert compressed.transaction_info.time == spaced.transaction_info.time
        for name in (
            "subtotal_before_discount",
            "subtotal_after_discount",
            "total_amount",
            "tax",
            "advantage_amount",
            "stamps_amount",
            "payment_amounts_by_method",
        ):
            assert getattr(compressed.financial_info, name) == getattr(spaced.financial_info, name)
        assert compressed.item_count == spaced.item_count


class TestOtherDocuments:
    def test_professional_invoice(self, professional_invoice):
        record = analyze(professional_invoice)

        assert record.document_info.type == DocumentType.PROFESSIONAL_INVOICE
        assert record.document_info.profile == "professional_invoice"
        assert record.company_info.name == "Van Dijk Consultancy B.V."
        assert record.transaction_info.invoice_number == "2025-0042"
        assert record.transaction_info.due_date == "2025-04-14"
        assert record.transaction_info.customer_name == "Jansen Installatietechniek"
        assert record.financial_info.subtotal_before_discount == 245.0
        assert record.financial_info.total_amount == 296.45
        assert record.financial_info.tax == {"21%": 51.45}
        assert record.financial_info.tax_total == 51.45
        assert record.financial_info.payment_method == "INVOICE"
        assert record.financial_info.payment_terms == "30 dagen"
        assert record.item_count == 2

    def test_receipt_over_a_thousand(self):
        record = analyze(
            "ALBERT HEIJN\n22/08/2025 12:55\nSUBTOTAAL: 1.234,56\nTOTAAL: 1.234,56\n"
            "BETAALD MET:\nPINNEN: 1.234,56"
        )

        assert record.financial_info.subtotal_before_discount == 1234.56
        assert record.financial_info.total_amount == 1234.56
        assert record.financial_info.payment_amounts_by_method == {"PIN": 1234.56}

    def test_invoice_over_a_thousand(self, professional_invoice):
        text = (
            professional_invoice.replace("€ 245,00", "€ 1.000,00")
            .replace("€ 51,45", "€ 210,00")
            .replace("€ 296,45", "€ 1.210,00")
        )
        record = analyze(text)

        assert record.document_info.type == DocumentType.PROFESSIONAL_INVOICE
        assert record.financial_info.subtotal_before_discount == 1000.0
        assert record.financial_info.total_amount == 1210.0
        assert record.financial_info.tax == {"21%": 210.0}

    @pytest.mark.parametrize("text", ["", "   \n  ", None])
    def test_empty_input(self, text):
        record = analyze(text)

        assert record.document_info.type == DocumentType.UNKNOWN
        assert record.document_info.profile == "receipt"
        assert record.financial_info.total_amount == UNKNOWN
        assert record.financial_info.currency == UNKNOWN
        assert record.items == []
        assert record.confidence == 70
        assert "found: none" in record.notes

    def test_amounts_are_never_negative(self):
        record = analyze("ALBERT HEIJN\nKassa 3\nSUBTOTAAL: -12,50\nTOTAAL: -12,50\nPINNEN: -12,50")
        financial = record.financial_info

        assert financial.total_amount == 12.5
        assert financial.refund_amount == 12.5
        for value in financial.model_dump().values():
            if isinstance(value, float):
                assert value >= 0
        assert all(amount >= 0 for amount in financial.payment_amounts_by_method.values())


class TestValidate:
    def test_signs_are_normalised(self):
        record = ExtractedRecord(
            financial_info=FinancialInfo(
                total_amount=-5.0,
                discount_amount=-1.2,
                tax={"9%": -0.41},
                payment_amounts_by_method={"PIN": -5.0},
            )
        )
        financial = validate(record).financial_info

        assert financial.total_amount == 5.0
        assert financial.refund_amount == 5.0
        assert financial.discount_amount == 1.2
        assert financial.loyalty_discount_amount == 1.2
        assert financial.tax == {"9%": 0.41}
        assert financial.tax_total == 0.41
        assert financial.payment_amounts_by_method == {"PIN": 5.0}

    def test_derived_values(self):
        record = ExtractedRecord(
            financial_info=FinancialInfo(subtotal_before_discount=40.24, advantage_amount=3.79),
            items=[LineItem(name="BAPAO"), LineItem(name="HONING")],
        )
        record = validate(record)

        assert record.financial_info.subtotal_after_discount == 36.45
        assert record.financial_info.loyalty_discount_amount == 3.79
        assert record.item_count == 2

    def test_raw_text_is_capped(self):
        record = validate(ExtractedRecord(raw_text="x" * (MAX_RAW_TEXT_CHARS + 10)))
        assert len(record.raw_text) == MAX_RAW_TEXT_CHARS

    def test_model_error_is_noted(self):
        notes = validate(ExtractedRecord(), "model call timed out after 30s").notes
        assert notes.startswith("method: patterns; profile: receipt; model fallback: model call timed out after 30s;")


class TestDocumentAnalyzer:
    @pytest.mark.asyncio
    async def test_without_model_uses_patterns(self, ah_receipt):
        record = await DocumentAnalyzer().analyze(ah_receipt)

        assert record.document_info.extraction_method == ExtractionMethod.PATTERNS
        assert "model fallback" not in record.notes

    @pytest.mark.asyncio
    async def test_model_record_is_validated(self, ah_receipt):
        analyzer = DocumentAnalyzer(ModelAssistedExtractor(ReplyClient(MODEL_REPLY)))
        record = await analyzer.analyze(ah_receipt)

        assert record.document_info.extraction_method == ExtractionMethod.MODEL
        assert record.document_info.subtype == "albert_heijn"
        assert record.transaction_info.date == "2025-08-22"
        assert record.financial_info.total_amount == 43.85
        assert record.financial_info.tax == {"9%": 2.88, "21%": 0.28}
        assert record.financial_info.tax_total == 3.16
        assert record.confidence == 88
        assert record.notes.startswith("method: model; profile: albert_heijn; found:")

    @pytest.mark.asyncio
    async def test_falls_back_when_model_output_is_unusable(self, ah_receipt):
        analyzer = DocumentAnalyzer(ModelAssistedExtractor(ReplyClient("I can't help with that.")))
        record = await analyzer.analyze(ah_receipt)

        assert record.document_info.extraction_method == ExtractionMethod.PATTERNS
        assert record.financial_info.total_amount == 43.85
        assert "model fallback: model output is not valid JSON" in record.notes

    @pytest.mark.asyncio
    async def test_falls_back_when_extractor_raises(self, ah_receipt):
        extractor = Mock(spec=ModelAssistedExtractor)
        extractor.try_extract = AsyncMock(side_effect=RuntimeError("boom"))

        record = await DocumentAnalyzer(extractor).analyze(ah_receipt)

        assert record.document_info.extraction_method == ExtractionMethod.PATTERNS
        assert "model fallback: model extractor raised: boom" in record.notes

    @pytest.mark.asyncio
    async def test_async_and_sync_pattern_paths_agree(self, ah_receipt):
        analyzer = DocumentAnalyzer()
        assert (await analyzer.analyze(ah_receipt)).model_dump() == analyzer.analyze_patterns(
            ah_receipt
        ).model_dump()


def test_supported_field_groups():
    groups = get_supported_field_groups()

    assert groups["document_types"] == ["receipt", "professional_invoice", "unknown"]
    assert "albert_heijn" in groups["subtypes"]
    assert groups["subtypes"][0] == "general"
    assert groups["extraction_methods"] == ["patterns", "model"]
    assert {"receipt", "albert_heijn", "professional_invoice"} <= set(groups["profiles"])
    assert groups["tax_rates"] == ["9%", "21%"]
    assert "INVOICE" in groups["payment_methods"]
    assert groups["unknown"] == UNKNOWN
    assert "tax" in groups["groups"]["financial_info"]
