"""Unit tests for document classification."""

import pytest

from kassabon.extraction.classifier import (
    PROFESSIONAL_INDICATORS,
    RECEIPT_INDICATORS,
    classify,
    count_indicators,
    detect_language,
    detect_subtype,
)
from kassabon.models import DocumentType, Language
from kassabon.utils.parsing import compress

pytestmark = pytest.mark.unit


class TestDocumentType:
    def test_reference_receipt(self, ah_receipt):
        classification = classify(ah_receipt)
        assert classification.type == DocumentType.RECEIPT
        assert classification.subtype == "albert_heijn"
        assert classification.language == Language.DUTCH

    def test_professional_invoice(self, professional_invoice):
        classification = classify(professional_invoice)
        assert classification.type == DocumentType.PROFESSIONAL_INVOICE

    def test_two_invoice_labels_beat_receipt_words(self):
        text = "Factuurdatum: 01-02-2025\nBtw-nummer: NL001234567B01\nTotaal: 10,00\nPINNEN\nKassa"
        assert classify(text).type == DocumentType.PROFESSIONAL_INVOICE

    def test_one_invoice_label_is_not_enough(self):
        text = "IBAN NL91ABNA0417164300\nSUBTOTAAL: 5,00\nPINNEN: 5,00\nTerminal: X1"
        assert classify(text).type == DocumentType.RECEIPT

    def test_too_few_indicators_is_unknown(self):
        assert classify("Bedankt en tot ziens").type == DocumentType.UNKNOWN
        assert classify("").type == DocumentType.UNKNOWN

    def test_compressed_receipt_still_classifies(self, ah_receipt):
        classification = classify(compress(ah_receipt))
        assert classification.type == DocumentType.RECEIPT
        assert classification.subtype == "albert_heijn"

    def test_count_indicators(self, ah_receipt, professional_invoice):
        assert count_indicators(ah_receipt, RECEIPT_INDICATORS) >= 3
        assert count_indicators(professional_invoice, PROFESSIONAL_INDICATORS) >= 2

    def test_never_raises(self):
        classification = classify(None)  # type: ignore[arg-type]
        assert classification.type == DocumentType.UNKNOWN
        assert classification.subtype == "general"


class TestSubtype:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("JUMBO SUPERMARKTEN", "jumbo"),
            ("Lidl Nederland", "lidl"),
            ("ALBERTHEIJN", "albert_heijn"),
            ("AH to go Centraal", "albert_heijn"),
            ("Kruidvat Delft", "pharmacy"),
            ("Shell Station A4", "gas_station"),
            ("Bakkerij de Graaf", "general"),
        ],
    )
    def test_detect_subtype(self, text, expected):
        assert detect_subtype(text) == expected

    def test_keywords_need_word_boundaries(self):
        assert detect_subtype("SURPLUSVOORRAAD") == "general"

    def test_longest_keyword_wins(self):
        assert detect_subtype("Restaurant Albert Heijn") == "albert_heijn"


class TestLanguage:
    def test_dutch(self):
        assert detect_language("Bedankt voor uw bezoek en tot ziens bij de kassa") == Language.DUTCH

    def test_english(self):
        assert detect_language("Thank you for your visit and see you at the store") == Language.ENGLISH

    def test_tie_is_mixed(self):
        assert detect_language("12,34 45,67") == Language.MIXED
