"""Document classification: receipt vs. professional invoice, merchant and language."""

import logging
import re

from kassabon.models import DocumentClassification, DocumentType, Language

logger = logging.getLogger(__name__)

PROFESSIONAL_THRESHOLD = 2
RECEIPT_THRESHOLD = 3

# Colons are optional so compressed text still counts
PROFESSIONAL_INDICATORS = tuple(
    re.compile(pattern, re.IGNORECASE | re.MULTILINE)
    for pattern in (
        r"Factuurdatum\s*:?",
        r"Vervaldatum\s*:?",
        r"Btw[\s-]*nummer",
        r"KvK[\s-]*nummer",
        r"\bIBAN\b",
        r"\bBIC\b",
        r"Handelsnaam",
        r"Totaalbedrag\s*excl\.?\s*btw",
        r"Totaalbedrag\s*incl\.?\s*btw",
        r"Invoice\s*(?:Number|No\.?|Date)",
        r"Due\s*Date",
        r"VAT\s*(?:Number|No\.?)",
        r"^\s*(?:FACTUUR|INVOICE)\b",
        r"Leverancier\s*:",
        r"Supplier\s*:",
        r"\bKlant\s*:",
        r"Customer\s*:",
        r"Betaaltermijn",
        r"Payment\s*Terms",
        r"T\.\s*a\.\s*v\.",
        r"\bAttn\b",
    )
)

RECEIPT_INDICATORS = tuple(
    re.compile(pattern, re.IGNORECASE | re.MULTILINE)
    for pattern in (
        r"SUBTOTA{1,2}L",
        r"UW\s*VOORDEEL",
        r"KOOPZEGELS",
        r"BONUSKAART",
        r"AIR\s*MILES",
        r"PINNEN",
        r"BTW\s*OVER\s*EUR",
        r"KASSABON",
        r"Terminal",
        r"Merchant",
        r"Transactie",
        r"\bKassa\b",
        r"CONTANT",
        r"WISSELGELD",
        r"ALBERT\s*HEIJN",
    )
)

# keyword -> subtype
MERCHANT_KEYWORDS = {
    "albert heijn": "albert_heijn",
    "ah to go": "albert_heijn",
    "jumbo": "jumbo",
    "lidl": "lidl",
    "aldi": "aldi",
    "plus": "plus",
    "dirk van den broek": "dirk",
    "coop": "coop",
    "spar": "spar",
    "hema": "hema",
    "etos": "pharmacy",
    "kruidvat": "pharmacy",
    "apotheek": "pharmacy",
    "shell": "gas_station",
    "tankstation": "gas_station",
    "esso": "gas_station",
    "restaurant": "restaurant",
    "hotel": "hotel",
}

DUTCH_STOPWORDS = frozenset(
    {"de", "het", "een", "en", "van", "voor", "met", "je", "uw", "op", "aan", "te", "is", "over", "niet", "bij"}
)
ENGLISH_STOPWORDS = frozenset(
    {"the", "and", "of", "for", "with", "you", "your", "to", "on", "is", "at", "by", "not", "from", "thank"}
)

_WORD = re.compile(r"[a-zà-ÿ]+")


def _keyword_pattern(keyword: str) -> re.Pattern[str]:
    words = (re.escape(word) for word in keyword.split())
    return re.compile(r"\b" + r"\s*".join(words) + r"\b", re.IGNORECASE)


_MERCHANT_PATTERNS = tuple(
    (keyword, subtype, _keyword_pattern(keyword)) for keyword, subtype in MERCHANT_KEYWORDS.items()
)


def count_indicators(text: str, indicators: tuple[re.Pattern[str], ...]) -> int:
    return sum(1 for pattern in indicators if pattern.search(text))


def detect_subtype(text: str) -> str:
    """Longest matching merchant keyword wins; ``general`` when none match."""
    best: tuple[int, str] | None = None
    for keyword, subtype, pattern in _MERCHANT_PATTERNS:
        if pattern.search(text) and (best is None or len(keyword) > best[0]):
            best = (len(keyword), subtype)
    return best[1] if best else "general"


def detect_language(text: str) -> Language:
    words = _WORD.findall(text.lower())
    dutch = sum(1 for word in words if word in DUTCH_STOPWORDS)
    english = sum(1 for word in words if word in ENGLISH_STOPWORDS)
    if dutch > english:
        return Language.DUTCH
    if english > dutch:
        return Language.ENGLISH
    return Language.MIXED


def classify(text: str) -> DocumentClassification:
    """Classify raw document text. Never raises."""
    try:
        professional = count_indicators(text, PROFESSIONAL_INDICATORS)
        receipt = count_indicators(text, RECEIPT_INDICATORS)
        if professional >= PROFESSIONAL_THRESHOLD:
            document_type = DocumentType.PROFESSIONAL_INVOICE
        elif receipt >= RECEIPT_THRESHOLD:
            document_type = DocumentType.RECEIPT
        else:
            document_type = DocumentType.UNKNOWN
        logger.debug(
            "Classified as %s (professional=%d, receipt=%d)", document_type.value, professional, receipt
        )
        return DocumentClassification(
            type=document_type,
            subtype=detect_subtype(text),
            language=detect_language(text),
        )
    except Exception:
        logger.warning("Classification failed", exc_info=True)
        return DocumentClassification()
