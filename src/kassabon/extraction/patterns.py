"""Pattern profiles: ordered regex lists per field, selected per document type.

Every labeled field is written once in its spaced form and expanded by
``dual`` into two variants: the spaced one ("SUBTOTAAL: 40,24") and a
compressed one with all whitespace removed ("SUBTOTAAL:40,24"), because PDF
and OCR text sometimes loses the spacing between tokens.
"""

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from kassabon.models import DocumentClassification, DocumentType

# "1.234,56" and "1,234.56" first; separators must differ so that compressed
# "31,982,88" still splits into two amounts
AMOUNT = r"(?:\d{1,3}(?:\.\d{3})+,\d{2}|\d{1,3}(?:,\d{3})+\.\d{2}|\d+[.,]\d{2})"

PAYMENT_METHODS = ("PIN", "CONTANT", "CREDITCARD", "EMBALLAGE")

_WHITESPACE_TOKEN = re.compile(r"\\s[+*?]?| \??")


def _squeeze(pattern: str) -> str:
    return _WHITESPACE_TOKEN.sub("", pattern)


def dual(pattern: str, flags: int = re.IGNORECASE) -> tuple[re.Pattern[str], ...]:
    """Compile the spaced and the compressed variant of ``pattern``.

    In ``pattern`` a literal space means "one or more whitespace characters"
    and " ?" means "optional whitespace" in the spaced variant. The compressed
    variant drops every whitespace token.
    """
    spaced = pattern.replace(" ?", r"\s*").replace(" ", r"\s+")
    compressed = _squeeze(pattern)
    return re.compile(spaced, flags), re.compile(compressed, flags)


def duals(*patterns: str, flags: int = re.IGNORECASE) -> tuple[re.Pattern[str], ...]:
    compiled: list[re.Pattern[str]] = []
    for pattern in patterns:
        compiled.extend(dual(pattern, flags))
    return tuple(compiled)


def single(*patterns: str, flags: int = re.IGNORECASE) -> tuple[re.Pattern[str], ...]:
    """Compile label patterns that already tolerate a missing colon or space."""
    return tuple(re.compile(pattern, flags) for pattern in patterns)


def label_prefix(*labels: str, flags: int = re.IGNORECASE) -> tuple[re.Pattern[str], ...]:
    """Match lines whose label, after an optional quantity, starts with one of ``labels``.

    The spaced variant needs a word boundary after the label, so "TOTAL"
    leaves "TOTALE REINIGER" alone. Compressed text has no word boundaries
    left, so there the label only has to lead the line.
    """
    alternatives = "|".join(labels)
    spaced, _ = dual(rf"^ ?(?:\d{{1,3}} )?(?:{alternatives})\b", flags)
    compressed = re.compile(_squeeze(rf"^(?:\d{{1,3}})?(?:{alternatives})"), flags)
    return spaced, compressed


@dataclass(frozen=True)
class PatternProfile:
    """A named table of field -> ordered pattern list."""

    name: str
    fields: Mapping[str, tuple[re.Pattern[str], ...]]
    item_denylist: tuple[re.Pattern[str], ...] = ()
    merchant_name: str | None = None
    inherits: tuple[str, ...] = field(default=())

    def patterns(self, field_name: str) -> tuple[re.Pattern[str], ...]:
        return self.fields.get(field_name, ())

    def all_patterns(self) -> Iterable[re.Pattern[str]]:
        for patterns in self.fields.values():
            yield from patterns

    def extend(
        self,
        name: str,
        merchant_name: str | None = None,
        **prepend: tuple[re.Pattern[str], ...],
    ) -> "PatternProfile":
        """Derive a profile whose patterns for the given fields are tried first."""
        fields = dict(self.fields)
        for field_name, patterns in prepend.items():
            fields[field_name] = tuple(patterns) + fields.get(field_name, ())
        return PatternProfile(
            name=name,
            fields=MappingProxyType(fields),
            item_denylist=self.item_denylist,
            merchant_name=merchant_name or self.merchant_name,
            inherits=(self.name, *self.inherits),
        )


DATE_PATTERNS = (
    # 22/08/2025, 22-8-2025, 22.08.2025
    re.compile(r"(?<!\d)(?P<day>\d{1,2})[/.-](?P<month>\d{1,2})[/.-](?P<year>\d{4})(?!\d)"),
    # 22/08/202512:55 (date glued to the time)
    re.compile(r"(?P<day>\d{2})[/.-](?P<month>\d{2})[/.-](?P<year>\d{4})"),
    re.compile(r"(?<!\d)(?P<year>\d{4})-(?P<month>\d{2})-(?P<day>\d{2})(?!\d)"),
    re.compile(
        r"(?<!\d)(?P<day>\d{1,2})\s*(?P<month_name>jan|feb|mrt|maa|mar|apr|mei|may|jun|jul|"
        r"aug|sep|okt|oct|nov|dec)[a-z]*\.?\s*(?P<year>\d{4})",
        re.IGNORECASE,
    ),
    re.compile(r"(?<!\d)(?P<day>\d{1,2})[/.-](?P<month>\d{1,2})[/.-](?P<year>\d{2})(?!\d)"),
)

TIME_PATTERNS = (
    re.compile(r"(?<!\d)(?P<hours>\d{1,2}):(?P<minutes>\d{2})(?!\d)"),
    re.compile(r"(?P<hours>\d{2}):(?P<minutes>\d{2})"),
)

# Labels of lines that look like "qty NAME: amount" but are not articles
RECEIPT_ITEM_DENYLIST = label_prefix(
    "BONUS ?KAART",
    "KLANTEN ?KAART",
    "AIR ?MILES",
    "SUBTOTA{1,2}L",
    "(?:EIND)?TOTA{1,2}L",
    "BONUS",
    "(?:UW|JOUW|JE) VOORDEEL",
    "WAARVAN",
    "KORTING",
    "KOOPZEGELS",
    "E?SPAARZEGELS",
    "BETAALD MET",
    "TE BETALEN",
    "PINNEN",
    "CONTANT",
    "WISSELGELD",
    "BTW",
    "VAT",
    "POI",
    "TERMINAL",
    "MERCHANT",
    "TRANSACTIE",
    "PERIODE",
    "AUTORISATIECODE",
    "LEESMETHODE",
    "KAART",
    "BANK",
    "VRAGEN OVER",
    "SPAARACTIES",
    "FILIAAL",
)

_RECEIPT_FIELDS: dict[str, tuple[re.Pattern[str], ...]] = {
    "date": DATE_PATTERNS,
    "time": TIME_PATTERNS,
    # "21 SUBTOTAAL: 40,24" / "SUBTOTAAL: 36,45"
    "subtotal": duals(
        rf"(?:(?<![\d.,])(?P<count>\d{{1,3}}) )?SUBTOTA{{1,2}}L\s*:?\s*(?P<value>{AMOUNT})"
    ),
    # Grand total; a second amount on the line means a VAT-section row
    "total": duals(
        rf"(?<![A-Z])(?<!SUB)(?:EIND)?TOTA{{1,2}}L\s*:?\s*(?P<sign>-)?\s*(?P<value>{AMOUNT})(?![^\S\n]*\d)",
        rf"TE BETALEN\s*:?\s*(?P<sign>-)?\s*(?P<value>{AMOUNT})",
    ),
    "paid_total": duals(rf"TOTAAL BETAALD\s*:?\s*(?P<value>{AMOUNT})"),
    # "TOTAAL: 33,29 3,16" below "BTW OVER EUR"
    "vat_section_total": duals(
        rf"(?<!SUB)TOTA{{1,2}}L\s*:?\s*(?P<base>{AMOUNT}) (?P<value>{AMOUNT})"
    ),
    # "9%: 31,98 2,88"
    "tax_line": duals(
        rf"(?<![\d.,])(?P<rate>\d{{1,2}})\s*%\s*:?\s*(?P<base>{AMOUNT}) (?P<value>{AMOUNT})"
    ),
    # Itemised discount lines, printed with a minus sign
    "bonus_line": duals(
        rf"BONUS(?!KAART)(?! BOX)(?P<label>[^:\n-]*):?\s*-\s*(?P<value>{AMOUNT})",
        rf"\d{{1,2}}% K(?P<label>[^:\n-]*):?\s*-\s*(?P<value>{AMOUNT})",
        rf"KORTING(?P<label>[^:\n-]*):?\s*-\s*(?P<value>{AMOUNT})",
    ),
    # Printed advantage total, preferred over summing bonus lines
    "advantage": duals(
        rf"UW VOORDEEL\s*:?\s*-?\s*(?P<value>{AMOUNT})",
        rf"JOUW VOORDEEL\s*:?\s*-?\s*(?P<value>{AMOUNT})",
        rf"TOTAAL VOORDEEL\s*:?\s*-?\s*(?P<value>{AMOUNT})",
    ),
    "stamps": duals(
        rf"(?<![\d.,])(?P<count>\d+) KOOPZEGELS[^:\n\d]*:?\s*(?P<value>{AMOUNT})",
    ),
    "item_count": duals(
        r"(?<![\d.,])(?P<value>\d{1,3}) SUBTOTA{1,2}L",
        r"AANTAL ARTIKELEN\s*:?\s*(?P<value>\d{1,3})(?![\d.,])",
    ),
    "payment_pin": duals(
        rf"PINNEN\s*:?\s*(?P<value>{AMOUNT})",
        rf"BETAALD MET PIN\s*:?\s*(?P<value>{AMOUNT})",
        rf"(?<![A-Z])PIN\s*:?\s*(?P<value>{AMOUNT})",
    ),
    "payment_contant": duals(
        rf"CONTANT\s*:?\s*(?P<value>{AMOUNT})",
        rf"(?<![A-Z])CASH\s*:?\s*(?P<value>{AMOUNT})",
    ),
    "payment_creditcard": duals(
        rf"CREDIT ?CARD\s*:?\s*(?P<value>{AMOUNT})",
        rf"(?:VISA|MASTERCARD)\s*:\s*(?P<value>{AMOUNT})",
    ),
    "payment_emballage": duals(
        rf"EMBALLAGE ?BON(?:NEN)?\s*:?\s*(?P<value>{AMOUNT})",
        rf"STATIEGELD ?BON(?:NEN)?\s*:?\s*(?P<value>{AMOUNT})",
    ),
    "payment_keyword": single(
        r"(?P<PIN>PINNEN|BETAALD\s*MET\s*PIN|MAESTRO|V\s?PAY)",
        r"(?P<CONTANT>CONTANT|\bCASH\b)",
        r"(?P<CREDITCARD>CREDIT\s?CARD|MASTERCARD|\bVISA\b)",
    ),
    "store_id": single(r"FILIAAL\s*(?:NR\.?)?\s*:?\s*(?P<value>\d+)"),
    "transaction_id": single(r"TRANSACTIE(?:NUMMER|\s*NR\.?)?\s*:?\s*(?P<value>\d+)"),
    "terminal_id": single(r"TERMINAL(?:\s*ID)?\s*:?\s*(?P<value>[A-Z0-9]+)"),
    "merchant_id": single(r"MERCHANT(?:\s*ID)?\s*:?\s*(?P<value>\d+)"),
    "poi": single(r"(?<![A-Z])POI\s*:?\s*(?P<value>\d+)"),
    "period": single(r"PERIODE\s*:?\s*(?P<value>\d+)"),
    "authorization_code": single(r"AUTORI[SZ]ATIE(?:CODE)?\s*:?\s*(?P<value>[A-Z0-9]+)"),
    "reading_method": single(r"LEESMETHODE\s*:?\s*(?P<value>[A-Z]+)"),
    "bank_name": single(r"(?<![A-Z])BANK\s*:\s*(?P<value>[^\n]+)"),
    "card_number": single(r"(?<!BONUS)KAART\s*:?\s*(?P<value>\d+[X*]+\d+)"),
    "card_type": single(
        r"\b(?P<value>MAESTRO|V\s?PAY|VISA|MASTERCARD|AMERICAN\s*EXPRESS)\b"
    ),
    "loyalty_card": single(
        r"BONUSKAART\s*:?\s*(?P<value>[X*]*\d+)",
        r"KLANTENKAART\s*:?\s*(?P<value>[X*]*\d+)",
    ),
    "miles": single(
        r"AIR\s*MILES(?:\s*NR\.?)?\s*:?\s*\*?\s*(?P<value>[X*]+\d+|\d+)",
    ),
    "phone": single(
        r"(?<![A-Z])TEL(?:EFOON)?\.?\s*:?\s*(?P<value>\+?\d[\d -]{8,14}\d)",
        r"(?<!\d)(?P<value>0\d{2}-\d{7}|0\d{3}-\d{6}|0\d{9})(?!\d)",
        r"(?P<value>\+31[\d -]{8,13}\d)",
    ),
    "address": (
        re.compile(r"^(?P<value>[A-Z][a-z]+(?:[ -][A-Za-z]+)* \d+[A-Za-z]?)\s*$", re.MULTILINE),
        re.compile(
            r"^(?P<value>[A-Z][a-z]+(?:plein|straat|weg|laan|singel|gracht|kade|dijk|hof|markt|park)"
            r"\d+[A-Za-z]?)$",
            re.MULTILINE,
        ),
    ),
    # "2628 AB Delft" printed below the street line
    "postal_code": (
        re.compile(r"^\s*(?P<value>\d{4}\s?[A-Z]{2}(?:\s*[A-Z][A-Za-z -]*)?)\s*$"),
    ),
    "email": single(r"(?P<value>[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,})"),
    "website": single(r"(?P<value>(?:https?://)?www\.[A-Z0-9.-]+\.[A-Z]{2,}(?:/\S*)?)"),
    "tax_id": single(
        r"(?:BTW|VAT)[\s-]*(?:NUMMER|NR\.?|NUMBER|ID)\s*:?\s*(?P<value>[A-Z]{2}\s?[\dA-Z]{9,12})",
        r"(?P<value>NL\d{9}B\d{2})",
    ),
    "registration_id": single(
        r"(?:KVK|K\.v\.K\.?|COMPANY NUMBER)[\s-]*(?:NUMMER|NR\.?)?\s*:?\s*(?P<value>\d{8})",
    ),
    "iban": single(
        r"IBAN\s*:?\s*(?P<value>[A-Z]{2}\d{2}\s?[A-Z]{4}(?:\s?\d{4}){2}\s?\d{2})",
        r"(?P<value>NL\d{2}\s?[A-Z]{4}(?:\s?\d{4}){2}\s?\d{2})",
    ),
    "bic": single(r"(?i:BIC)\s*:?\s*(?P<value>[A-Z]{6}[A-Z0-9]{2}(?:[A-Z0-9]{3})?)(?![A-Za-z0-9])", flags=0),
    # "1 BOODSCH TAS: 1,59" / "1BOODSCHTAS:1,59"
    "item_line": (
        re.compile(rf"^\s*(?P<qty>\d{{1,3}})\s+(?P<name>[^:\n]+?)\s*:\s*(?P<price>{AMOUNT})(?P<rest>.*)$"),
        re.compile(rf"^(?P<qty>\d{{1,3}})(?P<name>[^\d:\n]+?):?(?P<price>{AMOUNT})(?P<rest>.*)$"),
    ),
    "currency": single(
        r"(?P<EUR>€|\bEUR\b)",
        r"(?P<USD>\$|\bUSD\b)",
        r"(?P<GBP>£|\bGBP\b)",
    ),
}

RECEIPT_PROFILE = PatternProfile(
    name="receipt",
    fields=MappingProxyType(_RECEIPT_FIELDS),
    item_denylist=RECEIPT_ITEM_DENYLIST,
)

ALBERT_HEIJN_PROFILE = RECEIPT_PROFILE.extend(
    "albert_heijn",
    merchant_name="Albert Heijn",
    advantage=duals(rf"UW VOORDEEL\s*:?\s*(?P<value>{AMOUNT})"),
)

JUMBO_PROFILE = RECEIPT_PROFILE.extend(
    "jumbo",
    merchant_name="Jumbo",
    total=duals(rf"TE BETALEN\s*:?\s*(?P<sign>-)?\s*(?P<value>{AMOUNT})"),
    advantage=duals(rf"JE VOORDEEL\s*:?\s*-?\s*(?P<value>{AMOUNT})"),
)

LIDL_PROFILE = RECEIPT_PROFILE.extend(
    "lidl",
    merchant_name="Lidl",
    total=duals(rf"TE BETALEN\s*:?\s*(?P<sign>-)?\s*(?P<value>{AMOUNT})"),
    bonus_line=duals(rf"LIDL PLUS(?P<label>[^:\n-]*):?\s*-\s*(?P<value>{AMOUNT})"),
)

_INVOICE_DATE = r"(?P<value>\d{1,2}[/.-]\d{1,2}[/.-]\d{2,4}|\d{4}-\d{2}-\d{2}|\d{1,2} [A-Za-z]{3,9} \d{4})"
_INVOICE_REFERENCE = r"(?P<value>(?=[A-Z0-9/-]*\d)[A-Z0-9][A-Z0-9/-]*)"

_INVOICE_FIELDS: dict[str, tuple[re.Pattern[str], ...]] = {
    **_RECEIPT_FIELDS,
    "invoice_date": duals(
        rf"FACTUURDATUM\s*:?\s*{_INVOICE_DATE}",
        rf"INVOICE DATE\s*:?\s*{_INVOICE_DATE}",
        rf"(?<![A-Z])DATUM\s*:\s*{_INVOICE_DATE}",
    ),
    "due_date": duals(
        rf"VERVALDATUM\s*:?\s*{_INVOICE_DATE}",
        rf"DUE DATE\s*:?\s*{_INVOICE_DATE}",
    ),
    "invoice_number": duals(
        rf"FACTUURNUMMER\s*:?\s*{_INVOICE_REFERENCE}",
        rf"FACTUUR ?NR\.?\s*:?\s*{_INVOICE_REFERENCE}",
        rf"INVOICE (?:NUMBER|NO\.?)\s*:?\s*{_INVOICE_REFERENCE}",
        rf"(?:FACTUUR|INVOICE)\s*:\s*{_INVOICE_REFERENCE}",
    ),
    "company_name": single(
        r"HANDELSNAAM\s*:\s*(?P<value>[^\n]+)",
        r"BEDRIJFSNAAM\s*:\s*(?P<value>[^\n]+)",
        r"(?:SUPPLIER|LEVERANCIER)\s*:\s*(?P<value>[^\n]+)",
    ),
    "customer_name": single(
        r"T\.\s*A\.\s*V\.?\s*:?\s*(?P<value>[^\n]+)",
        r"ATTN\s*:?\s*(?P<value>[^\n]+)",
        r"(?:KLANT|CUSTOMER)\s*:\s*(?P<value>[^\n]+)",
    ),
    "subtotal_excl": duals(
        rf"TOTAALBEDRAG EXCL\.? BTW[^\d\n]*(?P<value>{AMOUNT})",
        rf"SUBTOTAAL EXCL\.? BTW[^\d\n]*(?P<value>{AMOUNT})",
        rf"SUBTOTAL EXCL\.? VAT[^\d\n]*(?P<value>{AMOUNT})",
    ),
    "total_incl": duals(
        rf"TOTAALBEDRAG INCL\.? BTW[^\d\n]*(?P<value>{AMOUNT})",
        rf"(?:SUBTOTAL|TOTAL) INCL\.? VAT[^\d\n]*(?P<value>{AMOUNT})",
        rf"TOTAL DUE[^\d\n]*(?P<value>{AMOUNT})",
    ),
    # "Btw hoog (21%) € 21,00" / "BTW 9%: 2,88"
    "invoice_tax_rated": duals(
        rf"(?:BTW|VAT)(?: HOOG| LAAG)?\s*\(?(?P<rate>\d{{1,2}})\s*%\)?[^\d\n]*(?P<value>{AMOUNT})",
    ),
    "invoice_tax_high": duals(rf"BTW HOOG[^\d\n]*(?P<value>{AMOUNT})"),
    "invoice_tax_low": duals(rf"BTW LAAG[^\d\n]*(?P<value>{AMOUNT})"),
    "invoice_tax_amount": duals(
        rf"(?:BTW|VAT)(?:[ -]?BEDRAG| AMOUNT)?\s*:\s*€?\s*(?P<value>{AMOUNT})",
    ),
    "payment_terms": (
        *duals(
            rf"GELIEVE DIT BEDRAG[^€\n]*€\s*(?P<value>{AMOUNT})[^\d\n]*(?P<due>\d{{2}}/\d{{2}}/\d{{4}})"
        ),
        *single(
            r"BETAALTERMIJN\s*:?\s*(?P<value>[^\n]+)",
            r"PAYMENT TERMS\s*:?\s*(?P<value>[^\n]+)",
        ),
    ),
    # "2 Consultancy uren € 100,00 € 121,00"
    "invoice_item_line": duals(
        rf"^\s*(?P<qty>\d{{1,3}}) (?P<name>[^€\n]+?)\s*€\s*(?P<price>{AMOUNT})\s*€\s*(?P<total>{AMOUNT})\s*$",
    ),
}

PROFESSIONAL_INVOICE_PROFILE = PatternProfile(
    name="professional_invoice",
    fields=MappingProxyType(_INVOICE_FIELDS),
    item_denylist=RECEIPT_ITEM_DENYLIST,
)

PROFILES: Mapping[str, PatternProfile] = MappingProxyType(
    {
        profile.name: profile
        for profile in (
            RECEIPT_PROFILE,
            ALBERT_HEIJN_PROFILE,
            JUMBO_PROFILE,
            LIDL_PROFILE,
            PROFESSIONAL_INVOICE_PROFILE,
        )
    }
)


def select_profile(classification: DocumentClassification) -> PatternProfile:
    """Pick the pattern profile for a classified document.

    Professional invoices get the invoice profile, known merchants their own
    profile, everything else (including unknown documents) the generic
    receipt profile.
    """
    if classification.type == DocumentType.PROFESSIONAL_INVOICE:
        return PROFESSIONAL_INVOICE_PROFILE
    return PROFILES.get(classification.subtype, RECEIPT_PROFILE)
