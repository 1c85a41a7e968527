"""Shared fixtures: reference documents used across the unit tests."""

import pytest

AH_RECEIPT = """ALBERT HEIJN
FILIAAL 1427
Parijsplein 19
070-3935033

22/08/2025 12:55

AANTAL OMSCHRIJVING PRIJS BEDRAG
BONUSKAART: xx0802
AIRMILES NR.: xx6254
1 BOODSCH TAS: 1,59
1 DZH HV MELK: 1,99
1 DZH YOGHURT: 2,29
1 HONING: 2,25
3 BAPAO: 0,99
1 DZH CREME FR: 1,09
1 ZAANSE HOEVE: 2,69 25%
1 BOTERH WORST: 1,49
1 SCHOUDERHAM: 1,79
1 AH ROOMBRIE: 2,99
1 CHERRYTOMAAT: 1,19
1 AH SALADE: 3,29 B
1 AH SALADE: 2,79 B
1 VRUCHT HAGEL: 2,59
1 ROZ KREN BOL: 2,69
2 VOLK BOLLEN: 1,59
1 DE ICE CARAM: 1,59
1 APPELFLAP: 1,78 B

21 SUBTOTAAL: 40,24

BONUS AHROOMBOTERA: -0,79
BONUS AHSALADES175: -2,33
25% K ZAANSE HOEVE: -0,67

UW VOORDEEL: 3,79
waarvan BONUS BOX PREMIUM: 0,00

SUBTOTAAL: 36,45

74 KOOPZEGELS PREMIUM: 7,40

TOTAAL: 43,85

6 eSPAARZEGELS PREMIUM
28 MIJN AH MILES PREMIUM

BETAALD MET:
PINNEN: 43,85

Totaal betaald: 43,85 EUR

POI: 50282895
Terminal: 5F2GVM
Merchant: 1315641
Periode: 5234
Transactie: 02286653
Maestro: A0000000043060
Bank: ABN AMRO BANK
Kaart: 673400xxxxxxxxx2056
Kaartserienummer: 5
Autorisatiecode: F30005
Leesmethode: CHIP

BTW OVER EUR
9%: 31,98 2,88
21%: 1,31 0,28
TOTAAL: 33,29 3,16

1427 12:54
35 41
22-8-2025

Vragen over je kassabon? Onze collega's helpen je graag"""

PROFESSIONAL_INVOICE = """FACTUUR
Handelsnaam: Van Dijk Consultancy B.V.
Kerkstraat 12
2611 AB Delft
Tel: 015-2123456
info@vandijk.nl
www.vandijk.nl
KvK-nummer: 12345678
Btw-nummer: NL123456789B01
IBAN: NL91 ABNA 0417 1643 00
BIC: ABNANL2A

Factuurnummer: 2025-0042
Factuurdatum: 15-03-2025
Vervaldatum: 14-04-2025
T.a.v. Jansen Installatietechniek

2 Consultancy uren € 100,00 € 200,00
1 Reiskosten € 45,00 € 45,00

Totaalbedrag excl. btw € 245,00
Btw hoog (21%) € 51,45
Totaalbedrag incl. btw € 296,45
Betaaltermijn: 30 dagen"""


@pytest.fixture
def ah_receipt() -> str:
    """The Albert Heijn reference receipt, as normally spaced text."""
    return AH_RECEIPT


@pytest.fixture
def professional_invoice() -> str:
    """A Dutch B2B invoice with company, VAT and payment details."""
    return PROFESSIONAL_INVOICE
