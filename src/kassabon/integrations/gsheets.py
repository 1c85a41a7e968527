"""Google Sheets integration for writing extracted records.

Note: The Google API Client library uses dynamic method creation at runtime.
Methods like .spreadsheets() are added to Resource objects when build() is called,
so type checkers can't detect them. We use # type: ignore[attr-defined] to
suppress these warnings where appropriate.
"""

import logging
from typing import Any

from googleapiclient.discovery import Resource, build
from googleapiclient.errors import HttpError
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from kassabon.models import ExtractedRecord
from kassabon.utils.parsing import UNKNOWN

logger = logging.getLogger(__name__)

RECORDS_SHEET = "Invoices"
ITEMS_SHEET = "Items"

RECORD_HEADERS = [
    "Bron",
    "Factuurnummer",
    "Document Type",
    "Subtype",
    "Bedrijf",
    "Adres",
    "Telefoon",
    "BTW-nummer",
    "KVK-nummer",
    "IBAN",
    "Datum",
    "Tijd",
    "Vervaldatum",
    "Totaalbedrag",
    "Valuta",
    "Subtotaal Voor Korting",
    "Subtotaal Na Korting",
    "BTW 9%",
    "BTW 21%",
    "BTW Totaal",
    "Korting",
    "Bonus",
    "Voordeel",
    "Retour",
    "Koopzegels",
    "Aantal Koopzegels",
    "Betaalmethode",
    "PIN Bedrag",
    "Contant Bedrag",
    "Transactie ID",
    "Terminal ID",
    "Merchant ID",
    "Filiaal",
    "Bonuskaart",
    "Air Miles",
    "Aantal Items",
    "Unieke Items",
    "Betrouwbaarheid",
    "Methode",
    "Opmerkingen",
]

ITEM_HEADERS = [
    "Bron",
    "Factuurnummer",
    "Document Type",
    "Bedrijf",
    "Datum",
    "Item Naam",
    "Aantal",
    "Prijs Per Stuk",
    "Totaalprijs",
    "Bonus",
    "Bonus Bedrag",
]


def _is_retryable_error(exception: BaseException) -> bool:
    """Determine if an exception should trigger a retry.

    Retries on:
    - HTTP 429 (rate limit exceeded)
    - HTTP 503 (service unavailable)
    - Network errors (ConnectionError, TimeoutError, etc.)

    Does NOT retry on other HTTP errors (bad request, permission problems,
    unknown spreadsheet ID).
    """
    if isinstance(exception, ConnectionError | TimeoutError | OSError):
        return True

    if isinstance(exception, HttpError):
        return exception.resp.status in (429, 503)

    return False


def record_to_sheet_row(record: ExtractedRecord, source: str = UNKNOWN) -> list[Any]:
    """Convert an ExtractedRecord to a fixed-width row matching RECORD_HEADERS.

    Missing map entries (a tax rate or payment method that was not found)
    are written as ``UNKNOWN`` so every row has the same number of columns.

    Args:
        record: The record to convert
        source: Where the document came from, e.g. its file name

    Returns:
        A list with one value per entry in RECORD_HEADERS
    """
    company = record.company_info
    transaction = record.transaction_info
    financial = record.financial_info
    unique_items = len({item.name for item in record.items}) if record.items else UNKNOWN

    return [
        source,
        transaction.invoice_number,
        record.document_info.type.value,
        record.document_info.subtype,
        company.name,
        company.address,
        company.phone,
        company.tax_id,
        company.registration_id,
        company.iban,
        transaction.date,
        transaction.time,
        transaction.due_date,
        financial.total_amount,
        financial.currency,
        financial.subtotal_before_discount,
        financial.subtotal_after_discount,
        financial.tax.get("9%", UNKNOWN),
        financial.tax.get("21%", UNKNOWN),
        financial.tax_total,
        financial.loyalty_discount_amount,
        financial.discount_amount,
        financial.advantage_amount,
        financial.refund_amount,
        financial.stamps_amount,
        financial.stamps_count,
        financial.payment_method,
        financial.payment_amounts_by_method.get("PIN", UNKNOWN),
        financial.payment_amounts_by_method.get("CONTANT", UNKNOWN),
        transaction.transaction_id,
        transaction.terminal_id,
        transaction.merchant_id,
        transaction.store_id,
        record.loyalty_info.card_number,
        record.loyalty_info.miles_number,
        record.item_count,
        unique_items,
        record.confidence,
        record.document_info.extraction_method.value,
        record.notes,
    ]


def record_items_to_rows(record: ExtractedRecord, source: str = UNKNOWN) -> list[list[Any]]:
    """One row per line item, matching ITEM_HEADERS."""
    return [
        [
            source,
            record.transaction_info.invoice_number,
            record.document_info.type.value,
            record.company_info.name,
            record.transaction_info.date,
            item.name,
            item.quantity,
            item.unit_price,
            item.total_price,
            "ja" if item.bonus_flag else "nee",
            item.bonus_amount,
        ]
        for item in record.items
    ]


class GSheetsClient:
    """Client for interacting with Google Sheets API.

    Attributes:
        spreadsheet_id: Optional Google Sheets spreadsheet ID
    """

    def __init__(self, spreadsheet_id: str | None = None):
        """Initialize the Google Sheets client.

        Args:
            spreadsheet_id: Optional Google Sheets spreadsheet ID
        """
        self._service: Resource | None = None  # Private cache for lazy initialization
        self.spreadsheet_id = spreadsheet_id
        # sheet name -> header row known to be in place
        self._headers_cache: dict[str, list[str]] = {}

    @property
    def service(self) -> Resource:
        """Lazily initialize and return the Google Sheets service.

        The service is created on first access and cached for subsequent calls.

        Returns:
            The Google Sheets API service (Resource object)
        """
        if self._service is None:
            self._service = build("sheets", "v4")
        return self._service

    def _require_spreadsheet(self, operation: str) -> None:
        if not self.spreadsheet_id:
            raise ValueError(f"spreadsheet_id must be set before calling {operation}")

    @retry(
        retry=retry_if_exception(_is_retryable_error),
        stop=stop_after_attempt(5),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    def append_row(self, sheet_name: str, values: list[Any]) -> dict[str, Any]:
        """Append a single row to a sheet.

        Args:
            sheet_name: Name of the sheet (tab) to append to
            values: List of values to append as a row

        Returns:
            The API response containing update information

        Raises:
            ValueError: If spreadsheet_id is not set
            HttpError: For non-retryable errors or after max retries
        """
        self._require_spreadsheet("append_row")

        # Note: spreadsheets() is dynamically added by googleapiclient at runtime
        result = (
            self.service.spreadsheets()  # type: ignore[attr-defined]
            .values()
            .append(
                spreadsheetId=self.spreadsheet_id,
                range=f"{sheet_name}!A1",
                valueInputOption="RAW",
                insertDataOption="INSERT_ROWS",
                body={"values": [values]},
            )
            .execute()
        )
        return result

    @retry(
        retry=retry_if_exception(_is_retryable_error),
        stop=stop_after_attempt(5),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    def append_rows(self, sheet_name: str, rows: list[list[Any]]) -> dict[str, Any]:
        """Append multiple rows to a sheet in a batch operation.

        Args:
            sheet_name: Name of the sheet (tab) to append to
            rows: List of rows, where each row is a list of values

        Returns:
            The API response containing update information

        Raises:
            ValueError: If spreadsheet_id is not set
            HttpError: For non-retryable errors or after max retries
        """
        self._require_spreadsheet("append_rows")

        result = (
            self.service.spreadsheets()  # type: ignore[attr-defined]
            .values()
            .append(
                spreadsheetId=self.spreadsheet_id,
                range=f"{sheet_name}!A1",
                valueInputOption="RAW",
                insertDataOption="INSERT_ROWS",
                body={"values": rows},
            )
            .execute()
        )
        return result

    @retry(
        retry=retry_if_exception(_is_retryable_error),
        stop=stop_after_attempt(5),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    def ensure_headers(self, sheet_name: str, headers: list[str]) -> None:
        """Make sure ``sheet_name`` exists and starts with ``headers``.

        The header row written or found is remembered per client, so repeated
        calls for the same sheet cost no API requests.

        Raises:
            ValueError: If spreadsheet_id is not set
            HttpError: For non-retryable errors or after max retries
        """
        self._require_spreadsheet("ensure_headers")
        if self._headers_cache.get(sheet_name) == headers:
            return

        spreadsheets = self.service.spreadsheets()  # type: ignore[attr-defined]
        metadata = spreadsheets.get(
            spreadsheetId=self.spreadsheet_id, fields="sheets.properties.title"
        ).execute()
        titles = {sheet["properties"]["title"] for sheet in metadata.get("sheets", [])}

        if sheet_name not in titles:
            logger.info("Creating sheet %s", sheet_name)
            spreadsheets.batchUpdate(
                spreadsheetId=self.spreadsheet_id,
                body={"requests": [{"addSheet": {"properties": {"title": sheet_name}}}]},
            ).execute()
            current: list[str] = []
        else:
            response = (
                spreadsheets.values()
                .get(spreadsheetId=self.spreadsheet_id, range=f"{sheet_name}!1:1")
                .execute()
            )
            current = (response.get("values") or [[]])[0]

        if current != headers:
            logger.info("Writing %d headers to sheet %s", len(headers), sheet_name)
            spreadsheets.values().update(
                spreadsheetId=self.spreadsheet_id,
                range=f"{sheet_name}!A1",
                valueInputOption="RAW",
                body={"values": [headers]},
            ).execute()

        self._headers_cache[sheet_name] = list(headers)

    def save_record(self, record: ExtractedRecord, source: str = UNKNOWN) -> None:
        """Write a record to the records sheet and its items to the items sheet."""
        self.ensure_headers(RECORDS_SHEET, RECORD_HEADERS)
        self.append_row(RECORDS_SHEET, record_to_sheet_row(record, source))

        item_rows = record_items_to_rows(record, source)
        if item_rows:
            self.ensure_headers(ITEMS_SHEET, ITEM_HEADERS)
            self.append_rows(ITEMS_SHEET, item_rows)
