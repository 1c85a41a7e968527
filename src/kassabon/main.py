import asyncio
import json
import logging
import os
import time
from collections.abc import Callable
from pathlib import Path

import typer
from pydantic import ValidationError

# Disable gRPC fork support warnings
# These warnings occur when gRPC clients (Google APIs) are used
# with thread pools. Setting this env var disables the warnings.
os.environ.setdefault("GRPC_ENABLE_FORK_SUPPORT", "0")

from kassabon.config import Settings, load_settings
from kassabon.extraction import DocumentAnalyzer, ModelAssistedExtractor
from kassabon.extraction.engine import get_supported_field_groups
from kassabon.integrations.anthropic_client import AnthropicCompletionClient
from kassabon.integrations.gsheets import GSheetsClient
from kassabon.integrations.local_export import LocalExporter
from kassabon.integrations.ocr import OCREngine
from kassabon.models import ProcessingResult
from kassabon.utils.url_parser import URLParserError, parse_spreadsheet_id

logger = logging.getLogger(__name__)

app = typer.Typer(no_args_is_help=True)


@app.callback(invoke_without_command=True)
def callback(ctx: typer.Context):
    """Kassabon: receipt and invoice extraction."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())


def configure_logging(verbose: bool, settings: Settings) -> None:
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level, logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_analyzer(settings: Settings, use_model: bool) -> DocumentAnalyzer:
    """Pattern-only analyzer unless the model is wanted and a key is configured."""
    if not use_model:
        return DocumentAnalyzer()
    if not settings.anthropic_api_key:
        typer.echo(
            "Warning: ANTHROPIC_API_KEY not found. Using pattern extraction only.",
            err=True,
        )
        return DocumentAnalyzer()

    client = AnthropicCompletionClient(
        api_key=settings.anthropic_api_key,
        model=settings.model,
        max_tokens=settings.model_max_tokens,
    )
    extractor = ModelAssistedExtractor(
        client,
        timeout=settings.model_timeout,
        max_chars=settings.model_max_chars,
    )
    return DocumentAnalyzer(model_extractor=extractor)


async def process_document(
    path: Path,
    ocr_engine: OCREngine,
    analyzer: DocumentAnalyzer,
    on_progress: Callable[[str, str], None] | None = None,
) -> ProcessingResult:
    """Process a single document file through OCR and extraction.

    Args:
        path: Document to process (image, PDF or plain text)
        ocr_engine: OCR engine for text extraction
        analyzer: Analyzer turning the text into a record
        on_progress: Optional callback for progress updates (event_type, message)

    Returns:
        ProcessingResult with OCR text, the record, and any errors
    """
    started = time.monotonic()
    result = ProcessingResult(file_name=path.name, mime_type=OCREngine.guess_mime_type(path))

    # Step 1: OCR
    try:
        # OCR is synchronous, so we run it in an executor for true parallelism
        loop = asyncio.get_running_loop()
        text = await loop.run_in_executor(None, ocr_engine.extract_text, str(path))
        result.ocr_text = text
        if on_progress:
            on_progress("ocr_success", f"Extracted text from {path.name}: {len(text)} characters")
    except Exception as e:
        result.ocr_error = str(e)
        result.processing_time = time.monotonic() - started
        if on_progress:
            on_progress("ocr_error", f"Failed to read {path.name}: {e}")
        return result

    # Step 2: extraction, which never raises
    record = await analyzer.analyze(text)
    result.record = record
    result.processing_time = time.monotonic() - started

    if on_progress:
        financial = record.financial_info
        on_progress(
            "extract_success",
            f"Extracted {path.name}: {record.document_info.type.value}, "
            f"{record.company_info.name}, {record.transaction_info.date}, "
            f"{financial.total_amount} {financial.currency} "
            f"(confidence {record.confidence}, {record.document_info.extraction_method.value})",
        )
    return result


async def run_pipeline(
    paths: list[Path],
    ocr_engine: OCREngine,
    analyzer: DocumentAnalyzer,
    gsheets_client: GSheetsClient | None = None,
    csv_path: Path | None = None,
    on_progress: Callable[[str, str], None] | None = None,
) -> list[ProcessingResult]:
    """Process all documents concurrently, then persist the records.

    Args:
        paths: Document files to process
        ocr_engine: OCR engine for text extraction
        analyzer: Analyzer turning text into records
        gsheets_client: Optional Google Sheets client for writing results
        csv_path: Optional CSV file to append results to
        on_progress: Optional callback for progress updates (event_type, message)

    Returns:
        List of ProcessingResult objects, in the order of ``paths``
    """
    tasks = [process_document(path, ocr_engine, analyzer, on_progress) for path in paths]
    results = list(await asyncio.gather(*tasks))

    extracted = [result for result in results if result.record is not None]

    if gsheets_client:
        saved = 0
        for result in extracted:
            try:
                gsheets_client.save_record(result.record, result.file_name)  # type: ignore[arg-type]
                saved += 1
            except Exception as e:
                result.persist_error = str(e)
                if on_progress:
                    on_progress("sheets_error", f"Failed to write {result.file_name} to spreadsheet: {e}")
        if saved and on_progress:
            on_progress("sheets_success", f"Successfully wrote {saved} records to spreadsheet")

    if csv_path and extracted:
        try:
            LocalExporter().export(
                [(result.file_name, result.record) for result in extracted],  # type: ignore[misc]
                csv_path,
            )
            if on_progress:
                on_progress("csv_success", f"Exported {len(extracted)} records to {csv_path}")
        except Exception as e:
            for result in extracted:
                result.persist_error = str(e)
            if on_progress:
                on_progress("csv_error", f"Failed to export records to {csv_path}: {e}")

    return results


@app.command()
def analyze(
    paths: list[Path] = typer.Argument(..., help="Receipt or invoice files (images, PDFs, text)"),
    sheet: str | None = typer.Option(
        None,
        "--sheet",
        "-s",
        help="Google Sheets spreadsheet ID or URL to write results to",
    ),
    csv: Path | None = typer.Option(None, "--csv", "-c", help="CSV file to append results to"),
    no_model: bool = typer.Option(False, "--no-model", help="Use pattern extraction only"),
    as_json: bool = typer.Option(False, "--json", help="Print the records as JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Extract structured data from receipts and invoices."""
    try:
        settings = load_settings()
    except ValidationError as e:
        typer.echo(f"Invalid configuration: {e}", err=True)
        raise typer.Exit(code=1) from e

    configure_logging(verbose, settings)

    missing = [path for path in paths if not path.is_file()]
    if missing:
        for path in missing:
            typer.echo(f"Error: file not found: {path}", err=True)
        raise typer.Exit(code=1)

    gsheets_client = None
    sheet = sheet or settings.spreadsheet_id
    if sheet:
        try:
            spreadsheet_id = parse_spreadsheet_id(sheet)
        except URLParserError as e:
            typer.echo(f"Error parsing spreadsheet ID: {e}", err=True)
            raise typer.Exit(code=1) from e
        gsheets_client = GSheetsClient(spreadsheet_id=spreadsheet_id)
        if not as_json:
            typer.echo(f"Will write results to spreadsheet: {spreadsheet_id}")

    try:
        ocr_engine = OCREngine()
    except Exception as e:
        typer.echo(f"Failed to initialize OCR engine: {e}", err=True)
        raise typer.Exit(code=1) from e

    analyzer = build_analyzer(settings, use_model=not no_model)

    def cli_progress(event_type: str, message: str):
        """Callback to handle progress events and output to CLI."""
        if "error" in event_type:
            typer.echo(message, err=True)
        elif not as_json:
            typer.echo(message)

    results = asyncio.run(
        run_pipeline(
            paths=paths,
            ocr_engine=ocr_engine,
            analyzer=analyzer,
            gsheets_client=gsheets_client,
            csv_path=csv,
            on_progress=cli_progress,
        )
    )

    if as_json:
        typer.echo(
            json.dumps(
                [result.model_dump(mode="json", exclude={"ocr_text"}) for result in results],
                indent=2,
                ensure_ascii=False,
            )
        )

    if all(result.record is None for result in results):
        raise typer.Exit(code=1)


@app.command()
def fields():
    """Print the supported document types and field groups as JSON."""
    typer.echo(json.dumps(get_supported_field_groups(), indent=2))


def main():
    app()


if __name__ == "__main__":
    main()
