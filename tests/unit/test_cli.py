import json
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from kassabon.config import ENVIRONMENT
from kassabon.main import app
from tests.utils import clean_cli_output, write_document

pytestmark = pytest.mark.unit

runner = CliRunner()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Run every command without a .env file or real credentials."""
    for variable in ENVIRONMENT.values():
        monkeypatch.delenv(variable, raising=False)
    with patch("kassabon.config.load_dotenv"):
        yield


@pytest.fixture
def ah_file(tmp_path, ah_receipt):
    return write_document(tmp_path, "ah.txt", ah_receipt)


@pytest.fixture
def mock_gsheets_client():
    with patch("kassabon.main.GSheetsClient") as mock:
        yield mock


def test_commands_are_listed():
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    clean_stdout = clean_cli_output(result.stdout.lower())
    assert "analyze" in clean_stdout
    assert "fields" in clean_stdout


def test_analyze_requires_paths():
    result = runner.invoke(app, ["analyze"])
    assert result.exit_code != 0


def test_fields_command():
    result = runner.invoke(app, ["fields"])

    assert result.exit_code == 0
    groups = json.loads(result.stdout)
    assert groups["document_types"] == ["receipt", "professional_invoice", "unknown"]
    assert groups["unknown"] == "unknown"


def test_analyze_prints_summary(ah_file):
    result = runner.invoke(app, ["analyze", str(ah_file), "--no-model"])

    assert result.exit_code == 0
    clean_stdout = clean_cli_output(result.stdout)
    assert "Extractedah.txt:receipt,AlbertHeijn,2025-08-22,43.85EUR" in clean_stdout
    assert "confidence100,patterns" in clean_stdout


def test_analyze_json_output(ah_file, professional_invoice, tmp_path):
    invoice_file = write_document(tmp_path, "factuur.txt", professional_invoice)

    result = runner.invoke(app, ["analyze", str(ah_file), str(invoice_file), "--no-model", "--json"])

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert [entry["file_name"] for entry in payload] == ["ah.txt", "factuur.txt"]
    assert "ocr_text" not in payload[0]
    assert payload[0]["mime_type"] == "text/plain"
    assert payload[0]["record"]["financial_info"]["total_amount"] == 43.85
    assert payload[1]["record"]["document_info"]["type"] == "professional_invoice"
    assert payload[1]["record"]["transaction_info"]["invoice_number"] == "2025-0042"


def test_missing_model_key_warns_and_uses_patterns(ah_file):
    result = runner.invoke(app, ["analyze", str(ah_file)])

    assert result.exit_code == 0
    clean_output = clean_cli_output(result.output)
    assert "ANTHROPIC_API_KEYnotfound" in clean_output
    assert "confidence100,patterns" in clean_output


def test_missing_file(tmp_path):
    result = runner.invoke(app, ["analyze", str(tmp_path / "weg.jpg"), "--no-model"])

    assert result.exit_code == 1
    assert "Error:filenotfound" in clean_cli_output(result.output)


def test_invalid_sheet_url(ah_file):
    result = runner.invoke(
        app, ["analyze", str(ah_file), "--no-model", "--sheet", "https://wrong.com/abc"]
    )

    assert result.exit_code == 1
    assert "UnsupportedURLdomain" in clean_cli_output(result.output)


def test_sheet_url_is_parsed_and_records_saved(ah_file, mock_gsheets_client):
    url = "https://docs.google.com/spreadsheets/d/1AbC-xyz_9/edit#gid=0"

    result = runner.invoke(app, ["analyze", str(ah_file), "--no-model", "-s", url])

    assert result.exit_code == 0
    mock_gsheets_client.assert_called_once_with(spreadsheet_id="1AbC-xyz_9")
    mock_gsheets_client.return_value.save_record.assert_called_once()
    clean_stdout = clean_cli_output(result.stdout)
    assert "Willwriteresultstospreadsheet:1AbC-xyz_9" in clean_stdout
    assert "Successfullywrote1recordstospreadsheet" in clean_stdout


def test_sheet_falls_back_to_environment(ah_file, mock_gsheets_client, monkeypatch):
    monkeypatch.setenv("GOOGLE_SHEETS_SPREADSHEET_ID", "envSheet42")

    result = runner.invoke(app, ["analyze", str(ah_file), "--no-model"])

    assert result.exit_code == 0
    mock_gsheets_client.assert_called_once_with(spreadsheet_id="envSheet42")


def test_csv_export(ah_file, tmp_path):
    csv_path = tmp_path / "bonnen.csv"

    result = runner.invoke(app, ["analyze", str(ah_file), "--no-model", "--csv", str(csv_path)])

    assert result.exit_code == 0
    assert csv_path.exists()
    assert "Exported1recordsto" in clean_cli_output(result.stdout)


def test_invalid_configuration(ah_file, monkeypatch):
    monkeypatch.setenv("KASSABON_MODEL_TIMEOUT", "-5")

    result = runner.invoke(app, ["analyze", str(ah_file)])

    assert result.exit_code == 1
    assert "Invalidconfiguration" in clean_cli_output(result.output)


def test_ocr_engine_failure(ah_file):
    with patch("kassabon.main.OCREngine", side_effect=RuntimeError("no credentials")):
        result = runner.invoke(app, ["analyze", str(ah_file), "--no-model"])

    assert result.exit_code == 1
    assert "FailedtoinitializeOCRengine" in clean_cli_output(result.output)


def test_all_documents_failing_exits_nonzero(tmp_path):
    image = tmp_path / "bon.jpg"
    image.write_bytes(b"fake image data")

    with patch("kassabon.main.OCREngine") as mock_ocr:
        mock_ocr.guess_mime_type.return_value = "image/jpeg"
        mock_ocr.return_value.extract_text.side_effect = RuntimeError("Vision API unavailable")
        result = runner.invoke(app, ["analyze", str(image), "--no-model"])

    assert result.exit_code == 1
    assert "Failedtoreadbon.jpg:VisionAPIunavailable" in clean_cli_output(result.output)
