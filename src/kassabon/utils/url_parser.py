import re
from urllib.parse import urlparse


class URLParserError(ValueError):
    """Raised when a spreadsheet reference cannot be parsed."""


# Google Sheets: /spreadsheets/d/{ID}/edit or /spreadsheets/u/0/d/{ID}
SPREADSHEET_PATTERN = re.compile(r"/spreadsheets/(?:u/\d+/)?d/([a-zA-Z0-9_-]+)")
SPREADSHEET_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")


def parse_spreadsheet_id(input_str: str) -> str:
    """
    Parses a Google Sheets URL to extract the spreadsheet ID.
    If the input is already an ID, it returns it as-is.
    """
    if not input_str or not input_str.strip():
        raise URLParserError("Input string cannot be empty or whitespace")

    input_str = input_str.strip()
    if not input_str.startswith("http"):
        if not SPREADSHEET_ID_PATTERN.match(input_str):
            raise URLParserError(f"Not a spreadsheet ID: {input_str}")
        return input_str

    parsed = urlparse(input_str)

    if parsed.netloc != "docs.google.com":
        raise URLParserError("Unsupported URL domain")

    match = SPREADSHEET_PATTERN.search(parsed.path)
    if match:
        return match.group(1)

    raise URLParserError("Could not find spreadsheet ID in URL")
