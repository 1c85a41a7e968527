import re
from pathlib import Path

_ANSI_ESCAPE = re.compile(r"\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])")
# Whitespace plus the box characters Rich draws around help and errors
_LAYOUT = re.compile(r"[\s│╭╮╰╯─]")


def clean_cli_output(output: str) -> str:
    """
    Strip ANSI codes, Rich box drawing and all whitespace from CLI output,
    so assertions survive terminal wrapping.
    """
    return _LAYOUT.sub("", _ANSI_ESCAPE.sub("", output))


def write_document(directory: Path, name: str, text: str) -> Path:
    """Write ``text`` as a plain-text document the OCR engine reads as is."""
    path = directory / name
    path.write_text(text, encoding="utf-8")
    return path
