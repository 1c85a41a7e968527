"""Kassabon integrations module."""

from kassabon.integrations.anthropic_client import (
    AnthropicCompletionClient,
    ExtractionError,
    ExtractionRefusedError,
)
from kassabon.integrations.gsheets import GSheetsClient
from kassabon.integrations.local_export import LocalExporter
from kassabon.integrations.ocr import OCREngine

__all__ = [
    "AnthropicCompletionClient",
    "ExtractionError",
    "ExtractionRefusedError",
    "GSheetsClient",
    "LocalExporter",
    "OCREngine",
]
