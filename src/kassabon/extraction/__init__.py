"""Kassabon field-extraction engine."""

from kassabon.extraction.classifier import classify
from kassabon.extraction.engine import DocumentAnalyzer, analyze, get_supported_field_groups
from kassabon.extraction.model_assisted import CompletionClient, ModelAssistedExtractor
from kassabon.extraction.patterns import PROFILES, PatternProfile, select_profile
from kassabon.extraction.scoring import score

__all__ = [
    "CompletionClient",
    "DocumentAnalyzer",
    "ModelAssistedExtractor",
    "PROFILES",
    "PatternProfile",
    "analyze",
    "classify",
    "get_supported_field_groups",
    "score",
    "select_profile",
]
