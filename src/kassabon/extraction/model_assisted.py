"""Model-assisted extraction through an injected completion client."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Protocol

from jinja2 import Environment, FileSystemLoader, select_autoescape
from pydantic import ValidationError

from kassabon.extraction.patterns import select_profile
from kassabon.extraction.response_parser import parse_model_json
from kassabon.extraction.scoring import score
from kassabon.extraction.summary import summarize
from kassabon.models import (
    DocumentClassification,
    ExtractedRecord,
    ExtractionMethod,
    Language,
    LineItem,
)
from kassabon.utils.parsing import UNKNOWN

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
DEFAULT_MAX_CHARS = 100_000
RAW_TEXT_EXCERPT_CHARS = 2000

_RECORD_GROUPS = (
    "company_info",
    "transaction_info",
    "financial_info",
    "loyalty_info",
    "bank_info",
    "items",
    "item_count",
)

_LANGUAGE_NAMES = {
    Language.DUTCH: "Dutch",
    Language.ENGLISH: "English",
    Language.MIXED: "a mix of Dutch and English",
}


class CompletionClient(Protocol):
    """Anything that turns a system and a user prompt into reply text."""

    async def complete(self, system_prompt: str, user_prompt: str) -> str: ...


def response_schema() -> str:
    """The JSON skeleton the model is asked to fill in."""
    skeleton = ExtractedRecord(items=[LineItem()]).model_dump(
        mode="json",
        exclude={"document_info": {"extraction_method", "profile"}, "notes": True},
    )
    skeleton["financial_info"]["tax"] = {"9%": UNKNOWN, "21%": UNKNOWN}
    skeleton["financial_info"]["tax_bases"] = {"9%": UNKNOWN, "21%": UNKNOWN}
    skeleton["financial_info"]["payment_amounts_by_method"] = {"PIN": UNKNOWN}
    skeleton["financial_info"]["currency"] = "EUR"
    skeleton["confidence"] = "0-100"
    skeleton["raw_text"] = "<document text excerpt>"
    return json.dumps(skeleton, indent=2, ensure_ascii=False)


class ModelAssistedExtractor:
    """
    Extract a record by asking a language model.

    Any failure (transport error, timeout, refusal, unparseable or invalid
    output) makes ``extract`` return None so the caller can fall back to the
    pattern path. Calls are never retried.
    """

    def __init__(
        self,
        client: CompletionClient,
        timeout: float = DEFAULT_TIMEOUT,
        max_chars: int = DEFAULT_MAX_CHARS,
        prompts_dir: str | None = None,
    ) -> None:
        """
        Initialize the extractor.

        Args:
            client: Completion backend, e.g. ``AnthropicCompletionClient``
            timeout: Seconds to wait for the model before giving up
            max_chars: Longer documents are summarised before sending
            prompts_dir: Directory containing Jinja2 templates (default: package prompts/)
        """
        self.client = client
        self.timeout = timeout
        self.max_chars = max_chars

        if prompts_dir is None:
            prompts_dir = str(Path(__file__).parent.parent / "prompts")

        self.jinja_env = Environment(
            loader=FileSystemLoader(prompts_dir),
            autoescape=select_autoescape(),
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def render_prompts(self, text: str, classification: DocumentClassification) -> tuple[str, str]:
        """
        Render system and user prompts from Jinja2 templates.

        Returns:
            Tuple of (system_prompt, user_prompt)
        """
        summarised = len(text) > self.max_chars
        if summarised:
            text = summarize(text, self.max_chars, select_profile(classification))

        system_template = self.jinja_env.get_template("extractor_system.jinja2")
        user_template = self.jinja_env.get_template("extractor_user.jinja2")

        system_prompt = system_template.render(
            SCHEMA=response_schema(),
            UNKNOWN=UNKNOWN,
            EXCERPT_CHARS=RAW_TEXT_EXCERPT_CHARS,
        )
        user_prompt = user_template.render(
            DOCUMENT_TYPE=classification.type.value,
            SUBTYPE=classification.subtype,
            LANGUAGE=_LANGUAGE_NAMES[classification.language],
            SUMMARISED=summarised,
            DOCUMENT_TEXT=text,
        )
        return system_prompt, user_prompt

    def to_record(
        self, payload: dict, text: str, classification: DocumentClassification
    ) -> ExtractedRecord:
        """Validate the model's JSON into a record stamped with our classification."""
        payload = dict(payload)
        payload.pop("document_info", None)
        if "raw_text" not in payload or payload["raw_text"] in (None, UNKNOWN):
            payload["raw_text"] = text
        confidence = payload.pop("confidence", None)

        record = ExtractedRecord.model_validate(payload)
        if isinstance(confidence, int | float) and not isinstance(confidence, bool):
            record.confidence = max(0, min(100, int(confidence)))
        else:
            record.confidence = score(record)
        record.document_info.type = classification.type
        record.document_info.subtype = classification.subtype
        record.document_info.language = classification.language
        record.document_info.extraction_method = ExtractionMethod.MODEL
        record.document_info.profile = select_profile(classification).name
        return record

    async def try_extract(
        self, text: str, classification: DocumentClassification
    ) -> tuple[ExtractedRecord | None, str | None]:
        """
        Ask the model for a record.

        Returns:
            ``(record, None)`` on success, ``(None, reason)`` when the model
            path failed.
        """
        if not text.strip():
            return None, "empty document text"

        try:
            system_prompt, user_prompt = self.render_prompts(text, classification)
            response = await asyncio.wait_for(
                self.client.complete(system_prompt, user_prompt), timeout=self.timeout
            )
        except TimeoutError:
            logger.warning("Model extraction timed out after %ss", self.timeout)
            return None, f"model call timed out after {self.timeout:g}s"
        except Exception as e:
            logger.warning("Model extraction failed: %s", e)
            return None, f"model call failed: {e}"

        payload = parse_model_json(response)
        if payload is None:
            logger.warning("Could not parse model output (%d characters)", len(response))
            return None, "model output is not valid JSON"
        if not any(key in payload for key in _RECORD_GROUPS):
            logger.warning("Model output has none of the expected fields: %s", sorted(payload))
            return None, "model output has none of the expected fields"

        try:
            return self.to_record(payload, text, classification), None
        except ValidationError as e:
            logger.warning("Model output failed validation: %s", e)
            return None, f"model output failed validation ({e.error_count()} errors)"

    async def extract(
        self, text: str, classification: DocumentClassification
    ) -> ExtractedRecord | None:
        """Ask the model for a record; None when the model path failed."""
        record, _ = await self.try_extract(text, classification)
        return record
