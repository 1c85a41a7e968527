"""Runtime settings read from the environment."""

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from kassabon.extraction.model_assisted import DEFAULT_MAX_CHARS, DEFAULT_TIMEOUT

DEFAULT_MODEL = "claude-haiku-4-5"
DEFAULT_MAX_TOKENS = 2048
DEFAULT_LOG_LEVEL = "WARNING"


class Settings(BaseModel):
    anthropic_api_key: str | None = None
    model: str = DEFAULT_MODEL
    model_max_tokens: int = Field(default=DEFAULT_MAX_TOKENS, gt=0)
    model_timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0)
    model_max_chars: int = Field(default=DEFAULT_MAX_CHARS, gt=0)
    log_level: str = DEFAULT_LOG_LEVEL
    spreadsheet_id: str | None = None

    @field_validator("anthropic_api_key", "spreadsheet_id", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_level(cls, value):
        return value.strip().upper() if isinstance(value, str) else value


# Settings field -> environment variable
ENVIRONMENT = {
    "anthropic_api_key": "ANTHROPIC_API_KEY",
    "model": "KASSABON_MODEL",
    "model_max_tokens": "KASSABON_MODEL_MAX_TOKENS",
    "model_timeout": "KASSABON_MODEL_TIMEOUT",
    "model_max_chars": "KASSABON_MODEL_MAX_CHARS",
    "log_level": "KASSABON_LOG_LEVEL",
    "spreadsheet_id": "GOOGLE_SHEETS_SPREADSHEET_ID",
}


def load_settings() -> Settings:
    """Load ``.env`` (if any) and build Settings from the environment.

    Unset variables keep their defaults.

    Raises:
        pydantic.ValidationError: If a variable holds an invalid value
    """
    load_dotenv()
    values = {}
    for field, variable in ENVIRONMENT.items():
        value = os.getenv(variable)
        if value is not None:
            values[field] = value
    return Settings(**values)
