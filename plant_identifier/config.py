"""
Runtime configuration for the Plant Identifier API.

Values come from the environment (optionally a `.env` file loaded with
python-dotenv). Settings are built once and passed explicitly into the
components that need them.
"""
import logging
import os
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from .errors import ConfigurationError

DEFAULT_PRIMARY_MODEL = "gemini-2.5-flash"
DEFAULT_FALLBACK_MODELS = ["gemini-1.5-flash", "gemini-1.5-pro", "gemini-1.0-pro"]
DEFAULT_MAX_UPLOAD_BYTES = 7 * 1024 * 1024
GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1/models"


def _split_models(raw: str) -> List[str]:
    """Parse a comma/newline separated model list, dropping blanks."""
    models: List[str] = []
    for chunk in raw.replace(",", "\n").splitlines():
        token = chunk.strip()
        if token:
            models.append(token)
    return models


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "")
    if not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    if not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


class Settings(BaseModel):
    gemini_api_key: Optional[str] = None
    gemini_api_base: str = GEMINI_API_BASE
    primary_model: str = DEFAULT_PRIMARY_MODEL
    fallback_models: List[str] = Field(default_factory=lambda: list(DEFAULT_FALLBACK_MODELS))
    max_retries: int = Field(3, ge=0)
    base_delay_seconds: float = Field(1.0, ge=0)
    fallback_delay_seconds: float = Field(0.5, ge=0)
    request_timeout_seconds: float = Field(30.0, gt=0)
    time_budget_seconds: float = Field(50.0, gt=0)
    temperature: float = 0.1
    max_output_tokens: int = Field(1500, gt=0)
    max_upload_bytes: int = Field(DEFAULT_MAX_UPLOAD_BYTES, gt=0)
    unsplash_api_key: Optional[str] = None
    unsplash_api_base: str = "https://api.unsplash.com"
    image_search_timeout_seconds: float = Field(10.0, gt=0)
    log_level: str = "INFO"
    port: int = 8000

    @property
    def models(self) -> List[str]:
        """Primary model followed by the fallbacks, without duplicates."""
        ordered: List[str] = []
        for model in [self.primary_model, *self.fallback_models]:
            if model and model not in ordered:
                ordered.append(model)
        return ordered

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        fallbacks_raw = os.getenv("GEMINI_FALLBACK_MODELS")
        fallbacks = _split_models(fallbacks_raw) if fallbacks_raw is not None else list(DEFAULT_FALLBACK_MODELS)
        return cls(
            gemini_api_key=(os.getenv("GEMINI_API_KEY") or "").strip() or None,
            gemini_api_base=os.getenv("GEMINI_API_BASE", GEMINI_API_BASE),
            primary_model=os.getenv("GEMINI_PRIMARY_MODEL", DEFAULT_PRIMARY_MODEL).strip() or DEFAULT_PRIMARY_MODEL,
            fallback_models=fallbacks,
            max_retries=_env_int("GEMINI_MAX_RETRIES", 3),
            base_delay_seconds=_env_float("GEMINI_BASE_DELAY_SECONDS", 1.0),
            fallback_delay_seconds=_env_float("GEMINI_FALLBACK_DELAY_SECONDS", 0.5),
            request_timeout_seconds=_env_float("GEMINI_TIMEOUT_SECONDS", 30.0),
            time_budget_seconds=_env_float("IDENTIFY_TIME_BUDGET_SECONDS", 50.0),
            temperature=_env_float("GEMINI_TEMPERATURE", 0.1),
            max_output_tokens=_env_int("GEMINI_MAX_OUTPUT_TOKENS", 1500),
            max_upload_bytes=_env_int("MAX_UPLOAD_BYTES", DEFAULT_MAX_UPLOAD_BYTES),
            unsplash_api_key=(os.getenv("UNSPLASH_API_KEY") or "").strip() or None,
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            port=_env_int("PORT", 8000),
        )

    def require_ready(self) -> None:
        """Fail fast when the service cannot possibly handle a request."""
        if not self.gemini_api_key:
            raise ConfigurationError(
                "GEMINI_API_KEY is not configured. Set it in the environment or a .env file."
            )
        if not self.models:
            raise ConfigurationError("At least one Gemini model must be configured")


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # httpx logs every request URL at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
