"""
Insight Service Configuration

Centralised settings for the Gemini credential, model choice, generation
parameters and timeouts. Values are read once from the process environment
(after ``load_dotenv``) and never logged.
"""
from dataclasses import dataclass
from typing import Optional
import os
import re

from dotenv import load_dotenv

from tims_insight.utils import get_logger

logger = get_logger(__name__)

# ── Model naming ────────────────────────────────────────────────────────
GEMINI_API_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
MODEL_PREFIX = "models/"
DEFAULT_MODEL = "models/gemini-2.5-flash"
FALLBACK_MODEL = "models/gemini-2.5-flash"
MODEL_NAME_PATTERN = re.compile(r"^(?:models/)?gemini-[\w.-]+$", re.IGNORECASE)

# ── Generation defaults ─────────────────────────────────────────────────
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_OUTPUT_TOKENS = 200
DEFAULT_REQUEST_TIMEOUT_SECONDS = 30.0
DEFAULT_REQUEST_BUDGET_SECONDS = 45.0
MODEL_CACHE_TTL_SECONDS = 60 * 60


def normalize_model_name(raw: Optional[str]) -> Optional[str]:
    """
    Validate a configured model name and qualify it with ``models/``.

    Returns None when the name is absent or does not belong to the gemini
    family, so callers can substitute the default.
    """
    name = (raw or "").strip()
    if not MODEL_NAME_PATTERN.match(name):
        return None
    return name if name.startswith(MODEL_PREFIX) else f"{MODEL_PREFIX}{name}"


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={raw!r}, using {default}")
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={raw!r}, using {default}")
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class InsightSettings:
    """Configuration for the insight pipeline."""
    api_key: Optional[str] = None
    model: str = ""
    base_url: str = GEMINI_API_BASE_URL
    temperature: float = DEFAULT_TEMPERATURE
    max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS

    # Per outbound call (httpx) and for the whole pipeline (orchestrator)
    request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS
    request_budget_seconds: Optional[float] = DEFAULT_REQUEST_BUDGET_SECONDS

    auto_resolve_model: bool = False
    model_cache_ttl_seconds: float = MODEL_CACHE_TTL_SECONDS
    log_level: str = "INFO"

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key)

    @property
    def configured_model(self) -> Optional[str]:
        """The configured model, normalized, or None if absent or malformed."""
        return normalize_model_name(self.model)

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "InsightSettings":
        """Build settings from environment variables (and ``.env`` if present)."""
        if dotenv:
            load_dotenv()

        budget = _env_float("INSIGHT_REQUEST_BUDGET_SECONDS", DEFAULT_REQUEST_BUDGET_SECONDS)
        return cls(
            api_key=os.getenv("GEMINI_API_KEY") or os.getenv("gemini_api_key") or None,
            model=(os.getenv("GEMINI_MODEL") or "").strip(),
            base_url=(os.getenv("GEMINI_API_BASE_URL") or GEMINI_API_BASE_URL).rstrip("/"),
            temperature=_env_float("GEMINI_TEMPERATURE", DEFAULT_TEMPERATURE),
            max_output_tokens=_env_int("GEMINI_MAX_OUTPUT_TOKENS", DEFAULT_MAX_OUTPUT_TOKENS),
            request_timeout_seconds=_env_float(
                "GEMINI_REQUEST_TIMEOUT_SECONDS", DEFAULT_REQUEST_TIMEOUT_SECONDS
            ),
            request_budget_seconds=budget if budget > 0 else None,
            auto_resolve_model=_env_bool("GEMINI_AUTO_RESOLVE_MODEL"),
            model_cache_ttl_seconds=_env_float("MODEL_CACHE_TTL_SECONDS", MODEL_CACHE_TTL_SECONDS),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )
