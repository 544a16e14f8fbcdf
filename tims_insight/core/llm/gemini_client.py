"""
Gemini API Client

Sends one generateContent request to a named Gemini model over REST and
normalizes the loosely-typed response into an InvocationResult.

An HTTP failure raises UpstreamInvocationError; a successful call that
carries no text returns an empty result instead, so callers can keep
walking their candidate list.
"""
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional
import json
from datetime import datetime

import httpx
from pydantic import BaseModel, ConfigDict, field_validator

from tims_insight.core.config import (
    DEFAULT_MAX_OUTPUT_TOKENS,
    DEFAULT_TEMPERATURE,
    GEMINI_API_BASE_URL,
)
from tims_insight.utils import get_logger, redact_secrets
from tims_insight.utils.exceptions import UpstreamInvocationError

logger = get_logger(__name__)


def _list_or_empty(value: Any) -> list:
    return value if isinstance(value, list) else []


# ---- Upstream response shape ----

class _Lenient(BaseModel):
    model_config = ConfigDict(extra="allow")


class SafetyRating(_Lenient):
    category: Optional[str] = None
    probability: Optional[Any] = None
    probabilityScore: Optional[Any] = None


class Part(_Lenient):
    text: Optional[str] = None

    @field_validator("text", mode="before")
    @classmethod
    def _text_only(cls, value: Any) -> Optional[str]:
        return value if isinstance(value, str) else None


class Content(_Lenient):
    role: Optional[str] = None
    parts: List[Part] = []

    @field_validator("parts", mode="before")
    @classmethod
    def _parts(cls, value: Any) -> list:
        return [p for p in _list_or_empty(value) if isinstance(p, dict)]


class ResponseCandidate(_Lenient):
    content: Optional[Content] = None
    finishReason: Optional[str] = None
    safetyRatings: Optional[List[SafetyRating]] = None

    @field_validator("content", mode="before")
    @classmethod
    def _content(cls, value: Any) -> Optional[dict]:
        return value if isinstance(value, dict) else None

    @field_validator("safetyRatings", mode="before")
    @classmethod
    def _ratings(cls, value: Any) -> Optional[list]:
        if not isinstance(value, list):
            return None
        return [r for r in value if isinstance(r, dict)]

    def first_text(self) -> Optional[str]:
        """First non-blank text part, stripped."""
        if self.content is None:
            return None
        for part in self.content.parts:
            if part.text and part.text.strip():
                return part.text.strip()
        return None


class PromptFeedback(_Lenient):
    blockReason: Optional[str] = None
    safetyRatings: Optional[List[SafetyRating]] = None

    @field_validator("safetyRatings", mode="before")
    @classmethod
    def _ratings(cls, value: Any) -> Optional[list]:
        if not isinstance(value, list):
            return None
        return [r for r in value if isinstance(r, dict)]


class GenerateContentResponse(_Lenient):
    candidates: List[ResponseCandidate] = []
    promptFeedback: Optional[PromptFeedback] = None
    usageMetadata: Optional[Dict[str, Any]] = None
    responseId: Optional[str] = None

    @field_validator("candidates", mode="before")
    @classmethod
    def _candidates(cls, value: Any) -> list:
        return [c for c in _list_or_empty(value) if isinstance(c, dict)]

    @field_validator("promptFeedback", "usageMetadata", mode="before")
    @classmethod
    def _mapping(cls, value: Any) -> Optional[dict]:
        return value if isinstance(value, dict) else None

    @field_validator("responseId", mode="before")
    @classmethod
    def _response_id(cls, value: Any) -> Optional[str]:
        return value if isinstance(value, str) else None


# ---- Normalized result ----

@dataclass
class GenerationConfig:
    """Generation parameters sent with every request."""
    temperature: float = DEFAULT_TEMPERATURE
    max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS

    def to_payload(self) -> Dict[str, Any]:
        return {
            "temperature": self.temperature,
            "maxOutputTokens": self.max_output_tokens,
        }


@dataclass
class InvocationResult:
    """Structured result of a single generateContent call."""
    text: str
    finish_reason: Optional[str] = None
    block_reason: Optional[str] = None
    safety_summary: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def usage(self) -> Optional[Dict[str, Any]]:
        usage = self.raw.get("usageMetadata")
        return usage if isinstance(usage, dict) else None

    @property
    def response_id(self) -> Optional[str]:
        response_id = self.raw.get("responseId")
        return response_id if isinstance(response_id, str) else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "finish_reason": self.finish_reason,
            "block_reason": self.block_reason,
            "safety": self.safety_summary,
            "usage": self.usage,
            "response_id": self.response_id,
        }


def summarize_safety(ratings: Optional[List[SafetyRating]]) -> Optional[str]:
    """Render ratings as ``CATEGORY (PROBABILITY)`` pairs, comma-joined."""
    if ratings is None:
        return None
    rendered = []
    for rating in ratings:
        category = rating.category or "unknown"
        probability = rating.probability or rating.probabilityScore
        rendered.append(f"{category} ({probability})" if probability else category)
    return ", ".join(rendered)


def extract_result(raw: Any) -> InvocationResult:
    """
    Extract text and safety/finish metadata from a generateContent body.

    The winner is the first candidate with a non-blank text part; its first
    such part is the text. Without a winner the text is empty and the finish
    reason falls back to the first candidate's.
    """
    body = raw if isinstance(raw, dict) else {}
    response = GenerateContentResponse.model_validate(body)

    winner = next((c for c in response.candidates if c.first_text()), None)
    source = winner or (response.candidates[0] if response.candidates else None)

    feedback = response.promptFeedback
    ratings = feedback.safetyRatings if feedback and feedback.safetyRatings is not None else None
    if ratings is None and source is not None:
        ratings = source.safetyRatings

    return InvocationResult(
        text=(winner.first_text() if winner else None) or "",
        finish_reason=source.finishReason if source else None,
        block_reason=feedback.blockReason if feedback else None,
        safety_summary=summarize_safety(ratings),
        raw=body,
    )


def _error_message(response: httpx.Response) -> str:
    """Prefer ``error.message`` from a JSON error body, else the raw body."""
    try:
        payload = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return json.dumps(payload)


class GeminiClient:
    """
    Client for the Gemini generateContent endpoint.

    The httpx client is shared and owned by the caller (the FastAPI
    lifespan in production, a MockTransport-backed client in tests).
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key: str,
        base_url: str = GEMINI_API_BASE_URL,
        generation_config: Optional[GenerationConfig] = None,
    ):
        self._http = http_client
        self._api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.generation_config = generation_config or GenerationConfig()

    def _endpoint(self, model: str) -> str:
        return f"{self.base_url}/{model}:generateContent"

    async def invoke(
        self,
        model: str,
        system_instruction: Dict[str, Any],
        contents: List[Dict[str, Any]],
        generation_config: Optional[GenerationConfig] = None,
    ) -> InvocationResult:
        """
        Send one generation request to ``model``.

        Raises:
            UpstreamInvocationError: non-2xx status or transport failure.
        """
        config = generation_config or self.generation_config
        payload = {
            "systemInstruction": system_instruction,
            "contents": contents,
            "generationConfig": config.to_payload(),
        }

        start_time = datetime.now()
        try:
            response = await self._http.post(
                self._endpoint(model),
                params={"key": self._api_key},
                json=payload,
            )
        except httpx.HTTPError as e:
            raise UpstreamInvocationError(
                model, redact_secrets(f"{type(e).__name__}: {e}")
            ) from e

        latency = (datetime.now() - start_time).total_seconds() * 1000

        if not response.is_success:
            raise UpstreamInvocationError(
                model, _error_message(response), status=response.status_code
            )

        try:
            body = response.json()
        except ValueError as e:
            raise UpstreamInvocationError(
                model, f"Invalid JSON in response: {e}", status=response.status_code
            ) from e

        result = extract_result(body)
        logger.debug(f"Gemini {model} answered in {latency:.0f}ms (text={bool(result.text)})")
        return result
