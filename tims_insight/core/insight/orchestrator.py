"""
Insight Response Orchestrator

Turns an InsightRequest into exactly one Outcome:

    BuildPrompt -> TryPrimary -> TryFallbackModel
        -> LocalFallback                      (numeric reading available)
        -> TryDiscoveredCandidates -> Error   (free prompt only)

Attempts run one at a time; the first candidate with non-empty text wins
and the order of the candidate list is the only ranking. Per-candidate
failures are logged and recorded, never raised. Only MissingInputError and
ConfigurationError escape to the caller.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union
import asyncio
import json
import math
import re

from tims_insight.core.config import DEFAULT_MODEL, FALLBACK_MODEL, InsightSettings
from tims_insight.core.insight.fallback import compose_local_insight
from tims_insight.core.llm.gemini_client import GeminiClient, InvocationResult
from tims_insight.core.llm.model_resolver import ModelResolver
from tims_insight.core.llm.prompts import (
    build_system_instruction,
    build_temperature_prompt,
    user_contents,
)
from tims_insight.models.schemas import InsightRequest
from tims_insight.utils import get_logger
from tims_insight.utils.exceptions import (
    ConfigurationError,
    MissingInputError,
    NoUsableModelError,
    UpstreamInvocationError,
    UpstreamListingError,
)

logger = get_logger(__name__)

MAX_DISCOVERED_ATTEMPTS = 3
DISCOVERED_MODEL_PREFIX = "models/gemini-"
LOCAL_MODEL = "local"
NO_RESPONSE_MESSAGE = "No response from AI"

_NUMERIC_PREFIX = re.compile(r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


# ---- Outcomes ----

@dataclass
class Success:
    text: str
    model: str
    used_alternate_model: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "response": self.text,
            "fallback": False,
            "model": self.model,
            "usedAlternateModel": self.used_alternate_model,
        }


@dataclass
class LocalFallback:
    text: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "response": self.text,
            "fallback": True,
            "model": LOCAL_MODEL,
            "usedAlternateModel": False,
        }


@dataclass
class ErrorOutcome:
    message: str
    available_models: Optional[List[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message}
        if self.available_models is not None:
            body["availableModels"] = self.available_models
        return body


Outcome = Union[Success, LocalFallback, ErrorOutcome]


@dataclass
class Attempt:
    """One invocation: either a result (possibly empty) or an error message."""
    model: str
    result: Optional[InvocationResult] = None
    error: Optional[str] = None


@dataclass
class PipelineTrace:
    """Per-request record of what was tried."""
    attempts: List[Attempt] = field(default_factory=list)
    resolution_error: Optional[str] = None

    @property
    def tried(self) -> List[str]:
        return [a.model for a in self.attempts]

    @property
    def last_result(self) -> Optional[InvocationResult]:
        for attempt in reversed(self.attempts):
            if attempt.result is not None:
                return attempt.result
        return None

    @property
    def last_error(self) -> Optional[str]:
        for attempt in reversed(self.attempts):
            if attempt.error:
                return attempt.error
        return None


# ---- Prompt building ----

def parse_temperature(value: Any) -> Optional[float]:
    """
    Finite float from a number or a string with a numeric prefix.

    Booleans and non-finite values are rejected.
    """
    if isinstance(value, bool):
        return None
    try:
        if isinstance(value, (int, float)):
            parsed = float(value)
        elif isinstance(value, str):
            match = _NUMERIC_PREFIX.match(value)
            if not match:
                return None
            parsed = float(match.group())
        else:
            return None
    except OverflowError:
        return None
    return parsed if math.isfinite(parsed) else None


def build_prompt(request: InsightRequest) -> Tuple[str, Optional[float]]:
    """
    Final prompt text plus the numeric reading (if any).

    A non-blank prompt wins; otherwise the reading is embedded into the
    fixed template.

    Raises:
        MissingInputError: neither source yields text.
    """
    prompt = request.prompt.strip() if isinstance(request.prompt, str) else ""
    reading = parse_temperature(request.temperature)
    if prompt:
        return prompt, reading
    if reading is not None:
        return build_temperature_prompt(reading).strip(), reading
    raise MissingInputError()


def diagnostic_message(trace: PipelineTrace) -> str:
    """Summarize why no text came back, for the caller and the logs."""
    result = trace.last_result
    if result is None:
        return trace.last_error or NO_RESPONSE_MESSAGE

    segments = []
    if result.block_reason:
        segments.append(f"blocked ({result.block_reason})")
    if result.finish_reason:
        segments.append(f"finishReason: {result.finish_reason}")
    if result.safety_summary:
        segments.append(f"safety: {result.safety_summary}")
    if not segments:
        return NO_RESPONSE_MESSAGE
    return f"No text returned by Gemini: {'; '.join(segments)}"


class ResponseOrchestrator:
    """Drives Gemini attempts in priority order and picks the outcome."""

    def __init__(
        self,
        settings: InsightSettings,
        client: GeminiClient,
        resolver: ModelResolver,
    ):
        self.settings = settings
        self.client = client
        self.resolver = resolver

    async def handle(self, request: InsightRequest, timeout: Optional[float] = None) -> Outcome:
        """
        Resolve one request.

        Args:
            request: prompt and/or temperature
            timeout: overall budget in seconds for all outbound calls; an
                expired budget counts as a transport failure per candidate

        Raises:
            ConfigurationError: no API key configured
            MissingInputError: no usable prompt or reading
        """
        if not self.settings.has_api_key:
            raise ConfigurationError()

        prompt, reading = build_prompt(request)
        deadline = asyncio.get_running_loop().time() + timeout if timeout else None
        trace = PipelineTrace()

        candidates = await self.primary_candidates(trace, deadline)
        success = await self._try_candidates(candidates, candidates[0], prompt, trace, deadline)
        if success:
            return success

        if reading is not None:
            return self._local_fallback(reading, candidates, trace)

        return await self._retry_discovered(candidates[0], prompt, trace, deadline)

    async def primary_candidates(
        self, trace: PipelineTrace, deadline: Optional[float] = None
    ) -> List[str]:
        """Configured (or default) model first, then the hardcoded fallback."""
        primary = self.settings.configured_model
        if primary is None:
            if self.settings.model:
                logger.warning(
                    f"Ignoring malformed GEMINI_MODEL {self.settings.model!r}, using default"
                )
            primary = await self._default_model(trace, deadline)

        if primary == FALLBACK_MODEL:
            return [primary]
        return [primary, FALLBACK_MODEL]

    async def _default_model(self, trace: PipelineTrace, deadline: Optional[float]) -> str:
        if not self.settings.auto_resolve_model:
            return DEFAULT_MODEL
        try:
            return await self._bounded(self.resolver.resolve(self.settings.api_key), deadline)
        except (UpstreamListingError, NoUsableModelError) as e:
            trace.resolution_error = e.message
        except asyncio.TimeoutError:
            trace.resolution_error = "ListModels timed out"
        logger.warning(f"Model resolution failed ({trace.resolution_error}), using {DEFAULT_MODEL}")
        return DEFAULT_MODEL

    async def _bounded(self, awaitable, deadline: Optional[float]):
        if deadline is None:
            return await awaitable
        remaining = deadline - asyncio.get_running_loop().time()
        if remaining <= 0:
            awaitable.close()
            raise asyncio.TimeoutError()
        return await asyncio.wait_for(awaitable, remaining)

    async def _try_candidates(
        self,
        models: List[str],
        primary: str,
        prompt: str,
        trace: PipelineTrace,
        deadline: Optional[float],
    ) -> Optional[Success]:
        system_instruction = build_system_instruction()
        contents = user_contents(prompt)

        for model in models:
            try:
                result = await self._bounded(
                    self.client.invoke(model, system_instruction, contents), deadline
                )
            except UpstreamInvocationError as e:
                logger.error(f"Gemini API call failed for model {model}: {e.reason}")
                trace.attempts.append(Attempt(model=model, error=e.message))
                continue
            except asyncio.TimeoutError:
                logger.error(f"Gemini API call for model {model} exceeded the request deadline")
                trace.attempts.append(Attempt(model=model, error=f"[{model}] request timed out"))
                continue

            if result.text:
                if model != primary:
                    logger.info(f"Gemini fallback model {model} produced the response.")
                return Success(text=result.text, model=model, used_alternate_model=model != primary)

            trace.attempts.append(Attempt(model=model, result=result))
            logger.warning(
                f"Gemini model {model} returned no text. "
                + json.dumps({
                    "finishReason": result.finish_reason,
                    "blockReason": result.block_reason,
                    "safety": result.safety_summary,
                    "usage": result.usage,
                    "responseId": result.response_id,
                })
            )
        return None

    def _local_fallback(
        self, reading: float, candidates: List[str], trace: PipelineTrace
    ) -> LocalFallback:
        last_result = trace.last_result
        logger.warning(
            "Gemini returned no text after trying all models, using local fallback: "
            + json.dumps({
                "fallbackMessage": diagnostic_message(trace),
                "modelsTried": candidates,
                "usage": last_result.usage if last_result else None,
                "responseId": last_result.response_id if last_result else None,
                "error": trace.last_error,
            })
        )
        finish_reason = last_result.finish_reason if last_result else None
        return LocalFallback(text=compose_local_insight(reading, finish_reason))

    async def _retry_discovered(
        self,
        primary: str,
        prompt: str,
        trace: PipelineTrace,
        deadline: Optional[float],
    ) -> Outcome:
        logger.error(
            "Gemini failed with no usable response and no temperature provided: "
            f"{diagnostic_message(trace)}"
        )

        try:
            names = await self._bounded(
                self.resolver.list_model_names(self.settings.api_key), deadline
            )
        except UpstreamListingError as e:
            logger.warning(f"ListModels call failed: {e.message}")
            return ErrorOutcome(message=self._final_message(trace))
        except asyncio.TimeoutError:
            logger.warning("ListModels call exceeded the request deadline")
            return ErrorOutcome(message=self._final_message(trace))

        tried = set(trace.tried)
        discovered = [
            name for name in names
            if name.startswith(DISCOVERED_MODEL_PREFIX) and name not in tried
        ][:MAX_DISCOVERED_ATTEMPTS]

        success = await self._try_candidates(discovered, primary, prompt, trace, deadline)
        if success:
            logger.info(f"Gemini ListModels retry succeeded with {success.model}")
            return success

        return ErrorOutcome(message=self._final_message(trace), available_models=names)

    def _final_message(self, trace: PipelineTrace) -> str:
        message = diagnostic_message(trace)
        if trace.resolution_error:
            message = f"{message} (model resolution: {trace.resolution_error})"
        return message
