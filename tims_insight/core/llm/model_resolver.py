"""
Gemini Model Resolver

Picks a usable Gemini model from the ListModels endpoint and caches the
choice for one hour. The cache is an explicit object so that production can
share one instance per process while tests supply their own (and their own
clock).
"""
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional
import json
import re
import time

import httpx

from tims_insight.core.config import GEMINI_API_BASE_URL, MODEL_CACHE_TTL_SECONDS
from tims_insight.utils import get_logger, redact_secrets
from tims_insight.utils.exceptions import NoUsableModelError, UpstreamListingError

logger = get_logger(__name__)

# Preference order, first match wins
_PREFERENCES = (
    re.compile(r"gemini-2\.5.*flash", re.IGNORECASE),
    re.compile(r"gemini.*flash", re.IGNORECASE),
    re.compile(r"^(?:models/)?gemini-", re.IGNORECASE),
)


@dataclass
class ModelCache:
    """Resolved model id with a wall-clock expiry."""
    model_id: Optional[str] = None
    expires_at: float = 0.0

    def get(self, now: float) -> Optional[str]:
        if self.model_id and now < self.expires_at:
            return self.model_id
        return None

    def store(self, model_id: str, now: float, ttl_seconds: float) -> None:
        # Single assignment pair; concurrent writers store equivalent values
        self.model_id, self.expires_at = model_id, now + ttl_seconds


# Process-wide instance used by the application wiring
default_model_cache = ModelCache()


def model_names(payload: Any) -> List[str]:
    """Names from a ListModels body, using ``name`` then ``model``."""
    models = payload.get("models") if isinstance(payload, dict) else None
    if not isinstance(models, list):
        return []
    names = []
    for descriptor in models:
        if isinstance(descriptor, dict):
            name = descriptor.get("name") or descriptor.get("model") or ""
        else:
            name = str(descriptor)
        if name:
            names.append(str(name))
    return names


def pick_candidate_model(names: List[str]) -> Optional[str]:
    """Apply the flash-first preference order to a list of model names."""
    for pattern in _PREFERENCES:
        for name in names:
            if pattern.search(name):
                return name
    return None


class ModelResolver:
    """Resolves and time-caches the id of a usable Gemini model."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str = GEMINI_API_BASE_URL,
        cache: Optional[ModelCache] = None,
        ttl_seconds: float = MODEL_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self._http = http_client
        self.base_url = base_url.rstrip("/")
        self.cache = cache if cache is not None else default_model_cache
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    async def list_models(self, api_key: str) -> Dict[str, Any]:
        """
        Call ListModels once.

        Raises:
            UpstreamListingError: non-2xx status or transport failure.
        """
        try:
            response = await self._http.get(f"{self.base_url}/models", params={"key": api_key})
        except httpx.HTTPError as e:
            raise UpstreamListingError(
                redact_secrets(f"ListModels failed: {type(e).__name__}: {e}")
            ) from e

        if not response.is_success:
            raise UpstreamListingError(
                f"ListModels failed: {response.status_code} {response.text}",
                status=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamListingError(
                f"ListModels returned invalid JSON: {e}", status=response.status_code
            ) from e
        return payload if isinstance(payload, dict) else {}

    async def list_model_names(self, api_key: str) -> List[str]:
        return model_names(await self.list_models(api_key))

    async def resolve(self, api_key: str) -> str:
        """
        Return a usable model id, from cache while it is fresh.

        Raises:
            UpstreamListingError: the listing call failed.
            NoUsableModelError: no listed name matches the preference order.
        """
        cached = self.cache.get(self._clock())
        if cached:
            return cached

        payload = await self.list_models(api_key)
        names = model_names(payload)
        chosen = pick_candidate_model(names)
        if not chosen:
            raise NoUsableModelError(
                f"No usable Gemini model found. ListModels returned {json.dumps(payload)}",
                available_models=names,
            )

        self.cache.store(chosen, self._clock(), self.ttl_seconds)
        logger.info(f"Resolved Gemini model {chosen} (cached for {self.ttl_seconds:.0f}s)")
        return chosen
