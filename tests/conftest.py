"""
Pytest Configuration and Fixtures

Shared fixtures for the insight pipeline tests. Gemini is faked at the
transport level (see gemini_fakes.py).
"""
import httpx
import pytest

from tims_insight.core.config import InsightSettings
from tims_insight.core.llm import GeminiClient, ModelCache, ModelResolver

from gemini_fakes import API_KEY, FakeClock, FakeGemini


@pytest.fixture
def fake_gemini() -> FakeGemini:
    return FakeGemini()


@pytest.fixture
async def http_client(fake_gemini):
    async with httpx.AsyncClient(transport=httpx.MockTransport(fake_gemini.handler)) as client:
        yield client


@pytest.fixture
def settings() -> InsightSettings:
    return InsightSettings(api_key=API_KEY, model="", request_budget_seconds=None)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def model_cache() -> ModelCache:
    return ModelCache()


@pytest.fixture
def gemini_client(http_client, settings) -> GeminiClient:
    return GeminiClient(http_client, api_key=settings.api_key, base_url=settings.base_url)


@pytest.fixture
def resolver(http_client, settings, model_cache, clock) -> ModelResolver:
    return ModelResolver(http_client, base_url=settings.base_url, cache=model_cache, clock=clock)
