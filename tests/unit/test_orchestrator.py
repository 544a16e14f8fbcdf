"""
Unit Tests for the insight response orchestrator.

Covers prompt building, candidate ordering, short-circuiting, the local
fallback for numeric readings and the ListModels retry for free prompts.
"""
import asyncio

import httpx
import pytest

from tims_insight.core.config import InsightSettings
from tims_insight.core.insight.fallback import compose_local_insight
from tims_insight.core.insight.orchestrator import (
    ErrorOutcome,
    LocalFallback,
    PipelineTrace,
    ResponseOrchestrator,
    Success,
    build_prompt,
    parse_temperature,
)
from tims_insight.models.schemas import InsightRequest
from tims_insight.utils.exceptions import ConfigurationError, MissingInputError

from gemini_fakes import API_KEY, empty_body, text_body

DEFAULT = "models/gemini-2.5-flash"
CONFIGURED = "models/gemini-2.0-flash"


def make_orchestrator(gemini_client, resolver, **overrides) -> ResponseOrchestrator:
    settings = InsightSettings(api_key=API_KEY, request_budget_seconds=None, **overrides)
    return ResponseOrchestrator(settings, gemini_client, resolver)


@pytest.fixture
def orchestrator(gemini_client, resolver):
    return make_orchestrator(gemini_client, resolver, model="gemini-2.0-flash")


class TestParseTemperature:
    @pytest.mark.parametrize("value,expected", [
        (25, 25.0),
        (25.5, 25.5),
        ("25.3", 25.3),
        (" 25.3°C", 25.3),
        ("-4", -4.0),
        (".5", 0.5),
        ("1e1", 10.0),
    ])
    def test_parses(self, value, expected):
        assert parse_temperature(value) == expected

    @pytest.mark.parametrize("value", [None, True, "abc", "", float("nan"), float("inf"), "1e999", [], {}])
    def test_rejects(self, value):
        assert parse_temperature(value) is None


class TestBuildPrompt:
    def test_prompt_takes_precedence(self):
        prompt, reading = build_prompt(InsightRequest(prompt="  Apa kabar?  ", temperature=30))
        assert prompt == "Apa kabar?"
        assert reading == 30.0

    def test_temperature_template(self):
        prompt, reading = build_prompt(InsightRequest(temperature="27.46"))
        assert "suhu ruangan 27.5°C" in prompt
        assert reading == 27.46

    @pytest.mark.parametrize("body", [{}, {"prompt": "   "}, {"prompt": 12}, {"temperature": "hot"}])
    def test_missing_input(self, body):
        with pytest.raises(MissingInputError):
            build_prompt(InsightRequest(**body))


class TestCandidateList:
    async def test_configured_then_fallback(self, orchestrator):
        assert await orchestrator.primary_candidates(PipelineTrace()) == [CONFIGURED, DEFAULT]

    async def test_bare_name_is_qualified(self, gemini_client, resolver):
        orch = make_orchestrator(gemini_client, resolver, model="gemini-1.5-pro")
        assert await orch.primary_candidates(PipelineTrace()) == ["models/gemini-1.5-pro", DEFAULT]

    @pytest.mark.parametrize("model", ["", "gpt-4o", "models/../etc", "gemini 2.5"])
    async def test_malformed_or_absent_uses_default(self, gemini_client, resolver, model):
        orch = make_orchestrator(gemini_client, resolver, model=model)
        assert await orch.primary_candidates(PipelineTrace()) == [DEFAULT]

    async def test_configured_equal_to_fallback_is_single(self, gemini_client, resolver):
        orch = make_orchestrator(gemini_client, resolver, model="models/gemini-2.5-flash")
        assert await orch.primary_candidates(PipelineTrace()) == [DEFAULT]

    async def test_auto_resolution(self, gemini_client, resolver, fake_gemini):
        fake_gemini.list_models("models/gemini-2.0-flash-lite")
        orch = make_orchestrator(gemini_client, resolver, auto_resolve_model=True)

        candidates = await orch.primary_candidates(PipelineTrace())

        assert candidates == ["models/gemini-2.0-flash-lite", DEFAULT]

    async def test_auto_resolution_failure_uses_default(self, gemini_client, resolver, fake_gemini):
        fake_gemini.list_models(status=500)
        orch = make_orchestrator(gemini_client, resolver, auto_resolve_model=True)
        trace = PipelineTrace()

        assert await orch.primary_candidates(trace) == [DEFAULT]
        assert "ListModels failed: 500" in trace.resolution_error


class TestHandle:
    async def test_primary_success(self, orchestrator, fake_gemini):
        fake_gemini.reply(CONFIGURED, text_body("Ruangan terasa nyaman."))

        outcome = await orchestrator.handle(InsightRequest(temperature=22))

        assert outcome == Success(text="Ruangan terasa nyaman.", model=CONFIGURED, used_alternate_model=False)
        assert fake_gemini.generate_calls == [CONFIGURED]

    async def test_short_circuit_on_second_candidate(self, orchestrator, fake_gemini):
        fake_gemini.reply(CONFIGURED, empty_body())
        fake_gemini.reply(DEFAULT, text_body("Suhu agak hangat."))
        fake_gemini.list_models("models/gemini-pro-x")

        outcome = await orchestrator.handle(InsightRequest(prompt="Bagaimana ruangan?"))

        assert isinstance(outcome, Success)
        assert outcome.model == DEFAULT
        assert outcome.used_alternate_model is True
        assert fake_gemini.generate_calls == [CONFIGURED, DEFAULT]
        assert fake_gemini.list_calls == 0

    async def test_invocation_error_does_not_abort(self, orchestrator, fake_gemini):
        fake_gemini.reply(CONFIGURED, httpx.Response(500, json={"error": {"message": "internal"}}))
        fake_gemini.reply(DEFAULT, text_body("OK"))

        outcome = await orchestrator.handle(InsightRequest(temperature=22))

        assert outcome == Success(text="OK", model=DEFAULT, used_alternate_model=True)

    async def test_numeric_reading_falls_back_locally(self, orchestrator, fake_gemini):
        fake_gemini.reply(CONFIGURED, empty_body(finish_reason="SAFETY"))
        fake_gemini.reply(DEFAULT, empty_body(finish_reason="MAX_TOKENS"))

        outcome = await orchestrator.handle(InsightRequest(temperature=32.0))

        assert outcome == LocalFallback(text=compose_local_insight(32.0, "MAX_TOKENS"))
        assert len(fake_gemini.generate_calls) == 2
        assert fake_gemini.list_calls == 0

    async def test_local_fallback_after_transport_errors(self, orchestrator, fake_gemini):
        # Neither model registered: both return 404
        outcome = await orchestrator.handle(InsightRequest(temperature="15.2"))

        assert outcome == LocalFallback(text=compose_local_insight(15.2))
        assert outcome.to_dict()["model"] == "local"
        assert outcome.to_dict()["fallback"] is True

    async def test_huge_reading_still_falls_back_locally(self, orchestrator, fake_gemini):
        outcome = await orchestrator.handle(InsightRequest(temperature=1e30))

        assert outcome == LocalFallback(text=compose_local_insight(1e30))
        assert "terasa panas" in outcome.text
        assert fake_gemini.generate_calls == [CONFIGURED, DEFAULT]

    async def test_prompt_with_reading_still_uses_local_fallback(self, orchestrator, fake_gemini):
        outcome = await orchestrator.handle(InsightRequest(prompt="Jelaskan", temperature=28))

        assert isinstance(outcome, LocalFallback)
        assert fake_gemini.list_calls == 0

    async def test_free_prompt_retries_discovered_models(self, orchestrator, fake_gemini):
        fake_gemini.reply(CONFIGURED, empty_body())
        fake_gemini.reply(DEFAULT, empty_body())
        fake_gemini.list_models(
            CONFIGURED,
            DEFAULT,
            "models/text-bison-001",
            "models/gemini-1.5-pro",
            "models/gemini-2.5-pro",
        )
        fake_gemini.reply("models/gemini-2.5-pro", text_body("Jawaban."))

        outcome = await orchestrator.handle(InsightRequest(prompt="Halo"))

        assert outcome == Success(text="Jawaban.", model="models/gemini-2.5-pro", used_alternate_model=True)
        assert fake_gemini.generate_calls == [
            CONFIGURED, DEFAULT, "models/gemini-1.5-pro", "models/gemini-2.5-pro",
        ]
        assert fake_gemini.list_calls == 1

    async def test_discovered_retry_is_capped(self, orchestrator, fake_gemini):
        discovered = [f"models/gemini-extra-{i}" for i in range(5)]
        fake_gemini.list_models(*discovered)

        outcome = await orchestrator.handle(InsightRequest(prompt="Halo"))

        assert isinstance(outcome, ErrorOutcome)
        assert fake_gemini.generate_calls == [CONFIGURED, DEFAULT] + discovered[:3]
        assert outcome.available_models == discovered

    async def test_free_prompt_error_summarizes_last_informative_attempt(self, orchestrator, fake_gemini):
        fake_gemini.reply(CONFIGURED, empty_body(
            finish_reason=None,
            block_reason="SAFETY",
            safety=[{"category": "HARM_CATEGORY_HARASSMENT", "probability": "MEDIUM"}],
        ))
        fake_gemini.list_models(CONFIGURED, DEFAULT)

        outcome = await orchestrator.handle(InsightRequest(prompt="Halo"))

        assert outcome == ErrorOutcome(
            message="No text returned by Gemini: blocked (SAFETY); safety: HARM_CATEGORY_HARASSMENT (MEDIUM)",
            available_models=[CONFIGURED, DEFAULT],
        )

    async def test_free_prompt_listing_failure(self, orchestrator, fake_gemini):
        fake_gemini.list_models(status=403)

        outcome = await orchestrator.handle(InsightRequest(prompt="Halo"))

        assert isinstance(outcome, ErrorOutcome)
        assert outcome.available_models is None
        assert outcome.message == f"[{DEFAULT}] {DEFAULT} is not found"
        assert "availableModels" not in outcome.to_dict()

    async def test_missing_input(self, orchestrator, fake_gemini):
        with pytest.raises(MissingInputError):
            await orchestrator.handle(InsightRequest(prompt="   "))
        assert fake_gemini.calls == []

    async def test_missing_api_key(self, gemini_client, resolver):
        orch = ResponseOrchestrator(InsightSettings(api_key=None), gemini_client, resolver)
        with pytest.raises(ConfigurationError):
            await orch.handle(InsightRequest(temperature=22))

    async def test_timeout_counts_as_transport_failure(self, orchestrator, fake_gemini):
        async def slow(request):
            await asyncio.sleep(5)
            return httpx.Response(200, json=text_body("too late"))

        fake_gemini.reply(CONFIGURED, slow)
        fake_gemini.reply(DEFAULT, slow)

        outcome = await orchestrator.handle(InsightRequest(temperature=27.5), timeout=0.05)

        assert outcome == LocalFallback(text=compose_local_insight(27.5))
        assert fake_gemini.generate_calls[0] == CONFIGURED
