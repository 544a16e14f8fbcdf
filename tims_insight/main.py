"""
TIMS Insight Service - FastAPI Application

API endpoints for:
- Temperature insight (Gemini with local fallback)
- Multi-turn conversation with the room assistant
- Health checks
"""
from contextlib import asynccontextmanager
from typing import Optional
import os
import time

import httpx
from dotenv import load_dotenv
from fastapi import Body, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from tims_insight import __version__
from tims_insight.core.config import DEFAULT_MODEL, InsightSettings
from tims_insight.core.insight import ConversationResponder, ResponseOrchestrator
from tims_insight.core.llm import GeminiClient, GenerationConfig, ModelCache, ModelResolver, default_model_cache
from tims_insight.models.schemas import (
    ConversationRequest,
    HealthResponse,
    InsightErrorResponse,
    InsightRequest,
    InsightResponse,
)
from tims_insight.utils import get_logger, setup_logging
from tims_insight.utils.exceptions import InsightError, MissingInputError

logger = get_logger(__name__)

# Load environment variables
load_dotenv()

INSIGHT_PATH = "/api/chat"
MESSAGES_PATH = f"{INSIGHT_PATH}/messages"


def wire_services(
    app: FastAPI,
    settings: InsightSettings,
    http_client: httpx.AsyncClient,
    cache: Optional[ModelCache] = None,
    clock=time.time,
) -> None:
    """Build the pipeline objects on ``app.state`` around one shared http client."""
    resolver = ModelResolver(
        http_client,
        base_url=settings.base_url,
        cache=cache if cache is not None else default_model_cache,
        ttl_seconds=settings.model_cache_ttl_seconds,
        clock=clock,
    )
    client = GeminiClient(
        http_client,
        api_key=settings.api_key or "",
        base_url=settings.base_url,
        generation_config=GenerationConfig(
            temperature=settings.temperature,
            max_output_tokens=settings.max_output_tokens,
        ),
    )
    app.state.settings = settings
    app.state.orchestrator = ResponseOrchestrator(settings, client, resolver)
    app.state.responder = ConversationResponder(settings, client, resolver)


# ---- Application Lifespan ----

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the shared Gemini http client: startup → yield → shutdown."""
    settings = InsightSettings.from_env()
    setup_logging(settings.log_level)
    if not settings.has_api_key:
        logger.warning("GEMINI_API_KEY is not set. Insight requests will fail until it is configured.")

    async with httpx.AsyncClient(timeout=settings.request_timeout_seconds) as http_client:
        wire_services(app, settings, http_client)
        logger.info("TIMS Insight API ready to accept requests")
        yield

    logger.info("TIMS Insight API shut down.")


# ---- FastAPI Application ----

app = FastAPI(
    title="TIMS Insight API",
    description="Room-temperature explanations from Gemini with deterministic local fallback",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---- Dependencies ----

def get_settings(request: Request) -> InsightSettings:
    return request.app.state.settings


def get_orchestrator(request: Request) -> ResponseOrchestrator:
    return request.app.state.orchestrator


def get_responder(request: Request) -> ConversationResponder:
    return request.app.state.responder


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Unparseable bodies get a 400 in the same shape as the route's other errors."""
    if request.url.path == MESSAGES_PATH:
        return PlainTextResponse("Invalid request body.", status_code=400)
    if request.url.path == INSIGHT_PATH:
        message = MissingInputError().message
    else:
        message = "Invalid request body."
    return JSONResponse(status_code=400, content={"error": message})


# ---- Health ----

@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health(settings: InsightSettings = Depends(get_settings)):
    return HealthResponse(
        status="healthy",
        version=__version__,
        api_key_configured=settings.has_api_key,
        model=settings.configured_model or DEFAULT_MODEL,
    )


# ---- Insight ----

@app.post(
    INSIGHT_PATH,
    tags=["Insight"],
    responses={
        200: {"model": InsightResponse},
        400: {"model": InsightErrorResponse},
        500: {"model": InsightErrorResponse},
    },
)
async def chat(
    body: InsightRequest = Body(...),
    orchestrator: ResponseOrchestrator = Depends(get_orchestrator),
):
    """
    Explain a temperature reading (or answer a prompt) in two sentences.

    Application-level failures come back as HTTP 200 with ``{error}``; only
    missing input (400), missing credentials and unexpected failures (500)
    use error statuses.
    """
    try:
        outcome = await orchestrator.handle(
            body, timeout=orchestrator.settings.request_budget_seconds
        )
    except InsightError as e:
        logger.warning(f"Insight request rejected: {e.code} {e.message}")
        return JSONResponse(status_code=e.status_code, content={"error": e.message})
    except Exception as e:
        logger.exception("Chat API error")
        return JSONResponse(status_code=500, content={"error": str(e) or "AI request failed"})

    return JSONResponse(content=outcome.to_dict())


@app.api_route(INSIGHT_PATH, methods=["GET", "PUT", "PATCH", "DELETE"], include_in_schema=False)
async def chat_method_not_allowed():
    return JSONResponse(
        status_code=405,
        content={"error": "Method Not Allowed"},
        headers={"Allow": "POST"},
    )


# ---- Conversation ----

@app.post(MESSAGES_PATH, response_class=PlainTextResponse, tags=["Insight"])
async def chat_messages(
    body: ConversationRequest,
    responder: ConversationResponder = Depends(get_responder),
):
    """Complete reply to a transcript, as plain text."""
    try:
        text = await responder.respond(body.messages)
    except InsightError as e:
        logger.error(f"Conversation failed: {e.message}")
        status = 400 if isinstance(e, MissingInputError) else 500
        return PlainTextResponse(e.message, status_code=status)
    except Exception as e:
        logger.exception("Conversation error")
        return PlainTextResponse(str(e) or "AI request failed", status_code=500)
    return PlainTextResponse(text)


# ---- Run with uvicorn ----

def run() -> None:
    import uvicorn
    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8000")))


if __name__ == "__main__":
    run()
