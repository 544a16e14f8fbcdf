"""
Insight Pipeline

Remote-first explanation of temperature readings: ordered Gemini attempts,
then a deterministic local explanation when a reading is available.
"""
from .fallback import compose_local_insight, ComfortBand
from .orchestrator import (
    ResponseOrchestrator,
    Success,
    LocalFallback,
    ErrorOutcome,
    Outcome,
)
from .conversation import ConversationResponder

__all__ = [
    "compose_local_insight",
    "ComfortBand",
    "ResponseOrchestrator",
    "Success",
    "LocalFallback",
    "ErrorOutcome",
    "Outcome",
    "ConversationResponder",
]
