"""
Gemini Access Layer

REST client for generateContent, model resolution against ListModels, and
the fixed prompt templates of the room-temperature assistant.
"""
from .gemini_client import GeminiClient, GenerationConfig, InvocationResult, extract_result
from .model_resolver import ModelCache, ModelResolver, default_model_cache, pick_candidate_model

__all__ = [
    "GeminiClient",
    "GenerationConfig",
    "InvocationResult",
    "extract_result",
    "ModelCache",
    "ModelResolver",
    "default_model_cache",
    "pick_candidate_model",
]
