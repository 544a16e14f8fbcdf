"""
API request and response models.
"""
from typing import Any, List, Optional

from pydantic import BaseModel, Field


class InsightRequest(BaseModel):
    """
    Body of ``POST /api/chat``.

    Fields are deliberately untyped: a prompt that is not a string is
    ignored and a temperature may arrive as a number or a numeric string.
    """
    prompt: Optional[Any] = Field(default=None, description="Free-form question")
    temperature: Optional[Any] = Field(default=None, description="Room temperature reading in °C")


class InsightResponse(BaseModel):
    """Successful insight, remote (``fallback=False``) or local."""
    response: str
    fallback: bool
    model: str
    usedAlternateModel: bool


class InsightErrorResponse(BaseModel):
    error: str
    availableModels: Optional[List[str]] = None


class ChatMessage(BaseModel):
    role: str = "user"
    content: str = ""


class ConversationRequest(BaseModel):
    """Body of ``POST /api/chat/messages``."""
    messages: List[ChatMessage] = Field(default_factory=list)


class HealthResponse(BaseModel):
    status: str
    version: str
    api_key_configured: bool
    model: str
