from .schemas import (
    ChatMessage,
    ConversationRequest,
    HealthResponse,
    InsightErrorResponse,
    InsightRequest,
    InsightResponse,
)

__all__ = [
    "ChatMessage",
    "ConversationRequest",
    "HealthResponse",
    "InsightErrorResponse",
    "InsightRequest",
    "InsightResponse",
]
