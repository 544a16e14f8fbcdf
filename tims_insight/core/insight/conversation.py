"""
Multi-turn conversation responder.

Sends a whole transcript to a single model and returns the complete reply.
The model is the configured one when valid, otherwise whatever the resolver
picks from ListModels (cached for an hour).
"""
from typing import Any, Dict, List, Tuple

from tims_insight.core.config import InsightSettings
from tims_insight.core.llm.gemini_client import GeminiClient
from tims_insight.core.llm.model_resolver import ModelResolver
from tims_insight.core.llm.prompts import build_system_instruction
from tims_insight.models.schemas import ChatMessage
from tims_insight.utils import get_logger
from tims_insight.utils.exceptions import ConfigurationError, InsightError, MissingInputError

logger = get_logger(__name__)

_ROLE_MAP = {"user": "user", "assistant": "model", "model": "model"}


def build_conversation(messages: List[ChatMessage]) -> Tuple[Dict[str, Any], List[Dict[str, Any]]]:
    """
    Split a transcript into a system instruction and Gemini ``contents``.

    System messages are appended to the fixed instruction; unknown roles are
    treated as user turns; blank messages are dropped.
    """
    system_notes = []
    contents = []
    for message in messages:
        text = message.content.strip()
        if not text:
            continue
        role = message.role.strip().lower()
        if role == "system":
            system_notes.append(text)
            continue
        contents.append({"role": _ROLE_MAP.get(role, "user"), "parts": [{"text": text}]})
    return build_system_instruction(" ".join(system_notes)), contents


class ConversationResponder:
    def __init__(self, settings: InsightSettings, client: GeminiClient, resolver: ModelResolver):
        self.settings = settings
        self.client = client
        self.resolver = resolver

    async def respond(self, messages: List[ChatMessage]) -> str:
        """
        Raises:
            ConfigurationError: no API key configured
            MissingInputError: transcript has no non-system content
            InsightError: resolution/invocation failed or the model returned no text
        """
        if not self.settings.has_api_key:
            raise ConfigurationError()

        system_instruction, contents = build_conversation(messages)
        if not contents:
            raise MissingInputError("At least one message is required.")

        model = self.settings.configured_model or await self.resolver.resolve(self.settings.api_key)
        result = await self.client.invoke(model, system_instruction, contents)
        if not result.text:
            logger.error(f"No text found for model {model}: {result.to_dict()}")
            raise InsightError("Gemini model returned no text", code="EMPTY_RESPONSE")
        return result.text
