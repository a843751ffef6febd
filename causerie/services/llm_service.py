"""
Reply generation service.

Produces the next line of the "French friend" from the textual conversation
history. Images never enter the history payload; their presence is passed as
a flag so the persona can ask about them.

Backend: OpenAI Responses API (``settings.chat_model``).
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from loguru import logger
from openai import AsyncOpenAI

from causerie.config import settings
from causerie.errors import ReplyGenerationError
from causerie.prompts import IMAGE_INSTRUCTION, UserLevel, get_persona_prompt
from causerie.services.openai_client import get_openai_client


@dataclass
class HistoryMessage:
    """A single textual message of the conversation history."""

    role: str  # "user" or "assistant"
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


class LLMService:
    """
    Reply generator for the conversation partner.

    This service provides:
    - Persona and image instructions
    - History formatting for the model
    - Reply text generation, raising ReplyGenerationError on failure
    """

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        level: Optional[UserLevel] = None,
    ):
        """Initialize the reply generator."""
        self._client = client

        self.model_name = settings.chat_model
        self.temperature = settings.chat_temperature
        self.max_output_tokens = settings.chat_max_output_tokens

        if level is None:
            try:
                level = UserLevel(settings.learner_level)
            except ValueError:
                logger.warning(
                    f"Invalid learner level {settings.learner_level!r}, "
                    "using intermediate"
                )
                level = UserLevel.INTERMEDIATE
        self.level = level

    def _get_client(self) -> AsyncOpenAI:
        """Lazy load the OpenAI client."""
        if self._client is None:
            self._client = get_openai_client()
        return self._client

    def build_input(
        self,
        history: Sequence[HistoryMessage],
        user_message: str,
        has_image: bool = False,
    ) -> List[Dict[str, str]]:
        """Format instructions, history and the new utterance for the model."""
        formatted = [{"role": "developer", "content": get_persona_prompt(self.level)}]
        if has_image:
            formatted.append({"role": "developer", "content": IMAGE_INSTRUCTION})
        for message in history:
            formatted.append(message.to_dict())
        formatted.append({"role": "user", "content": user_message})
        return formatted

    async def generate_reply(
        self,
        history: Sequence[HistoryMessage],
        user_message: str,
        has_image: bool = False,
    ) -> str:
        """
        Generate the next reply of the conversation.

        Args:
            history: Prior textual messages, oldest first
            user_message: The new learner utterance
            has_image: Whether the conversation contains images

        Returns:
            The reply text

        Raises:
            ReplyGenerationError: If the request fails or yields no text
        """
        logger.debug(
            f"Generating reply: {len(history)} history messages, has_image={has_image}"
        )

        try:
            response = await self._get_client().responses.create(
                model=self.model_name,
                input=self.build_input(history, user_message, has_image),
                temperature=self.temperature,
                max_output_tokens=self.max_output_tokens,
                store=False,
            )
        except Exception as e:
            logger.error(f"Reply generation failed: {e}")
            raise ReplyGenerationError(f"Chat request failed: {e}") from e

        text = getattr(response, "output_text", None)
        if not isinstance(text, str):
            raise ReplyGenerationError("Invalid chat response")

        text = text.strip()
        if not text:
            raise ReplyGenerationError("Chat response was empty")
        return text

    async def get_model_info(self) -> Dict:
        """Get information about the configured model."""
        return {
            "model_name": self.model_name,
            "level": self.level.value,
            "temperature": self.temperature,
            "max_output_tokens": self.max_output_tokens,
        }


# Global service instance (singleton pattern)
_llm_service: Optional[LLMService] = None


def get_llm_service() -> LLMService:
    """Get or create the global reply generator instance."""
    global _llm_service
    if _llm_service is None:
        _llm_service = LLMService()
    return _llm_service
