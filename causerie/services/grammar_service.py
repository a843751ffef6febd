"""
Grammar validation service.

Checks a single spoken learner utterance and returns either a clean verdict
or a corrected sentence:
- Sentence starts are capitalized first, so casing is never reported as an
  error
- The literal ``OK`` response means the utterance is valid
- Any other non-empty response is the correction, unless it is just the
  input echoed back, which breaks the validator contract
"""

import re
from dataclasses import dataclass
from typing import Dict, Optional

from loguru import logger
from openai import AsyncOpenAI

from causerie.config import settings
from causerie.errors import ValidationError
from causerie.prompts import GRAMMAR_INSTRUCTION
from causerie.services.openai_client import get_openai_client

OK_SENTINEL = "OK"

_SENTENCE_START = re.compile(r"(^\s*|[.!?…]\s+)([^\W\d_])")


def normalize_utterance(text: str) -> str:
    """Trim and capitalize the first letter of every sentence."""
    return _SENTENCE_START.sub(
        lambda m: m.group(1) + m.group(2).upper(), text.strip()
    )


@dataclass(frozen=True)
class GrammarVerdict:
    """Outcome of validating one utterance."""

    is_valid: bool
    correction: Optional[str] = None

    def to_dict(self) -> dict:
        return {"result": OK_SENTINEL if self.is_valid else self.correction}


class GrammarService:
    """Single-utterance grammar validator."""

    def __init__(self, client: Optional[AsyncOpenAI] = None):
        """Initialize the grammar service."""
        self._client = client
        self.model_name = settings.grammar_model

    def _get_client(self) -> AsyncOpenAI:
        """Lazy load the OpenAI client."""
        if self._client is None:
            self._client = get_openai_client()
        return self._client

    async def validate(self, text: str) -> GrammarVerdict:
        """
        Validate one utterance.

        Args:
            text: The learner's utterance

        Returns:
            GrammarVerdict, valid or carrying the corrected text

        Raises:
            ValidationError: On service failure, empty output, or an echoed input
        """
        normalized = normalize_utterance(text or "")
        if not normalized:
            raise ValidationError("Nothing to validate")

        result = (await self._request_verdict(normalized)).strip()

        if not result:
            raise ValidationError("Grammar response was empty")

        if result == OK_SENTINEL:
            return GrammarVerdict(is_valid=True)

        if result in (normalized, text.strip()):
            logger.warning(f"Grammar validator echoed the input back: {result!r}")
            raise ValidationError("Grammar validator returned the original input")

        return GrammarVerdict(is_valid=False, correction=result)

    async def _request_verdict(self, text: str) -> str:
        try:
            response = await self._get_client().responses.create(
                model=self.model_name,
                input=[
                    {"role": "developer", "content": GRAMMAR_INSTRUCTION},
                    {"role": "user", "content": text},
                ],
                temperature=0.0,
                store=False,
            )
        except Exception as e:
            logger.error(f"Grammar request failed: {e}")
            raise ValidationError(f"Grammar request failed: {e}") from e

        output = getattr(response, "output_text", None)
        if not isinstance(output, str):
            raise ValidationError("Invalid grammar response")
        return output

    async def get_model_info(self) -> Dict:
        """Get information about the configured model."""
        return {"model_name": self.model_name}


# Global service instance (singleton pattern)
_grammar_service: Optional[GrammarService] = None


def get_grammar_service() -> GrammarService:
    """Get or create the global grammar service instance."""
    global _grammar_service
    if _grammar_service is None:
        _grammar_service = GrammarService()
    return _grammar_service
