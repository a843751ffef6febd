"""Shared AsyncOpenAI client for the language and speech services."""

from typing import Optional

from loguru import logger
from openai import AsyncOpenAI

from causerie.config import settings

_client: Optional[AsyncOpenAI] = None


def get_openai_client() -> AsyncOpenAI:
    """Get or create the global OpenAI client."""
    global _client
    if _client is None:
        logger.debug("Creating OpenAI client")
        _client = AsyncOpenAI(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
        )
    return _client


async def close_openai_client() -> None:
    """Close the global client if one was created."""
    global _client
    if _client is not None:
        await _client.close()
        _client = None
