"""
ASR (Automatic Speech Recognition) service.

Turns a recorded clip into text with a French language hint.

Backend: OpenAI audio transcriptions (``settings.stt_model``).
"""

import io
from dataclasses import dataclass
from typing import Dict, Optional

from loguru import logger
from openai import AsyncOpenAI

from causerie.audio.clip import AudioClip
from causerie.config import settings
from causerie.errors import TranscriptionError
from causerie.services.openai_client import get_openai_client


@dataclass
class TranscriptionResult:
    """Result from ASR transcription."""

    text: str
    is_final: bool = True
    language: str = "fr"
    duration_ms: float = 0.0


class ASRService:
    """Speech-to-text for recorded learner clips."""

    def __init__(self, client: Optional[AsyncOpenAI] = None):
        """Initialize the ASR service."""
        self._client = client
        self.model_name = settings.stt_model
        self.language = settings.stt_language
        self.prompt = settings.stt_prompt

    def _get_client(self) -> AsyncOpenAI:
        """Lazy load the OpenAI client."""
        if self._client is None:
            self._client = get_openai_client()
        return self._client

    async def transcribe(
        self, clip: AudioClip, language: Optional[str] = None
    ) -> TranscriptionResult:
        """
        Transcribe a complete clip.

        Args:
            clip: The recorded audio
            language: Language hint, defaults to the configured one

        Returns:
            TranscriptionResult whose text may be empty

        Raises:
            TranscriptionError: On transport or service failure
        """
        language = language or self.language

        if clip.is_empty:
            return TranscriptionResult(text="", language=language)

        audio_file = io.BytesIO(clip.data)
        audio_file.name = clip.filename

        logger.debug(
            f"Transcribing {len(clip.data)} bytes ({clip.duration_ms:.0f} ms, {language})"
        )

        try:
            response = await self._get_client().audio.transcriptions.create(
                model=self.model_name,
                file=audio_file,
                language=language,
                prompt=self.prompt,
            )
        except Exception as e:
            logger.error(f"Transcription request failed: {e}")
            raise TranscriptionError(f"Speech-to-text request failed: {e}") from e

        text = getattr(response, "text", None)
        if not isinstance(text, str):
            raise TranscriptionError("Invalid STT response")

        return TranscriptionResult(
            text=text.strip(),
            language=language,
            duration_ms=clip.duration_ms,
        )

    async def get_model_info(self) -> Dict:
        """Get information about the configured model."""
        return {"model_name": self.model_name, "language": self.language}


# Global service instance (singleton pattern)
_asr_service: Optional[ASRService] = None


def get_asr_service() -> ASRService:
    """Get or create the global ASR service instance."""
    global _asr_service
    if _asr_service is None:
        _asr_service = ASRService()
    return _asr_service
