"""
TTS (Text-to-Speech) service.

Synthesizes bot replies with one fixed voice and speaking style so every
message of a conversation sounds like the same person.

Backend: OpenAI audio speech (``settings.tts_model``). Raw PCM output is
wrapped into WAV so clips can be played locally and served over HTTP.
"""

import wave
from typing import Dict, Optional

from loguru import logger
from openai import AsyncOpenAI

from causerie.audio.clip import MIME_TYPES, AudioClip
from causerie.config import settings
from causerie.errors import SynthesisError
from causerie.prompts import TTS_STYLE
from causerie.services.openai_client import get_openai_client


class TTSService:
    """Text-to-speech for bot replies."""

    def __init__(self, client: Optional[AsyncOpenAI] = None):
        """Initialize the TTS service."""
        self._client = client
        self.model_name = settings.tts_model
        self.voice = settings.tts_voice
        self.response_format = settings.tts_format
        self.sample_rate = settings.tts_sample_rate  # 24000 Hz for raw PCM

    def _get_client(self) -> AsyncOpenAI:
        """Lazy load the OpenAI client."""
        if self._client is None:
            self._client = get_openai_client()
        return self._client

    async def synthesize(self, text: str) -> AudioClip:
        """
        Synthesize text into a playable clip.

        Args:
            text: The reply text

        Returns:
            The synthesized AudioClip

        Raises:
            SynthesisError: If the request fails or returns no usable audio
        """
        if not text or not text.strip():
            raise SynthesisError("Nothing to synthesize")

        logger.debug(f"Synthesizing {len(text)} characters with voice {self.voice}")

        try:
            response = await self._get_client().audio.speech.create(
                model=self.model_name,
                voice=self.voice,
                input=text,
                instructions=TTS_STYLE,
                response_format=self.response_format,
            )
            audio = response.content
        except Exception as e:
            logger.error(f"TTS request failed: {e}")
            raise SynthesisError(f"TTS request failed: {e}") from e

        if not audio:
            raise SynthesisError("TTS response contained no audio")

        clip = self._to_clip(audio)
        if clip.is_empty:
            raise SynthesisError("TTS response contained no audio frames")
        return clip

    def _to_clip(self, audio: bytes) -> AudioClip:
        """Convert the service payload to a clip according to the format."""
        if self.response_format == "pcm":
            return AudioClip.from_pcm_bytes(audio, self.sample_rate)

        if self.response_format == "wav":
            try:
                return AudioClip.from_wav_bytes(audio)
            except (wave.Error, EOFError) as e:
                raise SynthesisError(f"Invalid WAV from TTS: {e}") from e

        return AudioClip(
            data=audio,
            sample_rate=self.sample_rate,
            mime_type=MIME_TYPES.get(self.response_format, "application/octet-stream"),
        )

    async def get_model_info(self) -> Dict:
        """Get information about the configured model."""
        return {
            "model_name": self.model_name,
            "voice": self.voice,
            "format": self.response_format,
            "sample_rate": self.sample_rate,
        }


# Global service instance (singleton pattern)
_tts_service: Optional[TTSService] = None


def get_tts_service() -> TTSService:
    """Get or create the global TTS service instance."""
    global _tts_service
    if _tts_service is None:
        _tts_service = TTSService()
    return _tts_service
