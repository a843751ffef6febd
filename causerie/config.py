"""
Configuration module for Causerie.
Uses pydantic-settings for environment variable management.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # ===========================================
    # Server Configuration
    # ===========================================
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")
    debug: bool = Field(default=False, description="Debug mode")
    environment: str = Field(default="development", description="Environment name")

    # ===========================================
    # OpenAI Configuration
    # ===========================================
    openai_api_key: Optional[str] = Field(
        default=None, description="API key for the OpenAI services"
    )
    openai_base_url: Optional[str] = Field(
        default=None, description="Override for the OpenAI API base URL"
    )

    # ===========================================
    # Reply Generation
    # ===========================================
    chat_model: str = Field(
        default="gpt-4.1-nano", description="Model used to generate replies"
    )
    chat_temperature: float = Field(
        default=0.8, description="Sampling temperature for replies"
    )
    chat_max_output_tokens: int = Field(
        default=256, description="Maximum tokens generated per reply"
    )
    learner_level: str = Field(
        default="intermediate",
        description="Default learner level (beginner, intermediate, advanced)",
    )

    # ===========================================
    # Grammar Validation
    # ===========================================
    grammar_model: str = Field(
        default="gpt-4.1-nano", description="Model used to validate learner grammar"
    )

    # ===========================================
    # Transcription (Speech-to-Text)
    # ===========================================
    stt_model: str = Field(
        default="gpt-4o-mini-transcribe", description="Speech-to-text model"
    )
    stt_language: str = Field(
        default="fr", description="Language hint passed to the transcriber"
    )
    stt_prompt: str = Field(
        default="Transcris exactement ce qui est dit en français. N’ajoute rien.",
        description="Prompt steering the transcriber towards verbatim output",
    )

    # ===========================================
    # Speech Synthesis (Text-to-Speech)
    # ===========================================
    tts_model: str = Field(
        default="gpt-4o-mini-tts", description="Text-to-speech model"
    )
    tts_voice: str = Field(default="marin", description="Synthesis voice")
    tts_format: str = Field(
        default="pcm",
        description="Audio format requested from the synthesizer (pcm, wav, mp3)",
    )
    tts_sample_rate: int = Field(
        default=24000, description="Sample rate of synthesized audio (Hz)"
    )

    # ===========================================
    # Recorder Configuration
    # ===========================================
    recorder_sample_rate: int = Field(
        default=16000, description="Microphone capture sample rate (Hz)"
    )
    recorder_channels: int = Field(default=1, description="Microphone channels")
    recorder_device: Optional[str] = Field(
        default=None,
        description="Input device name or index (None = system default)",
    )
    recorder_min_clip_ms: int = Field(
        default=300,
        description="Clips shorter than this are treated as empty",
    )

    # ===========================================
    # Playback Configuration
    # ===========================================
    playback_device: Optional[str] = Field(
        default=None,
        description="Output device name or index (None = system default)",
    )

    # ===========================================
    # Conversation Configuration
    # ===========================================
    service_timeout_s: float = Field(
        default=30.0,
        description="Upper bound for every service call before it counts as failed",
    )
    fallback_reply_text: str = Field(
        default="Oops, error in generating response! Try Again",
        description="Bot text shown when reply generation fails",
    )
    audio_placeholder_text: str = Field(
        default="🎤 (message vocal)",
        description="User text shown when a non-empty clip could not be transcribed",
    )

    # ===========================================
    # CORS Configuration
    # ===========================================
    cors_origins: str = Field(
        default="http://localhost:5173",
        description="Comma-separated list of allowed CORS origins",
    )

    # ===========================================
    # Logging
    # ===========================================
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(
        default="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        description="Loguru log format",
    )

    # ===========================================
    # Computed Properties
    # ===========================================
    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string to list."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


# Global settings instance for convenience
settings = get_settings()
