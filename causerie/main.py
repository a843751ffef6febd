"""
Causerie - Main Application Entry Point

This is the FastAPI application that serves the Causerie conversation
services. It provides:
- HTTP endpoints for reply generation, grammar checks, STT and TTS
- WebSocket endpoint for a live conversation session
- Health and status endpoints
"""

import sys
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from causerie import __version__
from causerie.api import services_router, websocket_router
from causerie.config import settings
from causerie.services.asr_service import get_asr_service
from causerie.services.grammar_service import get_grammar_service
from causerie.services.llm_service import get_llm_service
from causerie.services.openai_client import close_openai_client
from causerie.services.tts_service import get_tts_service


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    - Startup: log the service configuration
    - Shutdown: close the shared OpenAI client
    """
    logger.info("=" * 60)
    logger.info("Causerie Starting...")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Debug Mode: {settings.debug}")
    logger.info(f"  Chat: {settings.chat_model}")
    logger.info(f"  Grammar: {settings.grammar_model}")
    logger.info(f"  STT: {settings.stt_model} ({settings.stt_language})")
    logger.info(f"  TTS: {settings.tts_model} ({settings.tts_voice})")
    logger.info("=" * 60)

    if not settings.openai_api_key:
        logger.warning("⚠ OPENAI_API_KEY not set in settings, relying on environment")

    yield  # Application runs here

    logger.info("Causerie Shutting Down...")
    try:
        await close_openai_client()
    except Exception as e:
        logger.error(f"Error during shutdown: {e}")
    logger.info("Causerie Stopped")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    app = FastAPI(
        title="Causerie",
        description="Conversational French practice with STT + LLM + TTS",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(services_router, tags=["services"])
    app.include_router(websocket_router, tags=["conversation"])

    @app.get("/", tags=["root"])
    async def root():
        """Root endpoint - returns basic API information."""
        return {
            "name": "Causerie",
            "version": __version__,
            "models": {
                "chat": settings.chat_model,
                "grammar": settings.grammar_model,
                "stt": settings.stt_model,
                "tts": settings.tts_model,
            },
            "endpoints": {
                "chat": "/api/chat",
                "grammar": "/api/grammar",
                "stt": "/api/stt",
                "tts": "/api/tts",
                "websocket": "/ws/conversation",
                "health": "/health",
                "status": "/status",
            },
        }

    @app.get("/health", tags=["monitoring"])
    async def health():
        """Basic health check endpoint."""
        return {"status": "healthy"}

    @app.get("/status", tags=["monitoring"])
    async def status():
        """Service configuration."""
        return {
            "status": "running",
            "environment": settings.environment,
            "version": __version__,
            "services": {
                "llm": await get_llm_service().get_model_info(),
                "grammar": await get_grammar_service().get_model_info(),
                "asr": await get_asr_service().get_model_info(),
                "tts": await get_tts_service().get_model_info(),
            },
            "config": {
                "service_timeout_s": settings.service_timeout_s,
            },
        }

    return app


def configure_logging(level: Optional[str] = None):
    """Configure loguru logging based on settings."""
    logger.remove()

    log_format = settings.log_format

    logger.add(
        sys.stderr,
        format=log_format,
        level=(level or settings.log_level).upper(),
        colorize=True,
    )

    if settings.is_production:
        logger.add(
            "logs/causerie-{time:YYYY-MM-DD}.log",
            rotation="1 day",
            retention="7 days",
            level="INFO",
            format=log_format,
        )


# Create the app instance
app = create_app()


def run():
    """Run the API server."""
    configure_logging()

    logger.info("")
    logger.info("=" * 60)
    logger.info("  Causerie")
    logger.info("  Conversational French practice")
    logger.info("=" * 60)
    logger.info(f"  Server: http://{settings.host}:{settings.port}")
    logger.info(f"  Environment: {settings.environment}")
    logger.info("=" * 60)

    uvicorn.run(
        "causerie.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
