"""
API module for Causerie.

This module contains the API endpoints:
- HTTP endpoints for each conversation service
- WebSocket endpoint for a live conversation session
"""

from .routes import router as services_router
from .websocket import router as websocket_router

__all__ = [
    "services_router",
    "websocket_router",
]
