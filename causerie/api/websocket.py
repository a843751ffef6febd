"""
WebSocket API for real-time conversation.

Each connection owns one ConversationOrchestrator, so a session lives exactly
as long as its connection. The flow:
1. Receive a typed message, a recorded WAV clip (binary frame) or a photo topic
2. The orchestrator appends messages and runs the reply pipeline
3. Every append and every state change is pushed to the client
4. Grammar checks are requested per message id
"""

import asyncio
import json
import uuid
import wave
from enum import Enum
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from loguru import logger

from causerie.audio.clip import AudioClip
from causerie.conversation import (
    ConversationOrchestrator,
    Message,
    MessageEvent,
    Session,
)

router = APIRouter()


class MessageType(str, Enum):
    """Types of messages sent over WebSocket."""

    # Client -> Server
    TEXT = "text"
    PHOTO = "photo"
    GRAMMAR_CHECK = "grammar_check"
    RESTORE = "restore"
    SNAPSHOT = "snapshot"
    PING = "ping"

    # Server -> Client
    CONNECTED = "connected"
    MESSAGE_APPENDED = MessageEvent.APPENDED.value
    MESSAGE_UPDATED = MessageEvent.UPDATED.value
    ERROR = "error"
    PONG = "pong"


class ConnectionManager:
    """Manages WebSocket connections."""

    def __init__(self):
        self.active_connections: dict[str, WebSocket] = {}

    async def connect(self, websocket: WebSocket, session_id: str) -> None:
        """Accept a new WebSocket connection."""
        await websocket.accept()
        self.active_connections[session_id] = websocket
        logger.info(f"Client connected: {session_id}")

    def disconnect(self, session_id: str) -> None:
        """Remove a WebSocket connection."""
        if session_id in self.active_connections:
            del self.active_connections[session_id]
            logger.info(f"Client disconnected: {session_id}")

    def is_connected(self, session_id: str) -> bool:
        """Check if a session is still connected."""
        return session_id in self.active_connections

    async def send_json(self, session_id: str, data: dict) -> bool:
        """Send JSON data to a specific client. Returns False if send failed."""
        if session_id in self.active_connections:
            try:
                await self.active_connections[session_id].send_json(data)
                return True
            except Exception as e:
                logger.error(f"Failed to send JSON to {session_id}: {e}")
                self.disconnect(session_id)
                return False
        return False


# Global connection manager
manager = ConnectionManager()


def build_orchestrator(session: Optional[Session] = None) -> ConversationOrchestrator:
    """Create the orchestrator for one connection."""
    return ConversationOrchestrator(session=session)


@router.websocket("/ws/conversation")
async def conversation_endpoint(websocket: WebSocket):
    """WebSocket endpoint for real-time conversation."""
    connection_id = str(uuid.uuid4())
    outbox: asyncio.Queue = asyncio.Queue()
    sender_task: Optional[asyncio.Task] = None
    orchestrator: Optional[ConversationOrchestrator] = None

    def publish(event: MessageEvent, message: Message) -> None:
        outbox.put_nowait({"type": event.value, "message": message.to_dict()})

    def attach(session: Optional[Session] = None) -> ConversationOrchestrator:
        instance = build_orchestrator(session)
        instance.subscribe(publish)
        return instance

    async def drain_outbox() -> None:
        """Single writer so events reach the client in the order they happened."""
        while True:
            payload = await outbox.get()
            if not await manager.send_json(connection_id, payload):
                return

    try:
        await manager.connect(websocket, connection_id)
        orchestrator = attach()
        sender_task = asyncio.create_task(drain_outbox())

        outbox.put_nowait(
            {
                "type": MessageType.CONNECTED,
                "session_id": orchestrator.session_id,
            }
        )

        while manager.is_connected(connection_id):
            message = await websocket.receive()

            if message.get("type") == "websocket.disconnect":
                logger.info(f"Received disconnect message for {connection_id}")
                break

            if message.get("bytes") is not None:
                try:
                    clip = AudioClip.from_wav_bytes(message["bytes"])
                except (wave.Error, EOFError) as e:
                    logger.warning(f"Invalid audio from {connection_id}: {e}")
                    outbox.put_nowait(
                        {"type": MessageType.ERROR, "message": "Audio must be a WAV file"}
                    )
                    continue
                orchestrator.submit_audio(clip)
                continue

            if message.get("text") is None:
                continue

            try:
                data = json.loads(message["text"])
            except json.JSONDecodeError as e:
                logger.error(f"Invalid JSON from {connection_id}: {e}")
                outbox.put_nowait(
                    {"type": MessageType.ERROR, "message": "Invalid JSON message"}
                )
                continue

            msg_type = data.get("type")

            if msg_type == MessageType.PING:
                outbox.put_nowait({"type": MessageType.PONG})

            elif msg_type == MessageType.TEXT:
                orchestrator.submit_text(data.get("text", ""))

            elif msg_type == MessageType.PHOTO:
                orchestrator.submit_photo(data.get("photo_ref", ""), data.get("topic", ""))

            elif msg_type == MessageType.GRAMMAR_CHECK:
                orchestrator.request_grammar_check(data.get("message_id", ""))

            elif msg_type == MessageType.SNAPSHOT:
                outbox.put_nowait(
                    {"type": MessageType.SNAPSHOT, "data": orchestrator.snapshot()}
                )

            elif msg_type == MessageType.RESTORE:
                if orchestrator.messages or orchestrator.busy:
                    outbox.put_nowait(
                        {
                            "type": MessageType.ERROR,
                            "message": "Can only restore into an empty session",
                        }
                    )
                    continue
                try:
                    session = Session.from_dict(data.get("data") or {})
                except (KeyError, ValueError) as e:
                    outbox.put_nowait(
                        {"type": MessageType.ERROR, "message": f"Invalid snapshot: {e}"}
                    )
                    continue
                await orchestrator.close()
                orchestrator = attach(session)
                outbox.put_nowait(
                    {"type": MessageType.SNAPSHOT, "data": orchestrator.snapshot()}
                )
                logger.info(
                    f"Restored {len(session)} messages for {connection_id}"
                )

            else:
                outbox.put_nowait(
                    {
                        "type": MessageType.ERROR,
                        "message": f"Unknown message type: {msg_type}",
                    }
                )

    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected: {connection_id}")
    except Exception as e:
        logger.error(f"WebSocket error for {connection_id}: {e}")
    finally:
        if orchestrator is not None:
            await orchestrator.close()

        if sender_task is not None:
            sender_task.cancel()
            try:
                await sender_task
            except asyncio.CancelledError:
                pass

        manager.disconnect(connection_id)
