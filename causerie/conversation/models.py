"""
Conversation data model.

A Message is immutable: augmentation progress (voice, grammar verdict) is
recorded by replacing the message with an updated copy that keeps the same
id. Transitions are checked against the augmentation state machines:

    audio:   absent -> loading -> ready | error
    grammar: idle -> loading -> ok | fixed | error   (error -> loading on retry)
"""

import base64
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from causerie.audio.clip import AudioClip
from causerie.services.llm_service import HistoryMessage


class Sender(str, Enum):
    USER = "user"
    BOT = "bot"


class AudioState(str, Enum):
    """Lifecycle of the synthesized voice of a bot message."""

    ABSENT = "absent"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class GrammarState(str, Enum):
    """Lifecycle of the on-demand grammar check of a user message."""

    IDLE = "idle"
    LOADING = "loading"
    OK = "ok"
    FIXED = "fixed"
    ERROR = "error"


AUDIO_TRANSITIONS = {
    AudioState.ABSENT: {AudioState.LOADING},
    AudioState.LOADING: {AudioState.READY, AudioState.ERROR},
    AudioState.READY: set(),
    AudioState.ERROR: set(),
}

GRAMMAR_TRANSITIONS = {
    GrammarState.IDLE: {GrammarState.LOADING},
    GrammarState.LOADING: {GrammarState.OK, GrammarState.FIXED, GrammarState.ERROR},
    GrammarState.OK: set(),
    GrammarState.FIXED: set(),
    GrammarState.ERROR: {GrammarState.LOADING},
}


class StateTransitionError(ValueError):
    """An augmentation field was asked to move against its state machine."""


def _new_id() -> str:
    return uuid.uuid4().hex


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Message:
    """One conversation turn and its augmentation state."""

    sender: Sender
    text: Optional[str] = None
    image_ref: Optional[str] = None
    topic: Optional[str] = None
    # Fixed placeholder content (fallback reply, untranscribed clip label).
    placeholder: bool = False
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=_now)
    audio_state: AudioState = AudioState.ABSENT
    audio_asset: Optional[AudioClip] = None
    grammar_state: GrammarState = GrammarState.IDLE
    grammar_correction: Optional[str] = None

    @classmethod
    def user_text(cls, text: str, placeholder: bool = False) -> "Message":
        return cls(sender=Sender.USER, text=text, placeholder=placeholder)

    @classmethod
    def user_image(cls, image_ref: str, topic: str) -> "Message":
        return cls(sender=Sender.USER, image_ref=image_ref, topic=topic)

    @classmethod
    def bot_text(cls, text: str, placeholder: bool = False) -> "Message":
        return cls(sender=Sender.BOT, text=text, placeholder=placeholder)

    @property
    def is_image(self) -> bool:
        return self.image_ref is not None

    @property
    def is_checkable(self) -> bool:
        """Whether grammar validation applies to this message."""
        return self.sender is Sender.USER and bool(self.text) and not self.placeholder

    def with_audio(
        self, state: AudioState, asset: Optional[AudioClip] = None
    ) -> "Message":
        """Copy of the message with its voice moved to ``state``."""
        if self.sender is not Sender.BOT:
            raise StateTransitionError("Only bot messages carry synthesized audio")
        if state not in AUDIO_TRANSITIONS[self.audio_state]:
            raise StateTransitionError(
                f"audio_state cannot go from {self.audio_state.value} to {state.value}"
            )
        if (state is AudioState.READY) != (asset is not None):
            raise StateTransitionError("audio_asset is present exactly when ready")
        return replace(self, audio_state=state, audio_asset=asset)

    def with_grammar(
        self, state: GrammarState, correction: Optional[str] = None
    ) -> "Message":
        """Copy of the message with its grammar check moved to ``state``."""
        if not self.is_checkable:
            raise StateTransitionError("Only user text messages can be validated")
        if state not in GRAMMAR_TRANSITIONS[self.grammar_state]:
            raise StateTransitionError(
                f"grammar_state cannot go from {self.grammar_state.value} "
                f"to {state.value}"
            )
        if (state is GrammarState.FIXED) != (correction is not None):
            raise StateTransitionError("grammar_correction is present exactly when fixed")
        return replace(self, grammar_state=state, grammar_correction=correction)

    def to_dict(self, include_audio: bool = True) -> dict:
        """Convert the message to a JSON-serializable dictionary."""
        data = {
            "id": self.id,
            "sender": self.sender.value,
            "text": self.text,
            "image_ref": self.image_ref,
            "topic": self.topic,
            "placeholder": self.placeholder,
            "created_at": self.created_at.isoformat(),
            "audio_state": self.audio_state.value,
            "grammar_state": self.grammar_state.value,
            "grammar_correction": self.grammar_correction,
            "audio": None,
        }
        if include_audio and self.audio_asset is not None:
            data["audio"] = {
                "mime_type": self.audio_asset.mime_type,
                "sample_rate": self.audio_asset.sample_rate,
                "channels": self.audio_asset.channels,
                "duration_ms": self.audio_asset.duration_ms,
                "data": base64.b64encode(self.audio_asset.data).decode("ascii"),
            }
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Message":
        """Rebuild a message from ``to_dict`` output."""
        audio = data.get("audio")
        asset = None
        if audio:
            asset = AudioClip(
                data=base64.b64decode(audio["data"]),
                sample_rate=audio.get("sample_rate", 24000),
                channels=audio.get("channels", 1),
                mime_type=audio.get("mime_type", "audio/wav"),
                duration_ms=audio.get("duration_ms", 0.0),
            )
        created_at = data.get("created_at")
        return cls(
            id=data["id"],
            sender=Sender(data["sender"]),
            text=data.get("text"),
            image_ref=data.get("image_ref"),
            topic=data.get("topic"),
            placeholder=data.get("placeholder", False),
            created_at=datetime.fromisoformat(created_at) if created_at else _now(),
            audio_state=AudioState(data.get("audio_state", AudioState.ABSENT.value)),
            audio_asset=asset,
            grammar_state=GrammarState(
                data.get("grammar_state", GrammarState.IDLE.value)
            ),
            grammar_correction=data.get("grammar_correction"),
        )


class Session:
    """
    Ordered, append-only message log of one chat view.

    Messages are never removed or reordered; updates replace a message in
    place by id.
    """

    def __init__(
        self,
        messages: Optional[Iterable[Message]] = None,
        session_id: Optional[str] = None,
    ):
        self.session_id = session_id or _new_id()
        self._messages: List[Message] = []
        self._index: Dict[str, int] = {}
        for message in messages or ():
            self.append(message)

    def __len__(self) -> int:
        return len(self._messages)

    @property
    def messages(self) -> Tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def has_image(self) -> bool:
        return any(message.is_image for message in self._messages)

    @property
    def photo_refs(self) -> set:
        return {m.image_ref for m in self._messages if m.image_ref is not None}

    def get(self, message_id: str) -> Optional[Message]:
        index = self._index.get(message_id)
        return self._messages[index] if index is not None else None

    def append(self, message: Message) -> Message:
        if message.id in self._index:
            raise ValueError(f"Duplicate message id {message.id}")
        self._index[message.id] = len(self._messages)
        self._messages.append(message)
        return message

    def replace(self, message: Message) -> Message:
        index = self._index.get(message.id)
        if index is None:
            raise KeyError(message.id)
        current = self._messages[index]
        if (current.sender, current.text, current.image_ref) != (
            message.sender,
            message.text,
            message.image_ref,
        ):
            raise ValueError("Message sender and content are immutable")
        self._messages[index] = message
        return message

    def history(self, before: Optional[str] = None) -> List[HistoryMessage]:
        """
        Textual history for the reply generator.

        Image messages and placeholder content are left out.

        Args:
            before: Stop at this message id (exclusive)
        """
        history = []
        for message in self._messages:
            if message.id == before:
                break
            if message.is_image or message.placeholder or not message.text:
                continue
            role = "user" if message.sender is Sender.USER else "assistant"
            history.append(HistoryMessage(role=role, content=message.text))
        return history

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "messages": [message.to_dict() for message in self._messages],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Session":
        """
        Restore a session snapshot.

        Augmentations that were still loading have no task behind them any
        more, so they are restored as errors.
        """
        messages = []
        for item in data.get("messages", []):
            message = Message.from_dict(item)
            if message.audio_state is AudioState.LOADING:
                message = message.with_audio(AudioState.ERROR)
            if message.grammar_state is GrammarState.LOADING:
                message = message.with_grammar(GrammarState.ERROR)
            messages.append(message)
        return cls(messages=messages, session_id=data.get("session_id"))
