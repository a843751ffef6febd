"""
Conversation orchestrator.

Owns the message log of one session and drives every turn through the
pipeline:

1. Accept a learner action (typed text, recorded clip, photo topic)
2. Transcribe the clip, if any
3. Append the user message
4. Generate the reply from the textual history
5. Append the bot message (or the fallback text)
6. Synthesize the reply voice, attached to the bot message

Grammar checks run beside the pipeline, on request, per user message.

Turns run one after another in acceptance order, so the log order never
depends on which service answers first. Voice synthesis and grammar checks
are per-message tasks that may finish in any order. Operations never raise:
failures end up as ``error`` states or as the fallback reply.

All operations must be called from the event loop thread.
"""

import asyncio
from enum import Enum
from typing import Awaitable, Callable, Coroutine, List, Optional, Set, TypeVar

from loguru import logger

from causerie.audio.clip import AudioClip
from causerie.audio.playback import PlaybackController, PlaybackState
from causerie.config import settings
from causerie.conversation.models import (
    AudioState,
    GrammarState,
    Message,
    Sender,
    Session,
)
from causerie.prompts import get_photo_cue
from causerie.services.asr_service import ASRService, get_asr_service
from causerie.services.grammar_service import GrammarService, get_grammar_service
from causerie.services.llm_service import LLMService, get_llm_service
from causerie.services.tts_service import TTSService, get_tts_service

T = TypeVar("T")


class MessageEvent(str, Enum):
    """Changes announced to listeners."""

    APPENDED = "message_appended"
    UPDATED = "message_updated"


MessageListener = Callable[[MessageEvent, Message], None]


class ConversationOrchestrator:
    """
    Per-session conversation pipeline.

    This class provides:
    - The ordered message log and its snapshots
    - Text, audio and photo turns
    - Per-message voice synthesis and grammar checks
    - Change notifications for the view layer
    """

    def __init__(
        self,
        llm_service: Optional[LLMService] = None,
        asr_service: Optional[ASRService] = None,
        tts_service: Optional[TTSService] = None,
        grammar_service: Optional[GrammarService] = None,
        playback: Optional[PlaybackController] = None,
        session: Optional[Session] = None,
        timeout_s: Optional[float] = None,
    ):
        self._llm = llm_service or get_llm_service()
        self._asr = asr_service or get_asr_service()
        self._tts = tts_service or get_tts_service()
        self._grammar = grammar_service or get_grammar_service()
        self._playback = playback

        self._session = session or Session()
        self._photo_refs: Set[str] = self._session.photo_refs

        self.timeout_s = settings.service_timeout_s if timeout_s is None else timeout_s
        self.fallback_text = settings.fallback_reply_text
        self.placeholder_text = settings.audio_placeholder_text

        self._listeners: List[MessageListener] = []
        self._tasks: Set[asyncio.Task] = set()
        self._speech_pending: Set[str] = set()
        self._turn_tail: Optional[asyncio.Task] = None
        self._closed = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def session_id(self) -> str:
        return self._session.session_id

    @property
    def messages(self) -> tuple:
        return self._session.messages

    @property
    def busy(self) -> bool:
        """Whether a turn is waiting for its transcript or its reply."""
        return self._turn_tail is not None and not self._turn_tail.done()

    def get_message(self, message_id: str) -> Optional[Message]:
        return self._session.get(message_id)

    def snapshot(self) -> dict:
        return self._session.to_dict()

    def subscribe(self, listener: MessageListener) -> Callable[[], None]:
        """Register a change listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    def submit_text(self, text: str) -> Optional[asyncio.Task]:
        """
        Send a typed message.

        The user message is appended before this returns. Blank text and
        sends while another turn is pending are ignored.

        Returns:
            The task producing the reply, or None if the send was rejected
        """
        text = (text or "").strip()
        if self._closed or not text:
            return None
        if self.busy:
            logger.debug("Ignoring text submit while a reply is pending")
            return None

        self._stop_playback()
        message = self._append(Message.user_text(text))
        return self._enqueue(
            lambda: self._reply_turn(message, text, has_image_cue=False)
        )

    def submit_audio(self, clip: AudioClip) -> Optional[asyncio.Task]:
        """
        Send a recorded clip.

        Empty clips are dropped. Clips queue behind a pending turn instead of
        being rejected, so a recording is never lost.

        Returns:
            The task running the turn, or None if the clip was empty
        """
        if self._closed or clip.is_empty:
            logger.debug("Ignoring empty audio clip")
            return None

        self._stop_playback()
        return self._enqueue(lambda: self._audio_turn(clip))

    def submit_photo(self, photo_ref: str, topic: str) -> Optional[asyncio.Task]:
        """
        React to a photo whose main object is ``topic``.

        Each ``photo_ref`` produces at most one turn for the whole session.

        Returns:
            The task running the turn, or None for duplicates and empty input
        """
        topic = (topic or "").strip()
        if self._closed or not photo_ref or not topic:
            return None
        if photo_ref in self._photo_refs:
            logger.debug(f"Photo {photo_ref} already discussed, ignoring")
            return None
        self._photo_refs.add(photo_ref)

        if self.busy:
            return self._enqueue(lambda: self._photo_turn(photo_ref, topic))

        message = self._append(Message.user_image(photo_ref, topic))
        return self._enqueue(
            lambda: self._reply_turn(
                message, get_photo_cue(topic), has_image_cue=True
            )
        )

    async def _audio_turn(self, clip: AudioClip) -> None:
        try:
            result = await self._call(self._asr.transcribe(clip))
        except Exception as e:
            # The clip had audio in it: keep the turn visible.
            logger.warning(f"Transcription failed for {self.session_id}: {e}")
            self._append(Message.user_text(self.placeholder_text, placeholder=True))
            self._append(Message.bot_text(self.fallback_text, placeholder=True))
            return

        if not result.text:
            logger.debug(f"Empty transcript for {self.session_id}, dropping turn")
            return

        message = self._append(Message.user_text(result.text))
        await self._reply_turn(message, result.text, has_image_cue=False)

    async def _photo_turn(self, photo_ref: str, topic: str) -> None:
        message = self._append(Message.user_image(photo_ref, topic))
        await self._reply_turn(message, get_photo_cue(topic), has_image_cue=True)

    async def _reply_turn(
        self, user_message: Message, utterance: str, has_image_cue: bool
    ) -> None:
        history = self._session.history(before=user_message.id)
        has_image = has_image_cue or self._session.has_image

        try:
            reply = await self._call(
                self._llm.generate_reply(history, utterance, has_image=has_image)
            )
        except Exception as e:
            logger.warning(f"Reply generation failed for {self.session_id}: {e}")
            self._append(Message.bot_text(self.fallback_text, placeholder=True))
            return

        bot_message = self._append(Message.bot_text(reply))
        self.request_speech(bot_message.id, reply)

    # ------------------------------------------------------------------
    # Augmentations
    # ------------------------------------------------------------------

    def request_speech(self, message_id: str, text: str) -> Optional[asyncio.Task]:
        """
        Synthesize the voice of a bot message, at most once.

        Returns:
            The synthesis task, or None if the message already has (or had)
            a voice request
        """
        message = self._session.get(message_id)
        if self._closed or message is None or message.sender is not Sender.BOT:
            return None
        if message_id in self._speech_pending:
            return None
        if message.audio_state is AudioState.ABSENT:
            self._update(message.with_audio(AudioState.LOADING))
        elif message.audio_state is not AudioState.LOADING:
            return None

        self._speech_pending.add(message_id)
        return self._spawn(self._synthesize(message_id, text))

    async def _synthesize(self, message_id: str, text: str) -> None:
        try:
            clip = await self._call(self._tts.synthesize(text))
        except Exception as e:
            logger.warning(f"Speech synthesis failed for message {message_id}: {e}")
            self._update(self._session.get(message_id).with_audio(AudioState.ERROR))
            return
        finally:
            self._speech_pending.discard(message_id)

        self._update(self._session.get(message_id).with_audio(AudioState.READY, clip))
        logger.debug(f"Voice ready for message {message_id}")

    def request_grammar_check(self, message_id: str) -> Optional[asyncio.Task]:
        """
        Validate the grammar of a user text message.

        Runs at most once per message: ignored while loading and after a
        verdict, allowed again after an error.

        Returns:
            The validation task, or None if the request was ignored
        """
        message = self._session.get(message_id)
        if self._closed or message is None or not message.is_checkable:
            return None
        if message.grammar_state not in (GrammarState.IDLE, GrammarState.ERROR):
            logger.debug(
                f"Grammar check for {message_id} already {message.grammar_state.value}"
            )
            return None

        self._update(message.with_grammar(GrammarState.LOADING))
        return self._spawn(self._validate(message_id, message.text))

    async def _validate(self, message_id: str, text: str) -> None:
        try:
            verdict = await self._call(self._grammar.validate(text))
        except Exception as e:
            logger.warning(f"Grammar check failed for message {message_id}: {e}")
            self._update(
                self._session.get(message_id).with_grammar(GrammarState.ERROR)
            )
            return

        message = self._session.get(message_id)
        if verdict.is_valid:
            self._update(message.with_grammar(GrammarState.OK))
        else:
            self._update(message.with_grammar(GrammarState.FIXED, verdict.correction))

    # ------------------------------------------------------------------
    # Playback
    # ------------------------------------------------------------------

    def play(self, message_id: str) -> Optional[PlaybackState]:
        """Toggle playback of a message whose voice is ready."""
        message = self._session.get(message_id)
        if self._playback is None or message is None:
            return None
        if message.audio_state is not AudioState.READY:
            return None
        return self._playback.toggle(message_id, message.audio_asset)

    def _stop_playback(self) -> None:
        if self._playback is not None:
            self._playback.stop()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def wait_idle(self) -> None:
        """Wait until every turn and augmentation has settled."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Cancel in-flight work and stop playback. The log stays readable."""
        self._closed = True
        self._stop_playback()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._listeners.clear()
        logger.debug(f"Session {self.session_id} closed")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _call(self, awaitable: Awaitable[T]) -> T:
        return await asyncio.wait_for(awaitable, timeout=self.timeout_s)

    def _append(self, message: Message) -> Message:
        self._session.append(message)
        self._notify(MessageEvent.APPENDED, message)
        return message

    def _update(self, message: Message) -> Message:
        self._session.replace(message)
        self._notify(MessageEvent.UPDATED, message)
        return message

    def _notify(self, event: MessageEvent, message: Message) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, message)
            except Exception:
                logger.exception(f"Message listener failed on {event.value}")

    def _spawn(self, coro: Coroutine) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _enqueue(self, turn: Callable[[], Awaitable[None]]) -> asyncio.Task:
        """
        Run a turn after every previously accepted turn has finished.

        The turn coroutine is created only when the turn starts.
        """
        previous = self._turn_tail

        async def run_in_order() -> None:
            if previous is not None and not previous.done():
                await asyncio.wait({previous})
            await turn()

        task = self._spawn(run_in_order())
        self._turn_tail = task
        return task
