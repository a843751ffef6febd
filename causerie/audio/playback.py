"""
Playback controller for synthesized replies.

Owns the single audio output: at most one clip plays at a time. Requesting a
different message stops and rewinds the current clip before starting the new
one; requesting the current message toggles pause/resume.
"""

import asyncio
from enum import Enum
from typing import Callable, List, Optional

from loguru import logger

from causerie.audio.clip import AudioClip
from causerie.audio.devices import SoundDeviceClipPlayer, parse_device
from causerie.config import settings

PlayerFactory = Callable[
    [AudioClip, Callable[[Optional[Exception]], None]], SoundDeviceClipPlayer
]
PlaybackListener = Callable[["PlaybackState", Optional[str]], None]


class PlaybackState(str, Enum):
    """What the output is doing."""

    IDLE = "idle"
    PLAYING = "playing"
    PAUSED = "paused"


class PlaybackController:
    """At-most-one playback of message audio."""

    def __init__(self, player_factory: Optional[PlayerFactory] = None):
        self._player_factory = player_factory or (
            lambda clip, on_finished: SoundDeviceClipPlayer(
                clip, on_finished, device=parse_device(settings.playback_device)
            )
        )
        self._player: Optional[SoundDeviceClipPlayer] = None
        self._message_id: Optional[str] = None
        self._state = PlaybackState.IDLE
        self._listeners: List[PlaybackListener] = []

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def current_message_id(self) -> Optional[str]:
        return self._message_id

    def is_playing(self, message_id: str) -> bool:
        return self._state is PlaybackState.PLAYING and self._message_id == message_id

    def subscribe(self, listener: PlaybackListener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def toggle(self, message_id: str, clip: AudioClip) -> PlaybackState:
        """
        Play, pause or resume the audio of a message.

        Args:
            message_id: Message the clip belongs to
            clip: The synthesized clip of that message

        Returns:
            The playback state after the request
        """
        if self._player is not None and self._message_id == message_id:
            if self._state is PlaybackState.PLAYING:
                self._player.pause()
                self._set_state(PlaybackState.PAUSED, message_id)
            else:
                self._resume()
            return self._state

        self.stop()
        self._start(message_id, clip)
        return self._state

    def stop(self) -> None:
        """Stop and rewind whatever is playing."""
        player, self._player = self._player, None
        if player is None:
            return
        try:
            player.stop()
        except Exception as e:
            logger.warning(f"Failed to stop playback cleanly: {e}")
        self._set_state(PlaybackState.IDLE, None)

    def close(self) -> None:
        self.stop()
        self._listeners.clear()

    def _start(self, message_id: str, clip: AudioClip) -> None:
        try:
            loop: Optional[asyncio.AbstractEventLoop] = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        player_ref: List[SoundDeviceClipPlayer] = []

        def on_finished(error: Optional[Exception]) -> None:
            # Fired on the device thread.
            if loop is not None:
                loop.call_soon_threadsafe(self._handle_finished, player_ref[0], error)
            else:
                self._handle_finished(player_ref[0], error)

        try:
            player = self._player_factory(clip, on_finished)
            player_ref.append(player)
            player.play()
        except Exception as e:
            logger.error(f"Playback failed for message {message_id}: {e}")
            if player_ref:
                player_ref[0].stop()
            self._set_state(PlaybackState.IDLE, None)
            return

        self._player = player
        self._set_state(PlaybackState.PLAYING, message_id)
        logger.debug(f"Playing audio for message {message_id}")

    def _resume(self) -> None:
        try:
            self._player.play()
        except Exception as e:
            logger.error(f"Playback resume failed for {self._message_id}: {e}")
            self.stop()
            return
        self._set_state(PlaybackState.PLAYING, self._message_id)

    def _handle_finished(
        self, player: SoundDeviceClipPlayer, error: Optional[Exception]
    ) -> None:
        if player is not self._player:
            return  # stale callback from a clip we already replaced
        if error is not None:
            logger.warning(f"Playback error for {self._message_id}: {error}")
        else:
            logger.debug(f"Playback finished for {self._message_id}")
        self.stop()

    def _set_state(self, state: PlaybackState, message_id: Optional[str]) -> None:
        self._message_id = message_id
        self._state = state
        for listener in list(self._listeners):
            listener(state, self._message_id)
