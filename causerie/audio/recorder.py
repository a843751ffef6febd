"""
Microphone recorder.

Owns the microphone for the duration of one recording session and hands back
a finalized WAV clip on ``stop()``. The microphone is released on explicit
stop, on ``close()`` (view teardown), and whenever the host view is hidden.
"""

import asyncio
import threading
from enum import Enum
from typing import Callable, List, Optional

import numpy as np
from loguru import logger

from causerie.audio.clip import AudioClip
from causerie.audio.devices import SoundDeviceMicrophone, parse_device
from causerie.config import settings
from causerie.errors import DeviceError
from causerie.lifecycle import VisibilitySignal


class RecorderState(str, Enum):
    """Recording lifecycle."""

    IDLE = "idle"
    RECORDING = "recording"


class Recorder:
    """
    Single-owner microphone recorder.

    ``start()`` while recording is a no-op and never opens a second stream.
    ``stop()`` while idle returns an empty clip. Clips shorter than the
    configured minimum are also returned empty so callers drop them.
    """

    def __init__(
        self,
        microphone_factory: Optional[Callable[[], SoundDeviceMicrophone]] = None,
        visibility: Optional[VisibilitySignal] = None,
        sample_rate: Optional[int] = None,
        channels: Optional[int] = None,
        min_clip_ms: Optional[int] = None,
    ):
        self.sample_rate = sample_rate or settings.recorder_sample_rate
        self.channels = channels or settings.recorder_channels
        self.min_clip_ms = (
            settings.recorder_min_clip_ms if min_clip_ms is None else min_clip_ms
        )
        self._microphone_factory = microphone_factory or (
            lambda: SoundDeviceMicrophone(
                sample_rate=self.sample_rate,
                channels=self.channels,
                device=parse_device(settings.recorder_device),
            )
        )

        self._state = RecorderState.IDLE
        self._microphone: Optional[SoundDeviceMicrophone] = None
        self._chunks: List[np.ndarray] = []
        self._chunks_lock = threading.Lock()
        self._lock = asyncio.Lock()
        # Bumped on every forced release so an in-progress acquisition can
        # tell that it was cancelled while it was waiting for the device.
        self._generation = 0
        self._closed = False

        self._visibility = visibility
        self._unsubscribe: Optional[Callable[[], None]] = None
        if visibility is not None:
            self._unsubscribe = visibility.subscribe(self._on_visibility_change)

    @property
    def state(self) -> RecorderState:
        return self._state

    @property
    def is_recording(self) -> bool:
        return self._state is RecorderState.RECORDING

    async def start(self) -> None:
        """
        Acquire the microphone and start buffering audio.

        Raises:
            MicrophonePermissionError: If microphone access is denied
            DeviceError: If no input device is available, it is busy, or the
                view is hidden
        """
        async with self._lock:
            if self._closed:
                raise DeviceError("Recorder has been closed")
            if self._visibility is not None and not self._visibility.visible:
                raise DeviceError("Cannot record while the view is hidden")
            if self._state is RecorderState.RECORDING:
                logger.debug("Recorder already recording, ignoring start()")
                return

            generation = self._generation
            microphone = self._microphone_factory()
            with self._chunks_lock:
                self._chunks = []

            loop = asyncio.get_running_loop()
            try:
                await loop.run_in_executor(None, microphone.open, self._on_chunk)
            except Exception as e:
                logger.warning(f"Microphone acquisition failed: {e}")
                raise

            if generation != self._generation or self._closed:
                # Hidden or torn down while we were waiting for the device.
                logger.info("Recording cancelled during microphone acquisition")
                microphone.close()
                return

            self._microphone = microphone
            self._state = RecorderState.RECORDING
            logger.info("Recording started")

    def _on_chunk(self, chunk: np.ndarray) -> None:
        with self._chunks_lock:
            self._chunks.append(chunk)

    async def stop(self) -> AudioClip:
        """
        Finalize the recording and release the microphone.

        Returns:
            The recorded clip, or an empty clip if nothing was recorded
        """
        async with self._lock:
            if self._state is not RecorderState.RECORDING:
                return AudioClip.empty(self.sample_rate)
            chunks = self._release()

        clip = self._finalize(chunks)
        logger.info(f"Recording stopped: {clip.duration_ms:.0f} ms")
        return clip

    def cancel(self) -> None:
        """Stop immediately and discard buffered audio (forced stop)."""
        self._generation += 1
        if self._state is RecorderState.RECORDING:
            self._release()
            logger.info("Recording cancelled, microphone released")

    def close(self) -> None:
        """Release the microphone and stop listening for visibility changes."""
        self._closed = True
        self.cancel()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_visibility_change(self, visible: bool) -> None:
        if not visible:
            self.cancel()

    def _release(self) -> List[np.ndarray]:
        microphone, self._microphone = self._microphone, None
        self._state = RecorderState.IDLE
        if microphone is not None:
            microphone.close()
        with self._chunks_lock:
            chunks, self._chunks = self._chunks, []
        return chunks

    def _finalize(self, chunks: List[np.ndarray]) -> AudioClip:
        if not chunks:
            return AudioClip.empty(self.sample_rate)

        samples = np.concatenate(chunks, axis=0)
        duration_ms = samples.shape[0] / self.sample_rate * 1000.0
        if duration_ms < self.min_clip_ms:
            logger.debug(f"Discarding {duration_ms:.0f} ms clip (too short)")
            return AudioClip.empty(self.sample_rate)

        return AudioClip.from_samples(samples, self.sample_rate, self.channels)

    async def __aenter__(self) -> "Recorder":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()
