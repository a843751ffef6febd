"""
sounddevice-backed audio devices.

The recorder and the playback controller only talk to these through small
factories so they can run against fakes in tests:

- SoundDeviceMicrophone: ``open(on_chunk)`` / ``close()``
- SoundDeviceClipPlayer: ``play()`` / ``pause()`` / ``stop()`` with a
  ``on_finished(error)`` callback fired at end-of-clip or on device error

Device callbacks run on the PortAudio thread; callers must marshal anything
that touches event-loop state.
"""

import threading
from typing import Callable, Optional, Union

import numpy as np
from loguru import logger

from causerie.audio.clip import AudioClip
from causerie.errors import DeviceError, MicrophonePermissionError

DeviceSpec = Optional[Union[int, str]]

_PERMISSION_MARKERS = ("permission", "denied", "not authorized", "not permitted")


def _sounddevice():
    """Lazily load sounddevice; importing it needs the PortAudio library."""
    try:
        import sounddevice
    except OSError as e:
        raise DeviceError(f"PortAudio library not available: {e}") from e
    return sounddevice


def parse_device(device: Optional[str]) -> DeviceSpec:
    """Turn a configured device into what sounddevice expects (index or name)."""
    if device is None or device == "":
        return None
    if device.isdigit():
        return int(device)
    return device


def _map_portaudio_error(error: Exception) -> Exception:
    message = str(error)
    if any(marker in message.lower() for marker in _PERMISSION_MARKERS):
        return MicrophonePermissionError(f"Microphone access denied: {message}")
    return DeviceError(f"Microphone unavailable: {message}")


class SoundDeviceMicrophone:
    """A live microphone stream delivering int16 chunks."""

    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        device: DeviceSpec = None,
    ):
        self.sample_rate = sample_rate
        self.channels = channels
        self.device = device
        self._stream = None

    def open(self, on_chunk: Callable[[np.ndarray], None]) -> None:
        """
        Acquire the input device and start streaming (blocking).

        Raises:
            MicrophonePermissionError: If access to the microphone is denied
            DeviceError: If no input device exists or it is already in use
        """
        sd = _sounddevice()
        try:
            sd.query_devices(self.device, kind="input")
        except (ValueError, sd.PortAudioError) as e:
            raise DeviceError(f"No input device available: {e}") from e

        def _callback(indata, frames, time_info, status):
            if status:
                logger.debug(f"Microphone status: {status}")
            on_chunk(indata.copy())

        try:
            stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="int16",
                device=self.device,
                callback=_callback,
            )
            stream.start()
        except sd.PortAudioError as e:
            raise _map_portaudio_error(e) from e

        self._stream = stream
        logger.debug(
            f"Microphone opened: device={self.device!r} rate={self.sample_rate}"
        )

    def close(self) -> None:
        """Stop the stream and release the device. Safe to call twice."""
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.stop()
        finally:
            stream.close()
        logger.debug("Microphone released")


class SoundDeviceClipPlayer:
    """
    Plays one clip on an output stream with a frame cursor.

    ``pause()`` keeps the cursor so ``play()`` resumes where it stopped;
    ``stop()`` rewinds and releases the device. ``on_finished`` gets None at
    end-of-clip and a DeviceError when the stream dies on its own.
    """

    def __init__(
        self,
        clip: AudioClip,
        on_finished: Callable[[Optional[Exception]], None],
        device: DeviceSpec = None,
    ):
        self._samples, self._sample_rate = clip.to_samples()
        self._on_finished = on_finished
        self._device = device
        self._cursor = 0
        self._completed = False
        # Set while the stream is being paused or stopped on request.
        self._halted = False
        self._lock = threading.Lock()
        self._stream = None
        self._sd = _sounddevice()

    def _callback(self, outdata, frames, time_info, status):
        with self._lock:
            chunk = self._samples[self._cursor : self._cursor + frames]
            outdata[: len(chunk)] = chunk
            self._cursor += len(chunk)
            if len(chunk) < frames:
                outdata[len(chunk) :] = 0
                self._completed = True
                raise self._sd.CallbackStop

    def _finished(self) -> None:
        if self._completed:
            self._on_finished(None)
        elif not self._halted:
            self._on_finished(DeviceError("Audio output stopped unexpectedly"))

    def play(self) -> None:
        if self._stream is None:
            try:
                self._stream = self._sd.OutputStream(
                    samplerate=self._sample_rate,
                    channels=self._samples.shape[1],
                    dtype="float32",
                    device=self._device,
                    callback=self._callback,
                    finished_callback=self._finished,
                )
            except self._sd.PortAudioError as e:
                raise DeviceError(f"Audio output unavailable: {e}") from e
        self._halted = False
        self._stream.start()

    def pause(self) -> None:
        if self._stream is not None and self._stream.active:
            self._halted = True
            self._stream.stop()

    def stop(self) -> None:
        stream, self._stream = self._stream, None
        self._halted = True
        if stream is not None:
            stream.abort()
            stream.close()
        with self._lock:
            self._cursor = 0
            self._completed = False
