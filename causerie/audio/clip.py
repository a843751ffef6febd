"""
Audio clip container shared by the recorder, the speech services and playback.

Clips are stored as complete WAV files so they can be uploaded to the
transcriber, served over HTTP, or decoded for local playback without knowing
where they came from.
"""

import io
import wave
from dataclasses import dataclass
from typing import Tuple

import numpy as np

MIME_TYPES = {
    "wav": "audio/wav",
    "pcm": "audio/wav",  # raw PCM is wrapped into WAV on arrival
    "mp3": "audio/mpeg",
    "opus": "audio/ogg",
    "aac": "audio/aac",
    "flac": "audio/flac",
}


@dataclass(frozen=True)
class AudioClip:
    """A finalized, playable unit of audio."""

    data: bytes
    sample_rate: int = 16000
    channels: int = 1
    mime_type: str = "audio/wav"
    duration_ms: float = 0.0

    @classmethod
    def empty(cls, sample_rate: int = 16000) -> "AudioClip":
        """A clip with no audio, returned when nothing was recorded."""
        return cls(data=b"", sample_rate=sample_rate)

    @property
    def is_empty(self) -> bool:
        return not self.data

    @property
    def filename(self) -> str:
        """Upload filename whose extension matches the container."""
        extension = {
            "audio/wav": "wav",
            "audio/webm": "webm",
            "audio/mpeg": "mp3",
            "audio/ogg": "ogg",
            "audio/aac": "aac",
            "audio/flac": "flac",
        }.get(self.mime_type.split(";")[0].strip(), "bin")
        return f"speech.{extension}"

    @classmethod
    def from_samples(
        cls, samples: np.ndarray, sample_rate: int, channels: int = 1
    ) -> "AudioClip":
        """
        Encode int16 (or float in [-1, 1]) samples as a 16-bit WAV clip.

        Args:
            samples: Array shaped (frames,) or (frames, channels)
            sample_rate: Sample rate in Hz
            channels: Channel count of the samples

        Returns:
            A WAV encoded AudioClip, empty if there are no samples
        """
        if samples.size == 0:
            return cls.empty(sample_rate)

        if np.issubdtype(samples.dtype, np.floating):
            samples = np.clip(samples, -1.0, 1.0)
            samples = (samples * 32767.0).astype(np.int16)
        else:
            samples = samples.astype(np.int16, copy=False)

        frames = samples.shape[0]
        buffer = io.BytesIO()
        with wave.open(buffer, "wb") as wf:
            wf.setnchannels(channels)
            wf.setsampwidth(2)  # 16-bit
            wf.setframerate(sample_rate)
            wf.writeframes(samples.tobytes())

        return cls(
            data=buffer.getvalue(),
            sample_rate=sample_rate,
            channels=channels,
            duration_ms=frames / sample_rate * 1000.0,
        )

    @classmethod
    def from_pcm_bytes(
        cls, pcm: bytes, sample_rate: int, channels: int = 1
    ) -> "AudioClip":
        """Wrap raw little-endian 16-bit PCM into a WAV clip."""
        usable = len(pcm) - (len(pcm) % (2 * channels))
        samples = np.frombuffer(pcm[:usable], dtype="<i2")
        if channels > 1:
            samples = samples.reshape(-1, channels)
        return cls.from_samples(samples, sample_rate, channels)

    @classmethod
    def from_wav_bytes(cls, data: bytes) -> "AudioClip":
        """
        Build a clip from an existing WAV file, reading its header.

        A WAV without any frames gives an empty clip.
        """
        with wave.open(io.BytesIO(data), "rb") as wf:
            sample_rate = wf.getframerate()
            channels = wf.getnchannels()
            frames = len(wf.readframes(wf.getnframes())) // (
                wf.getsampwidth() * channels
            )
        if frames == 0:
            return cls.empty(sample_rate)
        return cls(
            data=data,
            sample_rate=sample_rate,
            channels=channels,
            duration_ms=frames / sample_rate * 1000.0 if sample_rate else 0.0,
        )

    def to_samples(self) -> Tuple[np.ndarray, int]:
        """
        Decode the clip into float32 samples for an output device.

        Returns:
            Tuple of (samples shaped (frames, channels), sample_rate)

        Raises:
            ValueError: If the clip is not a 16-bit WAV file
        """
        if self.mime_type != "audio/wav":
            raise ValueError(f"Cannot decode {self.mime_type} audio for playback")

        with wave.open(io.BytesIO(self.data), "rb") as wf:
            if wf.getsampwidth() != 2:
                raise ValueError("Only 16-bit WAV audio can be played")
            channels = wf.getnchannels()
            sample_rate = wf.getframerate()
            raw = wf.readframes(wf.getnframes())

        samples = np.frombuffer(raw, dtype="<i2").astype(np.float32) / 32768.0
        return samples.reshape(-1, channels), sample_rate
