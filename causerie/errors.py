"""
Error taxonomy for Causerie.

Microphone errors are raised to the caller of ``Recorder.start()``. Service
errors are raised by the service adapters and turned into message state by the
conversation orchestrator, which never lets them escape its operations.
"""


class CauserieError(Exception):
    """Base class for all Causerie errors."""


class MicrophonePermissionError(CauserieError, PermissionError):
    """Microphone access was denied by the user or the operating system."""


class DeviceError(CauserieError):
    """No usable input device, or the device is claimed by another process."""


class TranscriptionError(CauserieError):
    """The transcription service failed or returned a malformed response."""


class ReplyGenerationError(CauserieError):
    """The reply generator failed or returned no text."""


class SynthesisError(CauserieError):
    """The speech synthesizer failed to produce audio."""


class ValidationError(CauserieError):
    """The grammar validator failed or broke its response contract."""
