"""
Audio module for Causerie.

- AudioClip: WAV clip shared by every audio stage
- Recorder: microphone capture with forced release
- PlaybackController: single-output playback of synthesized replies
"""

from .clip import AudioClip
from .playback import PlaybackController, PlaybackState
from .recorder import Recorder, RecorderState

__all__ = [
    "AudioClip",
    "PlaybackController",
    "PlaybackState",
    "Recorder",
    "RecorderState",
]
