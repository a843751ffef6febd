import numpy as np
import pytest

from causerie.audio import devices
from causerie.audio.clip import AudioClip
from causerie.errors import DeviceError


class _CallbackStop(Exception):
    pass


class _FakeOutputStream:
    """Calls ``finished_callback`` whenever the stream becomes inactive."""

    def __init__(self, callback, finished_callback, **kwargs):
        self.callback = callback
        self.finished_callback = finished_callback
        self.active = False
        self.closed = False

    def start(self):
        self.active = True

    def _deactivate(self):
        if self.active:
            self.active = False
            self.finished_callback()

    def stop(self):
        self._deactivate()

    def abort(self):
        self._deactivate()

    def close(self):
        self.closed = True

    def pull(self, frames):
        """Run one device callback; True when the stream asked to stop."""
        outdata = np.zeros((frames, 1), dtype=np.float32)
        try:
            self.callback(outdata, frames, None, None)
        except _CallbackStop:
            self._deactivate()
            return True
        return False


class _FakeSoundDevice:
    CallbackStop = _CallbackStop
    PortAudioError = OSError

    def __init__(self):
        self.streams = []

    def OutputStream(self, **kwargs):
        stream = _FakeOutputStream(**kwargs)
        self.streams.append(stream)
        return stream


@pytest.fixture
def sd(monkeypatch):
    fake = _FakeSoundDevice()
    monkeypatch.setattr(devices, "_sounddevice", lambda: fake)
    return fake


@pytest.fixture
def finished():
    return []


@pytest.fixture
def player(sd, finished):
    clip = AudioClip.from_samples(np.zeros(1000, dtype=np.int16), 24000)
    return devices.SoundDeviceClipPlayer(clip, finished.append)


def test_end_of_clip_reports_success(sd, player, finished):
    player.play()

    assert not sd.streams[0].pull(600)
    assert sd.streams[0].pull(600)

    assert finished == [None]


def test_pause_and_stop_are_silent(sd, player, finished):
    player.play()
    sd.streams[0].pull(300)
    player.pause()
    player.play()
    player.stop()

    assert finished == []
    assert sd.streams[0].closed


def test_stream_dying_reports_device_error(sd, player, finished):
    player.play()
    sd.streams[0].pull(300)

    # PortAudio aborts the stream on a device or callback failure.
    sd.streams[0].abort()

    assert len(finished) == 1
    assert isinstance(finished[0], DeviceError)
