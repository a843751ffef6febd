import pytest

from causerie.audio import AudioClip, PlaybackController, PlaybackState

CLIP = AudioClip(data=b"RIFF", sample_rate=24000)


class _FakePlayer:
    def __init__(self, clip, on_finished, fail=False):
        self.clip = clip
        self.on_finished = on_finished
        self.fail = fail
        self.events = []

    def play(self):
        if self.fail:
            raise RuntimeError("no output device")
        self.events.append("play")

    def pause(self):
        self.events.append("pause")

    def stop(self):
        self.events.append("stop")


@pytest.fixture
def players():
    return []


@pytest.fixture
def controller(players):
    def factory(clip, on_finished):
        player = _FakePlayer(clip, on_finished)
        players.append(player)
        return player

    return PlaybackController(player_factory=factory)


def test_toggle_same_message_pauses_and_resumes(controller, players):
    assert controller.toggle("m1", CLIP) is PlaybackState.PLAYING
    assert controller.is_playing("m1")

    assert controller.toggle("m1", CLIP) is PlaybackState.PAUSED
    assert controller.current_message_id == "m1"

    assert controller.toggle("m1", CLIP) is PlaybackState.PLAYING
    assert len(players) == 1
    assert players[0].events == ["play", "pause", "play"]


def test_other_message_stops_current_first(controller, players):
    controller.toggle("m1", CLIP)
    controller.toggle("m2", CLIP)

    assert players[0].events[-1] == "stop"
    assert controller.is_playing("m2")
    assert not controller.is_playing("m1")


def test_end_of_clip_returns_to_idle(controller, players):
    controller.toggle("m1", CLIP)

    players[0].on_finished(None)

    assert controller.state is PlaybackState.IDLE
    assert controller.current_message_id is None


def test_stale_finish_is_ignored(controller, players):
    controller.toggle("m1", CLIP)
    controller.toggle("m2", CLIP)

    players[0].on_finished(None)

    assert controller.is_playing("m2")


def test_listeners_see_every_state(controller):
    seen = []
    controller.subscribe(lambda state, message_id: seen.append((state, message_id)))

    controller.toggle("m1", CLIP)
    controller.toggle("m1", CLIP)
    controller.stop()

    assert seen == [
        (PlaybackState.PLAYING, "m1"),
        (PlaybackState.PAUSED, "m1"),
        (PlaybackState.IDLE, None),
    ]


def test_device_failure_leaves_controller_idle():
    controller = PlaybackController(
        player_factory=lambda clip, on_finished: _FakePlayer(clip, on_finished, fail=True)
    )

    assert controller.toggle("m1", CLIP) is PlaybackState.IDLE
    assert controller.current_message_id is None


def test_device_error_returns_to_idle(controller, players):
    seen = []
    controller.subscribe(lambda state, message_id: seen.append(state))
    controller.toggle("m1", CLIP)

    players[0].on_finished(RuntimeError("output device lost"))

    assert controller.state is PlaybackState.IDLE
    assert controller.current_message_id is None
    assert players[0].events[-1] == "stop"
    assert seen == [PlaybackState.PLAYING, PlaybackState.IDLE]
