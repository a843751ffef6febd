import pytest

from causerie.cli import _handle_command, chat, main
from causerie.lifecycle import VisibilitySignal
from causerie.prompts import UserLevel


class _StubRecorder:
    def __init__(self, visibility):
        self.visibility = visibility
        self.visible_on_start = []

    async def start(self):
        self.visible_on_start.append(self.visibility.visible)


@pytest.mark.asyncio
async def test_missing_snapshot_is_reported(tmp_path, capsys):
    restored = await chat(UserLevel.INTERMEDIATE, tmp_path / "missing.json")

    assert restored is False
    assert "Impossible de reprendre" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_malformed_snapshot_is_reported(tmp_path, capsys):
    snapshot = tmp_path / "chat.json"
    snapshot.write_text("{pas du json", encoding="utf-8")

    assert await chat(UserLevel.INTERMEDIATE, snapshot) is False
    snapshot.write_text("[1, 2]", encoding="utf-8")

    assert await chat(UserLevel.INTERMEDIATE, snapshot) is False
    assert "Impossible de reprendre" in capsys.readouterr().out


def test_main_exits_with_error_on_bad_snapshot(tmp_path):
    snapshot = tmp_path / "chat.json"
    snapshot.write_text('{"messages": [{"sender": "nobody"}]}', encoding="utf-8")

    assert main(["--restore", str(snapshot)]) == 1


@pytest.mark.asyncio
async def test_rec_brings_view_back_to_foreground():
    visibility = VisibilitySignal()
    visibility.set_visible(False)
    recorder = _StubRecorder(visibility)

    keep_going = await _handle_command("/rec", None, recorder, None, visibility)

    assert keep_going
    assert recorder.visible_on_start == [True]
