import pytest
from fastapi.testclient import TestClient

from causerie.api import websocket as ws_module
from causerie.conversation import ConversationOrchestrator
from causerie.errors import ReplyGenerationError, ValidationError
from causerie.main import app
from causerie.services.asr_service import get_asr_service
from causerie.services.grammar_service import GrammarVerdict, get_grammar_service
from causerie.services.llm_service import get_llm_service
from causerie.services.tts_service import get_tts_service
from tests.fakes import VOICE, FakeASR, FakeGrammar, FakeLLM, FakeTTS


@pytest.fixture
def client():
    yield TestClient(app)
    app.dependency_overrides.clear()


def _override(dependency, fake):
    app.dependency_overrides[dependency] = lambda: fake
    return fake


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


def test_chat_returns_reply_text(client):
    llm = _override(get_llm_service, FakeLLM(replies=["Bien sûr ! Avec ou sans sucre ?"]))

    response = client.post(
        "/api/chat",
        json={
            "history": [{"role": "assistant", "content": "Salut !"}],
            "userMessage": "Je voudrais un café",
            "hasImage": True,
        },
    )

    assert response.status_code == 200
    assert response.json() == {"text": "Bien sûr ! Avec ou sans sucre ?"}
    assert llm.calls == [
        ([{"role": "assistant", "content": "Salut !"}], "Je voudrais un café", True)
    ]


def test_chat_rejects_blank_message(client):
    _override(get_llm_service, FakeLLM())

    response = client.post("/api/chat", json={"userMessage": "  "})

    assert response.status_code == 400


def test_chat_failure_is_bad_gateway(client):
    _override(get_llm_service, FakeLLM(error=ReplyGenerationError("down")))

    response = client.post("/api/chat", json={"userMessage": "Bonjour"})

    assert response.status_code == 502


def test_grammar_returns_ok_or_correction(client):
    _override(
        get_grammar_service,
        FakeGrammar(
            outcomes=[
                GrammarVerdict(is_valid=True),
                GrammarVerdict(is_valid=False, correction="Je ne sais pas."),
            ]
        ),
    )

    assert client.post("/api/grammar", json={"text": "Je sais"}).json() == {
        "result": "OK"
    }
    assert client.post("/api/grammar", json={"text": "je sais pas"}).json() == {
        "result": "Je ne sais pas."
    }


def test_grammar_contract_violation_is_bad_gateway(client):
    _override(get_grammar_service, FakeGrammar(outcomes=[ValidationError("echo")]))

    response = client.post("/api/grammar", json={"text": "je sais pas"})

    assert response.status_code == 502


def test_stt_transcribes_upload(client):
    _override(get_asr_service, FakeASR({"clip-bytes": "je voudrais un café"}))

    response = client.post(
        "/api/stt",
        files={"audio": ("speech.webm", b"clip-bytes", "audio/webm")},
    )

    assert response.status_code == 200
    assert response.json() == {"text": "je voudrais un café"}


def test_stt_rejects_empty_upload(client):
    _override(get_asr_service, FakeASR({}))

    response = client.post(
        "/api/stt", files={"audio": ("speech.webm", b"", "audio/webm")}
    )

    assert response.status_code == 400


def test_tts_streams_audio(client):
    _override(get_tts_service, FakeTTS())

    response = client.post("/api/tts", json={"text": "Bien sûr !"})

    assert response.status_code == 200
    assert response.content == VOICE.data
    assert response.headers["content-type"] == "audio/wav"
    assert response.headers["cache-control"] == "no-store"


@pytest.fixture
def conversation(monkeypatch):
    def build(session=None):
        return ConversationOrchestrator(
            llm_service=FakeLLM(replies=["Bien sûr ! Avec ou sans sucre ?"]),
            asr_service=FakeASR({}),
            tts_service=FakeTTS(),
            grammar_service=FakeGrammar(),
            session=session,
        )

    monkeypatch.setattr(ws_module, "build_orchestrator", build)
    return TestClient(app)


def _receive_until(websocket, event_type, count=1):
    received = []
    while sum(1 for m in received if m["type"] == event_type) < count:
        received.append(websocket.receive_json())
    return received


def test_websocket_text_turn(conversation):
    with conversation.websocket_connect("/ws/conversation") as websocket:
        assert websocket.receive_json()["type"] == "connected"

        websocket.send_json({"type": "text", "text": "Je voudrais un café"})
        events = _receive_until(websocket, "message_updated", count=2)

    assert [(e["type"], e["message"]["sender"]) for e in events] == [
        ("message_appended", "user"),
        ("message_appended", "bot"),
        ("message_updated", "bot"),
        ("message_updated", "bot"),
    ]
    assert events[1]["message"]["text"] == "Bien sûr ! Avec ou sans sucre ?"
    assert [e["message"]["audio_state"] for e in events[1:]] == [
        "absent",
        "loading",
        "ready",
    ]
    assert events[3]["message"]["audio"]["mime_type"] == "audio/wav"


def test_websocket_grammar_check_and_snapshot(conversation):
    with conversation.websocket_connect("/ws/conversation") as websocket:
        websocket.receive_json()
        websocket.send_json({"type": "text", "text": "Je voudrais un café"})
        user = websocket.receive_json()["message"]
        _receive_until(websocket, "message_updated", count=2)

        websocket.send_json({"type": "grammar_check", "message_id": user["id"]})
        updates = _receive_until(websocket, "message_updated", count=2)
        assert [u["message"]["grammar_state"] for u in updates] == ["loading", "ok"]

        websocket.send_json({"type": "snapshot"})
        snapshot = websocket.receive_json()

    assert snapshot["type"] == "snapshot"
    assert [m["sender"] for m in snapshot["data"]["messages"]] == ["user", "bot"]


def test_websocket_ping_and_unknown_type(conversation):
    with conversation.websocket_connect("/ws/conversation") as websocket:
        websocket.receive_json()

        websocket.send_json({"type": "ping"})
        assert websocket.receive_json() == {"type": "pong"}

        websocket.send_json({"type": "dance"})
        assert websocket.receive_json()["type"] == "error"

        websocket.send_bytes(b"not a wav file")
        assert websocket.receive_json()["type"] == "error"
