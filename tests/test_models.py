import numpy as np
import pytest

from causerie.audio.clip import AudioClip
from causerie.conversation import AudioState, GrammarState, Message, Sender, Session
from causerie.conversation.models import StateTransitionError


def test_audio_state_machine():
    bot = Message.bot_text("Salut !")
    loading = bot.with_audio(AudioState.LOADING)
    ready = loading.with_audio(AudioState.READY, AudioClip(data=b"RIFF"))

    assert ready.id == bot.id
    assert bot.audio_state is AudioState.ABSENT

    with pytest.raises(StateTransitionError):
        bot.with_audio(AudioState.READY, AudioClip(data=b"RIFF"))
    with pytest.raises(StateTransitionError):
        loading.with_audio(AudioState.READY)
    with pytest.raises(StateTransitionError):
        ready.with_audio(AudioState.LOADING)
    with pytest.raises(StateTransitionError):
        Message.user_text("Salut").with_audio(AudioState.LOADING)


def test_grammar_state_machine():
    user = Message.user_text("je sais pas")
    loading = user.with_grammar(GrammarState.LOADING)

    fixed = loading.with_grammar(GrammarState.FIXED, "Je ne sais pas.")
    assert fixed.grammar_correction == "Je ne sais pas."

    with pytest.raises(StateTransitionError):
        loading.with_grammar(GrammarState.FIXED)
    with pytest.raises(StateTransitionError):
        loading.with_grammar(GrammarState.OK, "Je ne sais pas.")
    with pytest.raises(StateTransitionError):
        fixed.with_grammar(GrammarState.LOADING)

    retried = loading.with_grammar(GrammarState.ERROR).with_grammar(GrammarState.LOADING)
    assert retried.grammar_state is GrammarState.LOADING

    with pytest.raises(StateTransitionError):
        Message.bot_text("Salut !").with_grammar(GrammarState.LOADING)
    with pytest.raises(StateTransitionError):
        Message.user_image("p1", "un chat").with_grammar(GrammarState.LOADING)


def test_session_replace_keeps_content_immutable():
    session = Session()
    message = session.append(Message.user_text("Bonjour"))

    with pytest.raises(ValueError):
        session.append(message)
    with pytest.raises(ValueError):
        session.replace(Message(sender=Sender.USER, text="Bonsoir", id=message.id))

    session.replace(message.with_grammar(GrammarState.LOADING))
    assert session.get(message.id).grammar_state is GrammarState.LOADING
    assert len(session) == 1


def test_history_skips_images_and_placeholders():
    session = Session(
        [
            Message.user_image("p1", "un chat"),
            Message.user_text("🎤", placeholder=True),
            Message.bot_text("Oops", placeholder=True),
            Message.user_text("Il est mignon"),
            Message.bot_text("Oui, très !"),
        ]
    )

    assert [m.to_dict() for m in session.history()] == [
        {"role": "user", "content": "Il est mignon"},
        {"role": "assistant", "content": "Oui, très !"},
    ]
    assert session.has_image
    assert session.photo_refs == {"p1"}


def test_snapshot_round_trip_keeps_voice():
    voice = AudioClip.from_samples(np.zeros(240, dtype=np.int16), 24000)
    bot = (
        Message.bot_text("Salut !")
        .with_audio(AudioState.LOADING)
        .with_audio(AudioState.READY, voice)
    )
    session = Session([Message.user_text("Salut"), bot], session_id="s1")

    restored = Session.from_dict(session.to_dict())

    assert restored.session_id == "s1"
    assert restored.messages == session.messages
