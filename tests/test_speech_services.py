import numpy as np
import pytest

from causerie.audio.clip import AudioClip
from causerie.errors import ReplyGenerationError, SynthesisError, TranscriptionError
from causerie.prompts import IMAGE_INSTRUCTION
from causerie.services.asr_service import ASRService
from causerie.services.llm_service import HistoryMessage, LLMService
from causerie.services.tts_service import TTSService
from tests.fakes import FakeOpenAI


@pytest.mark.asyncio
async def test_reply_request_carries_persona_history_and_image_flag():
    client = FakeOpenAI(output_text="  Bien sûr ! Avec ou sans sucre ?  ")
    service = LLMService(client=client)
    history = [
        HistoryMessage(role="user", content="Salut"),
        HistoryMessage(role="assistant", content="Salut ! Ça va ?"),
    ]

    reply = await service.generate_reply(history, "Je voudrais un café", has_image=True)

    assert reply == "Bien sûr ! Avec ou sans sucre ?"
    sent = client.responses.calls[0]["input"]
    assert sent[0]["role"] == "developer"
    assert sent[1] == {"role": "developer", "content": IMAGE_INSTRUCTION}
    assert sent[2:] == [
        {"role": "user", "content": "Salut"},
        {"role": "assistant", "content": "Salut ! Ça va ?"},
        {"role": "user", "content": "Je voudrais un café"},
    ]


def test_image_instruction_only_when_flagged():
    service = LLMService(client=FakeOpenAI())

    sent = service.build_input([], "Bonjour", has_image=False)

    assert IMAGE_INSTRUCTION not in [m["content"] for m in sent]


@pytest.mark.asyncio
@pytest.mark.parametrize("output", ["", None])
async def test_empty_reply_is_an_error(output):
    service = LLMService(client=FakeOpenAI(output_text=output))

    with pytest.raises(ReplyGenerationError):
        await service.generate_reply([], "Bonjour")


@pytest.mark.asyncio
async def test_transcription_sends_named_file_and_strips_text():
    client = FakeOpenAI(transcript="  je voudrais un café \n")
    service = ASRService(client=client)
    clip = AudioClip.from_samples(np.zeros(16000, dtype=np.int16), 16000)

    result = await service.transcribe(clip)

    assert result.text == "je voudrais un café"
    call = client.audio.transcriptions.calls[0]
    assert call["file"].name == "speech.wav"
    assert call["language"] == "fr"


@pytest.mark.asyncio
async def test_empty_clip_is_not_sent():
    client = FakeOpenAI()
    service = ASRService(client=client)

    result = await service.transcribe(AudioClip.empty())

    assert result.text == ""
    assert client.audio.transcriptions.calls == []


@pytest.mark.asyncio
async def test_transcription_failure_is_raised():
    service = ASRService(client=FakeOpenAI(transcript=TimeoutError("slow")))

    with pytest.raises(TranscriptionError):
        await service.transcribe(AudioClip(data=b"webm", mime_type="audio/webm"))


@pytest.mark.asyncio
async def test_pcm_speech_is_wrapped_as_wav():
    pcm = np.zeros(2400, dtype="<i2").tobytes()
    service = TTSService(client=FakeOpenAI(speech=pcm))
    service.response_format = "pcm"

    clip = await service.synthesize("Bien sûr !")

    assert clip.mime_type == "audio/wav"
    assert clip.data[:4] == b"RIFF"
    assert clip.duration_ms == pytest.approx(2400 / service.sample_rate * 1000)


@pytest.mark.asyncio
async def test_compressed_speech_keeps_its_mime_type():
    service = TTSService(client=FakeOpenAI(speech=b"ID3mp3"))
    service.response_format = "mp3"

    clip = await service.synthesize("Bien sûr !")

    assert clip.mime_type == "audio/mpeg"
    assert clip.data == b"ID3mp3"


@pytest.mark.asyncio
@pytest.mark.parametrize("speech", [b"", RuntimeError("quota")])
async def test_synthesis_failure_is_raised(speech):
    service = TTSService(client=FakeOpenAI(speech=speech))

    with pytest.raises(SynthesisError):
        await service.synthesize("Bien sûr !")


@pytest.mark.asyncio
async def test_blank_text_is_not_synthesized():
    client = FakeOpenAI(speech=b"x")
    service = TTSService(client=client)

    with pytest.raises(SynthesisError):
        await service.synthesize("  ")
    assert client.audio.speech.calls == []
