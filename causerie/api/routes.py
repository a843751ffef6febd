"""
HTTP API for the conversation services.

Exposes each collaborator on its own endpoint so browser clients can use them
without holding API keys:
- POST /api/chat     reply generation
- POST /api/grammar  grammar validation
- POST /api/stt      speech-to-text
- POST /api/tts      text-to-speech
"""

from typing import List, Literal

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import Response
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from causerie.audio.clip import AudioClip
from causerie.errors import (
    ReplyGenerationError,
    SynthesisError,
    TranscriptionError,
    ValidationError,
)
from causerie.services.asr_service import ASRService, get_asr_service
from causerie.services.grammar_service import GrammarService, get_grammar_service
from causerie.services.llm_service import HistoryMessage, LLMService, get_llm_service
from causerie.services.tts_service import TTSService, get_tts_service

router = APIRouter(prefix="/api")


class ChatHistoryItem(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    history: List[ChatHistoryItem] = Field(default_factory=list)
    user_message: str = Field(alias="userMessage")
    has_image: bool = Field(default=False, alias="hasImage")


class TextRequest(BaseModel):
    text: str


@router.post("/chat")
async def chat(
    request: ChatRequest, llm_service: LLMService = Depends(get_llm_service)
):
    """Generate the next reply for a conversation history."""
    if not request.user_message.strip():
        raise HTTPException(status_code=400, detail="Missing userMessage")

    history = [
        HistoryMessage(role=item.role, content=item.content)
        for item in request.history
    ]
    try:
        text = await llm_service.generate_reply(
            history, request.user_message, has_image=request.has_image
        )
    except ReplyGenerationError as e:
        raise HTTPException(status_code=502, detail=str(e))

    return {"text": text}


@router.post("/grammar")
async def grammar(
    request: TextRequest,
    grammar_service: GrammarService = Depends(get_grammar_service),
):
    """Validate one utterance: returns "OK" or the corrected text."""
    if not request.text.strip():
        raise HTTPException(status_code=400, detail="Missing text")

    try:
        verdict = await grammar_service.validate(request.text)
    except ValidationError as e:
        raise HTTPException(status_code=502, detail=str(e))

    return verdict.to_dict()


@router.post("/stt")
async def stt(
    audio: UploadFile = File(...),
    asr_service: ASRService = Depends(get_asr_service),
):
    """Transcribe an uploaded recording."""
    data = await audio.read()
    if not data:
        raise HTTPException(status_code=400, detail="Missing audio")

    clip = AudioClip(data=data, mime_type=audio.content_type or "audio/webm")
    try:
        result = await asr_service.transcribe(clip)
    except TranscriptionError as e:
        raise HTTPException(status_code=502, detail=str(e))

    logger.debug(f"STT: {len(data)} bytes -> {len(result.text)} characters")
    return {"text": result.text}


@router.post("/tts")
async def tts(
    request: TextRequest, tts_service: TTSService = Depends(get_tts_service)
):
    """Synthesize text with the conversation voice."""
    if not request.text.strip():
        raise HTTPException(status_code=400, detail="Missing text")

    try:
        clip = await tts_service.synthesize(request.text)
    except SynthesisError as e:
        raise HTTPException(status_code=502, detail=str(e))

    return Response(
        content=clip.data,
        media_type=clip.mime_type,
        headers={"Cache-Control": "no-store"},
    )
