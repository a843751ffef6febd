"""
Services module for Causerie.

This module provides the external collaborators of a conversation:
- ASRService: Speech-to-Text for recorded clips
- LLMService: Reply generation with the French friend persona
- TTSService: Text-to-Speech for bot replies
- GrammarService: Single-utterance grammar validation
"""

from .asr_service import ASRService
from .grammar_service import GrammarService
from .llm_service import LLMService
from .tts_service import TTSService

__all__ = [
    "ASRService",
    "LLMService",
    "TTSService",
    "GrammarService",
]
