"""
Prompts module for the Causerie French conversation partner.

Contains the instructions for:
- Reply generation (French friend persona, image cue)
- Grammar validation
- Speech synthesis style
"""

from .tutor_prompts import (
    GRAMMAR_INSTRUCTION,
    IMAGE_INSTRUCTION,
    TTS_STYLE,
    UserLevel,
    get_persona_prompt,
    get_photo_cue,
)

__all__ = [
    "get_persona_prompt",
    "get_photo_cue",
    "GRAMMAR_INSTRUCTION",
    "IMAGE_INSTRUCTION",
    "TTS_STYLE",
    "UserLevel",
]
