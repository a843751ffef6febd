"""
Conversation module for Causerie.

- Message / Session: the ordered, append-only message log
- ConversationOrchestrator: the per-session turn pipeline
"""

from .models import AudioState, GrammarState, Message, Sender, Session
from .orchestrator import ConversationOrchestrator, MessageEvent

__all__ = [
    "AudioState",
    "ConversationOrchestrator",
    "GrammarState",
    "Message",
    "MessageEvent",
    "Sender",
    "Session",
]
