"""
Terminal chat for Causerie.

Runs the whole conversation pipeline in-process: typed lines are sent as text
turns, the microphone is driven with /rec and /stop, and replies are voiced
through the local output device.

Usage:
    causerie                         # start an empty conversation
    causerie --level beginner        # choose the persona's level
    causerie --restore chat.json     # continue from a saved snapshot
"""

import argparse
import asyncio
import json
import signal
import sys
from pathlib import Path
from typing import List, Optional

from loguru import logger

from causerie.audio import PlaybackController, PlaybackState, Recorder
from causerie.config import settings
from causerie.conversation import (
    AudioState,
    ConversationOrchestrator,
    GrammarState,
    Message,
    MessageEvent,
    Sender,
    Session,
)
from causerie.errors import DeviceError, MicrophonePermissionError
from causerie.lifecycle import VisibilitySignal
from causerie.main import configure_logging
from causerie.prompts import UserLevel
from causerie.services.llm_service import LLMService

HELP = """Commandes :
  <texte>              envoyer un message
  /rec                 commencer l'enregistrement
  /stop                arrêter et envoyer l'enregistrement
  /play N              écouter / mettre en pause le message N
  /check N             vérifier la grammaire du message N
  /photo REF SUJET     parler d'une photo
  /save FICHIER        enregistrer la conversation
  /help                afficher cette aide
  /quit                quitter"""


class TerminalView:
    """Prints the message log as it changes."""

    def __init__(self, orchestrator: ConversationOrchestrator):
        self._ids: List[str] = []
        for message in orchestrator.messages:
            self._on_event(MessageEvent.APPENDED, message)
        orchestrator.subscribe(self._on_event)

    def message_id(self, number: str) -> Optional[str]:
        """Resolve the 1-based number shown next to a message."""
        try:
            index = int(number) - 1
        except ValueError:
            return None
        if 0 <= index < len(self._ids):
            return self._ids[index]
        return None

    def _on_event(self, event: MessageEvent, message: Message) -> None:
        if event is MessageEvent.APPENDED:
            self._ids.append(message.id)
            print(self._render(message))
            return

        number = self._ids.index(message.id) + 1
        if message.audio_state is AudioState.READY:
            print(f"[{number}] 🔊 voix prête (/play {number})")
        elif message.audio_state is AudioState.ERROR:
            print(f"[{number}] 🔇 voix indisponible")

        if message.grammar_state is GrammarState.OK:
            print(f"[{number}] ✓ rien à corriger")
        elif message.grammar_state is GrammarState.FIXED:
            print(f"[{number}] ✎ {message.grammar_correction}")
        elif message.grammar_state is GrammarState.ERROR:
            print(f"[{number}] ✗ vérification impossible, réessayez /check {number}")

    def _render(self, message: Message) -> str:
        number = len(self._ids)
        who = "vous" if message.sender is Sender.USER else "ami"
        if message.is_image:
            return f"[{number}] {who}: 📷 {message.topic}"
        return f"[{number}] {who}: {message.text}"


async def _handle_command(
    line: str,
    orchestrator: ConversationOrchestrator,
    recorder: Recorder,
    view: TerminalView,
    visibility: VisibilitySignal,
) -> bool:
    """Run one input line. Returns False when the user wants to quit."""
    command, _, rest = line.partition(" ")
    rest = rest.strip()

    if command in ("/quit", "/exit"):
        return False

    if command == "/help":
        print(HELP)

    elif command == "/rec":
        # Typing a command means the terminal is in the foreground again.
        visibility.set_visible(True)
        try:
            await recorder.start()
            print("🎙  enregistrement… (/stop pour envoyer)")
        except MicrophonePermissionError:
            print("Accès au micro refusé. Autorisez le micro puis réessayez /rec.")
        except DeviceError as e:
            print(f"Micro indisponible ({e}). Réessayez /rec.")

    elif command == "/stop":
        clip = await recorder.stop()
        if orchestrator.submit_audio(clip) is None:
            print("(rien d'enregistré)")

    elif command == "/play":
        message_id = view.message_id(rest)
        state = orchestrator.play(message_id) if message_id else None
        if state is None:
            print("Pas de voix prête pour ce message.")
        elif state is PlaybackState.PAUSED:
            print("⏸")

    elif command == "/check":
        message_id = view.message_id(rest)
        if not message_id or orchestrator.request_grammar_check(message_id) is None:
            print("Ce message ne peut pas être vérifié maintenant.")

    elif command == "/photo":
        photo_ref, _, topic = rest.partition(" ")
        if orchestrator.submit_photo(photo_ref, topic) is None:
            print("Photo ignorée (déjà envoyée ou sans sujet).")

    elif command == "/save":
        if not rest:
            print("Usage : /save FICHIER")
        else:
            Path(rest).write_text(
                json.dumps(orchestrator.snapshot(), ensure_ascii=False), encoding="utf-8"
            )
            print(f"Conversation enregistrée dans {rest}")

    elif command.startswith("/"):
        print(f"Commande inconnue : {command} (/help)")

    elif orchestrator.submit_text(line) is None and orchestrator.busy:
        print("(réponse en attente…)")

    return True


async def chat(level: UserLevel, restore: Optional[Path] = None) -> bool:
    """
    Run the terminal chat until /quit or end of input.

    Returns:
        False if the snapshot to restore could not be loaded
    """
    session = None
    if restore is not None:
        try:
            session = Session.from_dict(
                json.loads(restore.read_text(encoding="utf-8"))
            )
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.debug(f"Failed to restore {restore}: {e!r}")
            print(f"Impossible de reprendre la conversation {restore} : {e}")
            return False
        logger.info(f"Restored {len(session)} messages from {restore}")

    visibility = VisibilitySignal()
    playback = PlaybackController()
    recorder = Recorder(visibility=visibility)
    orchestrator = ConversationOrchestrator(
        llm_service=LLMService(level=level),
        playback=playback,
        session=session,
    )
    view = TerminalView(orchestrator)

    loop = asyncio.get_running_loop()
    try:
        # Losing the terminal counts as the view going to the background.
        loop.add_signal_handler(signal.SIGHUP, visibility.set_visible, False)
        loop.add_signal_handler(signal.SIGCONT, visibility.set_visible, True)
    except (NotImplementedError, AttributeError):
        logger.debug("SIGHUP not available, microphone released on exit only")

    print(HELP)
    try:
        while True:
            try:
                line = await loop.run_in_executor(None, input, "> ")
            except EOFError:
                break
            line = line.strip()
            if not line:
                continue
            if not await _handle_command(
                line, orchestrator, recorder, view, visibility
            ):
                break
    finally:
        recorder.close()
        await orchestrator.close()
        playback.close()
    return True


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Practice French with a conversation partner"
    )
    parser.add_argument(
        "--level",
        choices=[level.value for level in UserLevel],
        default=settings.learner_level,
        help="Learner level used by the persona",
    )
    parser.add_argument(
        "--restore", type=Path, help="Conversation snapshot saved with /save"
    )
    parser.add_argument("--log-level", default="WARNING", help="Logging level")
    args = parser.parse_args(argv)

    configure_logging(args.log_level)

    try:
        if not asyncio.run(chat(UserLevel(args.level), args.restore)):
            return 1
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
