#!/usr/bin/env python3
"""
Victor - Command Line Interface

Terminal front-end for the conversational assistant.

Commands:
    chat    - Start an interactive session (chat, voice, games)
    voices  - List the playback voice catalog
    test    - Check configuration and connections

Usage:
    victor chat
    victor chat --mute
    victor voices --gender female
    python -m victor.cli test

For help on a specific command:
    victor <command> --help
"""

import argparse
import asyncio
import sys
from typing import Any, Dict, List, Optional, Sequence, Tuple

import chess

from victor.config import settings
from victor.core.arbiter import ConversationMode, GameKind
from victor.core.timeline import Speaker, TimelineEntry
from victor.games import BoardWidget, ChessMove
from victor.logger import get_logger, init_logging

logger = get_logger(__name__)


CHAT_HELP = """Commands:
  /listen              - Fill the input by voice
  /stop                - Stop listening
  /send                - Send the voice draft
  /game ttt|chess      - Start a game
  /move ROW COL        - Tic-tac-toe move (0-based)
  /move FROM TO        - Chess move, e.g. /move e2 e4
  /click SQUARE        - Chess click-to-move selection
  /forfeit             - End the current game
  /voice               - Toggle voice output
  /gender              - Toggle voice gender
  /read N              - Read entry N aloud
  /help                - Show this help
  /quit                - Exit"""

GAME_ALIASES = {
    "ttt": GameKind.TIC_TAC_TOE,
    "tictactoe": GameKind.TIC_TAC_TOE,
    "tic-tac-toe": GameKind.TIC_TAC_TOE,
    "chess": GameKind.CHESS,
}


# ============================================================================
# Rendering
# ============================================================================

def render_tictactoe(snapshot: Sequence[Sequence[str]]) -> str:
    rows = [" " + " | ".join(cell or " " for cell in row) for row in snapshot]
    return "\n---+---+---\n".join(rows)


def render_chess(fen: str) -> str:
    board = chess.Board(fen)
    return board.unicode(empty_square="·")


def render_widget(widget: BoardWidget) -> str:
    if widget.kind == GameKind.TIC_TAC_TOE:
        board = render_tictactoe(widget.snapshot)
    else:
        board = render_chess(widget.snapshot)
    if widget.last_move:
        board = f"{board}\n({widget.last_move})"
    return board


class TimelineRenderer:
    """Prints timeline changes as they arrive on the event bus."""

    def __init__(self, out=None):
        self._out = out or sys.stdout
        self._ids: List[str] = []

    def attach(self, bus) -> None:
        from victor.realtime import (
            EntryAppendedEvent,
            EntryFrozenEvent,
            EntryReplacedEvent,
            EntryUpdatedEvent,
            ModeChangedEvent,
            TranscriptEvent,
        )

        bus.subscribe(EntryAppendedEvent, self._on_appended)
        bus.subscribe(EntryUpdatedEvent, self._on_updated)
        bus.subscribe(EntryFrozenEvent, self._on_frozen)
        bus.subscribe(EntryReplacedEvent, self._on_replaced)
        bus.subscribe(ModeChangedEvent, self._on_mode)
        bus.subscribe(TranscriptEvent, self._on_transcript)

    def entry_id(self, number: int) -> Optional[str]:
        if 1 <= number <= len(self._ids):
            return self._ids[number - 1]
        return None

    def _write(self, text: str, end: str = "\n") -> None:
        print(text, end=end, file=self._out, flush=True)

    def _label(self, entry: TimelineEntry) -> str:
        number = self._ids.index(entry.id) + 1 if entry.id in self._ids else "?"
        name = settings.persona.user_name if entry.speaker == Speaker.USER else settings.persona.assistant_name
        return f"[{number}] {name}:"

    async def _on_appended(self, event) -> None:
        entry = event.entry
        self._ids.append(entry.id)
        if entry.speaker == Speaker.USER and entry.widget is None:
            return  # Already on screen as typed input

        if entry.streaming:
            self._write(f"{self._label(entry)} {entry.text or ''}", end="")
            return
        if entry.text:
            self._write(f"{self._label(entry)} {entry.text}")
        if isinstance(entry.widget, BoardWidget):
            if not entry.text:
                self._write(self._label(entry))
            self._write(render_widget(entry.widget))

    async def _on_updated(self, event) -> None:
        self._write(event.delta, end="")

    async def _on_frozen(self, event) -> None:
        self._write("")

    async def _on_replaced(self, event) -> None:
        self._write(f"\n{self._label(event.entry)} {event.entry.text or ''}")

    async def _on_mode(self, event) -> None:
        if event.state.mode == ConversationMode.LISTENING:
            self._write("🎤 Listening... (/stop to finish)")

    async def _on_transcript(self, event) -> None:
        marker = "✅" if event.is_final else "…"
        self._write(f"   {marker} {event.text}")


# ============================================================================
# Chat session
# ============================================================================

def _build_voice_services(enabled: bool):
    """Create Azure capture/playback, or None for each when unavailable."""
    if not enabled:
        return None, None
    if not settings.speech.is_configured:
        logger.warning("Azure Speech not configured; voice features disabled")
        return None, None

    from victor.realtime import AzureCaptureService, AzurePlaybackService

    capture = playback = None
    try:
        capture = AzureCaptureService()
    except Exception as e:
        logger.warning(f"Speech capture unavailable: {e}")
    try:
        playback = AzurePlaybackService()
    except Exception as e:
        logger.warning(f"Speech playback unavailable: {e}")
    return capture, playback


async def _handle_move(controller, args: List[str]) -> None:
    board_id = controller.games.latest_board_id()
    if board_id is None:
        print("No game in progress.")
        return

    kind = controller.state.active_game
    if kind == GameKind.TIC_TAC_TOE and len(args) == 2 and all(a.isdigit() for a in args):
        accepted = controller.click_cell(board_id, int(args[0]), int(args[1]))
    elif kind == GameKind.CHESS and len(args) == 2:
        widget = controller.timeline.get(board_id).widget
        accepted = bool(widget.on_move and widget.on_move(ChessMove(args[0].lower(), args[1].lower())))
    else:
        print("Usage: /move ROW COL (tic-tac-toe) or /move FROM TO (chess)")
        return

    if not accepted:
        print("⚠️  Move not accepted.")


async def _handle_click(controller, args: List[str]) -> None:
    board_id = controller.games.latest_board_id()
    if board_id is None or controller.state.active_game != GameKind.CHESS or len(args) != 1:
        print("Usage: /click SQUARE (during a chess game)")
        return

    square = args[0].lower()
    if controller.click_square(board_id, square):
        return

    selection = controller.games.selection
    if selection.selected:
        board = chess.Board(controller.timeline.get(board_id).widget.snapshot)
        targets = ", ".join(selection.possible_targets(board)) or "none"
        print(f"   Selected {selection.selected} (targets: {targets})")
    else:
        print("   Selection cleared.")


async def _run_command(controller, renderer: TimelineRenderer, line: str) -> bool:
    """Execute a slash command. Returns False to end the session."""
    parts = line[1:].split()
    if not parts:
        print(CHAT_HELP)
        return True
    name, args = parts[0].lower(), parts[1:]

    if name in ("quit", "exit"):
        return False
    if name == "help":
        print(CHAT_HELP)
    elif name == "listen":
        if not await controller.start_capture():
            print("⚠️  Cannot listen right now.")
    elif name == "stop":
        await controller.stop_capture()
    elif name == "send":
        if await controller.submit_text() is None:
            print("⚠️  Nothing to send.")
    elif name == "game":
        kind = GAME_ALIASES.get(args[0].lower()) if args else None
        if kind is None:
            print("Usage: /game ttt|chess")
        elif not controller.start_game(kind):
            print("⚠️  Cannot start a game right now.")
    elif name == "move":
        await _handle_move(controller, args)
    elif name == "click":
        await _handle_click(controller, args)
    elif name == "forfeit":
        if not controller.forfeit_game():
            print("No game in progress.")
    elif name == "voice":
        enabled = await controller.toggle_voice_output()
        print(f"🔊 Voice output {'on' if enabled else 'off'}")
    elif name == "gender":
        print(f"🗣️  Voice gender: {controller.toggle_voice_gender().value}")
    elif name == "read":
        entry_id = renderer.entry_id(int(args[0])) if args and args[0].isdigit() else None
        if entry_id is None or not await controller.read_aloud(entry_id):
            print("⚠️  Nothing to read.")
    else:
        print(f"Unknown command: /{name} (try /help)")
    return True


async def _chat_session(args: argparse.Namespace) -> int:
    from victor.realtime import ControllerConfig, ConversationController

    capture, playback = _build_voice_services(not args.no_voice)
    config = ControllerConfig(voice_output_enabled=False if args.mute else None)
    controller = ConversationController(config=config, capture=capture, playback=playback)

    renderer = TimelineRenderer()
    renderer.attach(controller.event_bus)
    await controller.start()

    try:
        while True:
            line = (await asyncio.to_thread(input, "")).strip()
            if not line:
                continue
            if line.startswith("/"):
                if not await _run_command(controller, renderer, line):
                    break
            else:
                await controller.submit_text(line)
            await controller.event_bus.drain(timeout=2.0)
    except (KeyboardInterrupt, EOFError):
        pass
    finally:
        await controller.stop()

    print("\n👋 Goodbye!")
    return 0


def cmd_chat(args: argparse.Namespace) -> int:
    """
    Start an interactive session.
    """
    print("\n" + "=" * 60)
    print(f"🤖 {settings.persona.assistant_name} - Interactive Session")
    print("=" * 60)
    print("Type a message to chat. " + CHAT_HELP)
    print("-" * 60)

    try:
        return asyncio.run(_chat_session(args))
    except KeyboardInterrupt:
        print("\n\n👋 Goodbye!")
        return 0
    except Exception as e:
        print(f"❌ Session failed: {e}")
        logger.exception("Session error")
        return 1


# ============================================================================
# Voices
# ============================================================================

async def _list_voices(gender: str) -> int:
    from victor.realtime import AzurePlaybackService, VoiceGender, select_voice

    playback = AzurePlaybackService()
    voices = await playback.load_voices()
    if not voices:
        print("⚠️  No voices available.")
        return 1

    chosen = select_voice(voices, VoiceGender.parse(gender))
    for voice in voices:
        marker = "👉" if voice == chosen else "  "
        print(f"{marker} {voice.name:<40} {voice.locale:<8} {voice.gender or '-'}")
    print(f"\n{len(voices)} voices; selected for {gender}: {chosen.name if chosen else '-'}")
    return 0


def cmd_voices(args: argparse.Namespace) -> int:
    """
    List the playback voice catalog and the voice the selection policy picks.
    """
    if not settings.speech.is_configured:
        print("❌ Azure Speech not configured.")
        print("   Set AZURE_SPEECH_API_KEY and AZURE_SPEECH_REGION in .env")
        return 1

    try:
        return asyncio.run(_list_voices(args.gender or settings.voice.gender))
    except Exception as e:
        print(f"❌ Could not list voices: {e}")
        logger.exception("Voice listing error")
        return 1


# ============================================================================
# Test
# ============================================================================

async def _ping_chat() -> Tuple[str, Dict[str, Any]]:
    from victor.realtime import AzureChatSession

    chat = AzureChatSession()
    try:
        chunks = [chunk async for chunk in chat.send_message_stream("Reply with the single word OK.")]
    finally:
        await chat.close()
    return "".join(chunks), chat.stats


def cmd_test(args: argparse.Namespace) -> int:
    """
    Test the system configuration and connections.
    """
    print("\n🔧 Testing System Configuration")
    print("-" * 50)

    tests_passed = 0
    tests_failed = 0

    print("\n1. Configuration...")
    try:
        settings.validate_all()
        print("   ✅ Configuration valid")
        tests_passed += 1
    except Exception as e:
        print(f"   ❌ Configuration error: {e}")
        tests_failed += 1

    print("\n2. Azure OpenAI Chat...")
    try:
        reply, stats = asyncio.run(_ping_chat())
        print(f"   ✅ Chat working (reply: {reply.strip()[:40]!r}, {stats['total_chunks']} chunks)")
        tests_passed += 1
    except Exception as e:
        print(f"   ❌ Chat error: {e}")
        tests_failed += 1

    print("\n3. Azure Speech Services...")
    if settings.speech.is_configured:
        print(f"   ✅ Configured (region: {settings.speech.region})")
        tests_passed += 1
    else:
        print("   ⏭️  Not configured (optional)")

    print("\n" + "-" * 50)
    print(f"Results: {tests_passed} passed, {tests_failed} failed")
    return 0 if tests_failed == 0 else 1


# ============================================================================
# Entry point
# ============================================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser with all commands."""
    parser = argparse.ArgumentParser(
        prog="victor",
        description="Conversational assistant with voice and games",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Interactive session:
    victor chat
    victor chat --mute
    victor chat --no-voice

  Voices:
    victor voices --gender female

  System check:
    victor test
        """
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Chat command
    chat_parser = subparsers.add_parser(
        "chat",
        help="Start an interactive session"
    )
    chat_parser.add_argument(
        "--mute",
        action="store_true",
        help="Start with voice output off"
    )
    chat_parser.add_argument(
        "--no-voice",
        action="store_true",
        help="Disable speech capture and playback entirely"
    )
    chat_parser.set_defaults(func=cmd_chat)

    # Voices command
    voices_parser = subparsers.add_parser(
        "voices",
        help="List available playback voices"
    )
    voices_parser.add_argument(
        "--gender", "-g",
        choices=["male", "female"],
        help=f"Gender preference to select for (default: {settings.voice.gender})"
    )
    voices_parser.set_defaults(func=cmd_voices)

    # Test command
    test_parser = subparsers.add_parser(
        "test",
        help="Test system configuration"
    )
    test_parser.set_defaults(func=cmd_test)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    init_logging("DEBUG" if args.verbose else None)

    if not args.command:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
