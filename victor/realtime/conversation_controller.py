"""
Conversation Controller Module

Session context for one conversation. Owns the Timeline Store, the Turn
Arbiter, the voice and game controllers and the chat session, and exposes
every presentation intent as a method.

Store and arbiter changes are forwarded to the EventBus so a presentation
layer can re-render without polling.
"""

import asyncio
import random
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Union

from victor.config import settings
from victor.core.arbiter import (
    ConversationMode,
    ConversationState,
    GameKind,
    TurnArbiter,
)
from victor.core.timeline import ChangeKind, Speaker, TimelineEntry, TimelineStore
from victor.games import GameSessionController
from victor.logger import get_logger
from victor.messages import msg

from .accumulator import ReplyResult, StreamingReplyAccumulator
from .events import (
    EntryAppendedEvent,
    EntryFrozenEvent,
    EntryReplacedEvent,
    EntryUpdatedEvent,
    EventBus,
    ModeChangedEvent,
    PlaybackEvent,
    PlaybackPhase,
    TranscriptEvent,
)
from .llm_stream import AzureChatSession, ChatService, UnavailableChatService
from .stt_stream import CaptureService
from .tts_stream import PlaybackService
from .voice import VoiceGender, VoiceIOController

logger = get_logger(__name__)

ChatFactory = Callable[[], ChatService]

_CHANGE_EVENTS = {
    ChangeKind.APPENDED: EntryAppendedEvent,
    ChangeKind.REPLACED: EntryReplacedEvent,
    ChangeKind.FROZEN: EntryFrozenEvent,
}


@dataclass
class ControllerConfig:
    """Configuration for the conversation controller."""
    # Startup
    auto_greet: bool = True
    load_voices: bool = True
    run_event_bus: bool = True

    # Overrides for settings (None means use settings)
    ai_move_delay_s: Optional[float] = None
    voice_output_enabled: Optional[bool] = None
    voice_gender: Optional[str] = None


class ConversationController:
    """
    Orchestrates one conversation session.

    Usage:
        controller = ConversationController()
        await controller.start()
        await controller.submit_text("Hello")
        controller.start_game(GameKind.TIC_TAC_TOE)
        await controller.stop()
    """

    def __init__(
        self,
        config: Optional[ControllerConfig] = None,
        chat_factory: Optional[ChatFactory] = None,
        capture: Optional[CaptureService] = None,
        playback: Optional[PlaybackService] = None,
        rng: Optional[random.Random] = None,
        event_bus: Optional[EventBus] = None,
    ):
        self._config = config or ControllerConfig()
        self._chat_factory = chat_factory or AzureChatSession
        self._event_bus = event_bus or EventBus()

        output_enabled = self._config.voice_output_enabled
        if output_enabled is None:
            output_enabled = settings.voice.output_enabled

        self._store = TimelineStore()
        self._arbiter = TurnArbiter()
        self._voice = VoiceIOController(
            self._arbiter,
            capture=capture,
            playback=playback,
            output_enabled=output_enabled,
            gender=VoiceGender.parse(self._config.voice_gender or settings.voice.gender),
            on_interim=self._handle_transcript,
            on_playback=self._handle_playback,
        )
        self._games = GameSessionController(
            self._store,
            self._arbiter,
            rng=rng,
            ai_move_delay_s=self._config.ai_move_delay_s,
            narrate=self._voice.speak,
        )
        self._chat: ChatService = UnavailableChatService("Session not started")
        self._accumulator = StreamingReplyAccumulator(self._store, self._chat, self._voice)

        self._draft = ""
        self._running = False
        self._text_lengths: Dict[str, int] = {}

        # Tasks
        self._event_bus_task: Optional[asyncio.Task] = None
        self._voices_task: Optional[asyncio.Task] = None

        self._store.subscribe(self._on_timeline_change)
        self._arbiter.subscribe(self._on_mode_change)

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def start(self) -> None:
        """Open the session: chat initialization, greeting, voice catalog."""
        if self._running:
            return
        self._running = True

        if self._config.run_event_bus:
            self._event_bus_task = asyncio.create_task(self._event_bus.run())

        try:
            chat = self._chat_factory()
        except Exception as e:
            logger.error(f"AI services failed to initialize: {e}")
            chat = UnavailableChatService(str(e))
            self._store.append(Speaker.ASSISTANT, text=msg("session.init_error"))
        else:
            if self._config.auto_greet:
                self._store.append(Speaker.ASSISTANT, text=msg("session.greeting"))

        self._chat = chat
        self._accumulator.chat = chat

        if self._config.load_voices and self._voice.playback_available:
            self._voices_task = asyncio.create_task(self._voice.load_voices())

        logger.info("Conversation started")

    async def stop(self) -> None:
        """Close the session and release every collaborator."""
        if not self._running:
            return
        self._running = False

        if self._voices_task:
            self._voices_task.cancel()
            try:
                await self._voices_task
            except asyncio.CancelledError:
                pass
            self._voices_task = None

        await self._games.close()

        try:
            await self._voice.close()
        except Exception as e:
            logger.debug(f"Error closing voice: {e}")

        try:
            await self._chat.close()
        except Exception as e:
            logger.debug(f"Error closing chat: {e}")

        self._event_bus.stop()
        if self._event_bus_task:
            self._event_bus_task.cancel()
            try:
                await asyncio.wait_for(self._event_bus_task, timeout=1.0)
            except (asyncio.CancelledError, asyncio.TimeoutError):
                pass
            self._event_bus_task = None

        logger.info("Conversation stopped")

    # ========================================================================
    # Intents
    # ========================================================================

    async def submit_text(self, text: Optional[str] = None) -> Optional[ReplyResult]:
        """
        Send a message and stream the reply into the timeline.

        Args:
            text: Message to send; the draft input when None

        Returns:
            The reply result, or None if the submission was refused
        """
        text = (self._draft if text is None else text).strip()
        if not text:
            return None
        if self._arbiter.mode in (ConversationMode.GAME_ACTIVE, ConversationMode.SENDING):
            logger.debug(f"Submit refused in mode {self._arbiter.mode.name}")
            return None

        if self._arbiter.mode == ConversationMode.LISTENING:
            await self._voice.stop_capture()

        token = self._arbiter.begin_sending()
        if token is None:
            return None

        try:
            await self._voice.cancel_playback()
            self._store.append(Speaker.USER, text=text)
            self._set_draft("")
            return await self._accumulator.run(text)
        finally:
            self._arbiter.end_sending(token)

    async def start_capture(self) -> bool:
        return await self._voice.start_capture()

    async def stop_capture(self) -> bool:
        return await self._voice.stop_capture()

    def start_game(self, kind: Union[GameKind, str]) -> bool:
        kind = GameKind(kind) if isinstance(kind, str) else kind
        return self._games.start(kind)

    def forfeit_game(self) -> bool:
        return self._games.forfeit()

    def click_cell(self, entry_id: str, row: int, col: int) -> bool:
        return self._games.click_cell(entry_id, row, col)

    def click_square(self, entry_id: str, square: str) -> bool:
        return self._games.click_square(entry_id, square)

    async def toggle_voice_output(self) -> bool:
        return await self._voice.toggle_output()

    def toggle_voice_gender(self) -> VoiceGender:
        return self._voice.toggle_gender()

    async def read_aloud(self, entry_id: str) -> bool:
        """Speak an entry's text on demand, even with voice output off."""
        entry = self._store.get(entry_id)
        if entry is None or not entry.has_text:
            return False
        return await self._voice.speak(entry.text, force=True)

    def set_draft(self, text: str) -> None:
        """Typed input from the presentation layer."""
        self._set_draft(text)

    # ========================================================================
    # Change forwarding
    # ========================================================================

    def _set_draft(self, text: str) -> None:
        self._draft = text

    def _handle_transcript(self, text: str, is_final: bool) -> None:
        # Interim results replace the draft, they never append to it
        self._set_draft(text)
        self._event_bus.publish_nowait(TranscriptEvent(
            text=text,
            is_final=is_final,
            language=settings.speech.language,
        ))

    def _handle_playback(self, phase: PlaybackPhase, text: str, voice_name: str) -> None:
        self._event_bus.publish_nowait(PlaybackEvent(phase=phase, text=text, voice_name=voice_name))

    def _on_timeline_change(self, kind: ChangeKind, entry: TimelineEntry) -> None:
        text = entry.text or ""
        if kind == ChangeKind.UPDATED:
            seen = self._text_lengths.get(entry.id, 0)
            self._text_lengths[entry.id] = len(text)
            self._event_bus.publish_nowait(EntryUpdatedEvent(entry=entry, delta=text[seen:]))
            return

        if entry.streaming:
            self._text_lengths[entry.id] = len(text)
        else:
            self._text_lengths.pop(entry.id, None)
        self._event_bus.publish_nowait(_CHANGE_EVENTS[kind](entry=entry))

    def _on_mode_change(self, previous: ConversationState, current: ConversationState) -> None:
        self._event_bus.publish_nowait(ModeChangedEvent(state=current, previous=previous))

    # ========================================================================
    # Properties
    # ========================================================================

    @property
    def state(self) -> ConversationState:
        return self._arbiter.state

    @property
    def timeline(self) -> TimelineStore:
        return self._store

    @property
    def arbiter(self) -> TurnArbiter:
        return self._arbiter

    @property
    def voice(self) -> VoiceIOController:
        return self._voice

    @property
    def games(self) -> GameSessionController:
        return self._games

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    @property
    def chat(self) -> ChatService:
        return self._chat

    @property
    def draft_input(self) -> str:
        return self._draft

    @property
    def is_running(self) -> bool:
        return self._running
