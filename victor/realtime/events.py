"""
Event System for the Conversation Front-End

A small async event bus that carries change notifications from the
orchestration core to the presentation layer. The bus never drives state:
the Timeline Store and Turn Arbiter are the source of truth, events only
tell the presentation what to re-render.

Event Types:
- EntryAppendedEvent / EntryUpdatedEvent / EntryReplacedEvent / EntryFrozenEvent
- ModeChangedEvent: Turn Arbiter transitions
- TranscriptEvent: interim speech-to-text revisions of the draft input
- PlaybackEvent: text-to-speech utterance started/finished/cancelled
"""

import asyncio
import time
import uuid
from abc import ABC
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Awaitable, Callable, Dict, List, Optional, TypeVar

from victor.core.arbiter import ConversationState
from victor.core.timeline import TimelineEntry
from victor.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T", bound="Event")
EventHandler = Callable[[T], Awaitable[None]]


@dataclass
class Event(ABC):
    """Base event class for all front-end events."""
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    timestamp: float = field(default_factory=time.time)
    source: str = ""


# ============================================================================
# Timeline Events
# ============================================================================

@dataclass
class TimelineEvent(Event):
    """Base for every Timeline Store change."""
    entry: Optional[TimelineEntry] = None
    source: str = "timeline"

    @property
    def entry_id(self) -> str:
        return self.entry.id if self.entry else ""


@dataclass
class EntryAppendedEvent(TimelineEvent):
    """A new entry was added at the end of the timeline."""


@dataclass
class EntryUpdatedEvent(TimelineEvent):
    """The streaming tail received more text."""
    delta: str = ""


@dataclass
class EntryReplacedEvent(TimelineEvent):
    """A still-forming entry was substituted wholesale."""


@dataclass
class EntryFrozenEvent(TimelineEvent):
    """A streaming entry became final."""


# ============================================================================
# Arbiter Events
# ============================================================================

@dataclass
class ModeChangedEvent(Event):
    """Turn Arbiter transition notification."""
    state: ConversationState = field(default_factory=ConversationState)
    previous: ConversationState = field(default_factory=ConversationState)
    source: str = "arbiter"


# ============================================================================
# Voice Events
# ============================================================================

@dataclass
class TranscriptEvent(Event):
    """Speech recognition revision of the pending input."""
    text: str = ""
    is_final: bool = False
    language: str = "en-US"
    source: str = "capture"


class PlaybackPhase(Enum):
    """Lifecycle of a single utterance."""
    STARTED = auto()
    FINISHED = auto()
    CANCELLED = auto()
    SKIPPED = auto()


@dataclass
class PlaybackEvent(Event):
    """Text-to-speech utterance notification."""
    phase: PlaybackPhase = PlaybackPhase.STARTED
    text: str = ""
    voice_name: str = ""
    source: str = "playback"


# ============================================================================
# Event Bus
# ============================================================================

class EventBus:
    """
    Simple async event bus.

    Features:
    - Async publish/subscribe
    - Delivery in publish order, so a mode change never overtakes the
      timeline changes that preceded it
    - Direct dispatch for callers that must not wait on the queue
    - Synchronous enqueue for callers outside a coroutine
    """

    def __init__(self, max_queue_size: int = 1000):
        self._handlers: Dict[type, List[EventHandler]] = {}
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue_size)
        self._running: bool = False

    def subscribe(self, event_type: type, handler: EventHandler) -> None:
        """Subscribe to events of a specific type (subclasses included)."""
        if event_type not in self._handlers:
            self._handlers[event_type] = []
        if handler not in self._handlers[event_type]:
            self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: type, handler: EventHandler) -> None:
        """Unsubscribe a handler from an event type."""
        if event_type in self._handlers:
            self._handlers[event_type] = [
                h for h in self._handlers[event_type] if h != handler
            ]

    def publish_nowait(self, event: Event) -> None:
        """Queue an event without awaiting (usable from synchronous code)."""
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(f"Event queue full, dropping {type(event).__name__}")

    async def publish_immediate(self, event: Event) -> None:
        """Immediately dispatch an event (bypass queue)."""
        await self._dispatch(event)

    async def _dispatch(self, event: Event) -> None:
        """Dispatch event to all registered handlers."""
        handlers = []
        for registered_type, type_handlers in self._handlers.items():
            if isinstance(event, registered_type):
                handlers.extend(type_handlers)

        for handler in handlers:
            try:
                await handler(event)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Handler error for {type(event).__name__}: {e}")

    async def run(self) -> None:
        """Start the event processing loop."""
        self._running = True
        logger.debug("Event bus started")

        while self._running:
            try:
                event = await asyncio.wait_for(self._queue.get(), timeout=0.1)
            except asyncio.TimeoutError:
                continue
            except asyncio.CancelledError:
                break

            try:
                await self._dispatch(event)
            finally:
                self._queue.task_done()

        logger.debug("Event bus stopped")

    def stop(self) -> None:
        """Stop the event processing loop."""
        self._running = False

    @property
    def queue_size(self) -> int:
        """Get current queue size."""
        return self._queue.qsize()

    async def drain(self, timeout: float = 5.0) -> None:
        """Wait for queue to empty."""
        try:
            await asyncio.wait_for(self._queue.join(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Event queue drain timed out")
