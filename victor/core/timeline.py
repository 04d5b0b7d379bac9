"""
Timeline Store Module

Ordered, append-only log of everything shown in the conversation: user
messages, assistant replies (including the one still streaming in) and game
board snapshots.

Rules:
- Entries are never reordered or removed once appended.
- Only the most recent entry may be mutated in place, and only while it is
  still streaming. A write that targets an entry which is no longer the tail
  is dropped.
- A still-streaming entry can be replaced wholesale (error substitution).

Usage:
    store = TimelineStore()
    entry_id = store.append(Speaker.ASSISTANT, text="", streaming=True)
    store.mutate_last(entry_id, lambda e: e.with_text(e.text + "Hello"))
    store.freeze(entry_id)
"""

import dataclasses
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from victor.logger import get_logger

logger = get_logger(__name__)


class Speaker(Enum):
    """Who an entry is attributed to."""
    USER = "user"
    ASSISTANT = "assistant"


class ChangeKind(Enum):
    """Kind of change reported to store listeners."""
    APPENDED = auto()
    UPDATED = auto()
    REPLACED = auto()
    FROZEN = auto()


@dataclass(frozen=True)
class TimelineEntry:
    """
    One unit of conversation history.

    Attributes:
        id: Opaque identifier assigned by the store
        speaker: USER or ASSISTANT
        text: Text payload, None for pure board entries
        widget: Embedded board snapshot (see victor.games.base.BoardWidget)
        streaming: True while the reply text is still arriving
        created_at: Unix timestamp of the append
    """
    id: str
    speaker: Speaker
    text: Optional[str] = None
    widget: Optional[Any] = None
    streaming: bool = False
    created_at: float = field(default_factory=time.time)

    def with_text(self, text: str) -> "TimelineEntry":
        return dataclasses.replace(self, text=text)

    @property
    def has_text(self) -> bool:
        return bool(self.text)


EntryUpdater = Callable[[TimelineEntry], TimelineEntry]
ChangeListener = Callable[[ChangeKind, TimelineEntry], None]


class TimelineStore:
    """
    Append-only conversation log with tail-only mutation.

    Safe to render by a full linear scan at any time: `entries` returns an
    immutable snapshot and entries themselves are frozen dataclasses.
    """

    def __init__(self):
        self._entries: List[TimelineEntry] = []
        self._positions: Dict[str, int] = {}
        self._listeners: List[ChangeListener] = []

    # ========================================================================
    # Listeners
    # ========================================================================

    def subscribe(self, listener: ChangeListener) -> None:
        """Register a callback invoked after every change."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: ChangeListener) -> None:
        self._listeners = [l for l in self._listeners if l != listener]

    def _notify(self, kind: ChangeKind, entry: TimelineEntry) -> None:
        for listener in list(self._listeners):
            try:
                listener(kind, entry)
            except Exception as e:
                logger.error(f"Timeline listener error on {kind.name}: {e}")

    # ========================================================================
    # Operations
    # ========================================================================

    def append(
        self,
        speaker: Speaker,
        text: Optional[str] = None,
        widget: Optional[Any] = None,
        *,
        streaming: bool = False,
    ) -> str:
        """
        Add an entry at the end of the timeline.

        Returns:
            The id assigned to the new entry
        """
        entry_id = f"{speaker.value}-{uuid.uuid4().hex[:12]}"
        entry = TimelineEntry(
            id=entry_id,
            speaker=speaker,
            text=text,
            widget=widget,
            streaming=streaming,
        )
        self._positions[entry_id] = len(self._entries)
        self._entries.append(entry)
        self._notify(ChangeKind.APPENDED, entry)
        return entry_id

    def mutate_last(self, entry_id: str, updater: EntryUpdater) -> bool:
        """
        Apply `updater` to the entry only if it is still the streaming tail.

        Returns:
            True if the mutation was applied, False if it was dropped as stale
        """
        if not self.is_tail(entry_id):
            logger.debug(f"Dropped stale mutation for {entry_id}")
            return False

        current = self._entries[-1]
        if not current.streaming:
            logger.debug(f"Dropped mutation of frozen entry {entry_id}")
            return False

        updated = updater(current)
        if updated.id != entry_id:
            raise ValueError("Updater must not change the entry id")

        self._entries[-1] = dataclasses.replace(updated, streaming=True)
        self._notify(ChangeKind.UPDATED, self._entries[-1])
        return True

    def replace(
        self,
        entry_id: str,
        text: Optional[str] = None,
        widget: Optional[Any] = None,
    ) -> bool:
        """
        Replace the payload of a still-forming entry wholesale and freeze it.

        Returns:
            True if replaced, False if the entry is unknown or already frozen
        """
        position = self._positions.get(entry_id)
        if position is None:
            return False

        current = self._entries[position]
        if not current.streaming:
            logger.debug(f"Refused replacement of frozen entry {entry_id}")
            return False

        replacement = dataclasses.replace(current, text=text, widget=widget, streaming=False)
        self._entries[position] = replacement
        self._notify(ChangeKind.REPLACED, replacement)
        return True

    def freeze(self, entry_id: str) -> bool:
        """End the streaming sub-state of an entry. Idempotent."""
        position = self._positions.get(entry_id)
        if position is None:
            return False

        current = self._entries[position]
        if not current.streaming:
            return False

        frozen = dataclasses.replace(current, streaming=False)
        self._entries[position] = frozen
        self._notify(ChangeKind.FROZEN, frozen)
        return True

    # ========================================================================
    # Queries
    # ========================================================================

    def get(self, entry_id: str) -> Optional[TimelineEntry]:
        position = self._positions.get(entry_id)
        return self._entries[position] if position is not None else None

    def is_tail(self, entry_id: str) -> bool:
        return bool(self._entries) and self._entries[-1].id == entry_id

    @property
    def last(self) -> Optional[TimelineEntry]:
        return self._entries[-1] if self._entries else None

    @property
    def entries(self) -> Tuple[TimelineEntry, ...]:
        """Immutable snapshot of the timeline, oldest first."""
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[TimelineEntry]:
        return iter(self.entries)
