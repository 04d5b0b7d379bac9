"""
Turn Arbiter Module

Single source of truth for what may happen next in the conversation.

States: IDLE, SENDING, LISTENING, GAME_ACTIVE. Exactly one holds at any time.

Legal transitions:
- IDLE -> SENDING        (submit text)
- SENDING -> IDLE        (stream completed or failed)
- IDLE -> LISTENING      (start capture)
- LISTENING -> IDLE      (capture ended for any reason)
- IDLE -> GAME_ACTIVE    (start game)
- GAME_ACTIVE -> IDLE    (game over or forfeit)

Anything else is a no-op, never an error. Every accepted transition bumps a
generation counter; `begin_*` calls hand the new generation back as a token,
and `end_*` calls that carry a token from a superseded generation are ignored.
This is how late capture-end events or timer callbacks are neutralized.
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, List, Optional

from victor.logger import get_logger

logger = get_logger(__name__)


class ConversationMode(Enum):
    """Exclusive activity currently holding the conversation."""
    IDLE = auto()
    SENDING = auto()
    LISTENING = auto()
    GAME_ACTIVE = auto()


class GameKind(Enum):
    """Closed set of embedded games."""
    NONE = "none"
    TIC_TAC_TOE = "tictactoe"
    CHESS = "chess"


@dataclass(frozen=True)
class ConversationState:
    """Snapshot of the arbiter state handed to the presentation layer."""
    mode: ConversationMode = ConversationMode.IDLE
    active_game: GameKind = GameKind.NONE
    generation: int = 0

    @property
    def is_idle(self) -> bool:
        return self.mode == ConversationMode.IDLE


StateListener = Callable[[ConversationState, ConversationState], None]


class TurnArbiter:
    """
    State machine arbitrating the exclusive activities.

    Usage:
        arbiter = TurnArbiter()
        token = arbiter.begin_sending()
        if token is not None:
            ...
            arbiter.end_sending(token)
    """

    def __init__(self):
        self._state = ConversationState()
        self._listeners: List[StateListener] = []

    def subscribe(self, listener: StateListener) -> None:
        """Register a callback invoked with (previous, current) on each transition."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    # ========================================================================
    # Transitions
    # ========================================================================

    def _transition(self, mode: ConversationMode, game: GameKind = GameKind.NONE) -> int:
        previous = self._state
        self._state = ConversationState(
            mode=mode,
            active_game=game,
            generation=previous.generation + 1,
        )
        logger.debug(
            f"Mode {previous.mode.name} -> {mode.name} (generation {self._state.generation})"
        )
        for listener in list(self._listeners):
            try:
                listener(previous, self._state)
            except Exception as e:
                logger.error(f"Arbiter listener error: {e}")
        return self._state.generation

    def _refuse(self, intent: str) -> None:
        logger.debug(f"Refused '{intent}' in mode {self._state.mode.name}")

    def _is_current(self, expected: ConversationMode, token: Optional[int]) -> bool:
        if self._state.mode != expected:
            return False
        return token is None or token == self._state.generation

    def begin_sending(self) -> Optional[int]:
        """IDLE -> SENDING. Returns the generation token, or None if refused."""
        if self._state.mode != ConversationMode.IDLE:
            self._refuse("submit")
            return None
        return self._transition(ConversationMode.SENDING)

    def end_sending(self, token: Optional[int] = None) -> bool:
        """SENDING -> IDLE on stream completion or failure."""
        if not self._is_current(ConversationMode.SENDING, token):
            self._refuse("end-sending")
            return False
        self._transition(ConversationMode.IDLE)
        return True

    def begin_listening(self) -> Optional[int]:
        """IDLE -> LISTENING. Returns the generation token, or None if refused."""
        if self._state.mode != ConversationMode.IDLE:
            self._refuse("start-capture")
            return None
        return self._transition(ConversationMode.LISTENING)

    def end_listening(self, token: Optional[int] = None) -> bool:
        """LISTENING -> IDLE. Stale or duplicate capture-end events are no-ops."""
        if not self._is_current(ConversationMode.LISTENING, token):
            self._refuse("end-capture")
            return False
        self._transition(ConversationMode.IDLE)
        return True

    def begin_game(self, kind: GameKind) -> Optional[int]:
        """IDLE -> GAME_ACTIVE. Returns the generation token, or None if refused."""
        if kind == GameKind.NONE:
            raise ValueError("Cannot start a game of kind NONE")
        if self._state.mode != ConversationMode.IDLE:
            self._refuse("start-game")
            return None
        return self._transition(ConversationMode.GAME_ACTIVE, kind)

    def end_game(self, token: Optional[int] = None) -> bool:
        """GAME_ACTIVE -> IDLE, regardless of whose turn it is."""
        if not self._is_current(ConversationMode.GAME_ACTIVE, token):
            self._refuse("end-game")
            return False
        self._transition(ConversationMode.IDLE)
        return True

    # ========================================================================
    # Queries
    # ========================================================================

    def is_current(self, token: int) -> bool:
        """Check a captured token against the live generation."""
        return token == self._state.generation

    @property
    def state(self) -> ConversationState:
        return self._state

    @property
    def mode(self) -> ConversationMode:
        return self._state.mode

    @property
    def active_game(self) -> GameKind:
        return self._state.active_game

    @property
    def generation(self) -> int:
        return self._state.generation
