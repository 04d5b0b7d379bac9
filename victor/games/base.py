"""
Game Variant Interface

The two embedded games form a closed set selected by GameKind. Each variant
supplies its own state shape and rules behind the same GameSession surface,
so the Game Session Controller never inspects concrete types.

A GameSession is the live game state. Timeline entries only ever hold a
BoardWidget, which carries an immutable snapshot of that state plus the move
handler bound to the live session.
"""

import random
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Callable, List, Optional

from victor.core.arbiter import GameKind
from victor.messages import msg


class GameStatus(Enum):
    """Status of a game from the human player's point of view."""
    IN_PROGRESS = auto()
    WON_PLAYER = auto()
    WON_OPPONENT = auto()
    DRAW = auto()


@dataclass(frozen=True)
class GameOutcome:
    """
    Terminal status plus the reason behind it.

    Attributes:
        status: Winner or draw
        reason: Variant-specific reason ("line", "full_board", "checkmate",
            "stalemate", "threefold_repetition", "insufficient_material", ...)
    """
    status: GameStatus = GameStatus.IN_PROGRESS
    reason: str = ""

    @property
    def is_over(self) -> bool:
        return self.status != GameStatus.IN_PROGRESS


MoveHandler = Callable[[Any], bool]


@dataclass(frozen=True)
class BoardWidget:
    """
    Board snapshot embedded in a timeline entry.

    Attributes:
        kind: Which game the board belongs to
        snapshot: Immutable position at the moment of the ply
        interactive: Whether the board accepts moves when rendered
        status: Game status at the moment of the ply
        last_move: Human-readable description of the ply that produced it
        on_move: Move handler bound to the live session, None when not interactive
    """
    kind: GameKind
    snapshot: Any
    interactive: bool = False
    status: GameStatus = GameStatus.IN_PROGRESS
    last_move: Optional[str] = None
    on_move: Optional[MoveHandler] = field(default=None, compare=False, repr=False)


class GameSession(ABC):
    """
    Live state of one game.

    The human always moves first. A move is applied only when it targets the
    current position (`snapshot` equality), it is the mover's turn, and the
    rules allow it. Rejected moves leave the state untouched.
    """

    kind: GameKind = GameKind.NONE
    intro_key: str = ""

    def __init__(self):
        self.last_move: Optional[str] = None

    def intro(self) -> str:
        return msg(self.intro_key)

    @abstractmethod
    def snapshot(self) -> Any:
        """Immutable copy of the current position."""

    @abstractmethod
    def is_human_turn(self) -> bool:
        """True when the human is to move."""

    @abstractmethod
    def apply_human_move(self, move: Any, snapshot: Any) -> bool:
        """Validate and apply a human move made against `snapshot`."""

    @abstractmethod
    def legal_ai_moves(self) -> List[Any]:
        """Moves available to the opponent right now (empty if not its turn)."""

    @abstractmethod
    def _push_ai_move(self, move: Any) -> None:
        """Apply an opponent move already known to be legal."""

    def apply_ai_move(self, rng: Optional[random.Random] = None) -> bool:
        """
        Play a uniformly random legal move for the opponent.

        Returns:
            False if the game is over or it is not the opponent's turn
        """
        if self.is_terminal() or self.is_human_turn():
            return False
        moves = self.legal_ai_moves()
        if not moves:
            return False
        self._push_ai_move((rng or random).choice(moves))
        return True

    @abstractmethod
    def outcome(self) -> GameOutcome:
        """Current status derived from the rules."""

    def is_terminal(self) -> bool:
        return self.outcome().is_over

    @abstractmethod
    def describe_outcome(self) -> str:
        """Narration for the terminal position."""

    def ai_notice(self) -> Optional[str]:
        """Optional narration that precedes the opponent's board."""
        return None
