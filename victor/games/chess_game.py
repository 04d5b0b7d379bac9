"""
Chess on python-chess

The human plays White and moves first. Positions are exchanged as FEN
strings, which makes every board snapshot immutable for free.

Terminal positions are checkmate, stalemate, insufficient material,
threefold repetition and the fifty-move rule. Claimable draws end the game
as soon as they occur; nobody has to claim them.
"""

from dataclasses import dataclass
from typing import Callable, List, Optional

import chess

from victor.core.arbiter import GameKind
from victor.logger import get_logger
from victor.messages import msg

from .base import GameOutcome, GameSession, GameStatus

logger = get_logger(__name__)

HUMAN_COLOR = chess.WHITE


@dataclass(frozen=True)
class ChessMove:
    """A move request in square names, e.g. ChessMove("e2", "e4")."""
    from_square: str
    to_square: str
    promotion: str = "q"

    @property
    def uci(self) -> str:
        return f"{self.from_square}{self.to_square}"


def holds_human_piece(board: chess.Board, square: str) -> bool:
    try:
        piece = board.piece_at(chess.parse_square(square))
    except ValueError:
        return False
    return piece is not None and piece.color == HUMAN_COLOR


class ChessSession(GameSession):
    """Live chess game against a uniformly random opponent."""

    kind = GameKind.CHESS
    intro_key = "chess.intro"

    def __init__(self, fen: Optional[str] = None):
        super().__init__()
        self._board = chess.Board(fen) if fen else chess.Board()

    @property
    def board(self) -> chess.Board:
        """Copy of the live board."""
        return self._board.copy()

    def snapshot(self) -> str:
        return self._board.fen()

    def is_human_turn(self) -> bool:
        return self._board.turn == HUMAN_COLOR

    def _resolve(self, move: ChessMove) -> Optional[chess.Move]:
        try:
            from_square = chess.parse_square(move.from_square)
            to_square = chess.parse_square(move.to_square)
        except ValueError:
            return None

        plain = chess.Move(from_square, to_square)
        if plain in self._board.legal_moves:
            return plain

        try:
            promotion = chess.Piece.from_symbol(move.promotion).piece_type
        except ValueError:
            promotion = chess.QUEEN
        promoted = chess.Move(from_square, to_square, promotion=promotion)
        if promoted in self._board.legal_moves:
            return promoted
        return None

    def apply_human_move(self, move: ChessMove, snapshot: str) -> bool:
        if self.is_terminal() or not self.is_human_turn():
            return False
        if snapshot != self.snapshot():
            logger.debug("Rejected move against a superseded position")
            return False
        if not holds_human_piece(self._board, move.from_square):
            return False

        resolved = self._resolve(move)
        if resolved is None:
            return False

        self._push(resolved)
        return True

    def legal_ai_moves(self) -> List[chess.Move]:
        if self.is_human_turn():
            return []
        return list(self._board.legal_moves)

    def _push_ai_move(self, move: chess.Move) -> None:
        self._push(move)

    def _push(self, move: chess.Move) -> None:
        self.last_move = self._board.san(move)
        self._board.push(move)

    def outcome(self) -> GameOutcome:
        board = self._board
        if board.is_checkmate():
            # The side to move is the one mated
            winner = GameStatus.WON_PLAYER if board.turn != HUMAN_COLOR else GameStatus.WON_OPPONENT
            return GameOutcome(winner, "checkmate")
        if board.is_stalemate():
            return GameOutcome(GameStatus.DRAW, "stalemate")
        if board.is_repetition(3):
            return GameOutcome(GameStatus.DRAW, "threefold_repetition")
        if board.is_insufficient_material():
            return GameOutcome(GameStatus.DRAW, "insufficient_material")
        if board.is_fifty_moves():
            return GameOutcome(GameStatus.DRAW, "fifty_moves")
        return GameOutcome()

    def describe_outcome(self) -> str:
        outcome = self.outcome()
        if outcome.reason == "checkmate":
            key = "chess.checkmate_won" if outcome.status == GameStatus.WON_PLAYER else "chess.checkmate_lost"
            return msg(key)
        if outcome.reason in ("stalemate", "threefold_repetition", "insufficient_material"):
            return msg(f"chess.{outcome.reason}")
        if outcome.status == GameStatus.DRAW:
            return msg("chess.draw")
        return msg("chess.over")

    def ai_notice(self) -> Optional[str]:
        if self._board.is_check():
            return msg("chess.check")
        return None


class SquareSelection:
    """
    Click-to-move selection for a rendered chess board.

    The first click selects a square holding a White piece. The next click
    submits a move to that square; if the move is rejected, the clicked
    square becomes the new selection when it holds a White piece, otherwise
    the selection is cleared.
    """

    def __init__(self):
        self.selected: Optional[str] = None

    def clear(self) -> None:
        self.selected = None

    def possible_targets(self, board: chess.Board) -> List[str]:
        """Destination squares of the legal moves from the selected square."""
        if self.selected is None:
            return []
        try:
            origin = chess.parse_square(self.selected)
        except ValueError:
            return []
        targets = {chess.square_name(m.to_square) for m in board.legal_moves if m.from_square == origin}
        return sorted(targets)

    def click(self, board: chess.Board, square: str, submit: Callable[[ChessMove], bool]) -> bool:
        """
        Handle a square click.

        Returns:
            True if a move was submitted and accepted
        """
        if self.selected is not None and submit(ChessMove(self.selected, square)):
            self.selected = None
            return True

        self.selected = square if holds_human_piece(board, square) else None
        return False
