"""
Tic-Tac-Toe

The human plays X and moves first, the opponent plays O. Moves are
(row, col) pairs with 0-based indexes.
"""

from typing import List, Optional, Sequence, Tuple

from victor.core.arbiter import GameKind
from victor.logger import get_logger
from victor.messages import msg

from .base import GameOutcome, GameSession, GameStatus

logger = get_logger(__name__)

EMPTY = ""
PLAYER_MARK = "X"
OPPONENT_MARK = "O"
DRAW = "Draw"

Board = Tuple[Tuple[str, ...], ...]
Cell = Tuple[int, int]

LINES: Tuple[Tuple[Cell, Cell, Cell], ...] = (
    ((0, 0), (0, 1), (0, 2)),
    ((1, 0), (1, 1), (1, 2)),
    ((2, 0), (2, 1), (2, 2)),
    ((0, 0), (1, 0), (2, 0)),
    ((0, 1), (1, 1), (2, 1)),
    ((0, 2), (1, 2), (2, 2)),
    ((0, 0), (1, 1), (2, 2)),
    ((0, 2), (1, 1), (2, 0)),
)


def empty_board() -> Board:
    return tuple(tuple(EMPTY for _ in range(3)) for _ in range(3))


def check_winner(board: Sequence[Sequence[str]]) -> Optional[str]:
    """
    Evaluate a 3x3 board.

    Returns:
        "X" or "O" for a completed line, "Draw" for a full board without
        one, None while the game is still open
    """
    for line in LINES:
        a, b, c = (board[r][col] for r, col in line)
        if a and a == b == c:
            return a
    if all(cell for row in board for cell in row):
        return DRAW
    return None


class TicTacToeSession(GameSession):
    """Live tic-tac-toe game."""

    kind = GameKind.TIC_TAC_TOE
    intro_key = "tictactoe.intro"

    def __init__(self, board: Optional[Sequence[Sequence[str]]] = None):
        super().__init__()
        source = board if board is not None else empty_board()
        self._cells: List[List[str]] = [[cell or EMPTY for cell in row] for row in source]
        self._to_move = PLAYER_MARK

    def snapshot(self) -> Board:
        return tuple(tuple(row) for row in self._cells)

    def is_human_turn(self) -> bool:
        return self._to_move == PLAYER_MARK

    def apply_human_move(self, move: Cell, snapshot: Board) -> bool:
        if self.is_terminal() or not self.is_human_turn():
            return False
        if snapshot != self.snapshot():
            logger.debug("Rejected move against a superseded board")
            return False

        row, col = move
        if not (0 <= row < 3 and 0 <= col < 3) or self._cells[row][col]:
            return False

        self._place(row, col, PLAYER_MARK)
        return True

    def legal_ai_moves(self) -> List[Cell]:
        if self.is_human_turn():
            return []
        return [(r, c) for r in range(3) for c in range(3) if not self._cells[r][c]]

    def _push_ai_move(self, move: Cell) -> None:
        self._place(move[0], move[1], OPPONENT_MARK)

    def _place(self, row: int, col: int, mark: str) -> None:
        self._cells[row][col] = mark
        self.last_move = f"{mark} at ({row}, {col})"
        self._to_move = OPPONENT_MARK if mark == PLAYER_MARK else PLAYER_MARK

    def outcome(self) -> GameOutcome:
        winner = check_winner(self._cells)
        if winner == PLAYER_MARK:
            return GameOutcome(GameStatus.WON_PLAYER, "line")
        if winner == OPPONENT_MARK:
            return GameOutcome(GameStatus.WON_OPPONENT, "line")
        if winner == DRAW:
            return GameOutcome(GameStatus.DRAW, "full_board")
        return GameOutcome()

    def describe_outcome(self) -> str:
        status = self.outcome().status
        if status == GameStatus.WON_PLAYER:
            return msg("tictactoe.won")
        if status == GameStatus.WON_OPPONENT:
            return msg("tictactoe.lost")
        return msg("tictactoe.draw")
