"""
Embedded Games

Tic-tac-toe and chess played inside the conversation timeline.

Usage:
    from victor.games import GameSessionController

    games = GameSessionController(store, arbiter)
    games.start(GameKind.CHESS)
"""

from .base import BoardWidget, GameOutcome, GameSession, GameStatus
from .chess_game import ChessMove, ChessSession, SquareSelection
from .controller import GameSessionController, create_session
from .tictactoe import TicTacToeSession, check_winner

__all__ = [
    "BoardWidget",
    "GameOutcome",
    "GameSession",
    "GameStatus",
    "ChessMove",
    "ChessSession",
    "SquareSelection",
    "GameSessionController",
    "create_session",
    "TicTacToeSession",
    "check_winner",
]
