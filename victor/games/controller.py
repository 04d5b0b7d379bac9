"""
Game Session Controller

Runs at most one game at a time, alternating human and opponent plies.
Every ply appends a timeline entry carrying a BoardWidget snapshot; the
widget's move handler is bound to the live session, so a click on an old
board is validated against the current position and rejected.

Opponent plies run after a short fixed delay. The task captures the
arbiter generation and the session it was scheduled for, and does nothing
if either has been superseded by the time it fires (forfeit, game over).
"""

import asyncio
import random
from typing import Any, Callable, Dict, Optional, Set, Type

import chess

from victor.config import settings
from victor.core.arbiter import GameKind, TurnArbiter
from victor.core.timeline import Speaker, TimelineStore
from victor.logger import get_logger
from victor.messages import msg

from .base import BoardWidget, GameSession
from .chess_game import ChessSession, SquareSelection
from .tictactoe import TicTacToeSession

logger = get_logger(__name__)

GAME_TYPES: Dict[GameKind, Type[GameSession]] = {
    GameKind.TIC_TAC_TOE: TicTacToeSession,
    GameKind.CHESS: ChessSession,
}

Narrator = Callable[[str], Any]


def create_session(kind: GameKind) -> GameSession:
    """Build the live state for a game kind."""
    try:
        return GAME_TYPES[kind]()
    except KeyError:
        raise ValueError(f"No game of kind {kind.value!r}") from None


class GameSessionController:
    """
    Usage:
        games = GameSessionController(store, arbiter)
        games.start(GameKind.TIC_TAC_TOE)
        games.click_cell(board_entry_id, 1, 1)
        games.forfeit()
    """

    def __init__(
        self,
        store: TimelineStore,
        arbiter: TurnArbiter,
        rng: Optional[random.Random] = None,
        ai_move_delay_s: Optional[float] = None,
        narrate: Optional[Narrator] = None,
    ):
        self._store = store
        self._arbiter = arbiter
        self._rng = rng or random.Random()
        self._delay = settings.games.ai_move_delay_s if ai_move_delay_s is None else ai_move_delay_s
        self._narrate = narrate

        self._session: Optional[GameSession] = None
        self._token: Optional[int] = None
        self._selection = SquareSelection()
        self._ai_task: Optional[asyncio.Task] = None
        self._pending: Set[asyncio.Task] = set()

    # ========================================================================
    # Lifecycle
    # ========================================================================

    @property
    def active_session(self) -> Optional[GameSession]:
        return self._session

    @property
    def selection(self) -> SquareSelection:
        return self._selection

    def start(self, kind: GameKind, session: Optional[GameSession] = None) -> bool:
        """
        Start a game (IDLE -> GAME_ACTIVE); refused outside IDLE.

        Args:
            kind: Game to play
            session: Live state to resume from instead of a fresh game
        """
        if session is None:
            session = create_session(kind)
        elif session.kind != kind:
            raise ValueError(f"Session is a {session.kind.value} game, not {kind.value}")

        token = self._arbiter.begin_game(kind)
        if token is None:
            return False

        self._session = session
        self._token = token
        self._selection.clear()

        self._store.append(Speaker.ASSISTANT, text=session.intro())
        self._append_board(Speaker.ASSISTANT, session, interactive=True)
        logger.info(f"Game started: {kind.value}")
        return True

    def forfeit(self) -> bool:
        """End the active game immediately, whoever is to move."""
        session = self._session
        if session is None:
            return False

        self._teardown()
        self._store.append(Speaker.ASSISTANT, text=msg("game.concluded"))
        logger.info(f"Game forfeited: {session.kind.value}")
        return True

    def _teardown(self) -> None:
        token = self._token
        self._session = None
        self._token = None
        self._selection.clear()

        if self._ai_task and not self._ai_task.done():
            self._ai_task.cancel()
        self._ai_task = None

        self._arbiter.end_game(token)

    def _conclude(self, session: GameSession) -> None:
        result = session.describe_outcome()
        concluded = msg("game.concluded")
        logger.info(f"Game over: {session.kind.value} {session.outcome().status.name}")

        self._store.append(Speaker.ASSISTANT, text=result)
        self._teardown()
        self._store.append(Speaker.ASSISTANT, text=concluded)
        self._schedule_narration(f"{result} {concluded}")

    def _is_live(self, session: GameSession, token: Optional[int]) -> bool:
        return (
            session is self._session
            and token is not None
            and self._arbiter.is_current(token)
        )

    # ========================================================================
    # Plies
    # ========================================================================

    def _append_board(self, speaker: Speaker, session: GameSession, interactive: bool) -> str:
        snapshot = session.snapshot()
        handler = None
        if interactive:
            handler = lambda move, snap=snapshot: self._handle_human_move(session, snap, move)

        widget = BoardWidget(
            kind=session.kind,
            snapshot=snapshot,
            interactive=interactive,
            status=session.outcome().status,
            last_move=session.last_move,
            on_move=handler,
        )
        return self._store.append(speaker, widget=widget)

    def _handle_human_move(self, session: GameSession, snapshot: Any, move: Any) -> bool:
        if not self._is_live(session, self._token):
            logger.debug("Dropped move for a finished game")
            return False
        if not session.apply_human_move(move, snapshot):
            logger.debug(f"Rejected move {move!r}")
            return False

        self._append_board(Speaker.USER, session, interactive=False)

        if session.is_terminal():
            self._conclude(session)
        else:
            self._schedule_ai_ply(session)
        return True

    def _schedule_ai_ply(self, session: GameSession) -> None:
        task = asyncio.get_running_loop().create_task(self._ai_ply(session, self._token))
        self._ai_task = task
        self._track(task)

    async def _ai_ply(self, session: GameSession, token: Optional[int]) -> None:
        await asyncio.sleep(self._delay)

        if not self._is_live(session, token):
            logger.debug("Opponent ply fired after the game ended")
            return
        self._ai_task = None
        if not session.apply_ai_move(self._rng):
            return

        notice = session.ai_notice()
        if notice:
            self._store.append(Speaker.ASSISTANT, text=notice)

        terminal = session.is_terminal()
        self._append_board(Speaker.ASSISTANT, session, interactive=not terminal)
        if terminal:
            self._conclude(session)

    def _schedule_narration(self, text: str) -> None:
        if self._narrate is None:
            return
        result = self._narrate(text)
        if asyncio.iscoroutine(result):
            self._track(asyncio.get_running_loop().create_task(result))

    def _track(self, task: asyncio.Task) -> None:
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for scheduled plies and narrations to settle."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        """Cancel scheduled work without touching the timeline."""
        for task in list(self._pending):
            task.cancel()
        await self.drain()

    # ========================================================================
    # Presentation intents
    # ========================================================================

    def _board_widget(self, entry_id: str, kind: GameKind) -> Optional[BoardWidget]:
        entry = self._store.get(entry_id)
        widget = entry.widget if entry else None
        if not isinstance(widget, BoardWidget) or widget.kind != kind:
            return None
        if not widget.interactive or widget.on_move is None:
            return None
        return widget

    def click_cell(self, entry_id: str, row: int, col: int) -> bool:
        """Tic-tac-toe cell click on the board of `entry_id`."""
        widget = self._board_widget(entry_id, GameKind.TIC_TAC_TOE)
        if widget is None:
            return False
        return widget.on_move((row, col))

    def click_square(self, entry_id: str, square: str) -> bool:
        """Chess square click on the board of `entry_id`."""
        widget = self._board_widget(entry_id, GameKind.CHESS)
        if widget is None:
            return False
        return self._selection.click(chess.Board(widget.snapshot), square, widget.on_move)

    def latest_board_id(self) -> Optional[str]:
        """Id of the most recent interactive board of the active game."""
        if self._session is None:
            return None
        for entry in reversed(self._store.entries):
            widget = entry.widget
            if isinstance(widget, BoardWidget) and widget.interactive:
                return entry.id
        return None
