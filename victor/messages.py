"""Narration lookup for timeline entries.

Every fixed sentence the assistant says lives here, keyed by a dotted name.
Placeholders are filled from the persona settings plus any keyword arguments.
"""

from __future__ import annotations

_MESSAGES: dict[str, str] = {
    "session.greeting": "Good day, {user}. {assistant} online and ready to assist.",
    "session.init_error": "Error: Could not initialize AI services. Please check configuration.",
    "chat.apology": "Apologies, {user}. I seem to be having some trouble connecting to the network.",
    "game.concluded": "Game concluded. I am ready for your next command, {user}.",
    "tictactoe.intro": "An excellent choice, {user}. Let's play Tic-Tac-Toe. You are 'X'. Make your move.",
    "tictactoe.won": "Congratulations, {user}, you've won!",
    "tictactoe.lost": "It appears I have won this round. Better luck next time, {user}.",
    "tictactoe.draw": "A draw. A well-played game.",
    "chess.intro": "Very well, {user}. A game of Chess it is. You play as White. Your move.",
    "chess.check": "Check.",
    "chess.checkmate_won": "Checkmate. An impressive victory, {user}.",
    "chess.checkmate_lost": "Checkmate. I have won this time, {user}.",
    "chess.stalemate": "Stalemate. The game is a draw.",
    "chess.threefold_repetition": "Draw by threefold repetition.",
    "chess.insufficient_material": "Draw due to insufficient material.",
    "chess.draw": "The game is a draw.",
    "chess.over": "The game is over.",
}


def _persona() -> dict[str, str]:
    from victor.config import settings
    return {
        "user": settings.persona.user_name,
        "assistant": settings.persona.assistant_name,
    }


def msg(key: str, **kwargs: str) -> str:
    """Return a narration by key, or the key itself if not found."""
    template = _MESSAGES.get(key)
    if template is None:
        return key
    values = _persona()
    values.update(kwargs)
    return template.format(**values)
