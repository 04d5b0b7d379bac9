"""
Victor - Conversational Assistant Package

A chat assistant with streamed replies, voice input and output, and
tic-tac-toe and chess games played inside the conversation.

This package provides:
- Timeline and turn orchestration core (victor.core)
- Streaming chat, speech capture and playback (victor.realtime)
- Embedded games (victor.games)
- CLI interface for interaction
"""

__version__ = "1.0.0"

from victor.config import settings

__all__ = ["settings", "__version__"]
