"""
Core Module Package

Leaf-most orchestration state shared by every other component:
- Timeline: ordered, append-only conversation log
- Arbiter: which exclusive activity may run next
"""

from victor.core.arbiter import ConversationMode, ConversationState, GameKind, TurnArbiter
from victor.core.timeline import ChangeKind, Speaker, TimelineEntry, TimelineStore

__all__ = [
    "ChangeKind",
    "ConversationMode",
    "ConversationState",
    "GameKind",
    "Speaker",
    "TimelineEntry",
    "TimelineStore",
    "TurnArbiter",
]
