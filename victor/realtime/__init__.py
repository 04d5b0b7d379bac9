"""
Real-Time Conversation Module

Streaming and voice side of the assistant, built around the orchestration
core in victor.core.

Architecture:
- Event Bus: Change notifications for the presentation layer
- LLM Stream: Prior-turn-aware chat with chunked replies
- Accumulator: Folds reply chunks into the timeline
- STT Stream: One-shot speech capture with interim results
- TTS Stream: Speech playback and voice catalog
- Voice: Capture/playback arbitration and voice selection
- Conversation Controller: Session context exposing every intent

Usage:
    from victor.realtime import ConversationController

    controller = ConversationController()
    await controller.start()
    await controller.submit_text("Hello")
"""

from .events import (
    Event,
    EventBus,
    TimelineEvent,
    EntryAppendedEvent,
    EntryUpdatedEvent,
    EntryReplacedEvent,
    EntryFrozenEvent,
    ModeChangedEvent,
    TranscriptEvent,
    PlaybackEvent,
    PlaybackPhase,
)
from .llm_stream import (
    AzureChatSession,
    ChatService,
    ChatTransportError,
    ChatUnavailableError,
    GenerationConfig,
    Message,
    UnavailableChatService,
    build_system_prompt,
)
from .stt_stream import AzureCaptureService, CaptureEnd, CaptureEndReason, CaptureService, VADConfig
from .tts_stream import AzurePlaybackService, PlaybackService, TTSConfig, VoiceInfo
from .voice import VoiceGender, VoiceIOController, select_voice
from .accumulator import ReplyResult, StreamingReplyAccumulator
from .conversation_controller import ConversationController, ControllerConfig

__all__ = [
    # Events
    "Event",
    "EventBus",
    "TimelineEvent",
    "EntryAppendedEvent",
    "EntryUpdatedEvent",
    "EntryReplacedEvent",
    "EntryFrozenEvent",
    "ModeChangedEvent",
    "TranscriptEvent",
    "PlaybackEvent",
    "PlaybackPhase",
    # Chat
    "AzureChatSession",
    "ChatService",
    "ChatTransportError",
    "ChatUnavailableError",
    "GenerationConfig",
    "Message",
    "UnavailableChatService",
    "build_system_prompt",
    # Capture
    "AzureCaptureService",
    "CaptureEnd",
    "CaptureEndReason",
    "CaptureService",
    "VADConfig",
    # Playback
    "AzurePlaybackService",
    "PlaybackService",
    "TTSConfig",
    "VoiceInfo",
    # Voice
    "VoiceGender",
    "VoiceIOController",
    "select_voice",
    # Accumulator
    "ReplyResult",
    "StreamingReplyAccumulator",
    # Controller
    "ConversationController",
    "ControllerConfig",
]
