"""
Pytest Configuration and Fixtures

This module provides shared fixtures and in-memory collaborators for all
tests. Nothing here talks to Azure.
"""

import asyncio
import os
import random
import sys
import pytest
from pathlib import Path
from typing import List, Optional

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Set test environment
os.environ["APP_ENV"] = "test"
os.environ["AZURE_OPENAI_API_KEY"] = "test-key"
os.environ["AZURE_OPENAI_ENDPOINT"] = "https://test.openai.azure.com"
os.environ["AZURE_SPEECH_API_KEY"] = ""
os.environ["AZURE_SPEECH_REGION"] = ""
os.environ["ASSISTANT_NAME"] = "Victor"
os.environ["USER_NAME"] = "Srabon"
os.environ["VOICE_OUTPUT_ENABLED"] = "true"
os.environ["VOICE_GENDER"] = "male"
os.environ["AI_MOVE_DELAY_S"] = "0"

from victor.core.arbiter import TurnArbiter
from victor.core.timeline import TimelineStore
from victor.realtime.llm_stream import ChatService, ChatTransportError
from victor.realtime.stt_stream import CaptureEnd, CaptureEndReason, CaptureService
from victor.realtime.tts_stream import PlaybackService, VoiceInfo


# ============================================================================
# Fake collaborators
# ============================================================================

class FakeChat(ChatService):
    """Chat service replaying scripted chunks, optionally failing midway."""

    def __init__(self, chunks: Optional[List[str]] = None, fail_after: Optional[int] = None):
        self.chunks = chunks if chunks is not None else ["Hello", ", Srabon."]
        self.fail_after = fail_after
        self.sent: List[str] = []
        self.closed = False
        self.gate: Optional[asyncio.Event] = None

    async def send_message_stream(self, text: str):
        self.sent.append(text)
        for index, chunk in enumerate(self.chunks):
            if self.fail_after is not None and index == self.fail_after:
                raise ChatTransportError("connection reset")
            if self.gate is not None:
                await self.gate.wait()
            await asyncio.sleep(0)
            yield chunk
        if self.fail_after is not None and self.fail_after >= len(self.chunks):
            raise ChatTransportError("connection reset")

    async def close(self) -> None:
        self.closed = True


class FakeCapture(CaptureService):
    """Capture service driven by the test through emit_* helpers."""

    def __init__(self, available: bool = True, fail_start: bool = False):
        self.available = available
        self.fail_start = fail_start
        self.on_interim = None
        self.on_end = None
        self.started = 0
        self.stopped = 0
        self.transcript = ""

    @property
    def is_available(self) -> bool:
        return self.available

    async def start(self, on_interim, on_end) -> None:
        if self.fail_start:
            raise RuntimeError("microphone busy")
        self.started += 1
        self.on_interim = on_interim
        self.on_end = on_end
        self.transcript = ""

    async def stop(self) -> None:
        self.stopped += 1
        self.emit_end(CaptureEndReason.STOPPED)

    def emit_interim(self, text: str) -> None:
        self.transcript = text
        self.on_interim(text)

    def emit_end(self, reason: CaptureEndReason = CaptureEndReason.NATURAL, detail: str = "") -> None:
        if self.on_end is None:
            return
        on_end, self.on_end = self.on_end, None
        on_end(CaptureEnd(reason, transcript=self.transcript, detail=detail))


class FakePlayback(PlaybackService):
    """Playback service that "speaks" until cancelled or released."""

    def __init__(self, voices: Optional[List[VoiceInfo]] = None, hold: bool = True):
        self._voices = list(voices) if voices is not None else [
            VoiceInfo("en-US-JennyNeural", "en-US", "female"),
            VoiceInfo("en-US-GuyNeural", "en-US", "male"),
        ]
        self.hold = hold
        self.spoken: List[str] = []
        self.completed: List[str] = []
        self.active: List[str] = []
        self.max_concurrent = 0
        self.cancel_calls = 0
        self.voices_used: List[str] = []
        self._release = asyncio.Event()

    def voices(self) -> List[VoiceInfo]:
        return list(self._voices)

    async def speak(self, text: str, voice: VoiceInfo) -> bool:
        self.spoken.append(text)
        self.voices_used.append(voice.name)
        self.active.append(text)
        self.max_concurrent = max(self.max_concurrent, len(self.active))
        try:
            if self.hold:
                await self._release.wait()
            else:
                await asyncio.sleep(0)
            self.completed.append(text)
            return True
        finally:
            self.active.remove(text)

    async def cancel(self) -> None:
        self.cancel_calls += 1

    def release(self) -> None:
        self._release.set()


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def store():
    """Empty timeline."""
    return TimelineStore()


@pytest.fixture
def arbiter():
    """Arbiter in IDLE."""
    return TurnArbiter()


@pytest.fixture
def fake_chat():
    return FakeChat()


@pytest.fixture
def fake_capture():
    return FakeCapture()


@pytest.fixture
def fake_playback():
    return FakePlayback()


@pytest.fixture
def rng():
    """Seeded random source for reproducible opponent moves."""
    return random.Random(42)
