"""
Tests for the Voice I/O Controller and voice selection.
"""

import asyncio
import pytest

from victor.core.arbiter import ConversationMode, GameKind
from victor.realtime.events import PlaybackPhase
from victor.realtime.stt_stream import CaptureEnd, CaptureEndReason
from victor.realtime.tts_stream import VoiceInfo
from victor.realtime.voice import VoiceGender, VoiceIOController, select_voice

from tests.conftest import FakeCapture, FakePlayback


# ============================================================================
# Voice selection
# ============================================================================

class TestSelectVoice:
    """Tests for the voice fallback policy."""

    def test_empty_catalog(self):
        assert select_voice([], VoiceGender.MALE) is None

    def test_gender_and_english_preferred(self):
        voices = [
            VoiceInfo("de-DE-ConradNeural", "de-DE", "male"),
            VoiceInfo("en-US-JennyNeural", "en-US", "female"),
            VoiceInfo("en-GB-RyanNeural", "en-GB", "male"),
        ]
        assert select_voice(voices, VoiceGender.MALE).name == "en-GB-RyanNeural"
        assert select_voice(voices, VoiceGender.FEMALE).name == "en-US-JennyNeural"

    def test_female_name_is_not_male(self):
        """Gender inferred from the name must match whole words only."""
        voices = [
            VoiceInfo("Google UK English Female", "en-GB"),
            VoiceInfo("Google UK English Male", "en-GB"),
        ]
        assert select_voice(voices, VoiceGender.MALE).name == "Google UK English Male"

    def test_preference_list_fallback(self):
        voices = [
            VoiceInfo("Alex", "en-US"),
            VoiceInfo("Microsoft David - English (United States)", "en-US"),
        ]
        chosen = select_voice(voices, VoiceGender.MALE)
        assert chosen.name == "Microsoft David - English (United States)"

    def test_first_english_fallback(self):
        voices = [
            VoiceInfo("Thomas", "fr-FR"),
            VoiceInfo("Karen", "en-AU"),
            VoiceInfo("Moira", "en-IE"),
        ]
        assert select_voice(voices, VoiceGender.FEMALE).name == "Karen"

    def test_any_voice_fallback(self):
        voices = [VoiceInfo("Thomas", "fr-FR"), VoiceInfo("Anna", "de-DE")]
        assert select_voice(voices, VoiceGender.MALE).name == "Thomas"


class TestVoiceGender:
    """Tests for gender parsing."""

    def test_parse(self):
        assert VoiceGender.parse("Female") == VoiceGender.FEMALE
        assert VoiceGender.parse("robot") == VoiceGender.MALE

    def test_other(self):
        assert VoiceGender.MALE.other == VoiceGender.FEMALE
        assert VoiceGender.FEMALE.other == VoiceGender.MALE


# ============================================================================
# Capture
# ============================================================================

class TestCapture:
    """Tests for capture sessions."""

    @pytest.mark.asyncio
    async def test_interim_results_replace(self, arbiter, fake_capture):
        drafts = []
        voice = VoiceIOController(
            arbiter,
            capture=fake_capture,
            on_interim=lambda text, is_final: drafts.append((text, is_final)),
        )

        assert await voice.start_capture() is True
        assert arbiter.mode == ConversationMode.LISTENING

        fake_capture.emit_interim("what is")
        fake_capture.emit_interim("what is the time")
        fake_capture.emit_end(CaptureEndReason.NATURAL)

        assert drafts == [
            ("what is", False),
            ("what is the time", False),
            ("what is the time", True),
        ]
        assert arbiter.mode == ConversationMode.IDLE

    @pytest.mark.asyncio
    async def test_error_end_returns_to_idle(self, arbiter, fake_capture):
        voice = VoiceIOController(arbiter, capture=fake_capture)
        await voice.start_capture()

        fake_capture.emit_end(CaptureEndReason.ERROR, detail="mic unplugged")

        assert arbiter.mode == ConversationMode.IDLE

    @pytest.mark.asyncio
    async def test_explicit_stop(self, arbiter, fake_capture):
        voice = VoiceIOController(arbiter, capture=fake_capture)
        await voice.start_capture()

        assert await voice.stop_capture() is True
        assert fake_capture.stopped == 1
        assert arbiter.mode == ConversationMode.IDLE

    @pytest.mark.asyncio
    async def test_stale_end_after_new_session(self, arbiter, fake_capture):
        voice = VoiceIOController(arbiter, capture=fake_capture)
        await voice.start_capture()
        stale_end = fake_capture.on_end
        fake_capture.emit_end()
        await voice.start_capture()

        stale_end(CaptureEnd(CaptureEndReason.NATURAL))

        assert arbiter.mode == ConversationMode.LISTENING

    @pytest.mark.asyncio
    async def test_refused_while_sending(self, arbiter, fake_capture):
        voice = VoiceIOController(arbiter, capture=fake_capture)
        arbiter.begin_sending()

        assert await voice.start_capture() is False
        assert fake_capture.started == 0
        assert arbiter.mode == ConversationMode.SENDING

    @pytest.mark.asyncio
    async def test_refused_during_game(self, arbiter, fake_capture):
        voice = VoiceIOController(arbiter, capture=fake_capture)
        arbiter.begin_game(GameKind.TIC_TAC_TOE)

        assert await voice.start_capture() is False
        assert arbiter.mode == ConversationMode.GAME_ACTIVE

    @pytest.mark.asyncio
    async def test_unavailable_capture_degrades(self, arbiter):
        voice = VoiceIOController(arbiter, capture=FakeCapture(available=False))

        assert await voice.start_capture() is False
        assert arbiter.mode == ConversationMode.IDLE

        no_capture = VoiceIOController(arbiter)
        assert await no_capture.start_capture() is False

    @pytest.mark.asyncio
    async def test_start_failure_returns_to_idle(self, arbiter):
        voice = VoiceIOController(arbiter, capture=FakeCapture(fail_start=True))

        assert await voice.start_capture() is False
        assert arbiter.mode == ConversationMode.IDLE

    @pytest.mark.asyncio
    async def test_capture_cancels_playback(self, arbiter, fake_capture, fake_playback):
        voice = VoiceIOController(arbiter, capture=fake_capture, playback=fake_playback)
        await voice.speak("A long answer")
        await asyncio.sleep(0)

        await voice.start_capture()

        assert fake_playback.active == []
        assert fake_playback.cancel_calls == 1
        assert not voice.is_speaking


# ============================================================================
# Playback
# ============================================================================

class TestPlayback:
    """Tests for playback sessions."""

    @pytest.mark.asyncio
    async def test_second_playback_preempts_first(self, arbiter, fake_playback):
        voice = VoiceIOController(arbiter, playback=fake_playback)

        await voice.speak("first")
        await asyncio.sleep(0)
        await voice.speak("second")
        await asyncio.sleep(0)

        assert fake_playback.spoken == ["first", "second"]
        assert fake_playback.active == ["second"]
        assert fake_playback.max_concurrent == 1

        fake_playback.release()
        await asyncio.sleep(0.01)
        assert fake_playback.completed == ["second"]

    @pytest.mark.asyncio
    async def test_overlapping_speaks_leave_one_utterance(self, arbiter, fake_playback):
        """Two speaks racing to replace the same utterance start only the later one."""
        voice = VoiceIOController(arbiter, playback=fake_playback)
        await voice.speak("first")
        await asyncio.sleep(0)

        started = await asyncio.gather(voice.speak("narration"), voice.speak("read aloud"))
        await asyncio.sleep(0)

        assert started == [False, True]
        assert fake_playback.active == ["read aloud"]
        assert fake_playback.max_concurrent == 1

        await voice.cancel_playback()
        assert fake_playback.active == []

    @pytest.mark.asyncio
    async def test_mute_during_pending_speak(self, arbiter, fake_playback):
        voice = VoiceIOController(arbiter, playback=fake_playback)
        await voice.speak("first")
        await asyncio.sleep(0)

        started, enabled = await asyncio.gather(voice.speak("second"), voice.toggle_output())
        await asyncio.sleep(0)

        assert started is False
        assert enabled is False
        assert fake_playback.active == []
        assert not voice.is_speaking

    @pytest.mark.asyncio
    async def test_empty_catalog_skips_silently(self, arbiter):
        phases = []
        playback = FakePlayback(voices=[])
        voice = VoiceIOController(
            arbiter,
            playback=playback,
            on_playback=lambda phase, text, name: phases.append(phase),
        )

        assert await voice.speak("Hello") is False
        assert playback.spoken == []
        assert phases == [PlaybackPhase.SKIPPED]

    @pytest.mark.asyncio
    async def test_gender_preference_used(self, arbiter, fake_playback):
        voice = VoiceIOController(arbiter, playback=fake_playback, gender=VoiceGender.FEMALE)

        await voice.speak("Hello")
        await asyncio.sleep(0)

        assert fake_playback.voices_used == ["en-US-JennyNeural"]
        fake_playback.release()

    @pytest.mark.asyncio
    async def test_toggle_output_off_cancels(self, arbiter, fake_playback):
        voice = VoiceIOController(arbiter, playback=fake_playback)
        await voice.speak("Hello")
        await asyncio.sleep(0)

        assert await voice.toggle_output() is False
        assert fake_playback.active == []
        assert await voice.speak("Muted") is False

    @pytest.mark.asyncio
    async def test_force_speaks_when_muted(self, arbiter, fake_playback):
        voice = VoiceIOController(arbiter, playback=fake_playback, output_enabled=False)

        assert await voice.speak("Read this", force=True) is True
        fake_playback.release()

    @pytest.mark.asyncio
    async def test_phases_reported(self, arbiter):
        phases = []
        playback = FakePlayback(hold=False)
        voice = VoiceIOController(
            arbiter,
            playback=playback,
            on_playback=lambda phase, text, name: phases.append((phase, text)),
        )

        await voice.speak("Hi")
        await asyncio.sleep(0.01)

        assert phases == [(PlaybackPhase.STARTED, "Hi"), (PlaybackPhase.FINISHED, "Hi")]

    def test_toggle_gender(self, arbiter):
        voice = VoiceIOController(arbiter)

        assert voice.toggle_gender() == VoiceGender.FEMALE
        assert voice.toggle_gender() == VoiceGender.MALE
