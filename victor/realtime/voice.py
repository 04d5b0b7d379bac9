"""
Voice I/O Controller

Owns the two one-shot voice sessions of the conversation:

- Capture: speech-to-text filling the pending input. Every interim result
  replaces the previous one. The session always hands the arbiter back to
  IDLE when it ends, whatever the reason.
- Playback: text-to-speech of finalized assistant text. A new utterance
  preempts the previous one, so at most one is audible.

Both collaborators are optional. A missing or failing one disables the
feature and is logged; it never raises into the conversation.
"""

import asyncio
import re
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from victor.core.arbiter import ConversationMode, TurnArbiter
from victor.logger import get_logger

from .events import PlaybackPhase
from .stt_stream import CaptureEnd, CaptureService
from .tts_stream import PlaybackService, VoiceInfo

logger = get_logger(__name__)


class VoiceGender(Enum):
    """Preferred gender of the playback voice."""
    MALE = "male"
    FEMALE = "female"

    @classmethod
    def parse(cls, value: str) -> "VoiceGender":
        try:
            return cls(value.strip().lower())
        except ValueError:
            logger.warning(f"Unknown voice gender '{value}', using male")
            return cls.MALE

    @property
    def other(self) -> "VoiceGender":
        return VoiceGender.FEMALE if self == VoiceGender.MALE else VoiceGender.MALE


# Fallback voices by exact catalog name, browser voices first then Azure neural
PREFERRED_VOICES: Dict[VoiceGender, Tuple[str, ...]] = {
    VoiceGender.MALE: (
        "Google US English",
        "David",
        "Microsoft David - English (United States)",
        "en-US-GuyNeural",
        "en-US-DavisNeural",
        "en-GB-RyanNeural",
    ),
    VoiceGender.FEMALE: (
        "Google UK English Female",
        "Zira",
        "Microsoft Zira - English (United States)",
        "en-US-JennyNeural",
        "en-US-AriaNeural",
        "en-GB-SoniaNeural",
    ),
}


def _matches_gender(voice: VoiceInfo, gender: VoiceGender) -> bool:
    if voice.gender:
        return voice.gender == gender.value
    # Whole-word match so "female" never counts as "male"
    return gender.value in re.split(r"[^a-z]+", voice.name.lower())


def select_voice(voices: Sequence[VoiceInfo], gender: VoiceGender) -> Optional[VoiceInfo]:
    """
    Pick a playback voice.

    Order: English voice of the preferred gender, then the fixed preference
    list, then the first English voice, then any voice. Returns None when the
    catalog is empty.
    """
    if not voices:
        return None

    for voice in voices:
        if voice.is_english and _matches_gender(voice, gender):
            return voice

    by_name = {voice.name: voice for voice in voices}
    for name in PREFERRED_VOICES[gender]:
        if name in by_name:
            return by_name[name]

    for voice in voices:
        if voice.is_english:
            return voice

    return voices[0]


InterimHandler = Callable[[str, bool], None]
PlaybackHandler = Callable[[PlaybackPhase, str, str], None]


class VoiceIOController:
    """
    Capture and playback arbitration.

    Usage:
        voice = VoiceIOController(arbiter, capture=capture, playback=playback)
        await voice.start_capture()
        await voice.speak("Good day.")
    """

    def __init__(
        self,
        arbiter: TurnArbiter,
        capture: Optional[CaptureService] = None,
        playback: Optional[PlaybackService] = None,
        output_enabled: bool = True,
        gender: VoiceGender = VoiceGender.MALE,
        on_interim: Optional[InterimHandler] = None,
        on_playback: Optional[PlaybackHandler] = None,
    ):
        self._arbiter = arbiter
        self._capture = capture
        self._playback = playback
        self._output_enabled = output_enabled
        self._gender = gender
        self._on_interim = on_interim
        self._on_playback = on_playback

        self._capture_token: Optional[int] = None
        self._playback_task: Optional[asyncio.Task] = None
        # Bumped by every speak and cancel; a speak that is overtaken while
        # silencing its predecessor gives up the slot
        self._playback_generation = 0

    # ========================================================================
    # Capability
    # ========================================================================

    @property
    def capture_available(self) -> bool:
        return self._capture is not None and self._capture.is_available

    @property
    def playback_available(self) -> bool:
        return self._playback is not None and self._playback.is_available

    async def load_voices(self) -> List[VoiceInfo]:
        """Ask the playback service to populate its catalog."""
        if not self.playback_available:
            return []
        try:
            return await self._playback.load_voices()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Voice catalog unavailable: {e}")
            return []

    # ========================================================================
    # Capture
    # ========================================================================

    async def start_capture(self) -> bool:
        """
        Open a capture session (IDLE -> LISTENING).

        Returns:
            True if listening started
        """
        if not self.capture_available:
            logger.warning("Speech capture is not available")
            return False

        token = self._arbiter.begin_listening()
        if token is None:
            return False

        await self.cancel_playback()

        try:
            await self._capture.start(
                on_interim=lambda text: self._handle_interim(token, text),
                on_end=lambda end: self._handle_capture_end(token, end),
            )
        except asyncio.CancelledError:
            self._arbiter.end_listening(token)
            raise
        except Exception as e:
            logger.warning(f"Speech capture failed to start: {e}")
            self._arbiter.end_listening(token)
            return False

        self._capture_token = token
        return True

    async def stop_capture(self) -> bool:
        """Stop listening; the arbiter is back to IDLE afterwards."""
        if self._arbiter.mode != ConversationMode.LISTENING:
            return False

        token = self._capture_token
        if self._capture is not None:
            try:
                await self._capture.stop()
            except Exception as e:
                logger.warning(f"Error stopping capture: {e}")

        # The end event normally did this already; a second call is a no-op
        self._arbiter.end_listening(token)
        return True

    def _handle_interim(self, token: int, text: str) -> None:
        if not self._arbiter.is_current(token):
            logger.debug("Dropped interim transcript from a finished capture")
            return
        if self._on_interim:
            self._on_interim(text, False)

    def _handle_capture_end(self, token: int, end: CaptureEnd) -> None:
        if not self._arbiter.is_current(token):
            logger.debug(f"Dropped stale capture end ({end.reason.name})")
            return
        if self._on_interim and end.transcript:
            self._on_interim(end.transcript, True)
        self._arbiter.end_listening(token)
        if self._capture_token == token:
            self._capture_token = None

    # ========================================================================
    # Playback
    # ========================================================================

    @property
    def output_enabled(self) -> bool:
        return self._output_enabled

    @property
    def gender(self) -> VoiceGender:
        return self._gender

    @property
    def is_speaking(self) -> bool:
        return self._playback_task is not None and not self._playback_task.done()

    async def speak(self, text: str, force: bool = False) -> bool:
        """
        Start speaking `text`, preempting any utterance in progress.

        Does not wait for the utterance to finish.

        Args:
            text: Text to speak
            force: Speak even when voice output is toggled off

        Returns:
            True if an utterance was started
        """
        if not text or not text.strip():
            return False
        if not (self._output_enabled or force):
            return False
        if not self.playback_available:
            return False

        self._playback_generation += 1
        generation = self._playback_generation
        await self._stop_playback()
        if generation != self._playback_generation:
            logger.debug("Utterance overtaken before it started")
            return False

        voice = select_voice(self._playback.voices(), self._gender)
        if voice is None:
            logger.debug("No voices loaded; skipping playback")
            self._emit(PlaybackPhase.SKIPPED, text, "")
            return False

        self._playback_task = asyncio.create_task(self._play(text, voice))
        return True

    async def _play(self, text: str, voice: VoiceInfo) -> None:
        self._emit(PlaybackPhase.STARTED, text, voice.name)
        try:
            completed = await self._playback.speak(text, voice)
        except asyncio.CancelledError:
            self._emit(PlaybackPhase.CANCELLED, text, voice.name)
            raise
        except Exception as e:
            logger.error(f"Playback failed: {e}")
            self._emit(PlaybackPhase.CANCELLED, text, voice.name)
            return

        phase = PlaybackPhase.FINISHED if completed else PlaybackPhase.CANCELLED
        self._emit(phase, text, voice.name)

    async def cancel_playback(self) -> None:
        """Silence the utterance in progress, if any, and any speak still starting."""
        self._playback_generation += 1
        await self._stop_playback()

    async def _stop_playback(self) -> None:
        task, self._playback_task = self._playback_task, None
        if task is None or task.done():
            return

        try:
            await self._playback.cancel()
        except Exception as e:
            logger.warning(f"Error cancelling playback: {e}")

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def toggle_output(self) -> bool:
        """Flip voice output; turning it off silences playback."""
        self._output_enabled = not self._output_enabled
        if not self._output_enabled:
            await self.cancel_playback()
        logger.info(f"Voice output {'enabled' if self._output_enabled else 'disabled'}")
        return self._output_enabled

    def toggle_gender(self) -> VoiceGender:
        self._gender = self._gender.other
        logger.info(f"Voice gender set to {self._gender.value}")
        return self._gender

    def _emit(self, phase: PlaybackPhase, text: str, voice_name: str) -> None:
        if self._on_playback:
            self._on_playback(phase, text, voice_name)

    async def close(self) -> None:
        await self.cancel_playback()
        if self._arbiter.mode == ConversationMode.LISTENING:
            await self.stop_capture()
