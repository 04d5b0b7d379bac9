"""
Speech-to-Text Capture Module

One-shot speech capture for filling the input field by voice:
- Azure Speech SDK recognition with interim hypotheses
- Exactly one end notification per session (natural, stopped or error)
- SDK callbacks are marshalled onto the asyncio loop

Each interim result is the engine's full current guess, so consumers replace
their pending text with it rather than appending.
"""

import asyncio
import itertools
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, Optional

import azure.cognitiveservices.speech as speechsdk

from victor.config import settings
from victor.logger import get_logger

logger = get_logger(__name__)


class CaptureEndReason(Enum):
    """Why a capture session ended."""
    NATURAL = auto()   # End of utterance or silence timeout
    STOPPED = auto()   # Explicit stop
    ERROR = auto()     # Engine or device failure


@dataclass(frozen=True)
class CaptureEnd:
    """Terminal event of a capture session."""
    reason: CaptureEndReason
    transcript: str = ""
    detail: str = ""


InterimCallback = Callable[[str], None]
EndCallback = Callable[[CaptureEnd], None]


class CaptureService(ABC):
    """
    Speech-to-text capture contract.

    A session emits zero or more interim revisions followed by exactly one
    end event. Callbacks always run on the event loop thread.
    """

    @property
    def is_available(self) -> bool:
        return True

    @abstractmethod
    async def start(self, on_interim: InterimCallback, on_end: EndCallback) -> None:
        """Open a capture session."""

    @abstractmethod
    async def stop(self) -> None:
        """Request the current session to end; its end event reports STOPPED."""


@dataclass
class VADConfig:
    """Voice Activity Detection configuration."""
    end_silence_timeout_ms: int = 800       # Silence to end utterance
    initial_silence_timeout_ms: int = 5000  # Wait for initial speech


class AzureCaptureService(CaptureService):
    """
    Azure Speech SDK capture with interim results.

    Recognition runs in continuous mode but the session is closed after the
    first final phrase, which gives one-utterance semantics while still
    allowing an explicit stop.

    Usage:
        capture = AzureCaptureService()
        await capture.start(on_interim=print, on_end=print)
        await capture.stop()
    """

    def __init__(
        self,
        language: Optional[str] = None,
        vad_config: Optional[VADConfig] = None,
    ):
        if not settings.speech.is_configured:
            raise ValueError(
                "Azure Speech not configured. Set AZURE_SPEECH_API_KEY and "
                "AZURE_SPEECH_REGION in .env"
            )

        self._language = language or settings.speech.language
        self._vad_config = vad_config or VADConfig()

        self._speech_config = speechsdk.SpeechConfig(
            subscription=settings.speech.api_key,
            region=settings.speech.region,
        )
        self._speech_config.speech_recognition_language = self._language
        self._speech_config.set_property(
            speechsdk.PropertyId.SpeechServiceConnection_EndSilenceTimeoutMs,
            str(self._vad_config.end_silence_timeout_ms)
        )
        self._speech_config.set_property(
            speechsdk.PropertyId.SpeechServiceConnection_InitialSilenceTimeoutMs,
            str(self._vad_config.initial_silence_timeout_ms)
        )

        self._recognizer: Optional[speechsdk.SpeechRecognizer] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._session_ids = itertools.count(1)
        self._session_id = 0
        self._ended = True
        self._stop_requested = False
        self._transcript = ""
        self._on_interim: Optional[InterimCallback] = None
        self._on_end: Optional[EndCallback] = None

        logger.info(f"Capture configured: language={self._language}")

    # ========================================================================
    # Public API
    # ========================================================================

    async def start(self, on_interim: InterimCallback, on_end: EndCallback) -> None:
        if not self._ended:
            await self.stop()

        self._loop = asyncio.get_running_loop()
        self._session_id = next(self._session_ids)
        self._ended = False
        self._stop_requested = False
        self._transcript = ""
        self._on_interim = on_interim
        self._on_end = on_end

        session_id = self._session_id
        recognizer = speechsdk.SpeechRecognizer(
            speech_config=self._speech_config,
            audio_config=speechsdk.audio.AudioConfig(use_default_microphone=True),
        )
        recognizer.recognizing.connect(lambda evt: self._on_recognizing(session_id, evt))
        recognizer.recognized.connect(lambda evt: self._on_recognized(session_id, evt))
        recognizer.canceled.connect(lambda evt: self._on_canceled(session_id, evt))
        recognizer.session_stopped.connect(lambda evt: self._post(session_id, self._finish, None))

        self._recognizer = recognizer
        recognizer.start_continuous_recognition_async()
        logger.info("Capture started")

    async def stop(self) -> None:
        if self._ended:
            return
        self._stop_requested = True
        self._close_recognizer()
        self._finish(CaptureEnd(CaptureEndReason.STOPPED, transcript=self._transcript))

    # ========================================================================
    # SDK callbacks (called from SDK thread)
    # ========================================================================

    def _post(self, session_id: int, fn: Callable, arg) -> None:
        """Run `fn(arg)` on the loop if the session is still current."""
        if self._loop is None:
            return

        def deliver():
            if session_id == self._session_id and not self._ended:
                fn(arg)

        try:
            self._loop.call_soon_threadsafe(deliver)
        except RuntimeError as e:
            logger.debug(f"Capture event after loop shutdown: {e}")

    def _on_recognizing(self, session_id: int, evt: speechsdk.SpeechRecognitionEventArgs) -> None:
        text = evt.result.text.strip()
        if text:
            self._post(session_id, self._interim, text)

    def _on_recognized(self, session_id: int, evt: speechsdk.SpeechRecognitionEventArgs) -> None:
        if evt.result.reason == speechsdk.ResultReason.RecognizedSpeech:
            text = evt.result.text.strip()
            self._post(session_id, self._final, text)
        elif evt.result.reason == speechsdk.ResultReason.NoMatch:
            self._post(session_id, self._final, "")

    def _on_canceled(self, session_id: int, evt: speechsdk.SpeechRecognitionCanceledEventArgs) -> None:
        details = evt.cancellation_details
        if details.reason == speechsdk.CancellationReason.Error:
            end = CaptureEnd(CaptureEndReason.ERROR, detail=str(details.error_details))
        else:
            end = None
        self._post(session_id, self._finish, end)

    # ========================================================================
    # Loop-side handling
    # ========================================================================

    def _interim(self, text: str) -> None:
        self._transcript = text
        if self._on_interim:
            self._on_interim(text)

    def _final(self, text: str) -> None:
        if text:
            self._interim(text)
        self._close_recognizer()
        self._finish(None)

    def _finish(self, end: Optional[CaptureEnd]) -> None:
        if self._ended:
            return
        self._ended = True

        if end is None:
            reason = CaptureEndReason.STOPPED if self._stop_requested else CaptureEndReason.NATURAL
            end = CaptureEnd(reason, transcript=self._transcript)
        elif end.reason == CaptureEndReason.ERROR:
            logger.error(f"Capture error: {end.detail}")

        logger.debug(f"Capture ended: {end.reason.name}")
        if self._on_end:
            self._on_end(end)

    def _close_recognizer(self) -> None:
        recognizer, self._recognizer = self._recognizer, None
        if recognizer is None:
            return
        try:
            recognizer.stop_continuous_recognition_async()
        except Exception as e:
            logger.debug(f"Error stopping recognizer: {e}")
