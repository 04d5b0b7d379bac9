"""
Text-to-Speech Playback Module

Playback collaborator for spoken assistant replies:
- Azure Neural TTS through the Speech SDK
- Voice catalog that fills in asynchronously (may be empty at first query)
- Instant cancel of the utterance in progress

One utterance at a time is the caller's rule (see victor.realtime.voice);
this module only guarantees that cancel() stops what is playing.
"""

import asyncio
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

import azure.cognitiveservices.speech as speechsdk

from victor.config import settings
from victor.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class VoiceInfo:
    """One entry of the voice catalog."""
    name: str
    locale: str = ""
    gender: str = ""  # "male", "female" or "" when unknown

    @property
    def is_english(self) -> bool:
        return self.locale.lower().startswith("en")


class PlaybackService(ABC):
    """Text-to-speech playback contract."""

    @property
    def is_available(self) -> bool:
        return True

    @abstractmethod
    def voices(self) -> List[VoiceInfo]:
        """Current voice catalog snapshot; may be empty until loaded."""

    async def load_voices(self) -> List[VoiceInfo]:
        """Populate the catalog; returns the snapshot."""
        return self.voices()

    @abstractmethod
    async def speak(self, text: str, voice: VoiceInfo) -> bool:
        """
        Speak `text` with `voice`.

        Returns:
            True if the utterance completed, False if cancelled or failed
        """

    @abstractmethod
    async def cancel(self) -> None:
        """Stop the utterance in progress, if any."""


@dataclass
class TTSConfig:
    """TTS configuration."""
    speaking_rate: float = 1.0
    pitch: str = "+0%"
    volume: str = "medium"
    synthesis_timeout_s: float = 120.0


_GENDERS = {
    speechsdk.SynthesisVoiceGender.Male: "male",
    speechsdk.SynthesisVoiceGender.Female: "female",
}


class AzurePlaybackService(PlaybackService):
    """
    Azure Neural TTS playback to the default speaker.

    Usage:
        playback = AzurePlaybackService()
        await playback.load_voices()
        await playback.speak("Hello", playback.voices()[0])
        await playback.cancel()
    """

    def __init__(self, config: Optional[TTSConfig] = None):
        if not settings.speech.is_configured:
            raise ValueError(
                "Azure Speech not configured. Set AZURE_SPEECH_API_KEY and "
                "AZURE_SPEECH_REGION in .env"
            )

        self._config = config or TTSConfig()
        self._speech_config = speechsdk.SpeechConfig(
            subscription=settings.speech.api_key,
            region=settings.speech.region,
        )
        self._speech_config.set_speech_synthesis_output_format(
            speechsdk.SpeechSynthesisOutputFormat.Riff16Khz16BitMonoPcm
        )

        self._voices: List[VoiceInfo] = []
        self._active_synthesizer: Optional[speechsdk.SpeechSynthesizer] = None
        self._stop_flag = threading.Event()

        logger.info(f"Playback configured: region={settings.speech.region}")

    # ========================================================================
    # Voice catalog
    # ========================================================================

    def voices(self) -> List[VoiceInfo]:
        return list(self._voices)

    async def load_voices(self) -> List[VoiceInfo]:
        synthesizer = speechsdk.SpeechSynthesizer(speech_config=self._speech_config, audio_config=None)
        loop = asyncio.get_running_loop()

        result = await loop.run_in_executor(None, lambda: synthesizer.get_voices_async().get())
        if result is None or result.reason != speechsdk.ResultReason.VoicesListRetrieved:
            logger.warning("Voice catalog could not be retrieved")
            return self.voices()

        self._voices = [
            VoiceInfo(
                name=v.short_name,
                locale=v.locale,
                gender=_GENDERS.get(v.gender, ""),
            )
            for v in result.voices
        ]
        logger.info(f"Loaded {len(self._voices)} voices")
        return self.voices()

    # ========================================================================
    # Playback
    # ========================================================================

    def _build_ssml(self, text: str, voice: VoiceInfo) -> str:
        locale = voice.locale or settings.speech.language
        return f"""<speak version="1.0" xmlns="http://www.w3.org/2001/10/synthesis" xml:lang="{locale}">
    <voice name="{voice.name}">
        <prosody rate="{self._config.speaking_rate}" pitch="{self._config.pitch}" volume="{self._config.volume}">
            {self._escape_ssml(text)}
        </prosody>
    </voice>
</speak>"""

    @staticmethod
    def _escape_ssml(text: str) -> str:
        """Escape special characters for SSML."""
        return (
            text.replace("&", "&amp;")
                .replace("<", "&lt;")
                .replace(">", "&gt;")
                .replace('"', "&quot;")
                .replace("'", "&apos;")
        )

    async def speak(self, text: str, voice: VoiceInfo) -> bool:
        if not text.strip():
            return True

        self._stop_flag.clear()
        synthesizer = speechsdk.SpeechSynthesizer(
            speech_config=self._speech_config,
            audio_config=speechsdk.audio.AudioOutputConfig(use_default_speaker=True),
        )
        self._active_synthesizer = synthesizer

        result_future = synthesizer.speak_ssml_async(self._build_ssml(text, voice))
        loop = asyncio.get_running_loop()
        wait_task = loop.run_in_executor(None, result_future.get)
        start_time = time.time()

        try:
            while not wait_task.done():
                if self._stop_flag.is_set():
                    self._stop_synthesizer(synthesizer)
                    return False
                if time.time() - start_time > self._config.synthesis_timeout_s:
                    self._stop_synthesizer(synthesizer)
                    logger.warning(f"Playback timeout for: {text[:30]}...")
                    return False
                await asyncio.sleep(0.05)

            result = await wait_task
        except asyncio.CancelledError:
            self._stop_synthesizer(synthesizer)
            raise
        finally:
            if self._active_synthesizer is synthesizer:
                self._active_synthesizer = None

        if result is None:
            return False
        if result.reason == speechsdk.ResultReason.Canceled:
            details = result.cancellation_details
            if details and details.reason == speechsdk.CancellationReason.Error:
                logger.error(f"Playback error: {details.error_details}")
            return False
        return result.reason == speechsdk.ResultReason.SynthesizingAudioCompleted

    @staticmethod
    def _stop_synthesizer(synthesizer: speechsdk.SpeechSynthesizer) -> None:
        try:
            synthesizer.stop_speaking_async()
        except Exception as e:
            logger.debug(f"Error stopping synthesizer: {e}")

    async def cancel(self) -> None:
        self._stop_flag.set()
        synthesizer = self._active_synthesizer
        if synthesizer:
            self._stop_synthesizer(synthesizer)
