"""Narration: tiered speech synthesis plus exclusive playback.

Tier order: the Gemini voice model (explicit prebuilt voice) then edge-tts,
which needs no credentials and maps the narration speed onto its
signed-percent rate parameter. Any cloud failure falls through; if the last
tier is not installed it declares itself absent and the pipeline raises
``VoiceUnavailable``.

Only one utterance plays at a time. Starting a new one cancels the previous
handle (callback detached first), and an utterance that is superseded while
still being synthesized is dropped without playing.
"""

import asyncio
import io
import logging
import re
from collections.abc import Callable
from typing import Protocol

from ..enums import SILENT_FALLBACK, FailureKind, NarratorVoice
from .audio import AudioClip, AudioOutput, PlaybackHandle, pcm_to_wav
from .base import GoogleTier, first_inline_part
from .failures import (
    CapabilityAbsent,
    InputRejected,
    MalformedGeneration,
    VoiceUnavailable,
    classify_failure,
)

logger = logging.getLogger(__name__)

# --- Tuning constants ---
EDGE_TTS_TIMEOUT_SEC = 30          # Timeout for edge-tts synthesis
MAX_SPEECH_CHARS = 4000            # Truncate input text beyond this

# Closest edge-tts voices for the narrator voices
EDGE_VOICES = {
    NarratorVoice.CHARON: "en-GB-RyanNeural",
    NarratorVoice.KORE: "en-US-AriaNeural",
    NarratorVoice.PUCK: "en-US-GuyNeural",
    NarratorVoice.ZEPHYR: "en-US-JennyNeural",
}


def clean_text_for_speech(text: str) -> str:
    """Strip markdown and collapse whitespace so engines read prose only."""
    clean = re.sub(r'\*\*?(.*?)\*\*?', r'\1', text)
    clean = re.sub(r'#{1,6}\s*', '', clean)
    clean = re.sub(r'\[([^\]]+)\]\([^)]+\)', r'\1', clean)
    clean = re.sub(r'`[^`]+`', '', clean)
    clean = re.sub(r'\n{2,}', '. ', clean)
    clean = re.sub(r'\s+', ' ', clean).strip()
    if len(clean) > MAX_SPEECH_CHARS:
        cut = clean[:MAX_SPEECH_CHARS].rfind('.')
        clean = clean[:cut + 1] if cut > 0 else clean[:MAX_SPEECH_CHARS]
    return clean


def speed_to_rate(speed: float) -> str:
    """Map a speed multiplier onto edge-tts' rate syntax (1.25 -> '+25%')."""
    return f"{round((speed - 1.0) * 100):+d}%"


class VoiceTier(Protocol):
    """One ranked speech synthesizer."""

    name: str
    cloud: bool

    async def synthesize(self, text: str, voice: str, speed: float) -> AudioClip:
        ...


class GeminiVoiceTier(GoogleTier):
    """Cloud narration through the Gemini TTS model."""

    name = "gemini-tts"

    def __init__(self, model: str, api_key: str | None = None, client=None):
        super().__init__(api_key=api_key, client=client)
        self.model = model

    @staticmethod
    def _direction(speed: float) -> str:
        if speed >= 1.2:
            return "Narrate this dramatically at a brisk pace"
        if speed <= 0.8:
            return "Narrate this dramatically at a slow, deliberate pace"
        return "Narrate this dramatically"

    async def synthesize(self, text: str, voice: str, speed: float) -> AudioClip:
        self._ensure_client()
        prompt = f"{self._direction(speed)}: {text}"

        def _generate():
            from google.genai import types
            return self._client.models.generate_content(
                model=self.model,
                contents=prompt,
                config=types.GenerateContentConfig(
                    response_modalities=["AUDIO"],
                    speech_config=types.SpeechConfig(
                        voice_config=types.VoiceConfig(
                            prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=voice),
                        ),
                    ),
                ),
            )

        response = await self._run(_generate)
        inline = first_inline_part(response)
        if inline is None:
            raise MalformedGeneration(f"No audio in response from {self.model}")
        return AudioClip(data=pcm_to_wav(inline.data), mime_type="audio/wav")


class EdgeVoiceTier:
    """Keyless narration through edge-tts."""

    name = "edge-tts"
    cloud = False
    audio_format = "audio/mpeg"

    async def synthesize(self, text: str, voice: str, speed: float) -> AudioClip:
        try:
            import edge_tts
        except ImportError as e:
            raise CapabilityAbsent(f"edge-tts is not installed: {e}") from e

        kwargs = {"voice": EDGE_VOICES.get(voice, EDGE_VOICES[NarratorVoice.CHARON])}
        rate = speed_to_rate(speed)
        if rate != "+0%":
            kwargs["rate"] = rate

        async def _collect() -> bytes:
            comm = edge_tts.Communicate(text, **kwargs)
            buf = io.BytesIO()
            async for chunk in comm.stream():
                if chunk["type"] == "audio":
                    buf.write(chunk["data"])
            return buf.getvalue()

        audio = await asyncio.wait_for(_collect(), timeout=EDGE_TTS_TIMEOUT_SEC)
        if not audio:
            raise MalformedGeneration("edge-tts returned no audio")
        return AudioClip(data=audio, mime_type=self.audio_format)


class SpeechPipeline:
    """Ordered voice tiers plus the single system-wide playback slot."""

    def __init__(
        self,
        tiers: list[VoiceTier],
        output: AudioOutput,
        cloud_allowed=lambda: True,
        on_access_denied=None,
    ):
        self.tiers = list(tiers)
        self._output = output
        self.cloud_allowed = cloud_allowed
        self.on_access_denied = on_access_denied
        self._current: PlaybackHandle | None = None
        self._generation = 0

    @property
    def speaking(self) -> bool:
        return self._current is not None and self._current.active

    def stop(self) -> None:
        """Cancel the current utterance and invalidate any still being synthesized."""
        self._generation += 1
        handle, self._current = self._current, None
        if handle is not None:
            handle.cancel()
            logger.info("Narration stopped")

    async def synthesize(self, text: str, voice: str, speed: float) -> AudioClip:
        """Run the tiers in order; raise VoiceUnavailable if none produce audio."""
        for tier in self.tiers:
            if tier.cloud and not self.cloud_allowed():
                logger.debug(f"Skipping cloud voice tier {tier.name}: no access")
                continue
            try:
                clip = await tier.synthesize(text, voice, speed)
                logger.info(f"Narration synthesized by {tier.name}")
                return clip
            except Exception as e:
                kind = classify_failure(e)
                if kind == FailureKind.ACCESS and self.on_access_denied:
                    self.on_access_denied()
                if kind in SILENT_FALLBACK:
                    logger.debug(f"Voice tier {tier.name} unavailable ({kind})")
                else:
                    logger.warning(f"Voice tier {tier.name} failed ({kind}): {e}")
        raise VoiceUnavailable()

    async def speak(
        self,
        text: str,
        voice: str = NarratorVoice.CHARON,
        speed: float = 1.0,
        on_complete: Callable[[], None] | None = None,
    ) -> PlaybackHandle | None:
        """Narrate ``text``, replacing whatever is playing.

        Returns:
            The playback handle, or None when a newer ``speak``/``stop``
            superseded this one before its audio was ready.

        Raises:
            InputRejected: nothing speakable in ``text``.
            VoiceUnavailable: every tier failed or declined.
        """
        clean = clean_text_for_speech(text)
        if not clean:
            raise InputRejected("Nothing to narrate")

        self.stop()
        generation = self._generation

        clip = await self.synthesize(clean, voice, speed)
        if generation != self._generation:
            logger.debug("Narration superseded before playback; dropping audio")
            return None

        handle = PlaybackHandle(on_complete)

        def _finished():
            if self._current is handle:
                self._current = None
            handle.notify_finished()

        self._current = handle
        try:
            handle.attach(self._output.play(clip, _finished))
        except Exception as e:
            if self._current is handle:
                self._current = None
            raise VoiceUnavailable(f"Playback failed: {e}") from e
        return handle
