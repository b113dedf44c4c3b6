"""Voice input: bounded cloud capture with a local recognizer behind it.

The cloud tier opens the microphone, records until ``max_listen_seconds``
elapse (or ``stop_listening`` is called) and sends the WAV to a Gemini
model for transcription. If the microphone cannot be opened, cloud access
is denied or transcription fails, the local tier takes over: faster-whisper
with its own end-of-utterance detection.

Only one attempt exists at a time; the capture timer belongs to that
attempt and is cancelled when it ends.
"""

import asyncio
import logging
import threading
from collections.abc import Callable
from typing import Protocol

from ..enums import SILENT_FALLBACK, FailureKind
from .audio import SAMPLE_RATE, AudioCapture, SoundDeviceCapture
from .base import GoogleTier
from .failures import CapabilityAbsent, RecognitionUnavailable, classify_failure

logger = logging.getLogger(__name__)

TRANSCRIBE_PROMPT = (
    "Transcribe the spoken words in this audio exactly. "
    "Reply with the transcript only. If nothing intelligible was said, reply with nothing."
)

# Local end-of-utterance detection
BLOCK_SEC = 0.1
SPEECH_RMS = 0.015             # float32 RMS above which a block counts as speech
TRAILING_SILENCE_SEC = 0.8
LOCAL_MAX_SECONDS = 10.0


class Transcriber(Protocol):
    """Turns captured WAV audio into text."""

    name: str
    cloud: bool

    async def transcribe(self, wav: bytes) -> str:
        ...


class LocalRecognizer(Protocol):
    """Captures and recognizes on its own, ending when the speaker stops."""

    name: str

    async def recognize(self) -> str:
        ...

    def stop(self) -> None:
        """End capture early and recognize what was heard."""
        ...

    def cancel(self) -> None:
        """End capture and discard the audio."""
        ...


class GeminiTranscriber(GoogleTier):
    """Cloud transcription through Gemini audio understanding."""

    name = "gemini-transcribe"

    def __init__(self, model: str, api_key: str | None = None, client=None):
        super().__init__(api_key=api_key, client=client)
        self.model = model

    async def transcribe(self, wav: bytes) -> str:
        self._ensure_client()

        def _generate():
            from google.genai import types
            return self._client.models.generate_content(
                model=self.model,
                contents=[
                    types.Part.from_bytes(data=wav, mime_type="audio/wav"),
                    TRANSCRIBE_PROMPT,
                ],
            )

        response = await self._run(_generate)
        return (response.text or "").strip()


class WhisperRecognizer:
    """Local recognition with faster-whisper and an energy-based endpoint."""

    name = "faster-whisper"
    cloud = False

    def __init__(
        self,
        model_size: str = "small",
        sample_rate: int = SAMPLE_RATE,
        max_seconds: float = LOCAL_MAX_SECONDS,
    ):
        self.model_size = model_size
        self.sample_rate = sample_rate
        self.max_seconds = max_seconds
        self._model = None
        self._model_lock = threading.Lock()
        self._stop = threading.Event()
        self._discard = False

    def _ensure_model(self):
        try:
            from faster_whisper import WhisperModel
        except ImportError as e:
            raise CapabilityAbsent(f"faster-whisper is not installed: {e}") from e
        with self._model_lock:
            if self._model is None:
                logger.info(f"Loading Whisper model '{self.model_size}'")
                self._model = WhisperModel(self.model_size, device="cpu", compute_type="int8")

    def _record(self):
        try:
            import numpy as np
            import sounddevice as sd
        except (ImportError, OSError) as e:
            raise CapabilityAbsent(f"Microphone capture unavailable: {e}") from e

        block = int(self.sample_rate * BLOCK_SEC)
        chunks = []
        heard = False
        quiet = 0.0
        elapsed = 0.0
        try:
            with sd.InputStream(samplerate=self.sample_rate, channels=1,
                                dtype="float32", blocksize=block) as stream:
                while not self._stop.is_set() and elapsed < self.max_seconds:
                    data, _overflowed = stream.read(block)
                    chunk = data[:, 0].copy()
                    chunks.append(chunk)
                    elapsed += BLOCK_SEC
                    rms = float(np.sqrt(np.mean(chunk ** 2)))
                    if rms >= SPEECH_RMS:
                        heard = True
                        quiet = 0.0
                    elif heard:
                        quiet += BLOCK_SEC
                        if quiet >= TRAILING_SILENCE_SEC:
                            break
        except sd.PortAudioError as e:
            raise CapabilityAbsent(f"Could not open microphone: {e}") from e

        if not chunks:
            return np.zeros(0, dtype=np.float32)
        return np.concatenate(chunks)

    def _recognize_blocking(self) -> str:
        self._ensure_model()
        audio = self._record()
        if self._discard or audio.size == 0:
            return ""
        segments, _info = self._model.transcribe(audio, language="en", beam_size=5, vad_filter=True)
        return " ".join(s.text.strip() for s in segments).strip()

    async def recognize(self) -> str:
        self._stop.clear()
        self._discard = False
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._recognize_blocking)

    def stop(self) -> None:
        self._stop.set()

    def cancel(self) -> None:
        self._discard = True
        self._stop.set()


class _Attempt:
    """One listen() call: its capture, its timer and its end signal."""

    def __init__(self):
        self.capture: AudioCapture | None = None
        self.timer: asyncio.TimerHandle | None = None
        self.ended = asyncio.Event()
        self.cancelled = False
        self.local_running = False

    def end(self) -> None:
        self.ended.set()

    def release(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None
        if self.capture is not None:
            capture, self.capture = self.capture, None
            try:
                capture.abort()
            except Exception as e:
                logger.warning(f"Releasing microphone failed: {e}")


class RecognitionPipeline:
    """Cloud capture+transcription tier, then the local recognizer."""

    def __init__(
        self,
        transcriber: Transcriber | None,
        local: LocalRecognizer | None,
        capture_factory: Callable[[], AudioCapture] = SoundDeviceCapture,
        max_listen_seconds: float = 4.0,
        cloud_allowed=lambda: True,
        on_access_denied=None,
    ):
        self.transcriber = transcriber
        self.local = local
        self._capture_factory = capture_factory
        self.max_listen_seconds = max_listen_seconds
        self.cloud_allowed = cloud_allowed
        self.on_access_denied = on_access_denied
        self._attempt: _Attempt | None = None

    @property
    def listening(self) -> bool:
        return self._attempt is not None

    async def listen(self) -> str | None:
        """Capture one utterance and return its transcript.

        Returns:
            The transcript (possibly empty when nothing intelligible was
            heard), or None when another attempt was already running or this
            one was cancelled.

        Raises:
            RecognitionUnavailable: neither tier could produce a transcript.
        """
        if self._attempt is not None:
            logger.debug("listen() ignored: an attempt is already in progress")
            return None

        attempt = _Attempt()
        self._attempt = attempt
        try:
            if self.transcriber is not None and self.cloud_allowed():
                try:
                    text = await self._listen_cloud(attempt)
                    if attempt.cancelled:
                        return None
                    logger.info(f"Transcribed by {self.transcriber.name}")
                    return text
                except Exception as e:
                    if attempt.cancelled:
                        return None
                    self._note_failure("cloud", e)
                    attempt.release()

            if self.local is not None:
                try:
                    attempt.local_running = True
                    text = await self.local.recognize()
                    if attempt.cancelled:
                        return None
                    logger.info(f"Transcribed by {self.local.name}")
                    return text
                except Exception as e:
                    if attempt.cancelled:
                        return None
                    self._note_failure(self.local.name, e)
                finally:
                    attempt.local_running = False

            raise RecognitionUnavailable()
        finally:
            attempt.release()
            if self._attempt is attempt:
                self._attempt = None

    async def _listen_cloud(self, attempt: _Attempt) -> str:
        capture = self._capture_factory()
        capture.start()
        attempt.capture = capture

        loop = asyncio.get_running_loop()
        attempt.timer = loop.call_later(self.max_listen_seconds, attempt.end)
        await attempt.ended.wait()
        if attempt.cancelled:
            return ""

        if attempt.timer is not None:
            attempt.timer.cancel()
            attempt.timer = None
        attempt.capture = None
        wav = capture.stop()
        return await self.transcriber.transcribe(wav)

    def _note_failure(self, tier: str, exc: Exception) -> None:
        kind = classify_failure(exc)
        if kind == FailureKind.ACCESS and self.on_access_denied:
            self.on_access_denied()
        if kind in SILENT_FALLBACK:
            logger.debug(f"Recognition tier {tier} unavailable ({kind})")
        else:
            logger.warning(f"Recognition tier {tier} failed ({kind}): {exc}")

    def stop_listening(self) -> bool:
        """End capture early and transcribe what was heard so far."""
        attempt = self._attempt
        if attempt is None:
            return False
        if attempt.local_running and self.local is not None:
            self.local.stop()
        attempt.end()
        return True

    def cancel(self) -> None:
        """Tear down the current attempt and discard its audio."""
        attempt = self._attempt
        if attempt is None:
            return
        attempt.cancelled = True
        if attempt.local_running and self.local is not None:
            self.local.cancel()
        attempt.release()
        attempt.end()
        logger.debug("Listening cancelled")
