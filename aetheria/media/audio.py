"""Owned audio handles: one playback and one capture at a time.

Playback and capture are host capabilities behind small protocols so the
pipelines can be driven by fakes in tests. The defaults use pygame for
playback and sounddevice for microphone capture, both imported lazily.

Cancellation always detaches the completion callback before the resource is
stopped, so a superseded utterance can never report that it finished.
"""

import asyncio
import io
import logging
import tempfile
import wave
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from ..utils.tasks import safe_create_task
from .failures import CapabilityAbsent

logger = logging.getLogger(__name__)

SAMPLE_RATE = 16000          # Capture rate expected by transcription models
TTS_SAMPLE_RATE = 24000      # Gemini TTS returns 24 kHz mono PCM
PLAYBACK_POLL_SEC = 0.1


@dataclass(frozen=True)
class AudioClip:
    """Synthesized audio ready for playback."""
    data: bytes
    mime_type: str = "audio/wav"


def pcm_to_wav(pcm: bytes, sample_rate: int = TTS_SAMPLE_RATE, channels: int = 1) -> bytes:
    """Wrap raw 16-bit little-endian PCM in a WAV container."""
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(2)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm)
    return buf.getvalue()


# ── Playback ──────────────────────────────────────────────────────────

class AudioOutput(Protocol):
    """Host playback capability.

    ``play`` starts the clip and must call ``on_finished`` exactly once when
    playback ends on its own. It returns a callable that stops playback; the
    stop callable must not invoke ``on_finished``.
    """

    def play(self, clip: AudioClip, on_finished: Callable[[], None]) -> Callable[[], None]:
        ...


class PlaybackHandle:
    """Exclusive ownership of one utterance."""

    def __init__(self, on_complete: Callable[[], None] | None = None):
        self._on_complete = on_complete
        self._stop: Callable[[], None] | None = None
        self.finished = False
        self.cancelled = False

    @property
    def active(self) -> bool:
        return not (self.finished or self.cancelled)

    def attach(self, stop: Callable[[], None]) -> None:
        self._stop = stop

    def notify_finished(self) -> None:
        """Called by the output when the clip played to the end."""
        if not self.active:
            return
        self.finished = True
        callback, self._on_complete = self._on_complete, None
        if callback is not None:
            callback()

    def cancel(self) -> None:
        """Detach the completion callback, then release the resource."""
        if not self.active:
            return
        self._on_complete = None
        self.cancelled = True
        if self._stop is not None:
            try:
                self._stop()
            except Exception as e:
                logger.warning(f"Stopping playback failed: {e}")
            self._stop = None


class PygameOutput:
    """Plays clips through pygame's mixer and polls for the end of playback."""

    def __init__(self):
        self._initialized = False

    def _ensure_mixer(self):
        if self._initialized:
            return
        try:
            import pygame
            pygame.mixer.init()
        except Exception as e:
            raise CapabilityAbsent(f"No audio output device: {e}") from e
        self._initialized = True

    def play(self, clip: AudioClip, on_finished: Callable[[], None]) -> Callable[[], None]:
        self._ensure_mixer()
        import pygame

        suffix = ".mp3" if "mpeg" in clip.mime_type or "mp3" in clip.mime_type else ".wav"
        with tempfile.NamedTemporaryFile(suffix=suffix, delete=False) as f:
            f.write(clip.data)
            tmp = Path(f.name)

        pygame.mixer.music.load(str(tmp))
        pygame.mixer.music.play()

        async def _watch():
            try:
                while pygame.mixer.music.get_busy():
                    await asyncio.sleep(PLAYBACK_POLL_SEC)
                on_finished()
            finally:
                tmp.unlink(missing_ok=True)

        watcher = safe_create_task(_watch(), name="playback-watch")

        def _stop():
            watcher.cancel()
            pygame.mixer.music.stop()
            pygame.mixer.music.unload()

        return _stop


# ── Capture ───────────────────────────────────────────────────────────

class AudioCapture(Protocol):
    """Host microphone capability for one capture attempt."""

    def start(self) -> None:
        """Open the microphone. Raises CapabilityAbsent without device/permission."""
        ...

    def stop(self) -> bytes:
        """Stop capturing, release the microphone and return WAV audio."""
        ...

    def abort(self) -> None:
        """Release the microphone and discard anything captured."""
        ...


class SoundDeviceCapture:
    """Records 16 kHz mono int16 audio with sounddevice."""

    def __init__(self, sample_rate: int = SAMPLE_RATE):
        self.sample_rate = sample_rate
        self._stream = None
        self._frames: list[bytes] = []

    def start(self) -> None:
        try:
            import sounddevice as sd
        except (ImportError, OSError) as e:
            raise CapabilityAbsent(f"Microphone capture unavailable: {e}") from e

        self._frames = []

        def _callback(indata, frames, time_info, status):
            self._frames.append(bytes(indata))

        try:
            self._stream = sd.RawInputStream(
                samplerate=self.sample_rate,
                channels=1,
                dtype="int16",
                callback=_callback,
            )
            self._stream.start()
        except Exception as e:
            self._stream = None
            raise CapabilityAbsent(f"Could not open microphone: {e}") from e

    def _close(self) -> None:
        if self._stream is not None:
            try:
                self._stream.stop()
                self._stream.close()
            finally:
                self._stream = None

    def stop(self) -> bytes:
        self._close()
        pcm = b"".join(self._frames)
        self._frames = []
        return pcm_to_wav(pcm, sample_rate=self.sample_rate)

    def abort(self) -> None:
        self._close()
        self._frames = []
