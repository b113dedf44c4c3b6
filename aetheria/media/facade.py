"""Media facade: the three pipelines behind one cloud-access flag."""

import logging
from collections.abc import Callable

from .audio import AudioCapture, AudioOutput, PygameOutput, SoundDeviceCapture
from .image import GeminiImageTier, ImagePipeline
from .recognition import GeminiTranscriber, RecognitionPipeline, WhisperRecognizer
from .speech import EdgeVoiceTier, GeminiVoiceTier, SpeechPipeline

logger = logging.getLogger(__name__)


class MediaFacade:
    """Owns the image, speech and recognition pipelines.

    The capability probe runs once at construction and again whenever a tier
    reports an access failure; cloud tiers are offered only while it says yes.
    """

    def __init__(
        self,
        images: ImagePipeline,
        speech: SpeechPipeline,
        recognition: RecognitionPipeline,
        probe: Callable[[], bool] | None = None,
    ):
        self.images = images
        self.speech = speech
        self.recognition = recognition
        self._probe = probe
        self.cloud_access = False
        self.refresh_access()

        for pipeline in (images, speech, recognition):
            pipeline.cloud_allowed = self._cloud_allowed
            pipeline.on_access_denied = self.refresh_access

    def _cloud_allowed(self) -> bool:
        return self.cloud_access

    def refresh_access(self) -> bool:
        """Re-run the capability probe; no probe means cloud is assumed available."""
        previous = self.cloud_access
        if self._probe is None:
            self.cloud_access = True
        else:
            try:
                self.cloud_access = bool(self._probe())
            except Exception as e:
                logger.warning(f"Capability probe failed: {e}")
                self.cloud_access = False
        if previous != self.cloud_access:
            logger.info(f"Cloud media access {'available' if self.cloud_access else 'unavailable'}")
        return self.cloud_access

    # Convenience passthroughs used by the controller

    async def illustrate(self, prompt: str) -> str:
        return await self.images.synthesize(prompt)

    @property
    def speaking(self) -> bool:
        return self.speech.speaking

    @property
    def listening(self) -> bool:
        return self.recognition.listening


def build_default(
    output: AudioOutput | None = None,
    capture_factory: Callable[[], AudioCapture] | None = None,
    probe: Callable[[], bool] | None = None,
) -> MediaFacade:
    """Wire the production tiers from Config."""
    from ..config import Config

    images = ImagePipeline(
        tiers=[
            GeminiImageTier(Config.IMAGE_MODEL),
            GeminiImageTier(Config.IMAGE_FALLBACK_MODEL),
        ],
    )
    speech = SpeechPipeline(
        tiers=[GeminiVoiceTier(Config.TTS_MODEL), EdgeVoiceTier()],
        output=output or PygameOutput(),
    )
    recognition = RecognitionPipeline(
        transcriber=GeminiTranscriber(Config.TRANSCRIBE_MODEL),
        local=WhisperRecognizer(model_size=Config.WHISPER_SIZE),
        capture_factory=capture_factory or SoundDeviceCapture,
        max_listen_seconds=Config.MAX_LISTEN_SECONDS,
    )
    return MediaFacade(
        images=images,
        speech=speech,
        recognition=recognition,
        probe=probe or Config.has_cloud_access,
    )
