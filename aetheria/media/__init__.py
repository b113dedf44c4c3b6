"""Tiered media pipelines (image, narration, voice input) and their facade."""

from .facade import MediaFacade, build_default
from .failures import (
    AetheriaError,
    CapabilityAbsent,
    GenerationFailed,
    InputRejected,
    MalformedGeneration,
    PipelineError,
    RecognitionUnavailable,
    VoiceUnavailable,
    classify_failure,
)
from .image import ImagePipeline
from .recognition import RecognitionPipeline
from .speech import SpeechPipeline

__all__ = [
    "AetheriaError",
    "CapabilityAbsent",
    "GenerationFailed",
    "ImagePipeline",
    "InputRejected",
    "MalformedGeneration",
    "MediaFacade",
    "PipelineError",
    "RecognitionPipeline",
    "RecognitionUnavailable",
    "SpeechPipeline",
    "VoiceUnavailable",
    "build_default",
    "classify_failure",
]
