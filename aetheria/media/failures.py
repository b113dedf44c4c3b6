"""Failure taxonomy shared by the media pipelines and the session controller.

Provider SDKs do not agree on how they report quota exhaustion or missing
credentials, so classification looks at structured signals first
(our own ``kind``, exception class names, HTTP status codes, error bodies)
and only then falls back to matching the message text.
"""

import logging

from ..enums import FailureKind

logger = logging.getLogger(__name__)


class AetheriaError(Exception):
    """Base class for all errors raised by this package."""

    kind: FailureKind = FailureKind.UNKNOWN


class InputRejected(AetheriaError):
    """Empty or otherwise unusable player input; no service was called."""

    kind = FailureKind.INPUT


class PipelineError(AetheriaError):
    """A single tier (or a whole pipeline) failed with a known cause."""

    def __init__(self, message: str, kind: FailureKind = FailureKind.UNKNOWN):
        super().__init__(message)
        self.kind = kind


class CapabilityAbsent(PipelineError):
    """The engine, device, model or credentials for a tier do not exist."""

    def __init__(self, message: str):
        super().__init__(message, FailureKind.CAPABILITY_ABSENT)


class VoiceUnavailable(PipelineError):
    """Every speech synthesis tier declined or failed."""

    def __init__(self, message: str = "No narration voice is available"):
        super().__init__(message, FailureKind.CAPABILITY_ABSENT)


class RecognitionUnavailable(PipelineError):
    """Every speech recognition tier declined or failed."""

    def __init__(self, message: str = "No speech recognition is available"):
        super().__init__(message, FailureKind.CAPABILITY_ABSENT)


class GenerationFailed(AetheriaError):
    """The narrative generator could not produce a scene."""

    def __init__(self, message: str, kind: FailureKind = FailureKind.UNKNOWN):
        super().__init__(message)
        self.kind = kind


class MalformedGeneration(GenerationFailed):
    """Generation output is missing required structured fields."""

    def __init__(self, message: str):
        super().__init__(message, FailureKind.MALFORMED)


# ── Classification ────────────────────────────────────────────────────

_QUOTA_CLASSES = {"RateLimitError", "ResourceExhausted", "OverloadedError"}
_ACCESS_CLASSES = {"AuthenticationError", "PermissionDeniedError", "PermissionDenied", "Unauthenticated"}
_TRANSIENT_CLASSES = {
    "APIConnectionError", "APITimeoutError", "ConnectError", "ConnectTimeout",
    "ReadTimeout", "ServiceUnavailable", "InternalServerError", "TimeoutError",
    "ConnectionError",
}

_QUOTA_STATUS = {429, 529}
_ACCESS_STATUS = {401, 403}
_TRANSIENT_STATUS = {408, 500, 502, 503, 504}

_QUOTA_MARKERS = ("429", "quota", "rate limit", "rate_limit", "resource_exhausted", "resource exhausted")
_ACCESS_MARKERS = (
    "api key", "api_key", "permission denied", "permission_denied",
    "unauthenticated", "unauthorized", "401", "403",
)
_CAPABILITY_MARKERS = ("not found", "not supported", "no module named", "unsupported", "404")
_TRANSIENT_MARKERS = ("timeout", "timed out", "connection", "unavailable", "503", "500", "502", "504")


def _status_of(exc: Exception) -> int | None:
    for attr in ("status_code", "code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    return None


def classify_failure(exc: BaseException) -> FailureKind:
    """Map an exception from any provider onto the shared failure taxonomy."""
    kind = getattr(exc, "kind", None)
    if isinstance(kind, FailureKind) and kind != FailureKind.UNKNOWN:
        return kind

    if isinstance(exc, (ImportError, ModuleNotFoundError)):
        return FailureKind.CAPABILITY_ABSENT

    cls_name = type(exc).__name__
    if cls_name in _QUOTA_CLASSES:
        return FailureKind.QUOTA
    if cls_name in _ACCESS_CLASSES:
        return FailureKind.ACCESS
    if cls_name in _TRANSIENT_CLASSES:
        return FailureKind.TRANSIENT

    status = _status_of(exc)
    if status in _QUOTA_STATUS:
        return FailureKind.QUOTA
    if status in _ACCESS_STATUS:
        return FailureKind.ACCESS
    if status in _TRANSIENT_STATUS:
        return FailureKind.TRANSIENT
    if status == 404:
        return FailureKind.CAPABILITY_ABSENT

    # Anthropic wraps errors as dict-like bodies
    body = getattr(exc, "body", None)
    if isinstance(body, dict):
        err_type = (body.get("error") or {}).get("type", "")
        if err_type in ("overloaded_error", "rate_limit_error"):
            return FailureKind.QUOTA
        if err_type in ("authentication_error", "permission_error"):
            return FailureKind.ACCESS

    # Last resort: the provider only told us in prose
    text = str(exc).lower()
    if any(marker in text for marker in _QUOTA_MARKERS):
        return FailureKind.QUOTA
    if any(marker in text for marker in _ACCESS_MARKERS):
        return FailureKind.ACCESS
    if any(marker in text for marker in _CAPABILITY_MARKERS):
        return FailureKind.CAPABILITY_ABSENT
    if any(marker in text for marker in _TRANSIENT_MARKERS):
        return FailureKind.TRANSIENT

    return FailureKind.UNKNOWN
