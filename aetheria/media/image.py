"""Scene illustration with tiered fallback.

Tier order: primary image model, secondary (cheaper) image model, then a
deterministic placeholder keyed by the prompt. Only quota exhaustion or an
absent capability moves on to the sibling model; any other failure goes
straight to the placeholder. ``synthesize`` never raises.
"""

import base64
import hashlib
import logging
from typing import Protocol

from ..enums import SILENT_FALLBACK, FailureKind
from .base import GoogleTier, first_inline_part
from .failures import MalformedGeneration, classify_failure

logger = logging.getLogger(__name__)

DEFAULT_ART_STYLE = "Cinematic digital art, high fantasy style, detailed lighting"
DEFAULT_ASPECT_RATIO = "16:9"
PLACEHOLDER_URL = "https://picsum.photos/seed/{seed}/1200/675"


class ImageTier(Protocol):
    """One ranked image provider."""

    name: str
    cloud: bool

    async def generate(self, prompt: str, aspect_ratio: str) -> str:
        """Return an image reference (data URI or URL) or raise."""
        ...


def placeholder_url(prompt: str) -> str:
    """Stable placeholder reference: the same prompt always yields the same URL."""
    seed = hashlib.sha256(prompt.encode("utf-8")).hexdigest()[:16]
    return PLACEHOLDER_URL.format(seed=seed)


class GeminiImageTier(GoogleTier):
    """Image generation through a Gemini image model."""

    def __init__(self, model: str, api_key: str | None = None, client=None):
        super().__init__(api_key=api_key, client=client)
        self.model = model
        self.name = model

    async def generate(self, prompt: str, aspect_ratio: str = DEFAULT_ASPECT_RATIO) -> str:
        self._ensure_client()

        def _generate():
            from google.genai import types
            return self._client.models.generate_content(
                model=self.model,
                contents=[prompt],
                config=types.GenerateContentConfig(
                    response_modalities=["IMAGE", "TEXT"],
                    image_config=types.ImageConfig(aspect_ratio=aspect_ratio),
                ),
            )

        response = await self._run(_generate)

        inline = first_inline_part(response)
        if inline is None:
            raise MalformedGeneration(f"No image in response from {self.model}")

        data = inline.data
        if isinstance(data, bytes):
            data = base64.b64encode(data).decode("ascii")
        mime = getattr(inline, "mime_type", None) or "image/png"
        return f"data:{mime};base64,{data}"


class ImagePipeline:
    """Ordered image tiers behind one ``synthesize`` call."""

    def __init__(
        self,
        tiers: list[ImageTier],
        art_style: str = DEFAULT_ART_STYLE,
        aspect_ratio: str = DEFAULT_ASPECT_RATIO,
        cloud_allowed=lambda: True,
        on_access_denied=None,
    ):
        """
        Args:
            tiers: Real image tiers, best first. The placeholder is implicit.
            art_style: Prefix prepended to every prompt.
            aspect_ratio: Requested aspect ratio.
            cloud_allowed: Callable reporting whether cloud tiers may be used.
            on_access_denied: Called when a tier reports rejected credentials.
        """
        self.tiers = list(tiers)
        self.art_style = art_style
        self.aspect_ratio = aspect_ratio
        self.cloud_allowed = cloud_allowed
        self.on_access_denied = on_access_denied

    def _styled(self, prompt: str) -> str:
        if not self.art_style:
            return prompt
        return f"{self.art_style}: {prompt}"

    async def synthesize(self, prompt: str) -> str:
        """Resolve an illustration for ``prompt``. Always returns a usable reference."""
        styled = self._styled(prompt)

        for tier in self.tiers:
            if getattr(tier, "cloud", False) and not self.cloud_allowed():
                logger.debug(f"Skipping cloud image tier {tier.name}: no access")
                continue
            try:
                ref = await tier.generate(styled, self.aspect_ratio)
                logger.info(f"Illustration resolved by {tier.name}")
                return ref
            except Exception as e:
                kind = classify_failure(e)
                if kind in SILENT_FALLBACK:
                    logger.debug(f"Image tier {tier.name} unavailable ({kind}), trying next tier")
                    continue
                if kind == FailureKind.ACCESS and self.on_access_denied:
                    self.on_access_denied()
                logger.warning(f"Image tier {tier.name} failed ({kind}): {e}; using placeholder")
                break

        return placeholder_url(prompt)
