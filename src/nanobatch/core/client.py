"""Client for the external image-generation API.

The job runner only depends on the small :class:`ImageGenerationClient`
protocol: two async calls that return the parts of a response as
:class:`~nanobatch.core.models.ImageArtifact` values. :class:`GeminiImageClient`
implements it on top of the ``google-genai`` SDK; tests substitute a fake.

Generation Modes
----------------
- **text-only** (:meth:`generate_from_text`): prompt in, image out.
- **multi-image** (:meth:`generate_from_images`): reference images plus an
  instruction in, image out. Used for editing and composition.

Both modes send ``response_modalities=["IMAGE"]`` and an ``ImageConfig`` with
the aspect ratio. The resolution tier is only sent to models that accept it.

Usage Example
-------------
    from nanobatch.core.client import GeminiImageClient

    client = GeminiImageClient(api_key="...", timeout=120)
    parts = await client.generate_from_text(
        prompt="a lighthouse at dusk",
        model_id="gemini-2.5-flash-image",
        aspect_ratio="16:9",
        resolution="2K",
    )
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, Protocol

from google import genai
from google.genai import types

from .models import ImageArtifact

logger = logging.getLogger(__name__)


class ImageGenerationClient(Protocol):
    """Interface the job runner uses to talk to the generation service."""

    async def generate_from_text(
        self,
        prompt: str,
        model_id: str,
        aspect_ratio: str,
        resolution: str | None = None,
    ) -> list[ImageArtifact]: ...

    async def generate_from_images(
        self,
        prompt: str,
        images: Sequence[tuple[bytes, str]],
        model_id: str,
        aspect_ratio: str,
        resolution: str | None = None,
    ) -> list[ImageArtifact]: ...


class GeminiImageClient:
    """Gemini image generation through the async ``google-genai`` client.

    Attributes:
        timeout: Request timeout in seconds, applied by the SDK's HTTP layer.
    """

    def __init__(self, api_key: str, timeout: float = 120.0) -> None:
        """Create the SDK client.

        Args:
            api_key: Gemini API key.
            timeout: Request timeout in seconds.
        """
        self.timeout = timeout
        self._client = genai.Client(
            api_key=api_key,
            http_options=types.HttpOptions(timeout=int(timeout * 1000)),
        )

    async def generate_from_text(
        self,
        prompt: str,
        model_id: str,
        aspect_ratio: str,
        resolution: str | None = None,
    ) -> list[ImageArtifact]:
        """Generate an image from a prompt alone."""
        logger.debug(f"Text-to-image request: model={model_id}, ratio={aspect_ratio}")
        return await self._generate(model_id, [prompt], aspect_ratio, resolution)

    async def generate_from_images(
        self,
        prompt: str,
        images: Sequence[tuple[bytes, str]],
        model_id: str,
        aspect_ratio: str,
        resolution: str | None = None,
    ) -> list[ImageArtifact]:
        """Generate an image from reference images plus an instruction.

        Args:
            prompt: Instruction text, sent after the images.
            images: ``(data, mime_type)`` pairs in reference order.
            model_id: Gemini model identifier.
            aspect_ratio: Canonical ratio string.
            resolution: Resolution tier, or None to let the model decide.
        """
        logger.debug(
            f"Image+prompt request: model={model_id}, ratio={aspect_ratio}, images={len(images)}"
        )
        contents: list[Any] = [
            types.Part.from_bytes(data=data, mime_type=mime_type) for data, mime_type in images
        ]
        contents.append(prompt)
        return await self._generate(model_id, contents, aspect_ratio, resolution)

    async def _generate(
        self,
        model_id: str,
        contents: list[Any],
        aspect_ratio: str,
        resolution: str | None,
    ) -> list[ImageArtifact]:
        image_config = types.ImageConfig(aspect_ratio=aspect_ratio)
        if resolution:
            image_config = types.ImageConfig(aspect_ratio=aspect_ratio, image_size=resolution)

        response = await self._client.aio.models.generate_content(
            model=model_id,
            contents=contents,
            config=types.GenerateContentConfig(
                response_modalities=["IMAGE"],
                image_config=image_config,
            ),
        )
        return artifacts_from_response(response)


def artifacts_from_response(response: Any) -> list[ImageArtifact]:
    """Flatten a ``GenerateContentResponse`` into artifacts.

    Inline data parts keep their reported media type; text parts become
    ``text/plain`` artifacts so refusals and explanations can be surfaced.

    Args:
        response: SDK response object (only attribute access is used).

    Returns:
        Artifacts in response order; empty when the response has no parts.
    """
    artifacts: list[ImageArtifact] = []
    for candidate in getattr(response, "candidates", None) or []:
        content = getattr(candidate, "content", None)
        if not content:
            continue
        for part in getattr(content, "parts", None) or []:
            inline_data = getattr(part, "inline_data", None)
            if inline_data is not None and getattr(inline_data, "data", None):
                artifacts.append(
                    ImageArtifact(
                        mime_type=getattr(inline_data, "mime_type", None) or "",
                        data=inline_data.data,
                    )
                )
                continue
            text = getattr(part, "text", None)
            if text:
                artifacts.append(ImageArtifact(mime_type="text/plain", data=text))
    return artifacts
