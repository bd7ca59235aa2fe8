"""Closed enumerations shared by the normalizer, resolver and client.

Every symbolic value a task may carry (model key, aspect ratio, resolution
tier) is resolved against one of the tables in this module. Keeping them in
one place means the CLI help text, the error messages and the normalizer all
agree on what is supported.

Models
------
============  ================================  ===================
Key           Gemini model id                   Accepts image_size
============  ================================  ===================
``flash``     ``gemini-2.5-flash-image``        no
``pro``       ``gemini-3-pro-image-preview``    yes
============  ================================  ===================

``flash`` is the default: it is the fastest and cheapest tier.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePath


@dataclass(frozen=True)
class ModelSpec:
    """A supported image model.

    Attributes:
        key: Short symbolic name used on the command line and in batch files.
        model_id: Identifier passed to the Gemini API.
        description: One-line human description for help output.
        supports_image_size: Whether the model accepts the ``image_size``
            (resolution tier) option. Older models reject it.
    """

    key: str
    model_id: str
    description: str
    supports_image_size: bool = False


MODELS: dict[str, ModelSpec] = {
    "flash": ModelSpec(
        key="flash",
        model_id="gemini-2.5-flash-image",
        description="Fast, low-cost generation and editing",
    ),
    "pro": ModelSpec(
        key="pro",
        model_id="gemini-3-pro-image-preview",
        description="Highest quality, supports 1K/2K/4K output",
        supports_image_size=True,
    ),
}

DEFAULT_MODEL_KEY = "flash"

# Symbolic names first, then every raw ratio the API accepts.
ASPECT_RATIOS: dict[str, str] = {
    "square": "1:1",
    "portrait": "3:4",
    "landscape": "4:3",
    "wide": "16:9",
    "tall": "9:16",
    "ultrawide": "21:9",
    "1:1": "1:1",
    "2:3": "2:3",
    "3:2": "3:2",
    "3:4": "3:4",
    "4:3": "4:3",
    "4:5": "4:5",
    "5:4": "5:4",
    "9:16": "9:16",
    "16:9": "16:9",
    "21:9": "21:9",
}

DEFAULT_ASPECT_RATIO = "square"

RESOLUTIONS: tuple[str, ...] = ("1K", "2K", "4K")

DEFAULT_RESOLUTION = "2K"

# Conventional asset directories searched after the base directory, in order.
DEFAULT_SEARCH_DIRS: tuple[str, ...] = ("images", "uploads", "assets", "input")

MEDIA_TYPES: dict[str, str] = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
    ".gif": "image/gif",
    ".heic": "image/heic",
    ".heif": "image/heif",
}

FALLBACK_MEDIA_TYPE = "image/jpeg"

MIN_PARALLEL = 1
MAX_PARALLEL = 10


def supported_model_keys() -> list[str]:
    """Return the supported model keys in declaration order."""
    return list(MODELS.keys())


def lookup_model(key: str) -> ModelSpec | None:
    """Find a model by symbolic key or by its full Gemini model id.

    Matching is case-insensitive and ignores surrounding whitespace.

    Args:
        key: Model key (``"pro"``) or model id (``"gemini-3-pro-image-preview"``).

    Returns:
        The matching :class:`ModelSpec`, or ``None`` when unsupported.
    """
    wanted = key.strip().lower()
    if wanted in MODELS:
        return MODELS[wanted]
    for spec in MODELS.values():
        if spec.model_id == wanted:
            return spec
    return None


def media_type_for(filename: str) -> str:
    """Derive the media type of a file from its extension.

    Unknown extensions map to ``image/jpeg`` rather than failing, so reference
    images with odd extensions are still sent to the API.
    """
    return MEDIA_TYPES.get(PurePath(filename).suffix.lower(), FALLBACK_MEDIA_TYPE)
