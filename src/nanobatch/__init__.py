"""Nanobatch - Bounded-parallel image generation and editing with Gemini models."""

__version__ = "0.1.0"

from nanobatch.core.config import NanobatchConfig, load_config
from nanobatch.core.errors import NanobatchError
from nanobatch.core.runner import GenerationJobRunner
from nanobatch.core.workflows import edit_images, generate_single, run_batch

__all__ = [
    "GenerationJobRunner",
    "NanobatchConfig",
    "NanobatchError",
    "edit_images",
    "generate_single",
    "load_config",
    "run_batch",
]
