"""Configuration management for nanobatch.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the NANOBATCH_ prefix,
allowing easy customization without code changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Values passed explicitly (the CLI passes its flags this way)
2. Environment variables (NANOBATCH_* prefix)
3. .env file in the working directory
4. Default values defined in NanobatchConfig

Example .env file:
    NANOBATCH_API_KEY=...
    NANOBATCH_DEFAULT_MODEL=flash
    NANOBATCH_PARALLEL=4
    NANOBATCH_OUTPUTS_DIR=outputs

API Credential
--------------
The API key is the only required setting. It is read from
``NANOBATCH_API_KEY`` and falls back to the variables the Gemini tooling
conventionally uses, ``GEMINI_API_KEY`` then ``GOOGLE_API_KEY``. The key is
optional at construction time so that configuration can be inspected without
one; commands call :meth:`NanobatchConfig.require_api_key` before scheduling
any work.

Usage Example
-------------
    from nanobatch.core.config import load_config

    cfg = load_config(parallel=5)
    print(cfg.default_model, cfg.parallel)
    api_key = cfg.require_api_key()
"""

from pathlib import Path

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .catalog import (
    DEFAULT_ASPECT_RATIO,
    DEFAULT_MODEL_KEY,
    DEFAULT_RESOLUTION,
    DEFAULT_SEARCH_DIRS,
    MAX_PARALLEL,
    MIN_PARALLEL,
)
from .errors import MissingCredentialError

API_KEY_ENV_VARS = ("NANOBATCH_API_KEY", "GEMINI_API_KEY", "GOOGLE_API_KEY")


class NanobatchConfig(BaseSettings):
    """Main configuration for nanobatch.

    Attributes
    ----------
    Credentials:
        api_key : str | None
            Gemini API key (NANOBATCH_API_KEY, GEMINI_API_KEY or GOOGLE_API_KEY)

    Task Defaults:
        default_model : str
            Model key used when a task does not name one
        default_resolution : str
            Resolution tier used when a task does not name one (1K, 2K, 4K)
        default_aspect_ratio : str
            Aspect ratio used when a task does not name one

    Execution:
        parallel : int
            Default batch parallelism, clamped to 1-10
        request_timeout : float
            Per-request timeout handed to the API client, in seconds
        save_metadata : bool
            Write a JSON sidecar next to every generated image

    Paths:
        outputs_dir : Path
            Base directory for generated images and batch runs
        search_dirs : list[str]
            Directories searched, in order, for relative reference images

    Notes
    -----
    - Unlike the defaults for a task, an unsupported default_model is a
      structural error; it is checked when a batch starts, not here.
    - Directories are not created on initialization; the output writer
      creates them when an image is first written.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="NANOBATCH_",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    # Credentials
    api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices(*API_KEY_ENV_VARS),
        description="Gemini API key",
    )

    # Task defaults
    default_model: str = Field(
        default=DEFAULT_MODEL_KEY,
        description="Model key used when a task does not specify one",
    )
    default_resolution: str = Field(
        default=DEFAULT_RESOLUTION,
        description="Resolution tier used when a task does not specify one",
    )
    default_aspect_ratio: str = Field(
        default=DEFAULT_ASPECT_RATIO,
        description="Aspect ratio used when a task does not specify one",
    )

    # Execution
    parallel: int = Field(
        default=3,
        description="Number of tasks run concurrently in a batch (clamped to 1-10)",
    )
    request_timeout: float = Field(
        default=120.0,
        description="Per-request API timeout in seconds",
        gt=0,
    )
    save_metadata: bool = Field(
        default=False,
        description="Write a .json metadata sidecar next to each image",
    )

    # Paths
    outputs_dir: Path = Field(
        default=Path("outputs"),
        description="Base directory for generated images",
    )
    search_dirs: list[str] = Field(
        default_factory=lambda: list(DEFAULT_SEARCH_DIRS),
        description="Directories searched for relative reference images",
    )

    @field_validator("parallel")
    @classmethod
    def _clamp_parallel(cls, value: int) -> int:
        return min(max(value, MIN_PARALLEL), MAX_PARALLEL)

    @field_validator("api_key")
    @classmethod
    def _blank_key_is_missing(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value

    def require_api_key(self) -> str:
        """Return the API key or fail before any work is attempted.

        Raises:
            MissingCredentialError: If no key was configured.
        """
        if not self.api_key:
            raise MissingCredentialError(API_KEY_ENV_VARS)
        return self.api_key


def load_config(**overrides) -> NanobatchConfig:
    """Build a configuration from the environment plus explicit overrides.

    ``None`` overrides are dropped so optional CLI flags fall through to the
    environment and defaults.

    Args:
        **overrides: Field values that take precedence over the environment.

    Returns:
        A fresh NanobatchConfig instance.
    """
    return NanobatchConfig(**{key: value for key, value in overrides.items() if value is not None})
