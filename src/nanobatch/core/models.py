"""Data models for tasks, results and run summaries.

Raw input records are pydantic models so that JSON objects and CSV rows are
validated and coerced into one canonical shape. Everything produced after
normalization is a plain (mostly frozen) dataclass owned by a single run.

Lifecycle
---------
``TaskRecord`` (parsed input) → ``TaskDescriptor`` (validated work) →
``TaskResult`` (outcome) → ``RunSummary`` (aggregate).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


def split_reference_list(value: str) -> list[str]:
    """Split a pipe-separated reference cell, discarding blank segments."""
    return [segment.strip() for segment in value.split("|") if segment.strip()]


class TaskRecord(BaseModel):
    """One raw task as read from a batch document or the command line.

    Every field except ``prompt`` is optional. ``reference_images`` always
    ends up as a (possibly empty) list no matter whether the source gave a
    list, a single path or a pipe-separated string.

    Attributes:
        prompt: Prompt text. May be empty here; the normalizer rejects it.
        filename: Requested output filename.
        model: Requested model key.
        resolution: Requested resolution tier.
        aspect_ratio: Requested aspect ratio (symbolic or raw ratio).
        style: Style appended to the prompt.
        reference_images: Ordered reference image paths.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    prompt: str = ""
    filename: str | None = Field(
        default=None,
        validation_alias=AliasChoices("filename", "outputFilename", "output_filename", "output"),
    )
    model: str | None = Field(
        default=None,
        validation_alias=AliasChoices("model", "modelKey", "model_key"),
    )
    resolution: str | None = Field(
        default=None,
        validation_alias=AliasChoices("resolution", "size", "image_size"),
    )
    aspect_ratio: str | None = Field(
        default=None,
        validation_alias=AliasChoices("aspect_ratio", "aspectRatio", "aspect-ratio", "aspectratio"),
    )
    style: str | None = None
    reference_images: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices(
            "reference_images", "referenceImages", "referenceImagePaths", "images", "refs"
        ),
    )

    @field_validator("prompt", mode="before")
    @classmethod
    def _coerce_prompt(cls, value: Any) -> Any:
        if value is None:
            return ""
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("filename", "model", "resolution", "aspect_ratio", "style", mode="before")
    @classmethod
    def _coerce_optional_text(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            value = str(value)
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @field_validator("reference_images", mode="before")
    @classmethod
    def _coerce_reference_list(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return split_reference_list(value)
        if isinstance(value, (list, tuple)):
            return [str(item).strip() for item in value if item is not None and str(item).strip()]
        return value


@dataclass(frozen=True)
class Diagnostic:
    """A non-fatal warning produced while parsing or normalizing.

    Attributes:
        message: Human-readable warning text.
        task_index: Zero-based position of the affected task, if any.
        field: Name of the affected field, if any.
        substituted: Value used instead of the rejected one, if any.
    """

    message: str
    task_index: int | None = None
    field: str | None = None
    substituted: str | None = None

    def __str__(self) -> str:
        if self.task_index is None:
            return self.message
        return f"Task {self.task_index + 1}: {self.message}"


@dataclass(frozen=True)
class TaskDescriptor:
    """A validated unit of image-generation work.

    Attributes:
        index: Zero-based position in the batch (0 for single-shot runs).
        prompt: Final prompt text, style suffix included.
        output_filename: Filename (or path) the image is written to.
        model_key: Symbolic model key.
        model_id: Gemini model identifier sent to the API.
        resolution: Resolution tier (1K, 2K or 4K).
        aspect_ratio: Canonical ratio string such as ``"16:9"``.
        style: Style as given, kept for metadata.
        reference_images: Ordered reference image paths.
        supports_image_size: Whether the resolution tier is sent to the API.
    """

    index: int
    prompt: str
    output_filename: str
    model_key: str
    model_id: str
    resolution: str
    aspect_ratio: str
    style: str | None = None
    reference_images: tuple[str, ...] = ()
    supports_image_size: bool = False

    @property
    def has_references(self) -> bool:
        return bool(self.reference_images)


@dataclass(frozen=True)
class PreparedTask:
    """Outcome of normalizing one record: a descriptor or a rejection.

    Exactly one of ``descriptor`` and ``error`` is set. ``output_filename``
    is always set so a rejected task can still be reported by name.
    """

    index: int
    output_filename: str
    descriptor: TaskDescriptor | None = None
    error: str | None = None

    @property
    def is_valid(self) -> bool:
        return self.descriptor is not None


@dataclass(frozen=True)
class TaskResult:
    """Immutable outcome of one task.

    Attributes:
        index: Zero-based position of the task in its batch.
        output_filename: Filename used for the task, even when it failed.
        success: Whether an image was written.
        error_message: Cause of failure; set if and only if ``success`` is False.
        output_path: Where the image was written, on success.
        elapsed_seconds: Wall time spent on the task.
    """

    index: int
    output_filename: str
    success: bool
    error_message: str | None = None
    output_path: str | None = None
    elapsed_seconds: float = 0.0

    def __post_init__(self) -> None:
        if self.success and self.error_message is not None:
            raise ValueError("A successful TaskResult cannot carry an error message")
        if not self.success and not self.error_message:
            raise ValueError("A failed TaskResult requires an error message")

    @classmethod
    def succeeded(
        cls, index: int, output_filename: str, output_path: str, elapsed_seconds: float = 0.0
    ) -> TaskResult:
        return cls(
            index=index,
            output_filename=output_filename,
            success=True,
            output_path=output_path,
            elapsed_seconds=elapsed_seconds,
        )

    @classmethod
    def failed(
        cls, index: int, output_filename: str, error_message: str, elapsed_seconds: float = 0.0
    ) -> TaskResult:
        return cls(
            index=index,
            output_filename=output_filename,
            success=False,
            error_message=error_message,
            elapsed_seconds=elapsed_seconds,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "output_filename": self.output_filename,
            "success": self.success,
            "error_message": self.error_message,
            "output_path": self.output_path,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
        }


@dataclass(frozen=True)
class ResolvedReference:
    """Result of looking up a reference image on disk.

    ``searched_paths`` is populated whether or not the file was found, so a
    miss can be reported with every location that was tried.
    """

    reference: str
    searched_paths: tuple[str, ...]
    content_type: str
    found_path: str | None = None

    @property
    def found(self) -> bool:
        return self.found_path is not None


@dataclass(frozen=True)
class ImageArtifact:
    """One part of an API response.

    Attributes:
        mime_type: Media type reported by the API (``image/png``, ``text/plain``...).
        data: Raw bytes, or base64 text optionally prefixed with a data-URL header.
    """

    mime_type: str
    data: Any

    @property
    def is_image(self) -> bool:
        return self.mime_type.lower().startswith("image/")


@dataclass
class RunSummary:
    """Aggregate outcome of a run.

    ``results`` is in completion order, which is not input order once tasks
    run concurrently.
    """

    results: list[TaskResult] = field(default_factory=list)

    @property
    def total_count(self) -> int:
        return len(self.results)

    @property
    def succeeded_count(self) -> int:
        return sum(1 for result in self.results if result.success)

    @property
    def failed_count(self) -> int:
        return sum(1 for result in self.results if not result.success)

    @property
    def failures(self) -> list[TaskResult]:
        return [result for result in self.results if not result.success]

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total_count,
            "succeeded": self.succeeded_count,
            "failed": self.failed_count,
            "results": [result.to_dict() for result in self.results],
        }
