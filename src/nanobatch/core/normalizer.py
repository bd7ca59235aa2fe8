"""Turn raw task records into validated task descriptors.

Validation rules differ by field:

- **prompt** - required. An empty prompt rejects the task.
- **model** - must be a supported key. An unknown key rejects the task and
  the error lists the supported keys; there is no silent substitution.
- **aspect_ratio** - unknown values fall back to ``square`` (1:1) with a
  warning; the task still runs.
- **resolution** - upper-cased, then checked against 1K/2K/4K. Unknown values
  fall back to 2K with a warning; the task still runs.

Warnings are returned as :class:`~nanobatch.core.models.Diagnostic` values so
the caller decides how to surface them.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from pathlib import PurePath

from .catalog import (
    ASPECT_RATIOS,
    DEFAULT_ASPECT_RATIO,
    DEFAULT_MODEL_KEY,
    DEFAULT_RESOLUTION,
    RESOLUTIONS,
    ModelSpec,
    lookup_model,
    supported_model_keys,
)
from .errors import TaskError, TaskRejectedError, UnsupportedModelError
from .models import Diagnostic, PreparedTask, TaskDescriptor, TaskRecord

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = ".png"

_UNSAFE_FILENAME_CHARS = re.compile(r'[<>:"|?*\x00-\x1f]')


@dataclass(frozen=True)
class NormalizationDefaults:
    """Run-level defaults applied to fields a task leaves unset."""

    model: str = DEFAULT_MODEL_KEY
    resolution: str = DEFAULT_RESOLUTION
    aspect_ratio: str = DEFAULT_ASPECT_RATIO


def resolve_model(key: str) -> ModelSpec:
    """Look up a model key.

    Raises:
        UnsupportedModelError: If the key is not supported.
    """
    spec = lookup_model(key)
    if spec is None:
        raise UnsupportedModelError(key, supported_model_keys())
    return spec


def resolve_aspect_ratio(value: str | None, index: int | None = None) -> tuple[str, Diagnostic | None]:
    """Map a symbolic or raw aspect ratio to a canonical ratio string.

    Returns:
        ``(ratio, diagnostic)`` where diagnostic is set when a fallback was used.
    """
    if value is None:
        return ASPECT_RATIOS[DEFAULT_ASPECT_RATIO], None

    ratio = ASPECT_RATIOS.get(value.strip().lower())
    if ratio is not None:
        return ratio, None

    fallback = ASPECT_RATIOS[DEFAULT_ASPECT_RATIO]
    return fallback, Diagnostic(
        message=f"Unknown aspect ratio '{value}', using {DEFAULT_ASPECT_RATIO} ({fallback})",
        task_index=index,
        field="aspect_ratio",
        substituted=fallback,
    )


def resolve_resolution(value: str | None, index: int | None = None) -> tuple[str, Diagnostic | None]:
    """Upper-case a resolution tier and check it against the supported set.

    Returns:
        ``(tier, diagnostic)`` where diagnostic is set when a fallback was used.
    """
    if value is None:
        return DEFAULT_RESOLUTION, None

    tier = value.strip().upper()
    if tier in RESOLUTIONS:
        return tier, None

    return DEFAULT_RESOLUTION, Diagnostic(
        message=(
            f"Unknown resolution '{value}', using {DEFAULT_RESOLUTION} "
            f"(supported: {', '.join(RESOLUTIONS)})"
        ),
        task_index=index,
        field="resolution",
        substituted=DEFAULT_RESOLUTION,
    )


def compose_prompt(prompt: str, style: str | None) -> str:
    """Append ``", <style> style"`` to a prompt when a style is given."""
    if style:
        return f"{prompt}, {style} style"
    return prompt


def default_filename(
    index: int,
    single_shot: bool = False,
    prefix: str = "generated",
    now: datetime | None = None,
) -> str:
    """Build the output filename used when a task does not name one.

    Batch tasks are numbered from 1 (``image-1.png``); single-shot runs use a
    prefix and a timestamp (``generated-20250101-120000.png``).
    """
    if single_shot:
        stamp = (now or datetime.now()).strftime("%Y%m%d-%H%M%S")
        return f"{prefix}-{stamp}{DEFAULT_EXTENSION}"
    return f"image-{index + 1}{DEFAULT_EXTENSION}"


def clean_filename(filename: str) -> str:
    """Make a batch output filename safe to join onto the output directory.

    Directory components are dropped, reserved characters are replaced and a
    ``.png`` extension is added when none is present. A ``.json`` extension
    is replaced with ``.png``.
    """
    name = PurePath(filename.replace("\\", "/")).name
    name = _UNSAFE_FILENAME_CHARS.sub("_", name).strip()
    if not name or name in {".", ".."}:
        return ""
    suffix = PurePath(name).suffix.lower()
    if not suffix:
        name += DEFAULT_EXTENSION
    elif suffix == ".json":
        # Reserved for metadata sidecars and the run report.
        name = PurePath(name).with_suffix(DEFAULT_EXTENSION).name
    return name


def output_filename_for(record: TaskRecord, index: int, single_shot: bool = False) -> str:
    """Return the filename a record will be reported and written under."""
    if record.filename:
        if single_shot:
            return record.filename
        cleaned = clean_filename(record.filename)
        if cleaned:
            return cleaned
    return default_filename(index, single_shot=single_shot)


def normalize_task(
    record: TaskRecord,
    index: int,
    defaults: NormalizationDefaults | None = None,
    single_shot: bool = False,
) -> tuple[TaskDescriptor, list[Diagnostic]]:
    """Validate one record and fill in defaults.

    Args:
        record: Raw task record.
        index: Zero-based position of the task in its batch.
        defaults: Run-level defaults for unset fields.
        single_shot: Use a timestamped default filename and keep the given
            output path untouched (the generate/edit commands).

    Returns:
        The descriptor and any warnings raised while normalizing it.

    Raises:
        TaskRejectedError: If the prompt is empty.
        UnsupportedModelError: If the model key is not supported.
    """
    defaults = defaults or NormalizationDefaults()

    if not record.prompt or not record.prompt.strip():
        raise TaskRejectedError("prompt is required")

    model = resolve_model(record.model or defaults.model)

    diagnostics: list[Diagnostic] = []
    aspect_ratio, warning = resolve_aspect_ratio(record.aspect_ratio or defaults.aspect_ratio, index)
    if warning:
        diagnostics.append(warning)
    resolution, warning = resolve_resolution(record.resolution or defaults.resolution, index)
    if warning:
        diagnostics.append(warning)

    if resolution != DEFAULT_RESOLUTION and not model.supports_image_size:
        logger.debug(f"Model {model.key} ignores resolution {resolution}")

    descriptor = TaskDescriptor(
        index=index,
        prompt=compose_prompt(record.prompt.strip(), record.style),
        output_filename=output_filename_for(record, index, single_shot=single_shot),
        model_key=model.key,
        model_id=model.model_id,
        resolution=resolution,
        aspect_ratio=aspect_ratio,
        style=record.style,
        reference_images=tuple(record.reference_images),
        supports_image_size=model.supports_image_size,
    )
    return descriptor, diagnostics


def normalize_tasks(
    records: Sequence[TaskRecord],
    defaults: NormalizationDefaults | None = None,
) -> tuple[list[PreparedTask], list[Diagnostic]]:
    """Normalize a batch of records without stopping at the first bad one.

    Rejected records become :class:`PreparedTask` entries carrying the error,
    so they are still reported in the run summary.

    Returns:
        ``(prepared, diagnostics)`` with one prepared entry per record, in
        input order.
    """
    prepared: list[PreparedTask] = []
    diagnostics: list[Diagnostic] = []

    for index, record in enumerate(records):
        filename = output_filename_for(record, index)
        try:
            descriptor, warnings = normalize_task(record, index, defaults)
        except TaskError as e:
            logger.info(f"Task {index + 1} ({filename}) rejected: {e}")
            prepared.append(PreparedTask(index=index, output_filename=filename, error=str(e)))
            continue

        diagnostics.extend(warnings)
        prepared.append(
            PreparedTask(index=index, output_filename=filename, descriptor=descriptor)
        )

    return prepared, diagnostics
