"""End-to-end workflows behind the ``generate``, ``edit`` and ``batch`` commands.

Each workflow wires the core components together:

    parser -> normalizer -> job runner (resolver, client, writer) -> reporter

The single-shot workflows treat every problem as fatal and raise; the batch
workflow raises only for structural problems and reports per-task failures
in its summary.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from .client import ImageGenerationClient
from .config import NanobatchConfig
from .errors import ConfigurationError, PromptSetError, TaskRejectedError, UnsupportedModelError
from .models import Diagnostic, RunSummary, TaskRecord, TaskResult
from .normalizer import (
    NormalizationDefaults,
    default_filename,
    normalize_task,
    normalize_tasks,
    resolve_model,
)
from .parser import load_prompt_set
from .reporter import ResultReporter
from .resolver import resolve_all
from .runner import GenerationJobRunner
from .writer import default_batch_output_dir, write_summary

logger = logging.getLogger(__name__)

DiagnosticCallback = Callable[[Diagnostic], None]


@dataclass
class BatchOutcome:
    """Everything a caller needs after a batch run."""

    summary: RunSummary
    output_dir: Path
    diagnostics: list[Diagnostic] = field(default_factory=list)
    summary_path: Path | None = None


def defaults_from_config(config: NanobatchConfig, model: str | None = None) -> NormalizationDefaults:
    """Build normalization defaults, optionally overriding the default model."""
    return NormalizationDefaults(
        model=model or config.default_model,
        resolution=config.default_resolution,
        aspect_ratio=config.default_aspect_ratio,
    )


async def generate_single(
    record: TaskRecord,
    client: ImageGenerationClient,
    config: NanobatchConfig,
    prefix: str = "generated",
    on_diagnostic: DiagnosticCallback | None = None,
) -> TaskResult:
    """Generate one image from a record built from command-line flags.

    Without an explicit filename the image goes to
    ``<outputs_dir>/<prefix>-<timestamp>.png``.

    Raises:
        TaskRejectedError: If the prompt is empty.
        UnsupportedModelError: If the model key is not supported.
        ReferenceNotFoundError: If a reference image cannot be found.

    Returns:
        The task result. Generation and write failures come back as a failed
        result rather than an exception.
    """
    if not record.filename:
        filename = str(config.outputs_dir / default_filename(0, single_shot=True, prefix=prefix))
        record = record.model_copy(update={"filename": filename})

    descriptor, diagnostics = normalize_task(
        record, 0, defaults_from_config(config), single_shot=True
    )
    _emit(diagnostics, on_diagnostic)

    # Fail before calling the API when a reference is missing.
    resolve_all(descriptor.reference_images, search_dirs=config.search_dirs)

    runner = GenerationJobRunner(
        client,
        concurrency=1,
        search_dirs=config.search_dirs,
        save_metadata=config.save_metadata,
    )
    return await runner.run_task(descriptor)


async def edit_images(
    images: Sequence[str],
    instruction: str,
    client: ImageGenerationClient,
    config: NanobatchConfig,
    output: str | None = None,
    model: str | None = None,
    aspect_ratio: str | None = None,
    resolution: str | None = None,
    on_diagnostic: DiagnosticCallback | None = None,
) -> TaskResult:
    """Edit or compose one or more input images following an instruction.

    Raises:
        TaskRejectedError: If no input image or no instruction is given.
        UnsupportedModelError: If the model key is not supported.
        ReferenceNotFoundError: If an input image cannot be found.
    """
    if not [image for image in images if image and image.strip()]:
        raise TaskRejectedError("at least one input image is required")

    record = TaskRecord(
        prompt=instruction,
        filename=output,
        model=model,
        aspect_ratio=aspect_ratio,
        resolution=resolution,
        reference_images=list(images),
    )
    return await generate_single(
        record, client, config, prefix="edited", on_diagnostic=on_diagnostic
    )


async def run_batch(
    input_path: str | Path,
    client: ImageGenerationClient,
    config: NanobatchConfig,
    output_dir: Path | None = None,
    parallel: int | None = None,
    model: str | None = None,
    reporter: ResultReporter | None = None,
    on_diagnostic: DiagnosticCallback | None = None,
    write_report: bool = True,
) -> BatchOutcome:
    """Run every task in a JSON or CSV batch document.

    Args:
        input_path: Batch document (.json or .csv).
        client: Image generation collaborator.
        config: Run configuration.
        output_dir: Destination directory (default: a timestamped directory
            under ``config.outputs_dir``).
        parallel: Tasks per chunk, clamped to [1, 10] (default: config).
        model: Default model key for tasks that do not name one.
        reporter: Receives results as they complete.
        on_diagnostic: Receives every warning before any task runs.
        write_report: Write ``summary.json`` into the output directory.

    Returns:
        The run outcome. Per-task failures are inside ``summary``.

    Raises:
        ConfigurationError: If the default model is not supported.
        PromptSetError: If the document is unusable or holds no tasks.
    """
    defaults = defaults_from_config(config, model)
    try:
        resolve_model(defaults.model)
    except UnsupportedModelError as e:
        raise ConfigurationError(f"Default model: {e}") from e

    parsed = load_prompt_set(input_path)
    if not parsed.records:
        raise PromptSetError(f"No tasks found in {input_path}")

    prepared, normalize_warnings = normalize_tasks(parsed.records, defaults)
    diagnostics = parsed.diagnostics + normalize_warnings
    _emit(diagnostics, on_diagnostic)

    if output_dir is None:
        output_dir = default_batch_output_dir(config.outputs_dir)
    output_dir = Path(output_dir)
    reporter = reporter or ResultReporter()
    if reporter.expected is None:
        reporter.expected = len(prepared)

    for task in prepared:
        if not task.is_valid:
            reporter.record(TaskResult.failed(task.index, task.output_filename, task.error))

    runnable = [task.descriptor for task in prepared if task.is_valid]
    runner = GenerationJobRunner(
        client,
        concurrency=parallel if parallel is not None else config.parallel,
        output_dir=output_dir,
        search_dirs=config.search_dirs,
        save_metadata=config.save_metadata,
    )
    logger.info(
        f"Running {len(runnable)} of {len(prepared)} tasks into {output_dir} "
        f"(parallel={runner.concurrency})"
    )
    await runner.run(runnable, on_result=reporter.record)

    summary = reporter.summary()
    summary_path = None
    if write_report:
        summary_path = write_summary(output_dir, summary, source=str(input_path))

    return BatchOutcome(
        summary=summary,
        output_dir=output_dir,
        diagnostics=diagnostics,
        summary_path=summary_path,
    )


def _emit(diagnostics: Sequence[Diagnostic], callback: DiagnosticCallback | None) -> None:
    for diagnostic in diagnostics:
        if callback is None:
            logger.warning(str(diagnostic))
        else:
            callback(diagnostic)
