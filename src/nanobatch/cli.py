"""Command-line interface for nanobatch.

Commands
--------
``generate``  Generate one image from a prompt, optionally guided by
              reference images.
``edit``      Edit or compose one or more input images with an instruction.
``batch``     Run every task in a JSON or CSV document with bounded
              parallelism.
``models``    List supported models, aspect ratios and resolutions.

Exit Codes
----------
``generate`` and ``edit`` exit 1 on any failure. ``batch`` exits 0 once the
run completes, even when some tasks failed, and 1 only when the run could
not start (bad document, empty task list, missing API key, unsupported
default model).

Usage
-----
::

    export GEMINI_API_KEY=...
    nanobatch generate -p "a lighthouse at dusk" -a wide -o lighthouse.png
    nanobatch edit -i photo.jpg -p "make it snow"
    nanobatch batch -f prompts.csv -j 4 -m pro
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from nanobatch import __version__
from nanobatch.core.catalog import ASPECT_RATIOS, MODELS, RESOLUTIONS
from nanobatch.core.client import GeminiImageClient, ImageGenerationClient
from nanobatch.core.config import NanobatchConfig, load_config
from nanobatch.core.errors import NanobatchError
from nanobatch.core.models import Diagnostic, TaskRecord, TaskResult
from nanobatch.core.reporter import ResultReporter
from nanobatch.core.workflows import edit_images, generate_single, run_batch

logger = logging.getLogger(__name__)

app = typer.Typer(
    help="Generate, edit and batch-produce images with Gemini image models.",
    no_args_is_help=True,
    pretty_exceptions_show_locals=False,
    rich_markup_mode="rich",
    add_completion=False,
)
console = Console()
err_console = Console(stderr=True)


def create_client(config: NanobatchConfig) -> ImageGenerationClient:
    """Build the API client. Fails if no API key is configured."""
    logger.debug(f"Creating Gemini client (timeout={config.request_timeout}s)")
    return GeminiImageClient(api_key=config.require_api_key(), timeout=config.request_timeout)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    if not verbose:
        # The SDK's HTTP stack is chatty at INFO.
        logging.getLogger("httpx").setLevel(logging.WARNING)


def _fail(message: str) -> typer.Exit:
    err_console.print(f"[bold red]Error:[/bold red] {escape(message)}")
    return typer.Exit(code=1)


def _warn(diagnostic: Diagnostic) -> None:
    err_console.print(f"[yellow]Warning:[/yellow] {escape(str(diagnostic))}")


def _load_config(**overrides) -> NanobatchConfig:
    try:
        return load_config(**overrides)
    except ValidationError as e:
        raise _fail(f"Invalid configuration: {e}") from e


def _report_single(result: TaskResult) -> None:
    if result.success:
        console.print(f"[green]✅ Image saved to {escape(result.output_path or '')}[/green]")
        return
    raise _fail(result.error_message or "Generation failed")


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"nanobatch {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
) -> None:
    """Generate, edit and batch-produce images with Gemini image models."""
    _configure_logging(verbose)


@app.command()
def generate(
    prompt: Optional[str] = typer.Option(None, "--prompt", "-p", help="Prompt text (required)."),
    image: Optional[list[str]] = typer.Option(
        None, "--image", "-i", help="Reference image path. Repeat for several."
    ),
    output: Optional[str] = typer.Option(
        None, "--output", "-o", help="Output path (default: outputs/generated-<timestamp>.png)."
    ),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model key (flash, pro)."),
    resolution: Optional[str] = typer.Option(
        None, "--resolution", "-r", help="Resolution tier: 1K, 2K or 4K."
    ),
    aspect_ratio: Optional[str] = typer.Option(
        None, "--aspect-ratio", "-a", help="square, portrait, landscape, wide, tall or W:H."
    ),
    style: Optional[str] = typer.Option(None, "--style", "-s", help="Style appended to the prompt."),
    save_metadata: bool = typer.Option(
        False, "--save-metadata", help="Write a JSON sidecar next to the image."
    ),
) -> None:
    """Generate a single image from a prompt."""
    if not prompt or not prompt.strip():
        raise _fail("--prompt is required")

    config = _load_config(save_metadata=save_metadata or None)
    record = TaskRecord(
        prompt=prompt,
        filename=output,
        model=model,
        resolution=resolution,
        aspect_ratio=aspect_ratio,
        style=style,
        reference_images=image or [],
    )

    try:
        client = create_client(config)
        result = asyncio.run(generate_single(record, client, config, on_diagnostic=_warn))
    except NanobatchError as e:
        raise _fail(str(e)) from e

    _report_single(result)


@app.command()
def edit(
    image: Optional[list[str]] = typer.Option(
        None, "--image", "-i", help="Input image path (required). Repeat for several."
    ),
    instruction: Optional[str] = typer.Option(
        None, "--instruction", "--prompt", "-p", help="Editing instruction (required)."
    ),
    output: Optional[str] = typer.Option(
        None, "--output", "-o", help="Output path (default: outputs/edited-<timestamp>.png)."
    ),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model key (flash, pro)."),
    aspect_ratio: Optional[str] = typer.Option(
        None, "--aspect-ratio", "-a", help="Aspect ratio override."
    ),
    resolution: Optional[str] = typer.Option(
        None, "--resolution", "-r", help="Resolution override: 1K, 2K or 4K."
    ),
    save_metadata: bool = typer.Option(
        False, "--save-metadata", help="Write a JSON sidecar next to the image."
    ),
) -> None:
    """Edit or combine existing images following an instruction."""
    if not image:
        raise _fail("at least one --image is required")
    if not instruction or not instruction.strip():
        raise _fail("--instruction is required")

    config = _load_config(save_metadata=save_metadata or None)

    try:
        client = create_client(config)
        result = asyncio.run(
            edit_images(
                image,
                instruction,
                client,
                config,
                output=output,
                model=model,
                aspect_ratio=aspect_ratio,
                resolution=resolution,
                on_diagnostic=_warn,
            )
        )
    except NanobatchError as e:
        raise _fail(str(e)) from e

    _report_single(result)


@app.command()
def batch(
    input_file: Optional[Path] = typer.Option(
        None, "--input", "-f", help="Batch document, .json or .csv (required)."
    ),
    output_dir: Optional[Path] = typer.Option(
        None, "--output-dir", "-o", help="Output directory (default: outputs/batch-<timestamp>)."
    ),
    parallel: Optional[int] = typer.Option(
        None, "--parallel", "-j", help="Tasks run at once, clamped to 1-10 (default: 3)."
    ),
    model: Optional[str] = typer.Option(
        None, "--model", "-m", help="Default model for tasks that do not set one (default: flash)."
    ),
    save_metadata: bool = typer.Option(
        False, "--save-metadata", help="Write a JSON sidecar next to each image."
    ),
    summary_file: bool = typer.Option(
        True, "--summary-file/--no-summary-file", help="Write summary.json to the output directory."
    ),
) -> None:
    """Run every prompt in a JSON or CSV file."""
    if input_file is None:
        raise _fail("--input is required")

    config = _load_config(save_metadata=save_metadata or None)

    try:
        client = create_client(config)
        reporter = ResultReporter(console=console)
        console.print(f"[bold]Processing[/bold] {escape(str(input_file))}")
        outcome = asyncio.run(
            run_batch(
                input_file,
                client,
                config,
                output_dir=output_dir,
                parallel=parallel,
                model=model,
                reporter=reporter,
                on_diagnostic=_warn,
                write_report=summary_file,
            )
        )
    except NanobatchError as e:
        raise _fail(str(e)) from e

    reporter.print_summary()
    console.print(f"Output directory: {escape(str(outcome.output_dir))}")


@app.command("models")
def list_models() -> None:
    """List supported models, aspect ratios and resolutions."""
    table = Table(title="Models")
    table.add_column("Key")
    table.add_column("Model id")
    table.add_column("Resolutions")
    table.add_column("Description")
    for spec in MODELS.values():
        tiers = ", ".join(RESOLUTIONS) if spec.supports_image_size else "model default"
        table.add_row(spec.key, spec.model_id, tiers, spec.description)
    console.print(table)

    symbolic = [f"{name} ({ratio})" for name, ratio in ASPECT_RATIOS.items() if name != ratio]
    raw = [name for name, ratio in ASPECT_RATIOS.items() if name == ratio]
    console.print(f"Aspect ratios: {', '.join(symbolic)}", soft_wrap=True)
    console.print(f"Raw ratios: {', '.join(raw)}", soft_wrap=True)


if __name__ == "__main__":
    app()
