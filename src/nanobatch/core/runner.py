"""Bounded-parallel execution of generation tasks.

Scheduling
----------
Tasks are split into consecutive chunks of ``concurrency`` tasks. All tasks
in a chunk run concurrently on the event loop, and the next chunk starts only
after every task in the current one has finished::

    concurrency=3, 7 tasks:   [t1 t2 t3] -> [t4 t5 t6] -> [t7]

Peak concurrency is therefore exactly the configured limit, and total run
time is roughly the sum of the slowest task in each chunk. A fast task does
not let the next chunk start early.

Per-Task Pipeline
-----------------
1. Resolve every reference image (a miss fails the task, naming the
   reference and every path searched).
2. Read the reference bytes.
3. Call the multi-image mode when references exist, text-only otherwise.
4. Take the first artifact with an ``image/*`` media type.
5. Decode it (raw bytes, or base64 text with an optional data-URL header).
6. Write it atomically, plus an optional metadata sidecar.

Any exception raised along the way becomes a failed ``TaskResult``; it never
reaches sibling tasks or later chunks.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import time
from collections.abc import Callable, Iterator, Sequence
from pathlib import Path
from typing import Any, TypeVar

from .catalog import DEFAULT_SEARCH_DIRS, MAX_PARALLEL, MIN_PARALLEL
from .client import ImageGenerationClient
from .errors import NoImageGeneratedError, TaskError, UnrecognizedImageDataError
from .models import ImageArtifact, TaskDescriptor, TaskResult
from .resolver import resolve_all
from .writer import write_image, write_metadata

logger = logging.getLogger(__name__)

T = TypeVar("T")

ResultCallback = Callable[[TaskResult], None]


def clamp_concurrency(requested: int) -> int:
    """Clamp a requested parallelism to the inclusive range [1, 10]."""
    return min(max(requested, MIN_PARALLEL), MAX_PARALLEL)


def chunked(items: Sequence[T], size: int) -> Iterator[list[T]]:
    """Yield consecutive slices of ``size`` items; the last may be shorter."""
    if size < 1:
        raise ValueError(f"Chunk size must be at least 1, got {size}")
    for start in range(0, len(items), size):
        yield list(items[start : start + size])


def extract_image(artifacts: Sequence[ImageArtifact]) -> ImageArtifact:
    """Return the first artifact whose media type is an image.

    Raises:
        NoImageGeneratedError: If there is none. Any text the API returned
            instead (a refusal, for example) is included in the message.
    """
    for artifact in artifacts:
        if artifact.is_image:
            return artifact

    text = " ".join(
        str(artifact.data).strip()
        for artifact in artifacts
        if artifact.mime_type == "text/plain" and artifact.data
    )
    raise NoImageGeneratedError(text[:300] if text else None)


def decode_image_data(data: Any) -> bytes:
    """Turn an artifact payload into raw image bytes.

    Bytes pass through unchanged. Strings are base64-decoded after stripping
    an optional ``data:<type>;base64,`` prefix.

    Raises:
        UnrecognizedImageDataError: If the payload is neither, or the base64
            text is malformed.
    """
    if isinstance(data, (bytes, bytearray, memoryview)):
        return bytes(data)

    if isinstance(data, str):
        payload = data.strip()
        if payload.startswith("data:"):
            _, _, payload = payload.partition(",")
        payload = "".join(payload.split())
        try:
            return base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise UnrecognizedImageDataError(f"Image data is not valid base64: {e}") from e

    raise UnrecognizedImageDataError(
        f"Unrecognized image data format: {type(data).__name__}"
    )


class GenerationJobRunner:
    """Run task descriptors in fixed-size concurrent chunks.

    Attributes:
        client: Image generation collaborator.
        concurrency: Effective chunk size, already clamped to [1, 10].
        output_dir: Directory output filenames are joined onto; ``None``
            means filenames are used as paths (single-shot commands).
        base_dir: Directory relative references start from (default: cwd).
        search_dirs: Asset directories searched for relative references.
        save_metadata: Write a JSON sidecar next to each image.
    """

    def __init__(
        self,
        client: ImageGenerationClient,
        concurrency: int = 3,
        output_dir: Path | None = None,
        base_dir: Path | None = None,
        search_dirs: Sequence[str] = DEFAULT_SEARCH_DIRS,
        save_metadata: bool = False,
    ) -> None:
        self.client = client
        self.concurrency = clamp_concurrency(concurrency)
        self.output_dir = Path(output_dir) if output_dir is not None else None
        self.base_dir = base_dir
        self.search_dirs = tuple(search_dirs)
        self.save_metadata = save_metadata

        if self.concurrency != concurrency:
            logger.info(f"Parallelism {concurrency} clamped to {self.concurrency}")

    async def run(
        self,
        tasks: Sequence[TaskDescriptor],
        on_result: ResultCallback | None = None,
    ) -> list[TaskResult]:
        """Execute every task, chunk by chunk.

        Args:
            tasks: Validated tasks, in submission order.
            on_result: Called once per task as it completes.

        Returns:
            One result per task, in completion order.
        """
        results: list[TaskResult] = []
        chunks = list(chunked(tasks, self.concurrency))

        for number, chunk in enumerate(chunks, start=1):
            logger.info(f"Starting chunk {number}/{len(chunks)} ({len(chunk)} tasks)")

            async def run_and_collect(descriptor: TaskDescriptor) -> None:
                result = await self.run_task(descriptor)
                results.append(result)
                if on_result is not None:
                    on_result(result)

            await asyncio.gather(*(run_and_collect(descriptor) for descriptor in chunk))

        return results

    async def run_task(self, descriptor: TaskDescriptor) -> TaskResult:
        """Execute one task, converting any failure into a failed result."""
        started = time.monotonic()
        logger.info(f"Task {descriptor.index + 1}: generating {descriptor.output_filename}")

        try:
            output_path = await self._execute(descriptor)
        except Exception as e:
            elapsed = time.monotonic() - started
            logger.warning(f"Task {descriptor.index + 1} ({descriptor.output_filename}) failed: {e}")
            logger.debug("Task failure details", exc_info=True)
            return TaskResult.failed(
                descriptor.index, descriptor.output_filename, _describe(e), elapsed
            )

        elapsed = time.monotonic() - started
        return TaskResult.succeeded(
            descriptor.index, descriptor.output_filename, str(output_path), elapsed
        )

    def output_path_for(self, descriptor: TaskDescriptor) -> Path:
        """Return where a task's image is written."""
        if self.output_dir is None:
            return Path(descriptor.output_filename)
        return self.output_dir / descriptor.output_filename

    async def _execute(self, descriptor: TaskDescriptor) -> Path:
        resolution = descriptor.resolution if descriptor.supports_image_size else None

        if descriptor.has_references:
            references = resolve_all(descriptor.reference_images, self.base_dir, self.search_dirs)
            images = []
            for reference in references:
                data = await asyncio.to_thread(Path(reference.found_path).read_bytes)
                images.append((data, reference.content_type))

            artifacts = await self.client.generate_from_images(
                prompt=descriptor.prompt,
                images=images,
                model_id=descriptor.model_id,
                aspect_ratio=descriptor.aspect_ratio,
                resolution=resolution,
            )
        else:
            artifacts = await self.client.generate_from_text(
                prompt=descriptor.prompt,
                model_id=descriptor.model_id,
                aspect_ratio=descriptor.aspect_ratio,
                resolution=resolution,
            )

        image_bytes = decode_image_data(extract_image(artifacts).data)
        output_path = await asyncio.to_thread(
            write_image, self.output_path_for(descriptor), image_bytes
        )

        if self.save_metadata:
            await asyncio.to_thread(write_metadata, output_path, descriptor, image_bytes)

        return output_path


def _describe(error: Exception) -> str:
    message = str(error).strip()
    if isinstance(error, TaskError):
        return message
    if not message:
        return type(error).__name__
    return f"{type(error).__name__}: {message}"
