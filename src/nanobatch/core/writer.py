"""Persist generated images, metadata sidecars and run reports.

Images are written atomically: bytes go to a temporary file in the target
directory, which is then renamed over the destination. A run killed mid-write
leaves either the previous file or nothing, never a truncated image. An
existing file at the destination is overwritten without warning.

Sidecar Format
--------------
With metadata enabled, ``image-1.png`` gets an ``image-1.json`` next to it::

    {
      "prompt": "a red circle, watercolor style",
      "model": "flash",
      "model_id": "gemini-2.5-flash-image",
      "aspect_ratio": "1:1",
      "resolution": "2K",
      "reference_images": [],
      "width": 1024,
      "height": 1024,
      "timestamp": "2025-01-01T12:00:00",
      "image_path": "outputs/batch-20250101-120000/image-1.png"
    }
"""

from __future__ import annotations

import io
import json
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any

from PIL import Image, UnidentifiedImageError

from .models import RunSummary, TaskDescriptor

logger = logging.getLogger(__name__)

SUMMARY_FILENAME = "summary.json"


def write_image(path: str | Path, data: bytes) -> Path:
    """Write image bytes to ``path``, creating parent directories.

    Args:
        path: Destination file path.
        data: Encoded image bytes.

    Returns:
        The destination path.

    Raises:
        OSError: Permission, disk-full and similar failures propagate; there
            is no retry.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise

    logger.info(f"Image saved to: {path}")
    return path


def image_dimensions(data: bytes) -> tuple[int, int] | None:
    """Return ``(width, height)`` of encoded image bytes, or None if undecodable."""
    try:
        with Image.open(io.BytesIO(data)) as image:
            return image.size
    except (UnidentifiedImageError, OSError):
        return None


def write_metadata(
    image_path: str | Path,
    descriptor: TaskDescriptor,
    data: bytes | None = None,
) -> Path:
    """Write a JSON sidecar describing how an image was produced.

    The sidecar is ``<stem>.json``, or ``<name>.json`` when that would
    replace the image itself or the run report.

    Args:
        image_path: Path the image was saved to.
        descriptor: Task that produced the image.
        data: Image bytes, used to record the actual dimensions.

    Returns:
        Path of the sidecar file.
    """
    image_path = Path(image_path)
    metadata: dict[str, Any] = {
        "prompt": descriptor.prompt,
        "model": descriptor.model_key,
        "model_id": descriptor.model_id,
        "aspect_ratio": descriptor.aspect_ratio,
        "resolution": descriptor.resolution,
        "style": descriptor.style,
        "reference_images": list(descriptor.reference_images),
    }

    if data is not None:
        size = image_dimensions(data)
        if size:
            metadata["width"], metadata["height"] = size

    metadata["timestamp"] = datetime.now().isoformat(timespec="seconds")
    metadata["image_path"] = str(image_path)

    json_path = image_path.with_suffix(".json")
    if json_path == image_path or json_path.name == SUMMARY_FILENAME:
        json_path = image_path.with_name(f"{image_path.name}.json")
    with open(json_path, "w", encoding="utf-8") as f:
        json.dump(metadata, f, indent=2, ensure_ascii=False)

    logger.info(f"Saved metadata to: {json_path}")
    return json_path


def write_summary(output_dir: str | Path, summary: RunSummary, source: str | None = None) -> Path:
    """Write the batch report ``summary.json`` into the output directory."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    report = {"source": source, "finished_at": datetime.now().isoformat(timespec="seconds")}
    report.update(summary.to_dict())

    path = output_dir / SUMMARY_FILENAME
    with open(path, "w", encoding="utf-8") as f:
        json.dump(report, f, indent=2, ensure_ascii=False)

    logger.info(f"Saved run summary to: {path}")
    return path


def default_batch_output_dir(outputs_dir: str | Path, now: datetime | None = None) -> Path:
    """Return ``<outputs_dir>/batch-<YYYYmmdd-HHMMSS>`` for a new batch run."""
    stamp = (now or datetime.now()).strftime("%Y%m%d-%H%M%S")
    return Path(outputs_dir) / f"batch-{stamp}"
