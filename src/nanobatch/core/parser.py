"""Parse batch input documents into task records.

Two formats are supported, selected by file extension:

**JSON** - an array of objects::

    [
      {"prompt": "a red circle", "filename": "circle.png", "aspectRatio": "wide"},
      {"prompt": "a blue square", "model": "pro", "images": ["ref.png"]}
    ]

**CSV** - a header row followed by data rows::

    prompt,filename,aspect_ratio,images
    "a red circle, on white",circle.png,wide,
    a blue square,square.png,square,ref1.png|ref2.png

Header spellings are case-insensitive and several synonyms map to each field
(``aspectratio``, ``aspect_ratio`` and ``aspect-ratio`` are the same column).
The reference-images cell is a pipe-separated list.

The two formats differ in one respect: CSV rows with an empty prompt are
dropped silently, while JSON records with an empty prompt are kept and fail
later, in the normalizer, as per-task errors.

Parsing is pure. Warnings (ignored columns) are returned as
:class:`~nanobatch.core.models.Diagnostic` values, never printed.
"""

from __future__ import annotations

import csv
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from pydantic import ValidationError

from .errors import PromptSetError
from .models import Diagnostic, TaskRecord, split_reference_list

logger = logging.getLogger(__name__)

PromptSetFormat = Literal["json", "csv"]

FORMAT_BY_EXTENSION: dict[str, PromptSetFormat] = {
    ".json": "json",
    ".csv": "csv",
}

# Canonical field -> every accepted header spelling (compared lower-cased).
_HEADER_SYNONYMS: dict[str, tuple[str, ...]] = {
    "prompt": ("prompt", "text", "description"),
    "filename": (
        "filename",
        "file",
        "output",
        "output_filename",
        "outputfilename",
        "output-filename",
    ),
    "model": ("model", "modelkey", "model_key", "model-key"),
    "resolution": ("resolution", "size", "image_size"),
    "aspect_ratio": ("aspectratio", "aspect_ratio", "aspect-ratio", "aspect ratio", "ratio"),
    "style": ("style",),
    "reference_images": (
        "images",
        "referenceimages",
        "reference_images",
        "reference-images",
        "refs",
        "references",
    ),
}

HEADER_FIELDS: dict[str, str] = {
    spelling: canonical
    for canonical, spellings in _HEADER_SYNONYMS.items()
    for spelling in spellings
}


@dataclass
class ParsedPromptSet:
    """Records parsed from one document plus any warnings raised on the way."""

    records: list[TaskRecord] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.records)


def detect_format(path: str | Path) -> PromptSetFormat:
    """Pick the document format from the file extension.

    Raises:
        PromptSetError: For any extension other than .json or .csv.
    """
    suffix = Path(path).suffix.lower()
    try:
        return FORMAT_BY_EXTENSION[suffix]
    except KeyError:
        supported = ", ".join(sorted(FORMAT_BY_EXTENSION))
        raise PromptSetError(
            f"Unsupported input format '{suffix or Path(path).name}'. Use one of: {supported}"
        ) from None


def parse_prompt_set(text: str, fmt: PromptSetFormat) -> ParsedPromptSet:
    """Parse document text in the given format.

    Args:
        text: Full document contents.
        fmt: ``"json"`` or ``"csv"``.

    Returns:
        Parsed records and diagnostics.

    Raises:
        PromptSetError: If the document is structurally unusable.
    """
    if fmt == "json":
        return parse_json(text)
    if fmt == "csv":
        return parse_csv(text)
    raise PromptSetError(f"Unsupported input format '{fmt}'")


def load_prompt_set(path: str | Path) -> ParsedPromptSet:
    """Read and parse a batch document from disk.

    Raises:
        PromptSetError: If the file is missing, unreadable, has an unsupported
            extension or cannot be parsed.
    """
    path = Path(path)
    fmt = detect_format(path)

    if not path.is_file():
        raise PromptSetError(f"Input file not found: {path}")

    try:
        text = path.read_text(encoding="utf-8-sig")
    except (OSError, UnicodeDecodeError) as e:
        raise PromptSetError(f"Could not read input file {path}: {e}") from e

    parsed = parse_prompt_set(text, fmt)
    logger.info(f"Parsed {len(parsed)} task records from {path} ({fmt})")
    return parsed


def parse_json(text: str) -> ParsedPromptSet:
    """Parse a JSON array of task objects.

    Empty prompts are kept; they are rejected per task by the normalizer.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise PromptSetError(f"Invalid JSON: {e}") from e

    if not isinstance(data, list):
        raise PromptSetError(
            f"JSON input must be an array of task objects, got {type(data).__name__}"
        )

    records = []
    for index, item in enumerate(data):
        if not isinstance(item, dict):
            raise PromptSetError(
                f"JSON item {index + 1} must be an object, got {type(item).__name__}"
            )
        records.append(_build_record(item, index))

    return ParsedPromptSet(records=records)


def parse_csv(text: str) -> ParsedPromptSet:
    """Parse a CSV table with a header row.

    Rows with an empty prompt are dropped. Quoted cells may contain commas.
    """
    lines = [line for line in text.splitlines() if line.strip()]
    if len(lines) < 2:
        raise PromptSetError("CSV input needs a header row and at least one data row")

    rows = list(csv.reader(lines, skipinitialspace=True))
    header, data_rows = rows[0], rows[1:]

    columns: list[str | None] = []
    diagnostics: list[Diagnostic] = []
    for name in header:
        canonical = HEADER_FIELDS.get(name.strip().lower())
        columns.append(canonical)
        if canonical is None and name.strip():
            diagnostics.append(Diagnostic(message=f"Ignoring unknown CSV column '{name.strip()}'"))

    if "prompt" not in columns:
        raise PromptSetError("CSV header must include a 'prompt' column")

    records = []
    dropped = 0
    for row_number, row in enumerate(data_rows, start=2):
        raw: dict[str, object] = {}
        for canonical, cell in zip(columns, row):
            if canonical is None or canonical in raw:
                continue
            value = cell.strip()
            if canonical == "reference_images":
                raw[canonical] = split_reference_list(value)
            elif value:
                raw[canonical] = value

        if not raw.get("prompt"):
            dropped += 1
            continue

        records.append(_build_record(raw, row_number - 2, label=f"CSV row {row_number}"))

    if dropped:
        logger.debug(f"Dropped {dropped} CSV rows with an empty prompt")

    return ParsedPromptSet(records=records, diagnostics=diagnostics)


def _build_record(raw: dict, index: int, label: str | None = None) -> TaskRecord:
    try:
        return TaskRecord.model_validate(raw)
    except ValidationError as e:
        where = label or f"JSON item {index + 1}"
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise PromptSetError(f"{where} is invalid: {problems}") from e
