"""Locate reference images on disk.

A reference is either an absolute path, which is checked as-is, or a relative
path, which is tried against the base directory first and then against each
conventional asset directory in declared order::

    ./<ref>
    ./images/<ref>
    ./uploads/<ref>
    ./assets/<ref>
    ./input/<ref>

The first existing file wins. Nothing is opened or read here; the resolver
only checks existence so the caller can decide whether a miss is fatal.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from pathlib import Path

from .catalog import DEFAULT_SEARCH_DIRS, media_type_for
from .errors import ReferenceNotFoundError
from .models import ResolvedReference

logger = logging.getLogger(__name__)


def candidate_paths(
    reference: str,
    base_dir: Path | None = None,
    search_dirs: Sequence[str] = DEFAULT_SEARCH_DIRS,
) -> list[Path]:
    """List every path that would be checked for a reference, in order.

    Args:
        reference: Reference as written by the user.
        base_dir: Directory relative references start from (default: cwd).
        search_dirs: Conventional asset directories tried after ``base_dir``.

    Returns:
        Ordered candidate paths. A single entry for absolute references.
    """
    ref_path = Path(reference)
    try:
        ref_path = ref_path.expanduser()
    except RuntimeError:
        # Unknown user or no home directory; try the path as written.
        logger.debug(f"Could not expand user in reference {reference!r}")
    if ref_path.is_absolute():
        return [ref_path]

    base = Path(base_dir) if base_dir is not None else Path.cwd()
    candidates = [base / ref_path]
    candidates.extend(base / directory / ref_path for directory in search_dirs)
    return candidates


def resolve_reference(
    reference: str,
    base_dir: Path | None = None,
    search_dirs: Sequence[str] = DEFAULT_SEARCH_DIRS,
) -> ResolvedReference:
    """Find the first existing file for a reference.

    Args:
        reference: Reference as written by the user.
        base_dir: Directory relative references start from (default: cwd).
        search_dirs: Conventional asset directories tried after ``base_dir``.

    Returns:
        A ResolvedReference. ``found_path`` is None when nothing matched;
        ``searched_paths`` lists every candidate either way.
    """
    searched: list[str] = []
    found: str | None = None

    for candidate in candidate_paths(reference, base_dir, search_dirs):
        searched.append(str(candidate))
        if candidate.is_file():
            found = str(candidate.resolve())
            break

    if found:
        logger.debug(f"Resolved reference {reference!r} -> {found}")
    else:
        logger.debug(f"Reference {reference!r} not found after {len(searched)} candidates")

    return ResolvedReference(
        reference=reference,
        searched_paths=tuple(searched),
        content_type=media_type_for(reference),
        found_path=found,
    )


def resolve_all(
    references: Iterable[str],
    base_dir: Path | None = None,
    search_dirs: Sequence[str] = DEFAULT_SEARCH_DIRS,
) -> list[ResolvedReference]:
    """Resolve several references, failing on the first one that is missing.

    Raises:
        ReferenceNotFoundError: Naming the missing reference and every
            location searched for it.
    """
    resolved = []
    for reference in references:
        result = resolve_reference(reference, base_dir, search_dirs)
        if not result.found:
            raise ReferenceNotFoundError(reference, result.searched_paths)
        resolved.append(result)
    return resolved
