"""Exception hierarchy for nanobatch.

Errors fall into two families, and the split decides how far they travel:

- **Structural** errors (:class:`ConfigurationError`, :class:`PromptSetError`)
  abort a run before any task is scheduled. The CLI prints them and exits
  with status 1.
- **Per-task** errors (:class:`TaskError` subclasses) are caught by the job
  runner and turned into a failed ``TaskResult``. They never unwind past the
  runner, so sibling tasks keep going.

Every message is meant to be shown to the user as-is, so each one names the
specific cause (the missing reference, the unsupported key, and so on).
"""

from __future__ import annotations

from collections.abc import Sequence


class NanobatchError(Exception):
    """Base exception for all nanobatch errors."""

    pass


class ConfigurationError(NanobatchError):
    """Raised when run configuration is invalid or incomplete."""

    pass


class MissingCredentialError(ConfigurationError):
    """Raised when no API key is available in the environment.

    Attributes:
        env_vars: Environment variable names that were checked.
    """

    def __init__(self, env_vars: Sequence[str]):
        self.env_vars = list(env_vars)
        super().__init__(f"API key not found. Set one of: {', '.join(self.env_vars)}")


class PromptSetError(NanobatchError):
    """Raised when a batch input document cannot be used at all.

    Covers unparseable JSON, a non-array top level, a CSV without data rows,
    an unsupported file extension and an empty task list.
    """

    pass


class TaskError(NanobatchError):
    """Base class for failures scoped to a single task."""

    pass


class TaskRejectedError(TaskError):
    """Raised when a task record fails validation before scheduling."""

    pass


class UnsupportedModelError(TaskError):
    """Raised when a model key is not in the supported set.

    Attributes:
        model_key: The key that was requested.
        supported: Keys that would have been accepted.
    """

    def __init__(self, model_key: str, supported: Sequence[str]):
        self.model_key = model_key
        self.supported = list(supported)
        super().__init__(
            f"Unsupported model '{model_key}'. Supported models: {', '.join(self.supported)}"
        )


class ReferenceNotFoundError(TaskError):
    """Raised when a reference image cannot be located.

    Attributes:
        reference: The reference as written in the task.
        searched_paths: Every location that was searched, in order.
    """

    def __init__(self, reference: str, searched_paths: Sequence[str]):
        self.reference = reference
        self.searched_paths = list(searched_paths)
        searched = "\n".join(f"  - {path}" for path in self.searched_paths)
        super().__init__(f"Reference image not found: {reference}\nSearched:\n{searched}")


class NoImageGeneratedError(TaskError):
    """Raised when the API response carries no image part."""

    def __init__(self, detail: str | None = None):
        message = "No image generated"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class UnrecognizedImageDataError(TaskError):
    """Raised when an image part holds data that is neither bytes nor base64 text."""

    pass
