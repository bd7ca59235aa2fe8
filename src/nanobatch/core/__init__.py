"""Core functionality for batch image generation.

This module provides the core components for nanobatch:

- **parser**: JSON and CSV batch documents to raw task records
- **normalizer**: Raw records to validated task descriptors, with defaults
- **resolver**: Reference image lookup across conventional asset directories
- **runner**: Chunked, bounded-parallel task execution
- **reporter**: Live progress and the end-of-run summary
- **writer**: Atomic image writes, metadata sidecars and run reports
- **client**: The Gemini image API behind a small async protocol
- **NanobatchConfig**: Configuration management using Pydantic Settings

Architecture Overview
---------------------
A batch flows through the components in one direction:

1. **Input Layer** (parser.py, normalizer.py):
   - Header synonyms and field aliases collapse to one record shape
   - Unknown aspect ratios and resolutions fall back with a warning
   - Empty prompts and unknown models reject the task, not the run

2. **Execution Layer** (runner.py, resolver.py, client.py):
   - Tasks run in consecutive chunks of at most 10 concurrent calls
   - Any failure inside a task becomes a failed result

3. **Output Layer** (writer.py, reporter.py):
   - Images are written atomically; reports are aggregated under a lock

Usage Example
-------------
    import asyncio

    from nanobatch.core import GeminiImageClient, load_config, run_batch

    cfg = load_config()
    client = GeminiImageClient(api_key=cfg.require_api_key())
    outcome = asyncio.run(run_batch("prompts.json", client, cfg, parallel=4))
    print(outcome.summary.succeeded_count, outcome.summary.failed_count)

See Also
--------
- GenerationJobRunner: Scheduling and per-task pipeline
- NanobatchConfig: Configuration options and environment variables
"""

from nanobatch.core.client import GeminiImageClient, ImageGenerationClient
from nanobatch.core.config import NanobatchConfig, load_config
from nanobatch.core.models import RunSummary, TaskDescriptor, TaskRecord, TaskResult
from nanobatch.core.reporter import ResultReporter
from nanobatch.core.runner import GenerationJobRunner
from nanobatch.core.workflows import BatchOutcome, edit_images, generate_single, run_batch

__all__ = [
    "BatchOutcome",
    "GeminiImageClient",
    "GenerationJobRunner",
    "ImageGenerationClient",
    "NanobatchConfig",
    "ResultReporter",
    "RunSummary",
    "TaskDescriptor",
    "TaskRecord",
    "TaskResult",
    "edit_images",
    "generate_single",
    "load_config",
    "run_batch",
]
