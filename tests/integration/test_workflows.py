"""Integration tests for the generate, edit and batch workflows.

These run the whole pipeline (parser, normalizer, runner, writer, reporter)
against the fake client and a temporary directory.
"""

import asyncio
import json
from pathlib import Path

import pytest

from nanobatch.core.errors import (
    ConfigurationError,
    PromptSetError,
    ReferenceNotFoundError,
    TaskRejectedError,
    UnsupportedModelError,
)
from nanobatch.core.models import TaskRecord
from nanobatch.core.reporter import ResultReporter
from nanobatch.core.workflows import edit_images, generate_single, run_batch


def write_json(path: Path, tasks) -> Path:
    path.write_text(json.dumps(tasks), encoding="utf-8")
    return path


class TestBatchEndToEnd:
    """A mixed JSON batch produces one result per record."""

    def test_mixed_json_batch(self, temp_dir: Path, test_config, fake_client):
        input_path = write_json(
            temp_dir / "tasks.json",
            [
                {"prompt": "a red circle", "filename": "circle.png"},
                {"prompt": "", "filename": "empty.png"},
                {"prompt": "a square", "model": "bogus-model"},
            ],
        )
        output_dir = temp_dir / "run"

        outcome = asyncio.run(
            run_batch(input_path, fake_client, test_config, output_dir=output_dir)
        )
        summary = outcome.summary
        by_index = {r.index: r for r in summary.results}

        assert summary.total_count == 3
        assert summary.succeeded_count == 1
        assert summary.failed_count == 2

        assert by_index[0].success
        assert (output_dir / "circle.png").exists()

        assert by_index[1].error_message == "prompt is required"
        assert by_index[1].output_filename == "empty.png"

        assert "bogus-model" in by_index[2].error_message
        assert "flash, pro" in by_index[2].error_message

        # Only the valid task reached the API.
        assert [call["prompt"] for call in fake_client.calls] == ["a red circle"]

    def test_summary_report_written(self, temp_dir: Path, test_config, fake_client):
        input_path = write_json(temp_dir / "tasks.json", [{"prompt": "one"}, {"prompt": "two"}])

        outcome = asyncio.run(
            run_batch(input_path, fake_client, test_config, output_dir=temp_dir / "run")
        )

        assert outcome.summary_path == temp_dir / "run" / "summary.json"
        report = json.loads(outcome.summary_path.read_text(encoding="utf-8"))
        assert report["total"] == 2
        assert report["succeeded"] == 2
        assert report["source"] == str(input_path)

    def test_summary_report_optional(self, temp_dir: Path, test_config, fake_client):
        input_path = write_json(temp_dir / "tasks.json", [{"prompt": "one"}])
        outcome = asyncio.run(
            run_batch(
                input_path, fake_client, test_config, output_dir=temp_dir / "run",
                write_report=False,
            )
        )
        assert outcome.summary_path is None
        assert not (temp_dir / "run" / "summary.json").exists()

    def test_json_filename_keeps_report_and_image(self, temp_dir: Path, test_config, fake_client):
        """A task named summary.json does not clash with the run report."""
        test_config.save_metadata = True
        input_path = write_json(
            temp_dir / "tasks.json", [{"prompt": "one", "filename": "summary.json"}]
        )
        output_dir = temp_dir / "run"

        outcome = asyncio.run(run_batch(input_path, fake_client, test_config, output_dir=output_dir))

        result = outcome.summary.results[0]
        assert result.output_filename == "summary.png"
        assert (output_dir / "summary.png").read_bytes().startswith(b"\x89PNG")
        report = json.loads((output_dir / "summary.json").read_text(encoding="utf-8"))
        assert report["total"] == 1
        sidecar = json.loads((output_dir / "summary.png.json").read_text(encoding="utf-8"))
        assert sidecar["prompt"] == "one"

    def test_default_output_dir(self, temp_dir: Path, test_config, fake_client):
        """Without an output directory a timestamped one is created."""
        input_path = write_json(temp_dir / "tasks.json", [{"prompt": "one"}])

        outcome = asyncio.run(run_batch(input_path, fake_client, test_config))

        assert outcome.output_dir.parent == test_config.outputs_dir
        assert outcome.output_dir.name.startswith("batch-")
        assert (outcome.output_dir / "image-1.png").exists()

    def test_csv_batch_with_references(self, work_dir: Path, test_config, fake_client, png_bytes):
        """Relative references resolve against the working directory."""
        temp_dir = work_dir
        (temp_dir / "images").mkdir()
        (temp_dir / "images" / "ref.png").write_bytes(png_bytes)
        input_path = temp_dir / "tasks.csv"
        input_path.write_text(
            "prompt,filename,aspect ratio,images,notes\n"
            '"a cat, sleeping",cat.png,wide,,x\n'
            ",skipped.png,,,\n"
            "restyle it,restyled.png,huge,ref.png,y\n",
            encoding="utf-8",
        )
        test_config.search_dirs = ["images"]
        diagnostics = []

        outcome = asyncio.run(
            run_batch(
                input_path, fake_client, test_config, output_dir=temp_dir / "run",
                on_diagnostic=diagnostics.append,
            )
        )

        assert outcome.summary.total_count == 2
        assert outcome.summary.succeeded_count == 2
        messages = [str(d) for d in diagnostics]
        assert any("notes" in m for m in messages)
        assert any("huge" in m for m in messages)
        assert outcome.diagnostics == diagnostics

        calls = {call["prompt"]: call for call in fake_client.calls}
        assert calls["a cat, sleeping"]["aspect_ratio"] == "16:9"
        assert calls["restyle it"]["mode"] == "images"
        assert calls["restyle it"]["aspect_ratio"] == "1:1"

    def test_parallel_is_clamped(self, temp_dir: Path, test_config, fake_client_factory):
        client = fake_client_factory(delay=0.005)
        input_path = write_json(temp_dir / "tasks.json", [{"prompt": f"p{i}"} for i in range(12)])

        outcome = asyncio.run(
            run_batch(input_path, client, test_config, output_dir=temp_dir / "run", parallel=50)
        )

        assert outcome.summary.succeeded_count == 12
        assert client.peak == 10

    def test_batch_model_override(self, temp_dir: Path, test_config, fake_client):
        input_path = write_json(
            temp_dir / "tasks.json", [{"prompt": "one"}, {"prompt": "two", "model": "flash"}]
        )
        asyncio.run(
            run_batch(input_path, fake_client, test_config, output_dir=temp_dir / "run", model="pro")
        )
        models = {call["prompt"]: call["model_id"] for call in fake_client.calls}
        assert models == {"one": "gemini-3-pro-image-preview", "two": "gemini-2.5-flash-image"}

    def test_reporter_receives_every_result(self, temp_dir: Path, test_config, fake_client):
        input_path = write_json(temp_dir / "tasks.json", [{"prompt": "one"}, {"prompt": ""}])
        reporter = ResultReporter()

        asyncio.run(
            run_batch(
                input_path, fake_client, test_config, output_dir=temp_dir / "run",
                reporter=reporter,
            )
        )

        assert reporter.expected == 2
        assert reporter.succeeded_count == 1
        assert reporter.failed_count == 1


class TestBatchStructuralErrors:
    """Problems that abort the run before any task is scheduled."""

    def test_empty_task_list(self, temp_dir: Path, test_config, fake_client):
        input_path = write_json(temp_dir / "tasks.json", [])
        with pytest.raises(PromptSetError, match="No tasks found"):
            asyncio.run(run_batch(input_path, fake_client, test_config))

    def test_csv_with_only_empty_prompts(self, temp_dir: Path, test_config, fake_client):
        input_path = temp_dir / "tasks.csv"
        input_path.write_text("prompt,filename\n,a.png\n", encoding="utf-8")
        with pytest.raises(PromptSetError, match="No tasks found"):
            asyncio.run(run_batch(input_path, fake_client, test_config))

    def test_unsupported_default_model(self, temp_dir: Path, test_config, fake_client):
        input_path = write_json(temp_dir / "tasks.json", [{"prompt": "one"}])
        with pytest.raises(ConfigurationError, match="bogus"):
            asyncio.run(run_batch(input_path, fake_client, test_config, model="bogus"))
        assert fake_client.calls == []

    def test_invalid_json(self, temp_dir: Path, test_config, fake_client):
        input_path = temp_dir / "tasks.json"
        input_path.write_text("{not json", encoding="utf-8")
        with pytest.raises(PromptSetError):
            asyncio.run(run_batch(input_path, fake_client, test_config))


class TestGenerateSingle:
    """The single-shot generate workflow."""

    def test_default_output_path(self, test_config, fake_client):
        result = asyncio.run(generate_single(TaskRecord(prompt="a fox"), fake_client, test_config))

        assert result.success
        output = Path(result.output_path)
        assert output.parent == test_config.outputs_dir
        assert output.name.startswith("generated-")
        assert output.suffix == ".png"

    def test_explicit_output_path(self, temp_dir: Path, test_config, fake_client):
        target = temp_dir / "custom" / "fox.png"
        record = TaskRecord(prompt="a fox", filename=str(target), style="pixel art")

        result = asyncio.run(generate_single(record, fake_client, test_config))

        assert result.output_path == str(target)
        assert fake_client.calls[0]["prompt"] == "a fox, pixel art style"

    def test_missing_reference_fails_before_api(self, work_dir: Path, test_config, fake_client):
        record = TaskRecord(prompt="a fox", reference_images=["missing.png"])
        with pytest.raises(ReferenceNotFoundError, match="missing.png"):
            asyncio.run(generate_single(record, fake_client, test_config))
        assert fake_client.calls == []

    def test_unsupported_model(self, test_config, fake_client):
        record = TaskRecord(prompt="a fox", model="bogus-model")
        with pytest.raises(UnsupportedModelError):
            asyncio.run(generate_single(record, fake_client, test_config))

    def test_api_failure_returns_failed_result(self, test_config, fake_client_factory):
        client = fake_client_factory(failures={"a fox": RuntimeError("503")})
        result = asyncio.run(generate_single(TaskRecord(prompt="a fox"), client, test_config))
        assert result.success is False
        assert "503" in result.error_message

    def test_warnings_reported(self, test_config, fake_client):
        warnings = []
        record = TaskRecord(prompt="a fox", aspect_ratio="odd", resolution="9K")
        asyncio.run(
            generate_single(record, fake_client, test_config, on_diagnostic=warnings.append)
        )
        assert {w.field for w in warnings} == {"aspect_ratio", "resolution"}


class TestEditImages:
    """The edit workflow."""

    def test_edit_sends_images(self, work_dir: Path, test_config, fake_client, png_bytes):
        (work_dir / "photo.png").write_bytes(png_bytes)

        result = asyncio.run(
            edit_images(["photo.png"], "make it snow", fake_client, test_config)
        )

        assert result.success
        assert Path(result.output_path).name.startswith("edited-")
        call = fake_client.calls[0]
        assert call["mode"] == "images"
        assert call["prompt"] == "make it snow"
        assert call["images"] == [(png_bytes, "image/png")]

    def test_requires_an_image(self, test_config, fake_client):
        with pytest.raises(TaskRejectedError, match="input image"):
            asyncio.run(edit_images(["  "], "make it snow", fake_client, test_config))

    def test_requires_instruction(self, work_dir: Path, test_config, fake_client, png_bytes):
        (work_dir / "photo.png").write_bytes(png_bytes)
        with pytest.raises(TaskRejectedError, match="prompt is required"):
            asyncio.run(edit_images(["photo.png"], "", fake_client, test_config))
