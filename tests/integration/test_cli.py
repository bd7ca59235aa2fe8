"""Integration tests for the nanobatch command line.

The API client factory is replaced with the in-memory fake, so these tests
exercise argument handling, exit codes and console output end to end.
"""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from nanobatch import __version__, cli

runner = CliRunner()


@pytest.fixture
def cli_env(work_dir: Path, clean_env, monkeypatch) -> Path:
    """Working directory with an API key and outputs under the temp dir."""
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    monkeypatch.setenv("NANOBATCH_OUTPUTS_DIR", str(work_dir / "outputs"))
    return work_dir


@pytest.fixture
def patched_client(monkeypatch, fake_client):
    monkeypatch.setattr(cli, "create_client", lambda config: fake_client)
    return fake_client


class TestGenerateCommand:
    def test_success(self, cli_env: Path, patched_client):
        result = runner.invoke(cli.app, ["generate", "-p", "a lighthouse", "-o", "out.png"])

        assert result.exit_code == 0, result.output
        assert "Image saved to" in result.output
        assert (cli_env / "out.png").exists()

    def test_flags_reach_the_client(self, cli_env: Path, patched_client):
        result = runner.invoke(
            cli.app,
            ["generate", "-p", "a fox", "-m", "pro", "-r", "4k", "-a", "wide", "-s", "ink"],
        )

        assert result.exit_code == 0, result.output
        call = patched_client.calls[0]
        assert call["prompt"] == "a fox, ink style"
        assert call["model_id"] == "gemini-3-pro-image-preview"
        assert call["resolution"] == "4K"
        assert call["aspect_ratio"] == "16:9"

    def test_default_output_location(self, cli_env: Path, patched_client):
        result = runner.invoke(cli.app, ["generate", "-p", "a fox"])
        assert result.exit_code == 0, result.output
        assert len(list((cli_env / "outputs").glob("generated-*.png"))) == 1

    def test_save_metadata(self, cli_env: Path, patched_client):
        result = runner.invoke(
            cli.app, ["generate", "-p", "a fox", "-o", "fox.png", "--save-metadata"]
        )
        assert result.exit_code == 0, result.output
        assert (cli_env / "fox.json").exists()

    def test_missing_prompt(self, cli_env: Path, patched_client):
        result = runner.invoke(cli.app, ["generate"])
        assert result.exit_code == 1
        assert "--prompt is required" in result.output
        assert patched_client.calls == []

    def test_missing_reference(self, cli_env: Path, patched_client):
        result = runner.invoke(cli.app, ["generate", "-p", "a fox", "-i", "missing.png"])
        assert result.exit_code == 1
        assert "Reference image not found" in result.output
        assert patched_client.calls == []

    def test_unexpandable_home_reference(self, cli_env: Path, patched_client):
        """A ~user reference that cannot be expanded is a normal miss."""
        result = runner.invoke(cli.app, ["generate", "-p", "x", "-i", "~nosuchuser_zz/a.png"])

        assert result.exit_code == 1
        assert isinstance(result.exception, SystemExit)
        assert "Reference image not found" in result.output
        assert patched_client.calls == []

    def test_unsupported_model(self, cli_env: Path, patched_client):
        result = runner.invoke(cli.app, ["generate", "-p", "a fox", "-m", "bogus-model"])
        assert result.exit_code == 1
        assert "bogus-model" in result.output

    def test_generation_failure(self, cli_env: Path, monkeypatch, fake_client_factory):
        client = fake_client_factory(failures={"a fox": RuntimeError("server unavailable")})
        monkeypatch.setattr(cli, "create_client", lambda config: client)

        result = runner.invoke(cli.app, ["generate", "-p", "a fox"])

        assert result.exit_code == 1
        assert "server unavailable" in result.output

    def test_missing_api_key(self, cli_env: Path, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY")
        result = runner.invoke(cli.app, ["generate", "-p", "a fox"])
        assert result.exit_code == 1
        assert "API key not found" in result.output


class TestEditCommand:
    def test_success(self, cli_env: Path, patched_client, png_bytes: bytes):
        (cli_env / "uploads").mkdir()
        (cli_env / "uploads" / "photo.png").write_bytes(png_bytes)

        result = runner.invoke(
            cli.app,
            ["edit", "-i", "photo.png", "-p", "make it snow", "-o", "snow.png"],
        )

        assert result.exit_code == 0, result.output
        assert (cli_env / "snow.png").exists()
        assert patched_client.calls[0]["mode"] == "images"

    def test_multiple_images(self, cli_env: Path, patched_client, png_bytes: bytes):
        (cli_env / "a.png").write_bytes(png_bytes)
        (cli_env / "b.png").write_bytes(png_bytes)

        result = runner.invoke(
            cli.app, ["edit", "-i", "a.png", "-i", "b.png", "--instruction", "combine"]
        )

        assert result.exit_code == 0, result.output
        assert len(patched_client.calls[0]["images"]) == 2

    def test_requires_image(self, cli_env: Path, patched_client):
        result = runner.invoke(cli.app, ["edit", "-p", "make it snow"])
        assert result.exit_code == 1
        assert "--image is required" in result.output

    def test_requires_instruction(self, cli_env: Path, patched_client):
        result = runner.invoke(cli.app, ["edit", "-i", "photo.png"])
        assert result.exit_code == 1
        assert "--instruction is required" in result.output


class TestBatchCommand:
    def test_partial_failure_exits_zero(self, cli_env: Path, patched_client):
        """Per-task failures are reported but do not fail the run."""
        input_path = cli_env / "tasks.json"
        input_path.write_text(
            json.dumps(
                [
                    {"prompt": "a red circle", "filename": "circle.png"},
                    {"prompt": ""},
                    {"prompt": "a square", "model": "bogus-model"},
                ]
            ),
            encoding="utf-8",
        )

        result = runner.invoke(
            cli.app, ["batch", "-f", str(input_path), "-o", str(cli_env / "run"), "-j", "50"]
        )

        assert result.exit_code == 0, result.output
        assert "Done: 3 tasks, 1 succeeded, 2 failed" in result.output
        assert "prompt is required" in result.output
        assert (cli_env / "run" / "circle.png").exists()
        assert (cli_env / "run" / "summary.json").exists()

    def test_no_summary_file(self, cli_env: Path, patched_client):
        input_path = cli_env / "tasks.csv"
        input_path.write_text("prompt\none\ntwo\n", encoding="utf-8")

        result = runner.invoke(
            cli.app,
            ["batch", "-f", str(input_path), "-o", str(cli_env / "run"), "--no-summary-file"],
        )

        assert result.exit_code == 0, result.output
        assert (cli_env / "run" / "image-2.png").exists()
        assert not (cli_env / "run" / "summary.json").exists()

    def test_warnings_printed(self, cli_env: Path, patched_client):
        input_path = cli_env / "tasks.csv"
        input_path.write_text("prompt,ratio\none,sideways\n", encoding="utf-8")

        result = runner.invoke(cli.app, ["batch", "-f", str(input_path), "-o", "run"])

        assert result.exit_code == 0, result.output
        assert "Warning:" in result.output
        assert "sideways" in result.output

    def test_empty_task_list(self, cli_env: Path, patched_client):
        input_path = cli_env / "tasks.json"
        input_path.write_text("[]", encoding="utf-8")

        result = runner.invoke(cli.app, ["batch", "-f", str(input_path)])

        assert result.exit_code == 1
        assert "No tasks found" in result.output

    def test_unsupported_extension(self, cli_env: Path, patched_client):
        input_path = cli_env / "tasks.txt"
        input_path.write_text("a prompt", encoding="utf-8")

        result = runner.invoke(cli.app, ["batch", "-f", str(input_path)])

        assert result.exit_code == 1
        assert "Unsupported input format" in result.output

    def test_unsupported_default_model(self, cli_env: Path, patched_client):
        input_path = cli_env / "tasks.json"
        input_path.write_text('[{"prompt": "x"}]', encoding="utf-8")

        result = runner.invoke(cli.app, ["batch", "-f", str(input_path), "-m", "bogus"])

        assert result.exit_code == 1
        assert patched_client.calls == []

    def test_missing_api_key(self, cli_env: Path, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY")
        input_path = cli_env / "tasks.json"
        input_path.write_text('[{"prompt": "x"}]', encoding="utf-8")

        result = runner.invoke(cli.app, ["batch", "-f", str(input_path)])

        assert result.exit_code == 1
        assert "API key not found" in result.output

    def test_requires_input(self, cli_env: Path, patched_client):
        result = runner.invoke(cli.app, ["batch"])
        assert result.exit_code == 1
        assert "--input is required" in result.output


class TestInfoCommands:
    def test_models(self):
        result = runner.invoke(cli.app, ["models"])
        assert result.exit_code == 0
        assert "flash" in result.output
        assert "wide (16:9)" in result.output

    def test_version(self):
        result = runner.invoke(cli.app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output
