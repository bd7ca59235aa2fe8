"""Shared pytest fixtures for nanobatch tests."""

import asyncio
import io
import shutil
import tempfile
from pathlib import Path
from typing import Generator

import pytest
from PIL import Image

from nanobatch.core.config import API_KEY_ENV_VARS, NanobatchConfig
from nanobatch.core.models import ImageArtifact


def make_png(width: int = 8, height: int = 8, color: str = "red") -> bytes:
    """Encode a small solid-colour PNG."""
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


class FakeImageClient:
    """In-memory stand-in for the Gemini client.

    Records every call, tracks how many calls are in flight at once and
    lets a test script per-prompt failures, delays and responses.
    """

    def __init__(self, delay: float = 0.0, delays=None, failures=None, responses=None):
        self.delay = delay
        self.delays = dict(delays or {})
        self.failures = dict(failures or {})
        self.responses = dict(responses or {})
        self.calls: list[dict] = []
        self.events: list[tuple[str, str]] = []
        self.active = 0
        self.peak = 0

    async def generate_from_text(self, prompt, model_id, aspect_ratio, resolution=None):
        return await self._handle("text", prompt, model_id, aspect_ratio, resolution, ())

    async def generate_from_images(self, prompt, images, model_id, aspect_ratio, resolution=None):
        return await self._handle("images", prompt, model_id, aspect_ratio, resolution, images)

    async def _handle(self, mode, prompt, model_id, aspect_ratio, resolution, images):
        self.calls.append(
            {
                "mode": mode,
                "prompt": prompt,
                "model_id": model_id,
                "aspect_ratio": aspect_ratio,
                "resolution": resolution,
                "images": list(images),
            }
        )
        self.active += 1
        self.peak = max(self.peak, self.active)
        self.events.append(("start", prompt))
        try:
            await asyncio.sleep(self.delays.get(prompt, self.delay))
            if prompt in self.failures:
                raise self.failures[prompt]
            if prompt in self.responses:
                return list(self.responses[prompt])
            return [ImageArtifact(mime_type="image/png", data=make_png())]
        finally:
            self.active -= 1
            self.events.append(("end", prompt))


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def clean_env(monkeypatch) -> None:
    """Remove every API key variable so tests never see a real credential."""
    for name in API_KEY_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def test_config(temp_dir: Path, clean_env) -> NanobatchConfig:
    """Create a test configuration writing under a temporary directory.

    Args:
        temp_dir: Temporary directory from fixture

    Returns:
        NanobatchConfig instance for testing
    """
    return NanobatchConfig(
        api_key="test-key",
        outputs_dir=temp_dir / "outputs",
        _env_file=None,
    )


@pytest.fixture
def work_dir(temp_dir: Path, monkeypatch) -> Path:
    """Run the test from inside the temporary directory.

    Relative reference images and default output paths resolve against it.
    """
    monkeypatch.chdir(temp_dir)
    return temp_dir


@pytest.fixture
def png_bytes() -> bytes:
    """A small valid PNG image."""
    return make_png()


@pytest.fixture
def fake_client() -> FakeImageClient:
    """A fake client that succeeds immediately for every prompt."""
    return FakeImageClient()


@pytest.fixture
def fake_client_factory():
    """The FakeImageClient class, for tests that need scripted behaviour."""
    return FakeImageClient
