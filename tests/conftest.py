"""
Shared fixtures for Lookbook Studio tests.
The image model is always replaced by FakeImageClient.
"""
import io
import os
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

# Keep test runs out of the generation log
os.environ.setdefault("STUDIO_LOGGING_ENABLED", "false")


def make_png(color: str = "blue", size=(64, 80)) -> bytes:
    """Create a small valid PNG image."""
    from PIL import Image

    img = Image.new("RGB", size, color=color)
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


class FakeImageClient:
    """Stands in for GeminiImageClient and records every request."""

    def __init__(self, fail_prompts=(), error=None, one_result=True):
        self.calls = []
        self.fail_prompts = fail_prompts
        self.error = error
        self.one_result = one_result
        self._counter = 0

    def _next_image(self):
        from lookbook_studio.core.images import ImageRef

        self._counter += 1
        return ImageRef(data=f"generated-{self._counter}".encode(), mime_type="image/png")

    async def generate(self, prompt, images=None, num_variants=1):
        self.calls.append({"prompt": prompt, "images": list(images or []), "num_variants": num_variants})
        if self.error is not None:
            raise self.error
        if any(marker in prompt for marker in self.fail_prompts):
            return []
        return [self._next_image() for _ in range(num_variants)]

    async def generate_one(self, prompt, images=None):
        self.calls.append({"prompt": prompt, "images": list(images or []), "num_variants": 1})
        if self.error is not None:
            raise self.error
        return self._next_image() if self.one_result else None


@pytest.fixture(autouse=True)
def studio_env(monkeypatch):
    """Default environment: server key configured, no host key selection."""
    monkeypatch.setenv("GEMINI_API_KEY", "test-server-key")
    monkeypatch.delenv("API_KEY", raising=False)
    monkeypatch.delenv("STUDIO_KEY_SELECTION", raising=False)
    monkeypatch.delenv("STUDIO_LOOKBOOK_VARIANTS", raising=False)

    from lookbook_studio.config import reload_settings, reset_image_config
    from lookbook_studio.core.session import get_session_store
    from lookbook_studio.observability import reset_metrics

    reload_settings()
    reset_image_config()
    reset_metrics()
    get_session_store().clear()
    yield
    get_session_store().clear()


@pytest.fixture
def png_bytes():
    return make_png()


@pytest.fixture
def fake_client(monkeypatch):
    """Patch the pipeline's client factory with a FakeImageClient."""
    client = FakeImageClient()
    monkeypatch.setattr(
        "lookbook_studio.core.pipeline.get_image_client",
        lambda api_key=None: client
    )
    return client


@pytest.fixture
def session():
    from lookbook_studio.core.session import get_session_store
    return get_session_store().create(has_key=True)


@pytest.fixture
def client():
    """Create test client."""
    from fastapi.testclient import TestClient
    from lookbook_studio.app.main import app
    return TestClient(app)
