"""Shared fixtures for unit tests.

Provider clients are replaced by mocks: nothing here touches Gemini, Imagen
or Cloud Storage.
"""

import base64
from unittest.mock import AsyncMock, MagicMock, Mock

import pytest

from fridge_chef.prompts.prompts import load_prompt_templates
from fridge_chef.utils.config import Config, StagePolicy

# 1x1 PNG
PNG_BYTES = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNk+M9QDwADhgGAWjR9awAAAABJRU5ErkJggg=="
)
JPEG_BYTES = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00" + b"\x00" * 64


@pytest.fixture
def config(monkeypatch):
    """Config with an API key and fast, deterministic retry settings."""
    monkeypatch.setenv("GEMINI_API_KEY", "test_gemini_key")
    monkeypatch.setenv("GOOGLE_GENAI_USE_VERTEXAI", "false")
    monkeypatch.setenv("DELAY_BETWEEN_RETRIES", "0")
    monkeypatch.setenv("MAX_RETRIES", "3")
    monkeypatch.setenv("RETRY_ON_INVALID_OUTPUT", "false")
    monkeypatch.setenv("ENABLE_ILLUSTRATION", "true")
    monkeypatch.setenv("COMPRESS_IMG", "true")
    monkeypatch.delenv("PROMPTS_DIR", raising=False)
    return Config()


@pytest.fixture
def templates():
    return load_prompt_templates()


@pytest.fixture
def fast_policy():
    return StagePolicy(max_attempts=3, initial_delay=0.0, timeout_seconds=5.0)


@pytest.fixture
def genai_client():
    """Mock google-genai client exposing the async model surface."""
    client = MagicMock()
    client.aio.models.generate_content = AsyncMock()
    client.aio.models.generate_images = AsyncMock()
    return client


@pytest.fixture
def png_bytes():
    return PNG_BYTES


@pytest.fixture
def jpeg_bytes():
    return JPEG_BYTES


@pytest.fixture
def png_data_uri():
    return "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode("ascii")


@pytest.fixture
def text_response():
    """Factory mimicking a GenerateContentResponse: only .text is read."""

    def _make(text):
        return Mock(text=text)

    return _make


@pytest.fixture
def image_response():
    """Factory mimicking a GenerateImagesResponse with one generated image."""

    def _make(image_bytes, mime_type="image/png"):
        generated = Mock()
        generated.image.image_bytes = image_bytes
        generated.image.mime_type = mime_type
        return Mock(generated_images=[generated])

    return _make
