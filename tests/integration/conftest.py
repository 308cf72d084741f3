"""Pytest configuration and fixtures for integration tests.

Loads .env and skips the whole suite when no Gemini credentials are configured.
These tests call the real Gemini / Imagen APIs.
"""

import os
from pathlib import Path

import pytest
from dotenv import load_dotenv


def pytest_configure(config):
    """Load .env before collection and print the run configuration."""
    env_path = Path(__file__).parent.parent.parent / ".env"
    load_dotenv(env_path)

    # Keep traces out of integration runs
    os.environ["ENABLE_TRACING"] = "false"

    print("\n" + "=" * 70)
    print("Note: These tests require GEMINI_API_KEY (or Vertex AI with GOOGLE_CLOUD_PROJECT)")
    print(f"Environment loaded from: {env_path}")
    print(f"  - Illustration: {os.getenv('ENABLE_ILLUSTRATION', 'true')}")
    print("=" * 70 + "\n")


@pytest.fixture(scope="session", autouse=True)
def check_credentials():
    """Skip every integration test when no Gemini credentials are available."""
    use_vertexai = os.getenv("GOOGLE_GENAI_USE_VERTEXAI", "false").lower() == "true"

    if use_vertexai and not os.getenv("GOOGLE_CLOUD_PROJECT"):
        pytest.skip("Integration tests skipped. Missing GOOGLE_CLOUD_PROJECT for Vertex AI.", allow_module_level=True)
    if not use_vertexai and not os.getenv("GEMINI_API_KEY"):
        pytest.skip(
            "Integration tests skipped. Missing API key: GEMINI_API_KEY. Please set it in your .env file.",
            allow_module_level=True,
        )
