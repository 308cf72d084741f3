"""Configuration management for Fridge Chef.

Loads environment variables from system environment and .env file.
Priority order: system environment > .env file > hardcoded defaults

A Config instance is created by the entry points (app.py, query.py) and passed
explicitly into every stage, so two pipelines with different settings can live
in the same process.
"""

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field


# Load .env file (if exists, silently continues if missing)
load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


class StagePolicy(BaseModel):
    """Retry and timeout rules for one pipeline stage."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(3, ge=1, description="Total attempts, including the first call")
    initial_delay: float = Field(1.0, ge=0.0, description="Delay in seconds before the second attempt")
    exponential_backoff: bool = Field(True, description="Double the delay after every failed attempt")
    timeout_seconds: Optional[float] = Field(60.0, gt=0.0, description="Hard timeout per attempt")
    retry_on_invalid_output: bool = Field(
        False, description="Retry when the model answered but its output failed schema validation"
    )

    def delay_for(self, attempt: int) -> float:
        """Return the sleep before attempt number `attempt + 1` (attempt is 1-based)."""
        if self.exponential_backoff:
            return self.initial_delay * (2 ** (attempt - 1))
        return self.initial_delay


class Config:
    """Application configuration loaded from environment variables."""

    def __init__(self) -> None:
        """Initialize configuration from environment variables."""
        # Provider credentials: either a Gemini API key or Vertex AI (project + location)
        self.GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")
        self.GOOGLE_GENAI_USE_VERTEXAI: bool = _env_bool("GOOGLE_GENAI_USE_VERTEXAI", "false")
        self.GOOGLE_CLOUD_PROJECT: str = os.getenv("GOOGLE_CLOUD_PROJECT", "")
        self.GOOGLE_CLOUD_LOCATION: str = os.getenv("GOOGLE_CLOUD_LOCATION", "us-central1")

        # Vision model used to enumerate fridge contents
        self.IMAGE_DETECTION_MODEL: str = os.getenv("IMAGE_DETECTION_MODEL", "gemini-2.5-flash")
        # Text model used to write the recipe
        self.RECIPE_MODEL: str = os.getenv("RECIPE_MODEL", "gemini-2.5-flash")
        # Image generation model used to illustrate the final dish
        self.ILLUSTRATION_MODEL: str = os.getenv("ILLUSTRATION_MODEL", "imagen-3.0-generate-002")

        # Temperatures: low on both stages, extraction is perception and the
        # recipe should stick to the ingredients that were actually found
        self.EXTRACTION_TEMPERATURE: float = float(os.getenv("EXTRACTION_TEMPERATURE", "0.1"))
        self.RECIPE_TEMPERATURE: float = float(os.getenv("RECIPE_TEMPERATURE", "0.1"))
        # Max Output Tokens: 2048 is enough for a full recipe with instructions
        self.MAX_OUTPUT_TOKENS: int = int(os.getenv("MAX_OUTPUT_TOKENS", "2048"))

        # Illustration stage (cosmetic, failures never abort the pipeline)
        self.ENABLE_ILLUSTRATION: bool = _env_bool("ENABLE_ILLUSTRATION", "true")
        self.ILLUSTRATION_PROMPT_MAX_CHARS: int = int(os.getenv("ILLUSTRATION_PROMPT_MAX_CHARS", "1500"))

        # Retry Configuration - handles transient provider failures
        # MAX_RETRIES: total attempts per model call
        self.MAX_RETRIES: int = int(os.getenv("MAX_RETRIES", "3"))
        # DELAY_BETWEEN_RETRIES: initial delay in seconds (doubled each retry if EXPONENTIAL_BACKOFF)
        self.DELAY_BETWEEN_RETRIES: float = float(os.getenv("DELAY_BETWEEN_RETRIES", "1"))
        self.EXPONENTIAL_BACKOFF: bool = _env_bool("EXPONENTIAL_BACKOFF", "true")
        # RETRY_ON_INVALID_OUTPUT: re-ask the vision model when its JSON fails validation
        self.RETRY_ON_INVALID_OUTPUT: bool = _env_bool("RETRY_ON_INVALID_OUTPUT", "false")

        # Timeouts (seconds)
        self.MODEL_TIMEOUT_SECONDS: float = float(os.getenv("MODEL_TIMEOUT_SECONDS", "60"))
        self.ILLUSTRATION_TIMEOUT_SECONDS: float = float(os.getenv("ILLUSTRATION_TIMEOUT_SECONDS", "90"))
        self.FETCH_TIMEOUT_SECONDS: float = float(os.getenv("FETCH_TIMEOUT_SECONDS", "10"))

        # Upper bound on model calls in flight across all concurrent pipeline runs
        self.MAX_CONCURRENT_MODEL_CALLS: int = int(os.getenv("MAX_CONCURRENT_MODEL_CALLS", "4"))

        # Maximum image size (in MB) after normalization. Default: 10 MB
        self.MAX_IMAGE_SIZE_MB: int = int(os.getenv("MAX_IMAGE_SIZE_MB", "10"))
        # Image Compression: resize and re-encode large photos before inlining them
        self.COMPRESS_IMG: bool = _env_bool("COMPRESS_IMG", "true")
        # Only compress images larger than this (in KB)
        self.COMPRESS_IMG_THRESHOLD_KB: int = int(os.getenv("COMPRESS_IMG_THRESHOLD_KB", "1024"))
        self.IMAGE_MAX_WIDTH: int = int(os.getenv("IMAGE_MAX_WIDTH", "1536"))

        # Optional directory with *.jinja2 files overriding the built-in prompts
        self.PROMPTS_DIR: Optional[str] = os.getenv("PROMPTS_DIR") or None

        # Server Port
        self.PORT: int = int(os.getenv("PORT", "7777"))
        # Tracing Configuration (off by default, traces contain recipe text)
        self.ENABLE_TRACING: bool = _env_bool("ENABLE_TRACING", "false")
        self.TRACING_DB_FILE: str = os.getenv("TRACING_DB_FILE", "fridge_chef_traces.db")

    def extraction_policy(self) -> StagePolicy:
        """Policy for the vision extraction call."""
        return StagePolicy(
            max_attempts=self.MAX_RETRIES,
            initial_delay=self.DELAY_BETWEEN_RETRIES,
            exponential_backoff=self.EXPONENTIAL_BACKOFF,
            timeout_seconds=self.MODEL_TIMEOUT_SECONDS,
            retry_on_invalid_output=self.RETRY_ON_INVALID_OUTPUT,
        )

    def recipe_policy(self) -> StagePolicy:
        """Policy for the recipe generation call."""
        return StagePolicy(
            max_attempts=self.MAX_RETRIES,
            initial_delay=self.DELAY_BETWEEN_RETRIES,
            exponential_backoff=self.EXPONENTIAL_BACKOFF,
            timeout_seconds=self.MODEL_TIMEOUT_SECONDS,
        )

    def illustration_policy(self) -> StagePolicy:
        """Policy for the image generation call. Single attempt, the stage is cosmetic."""
        return StagePolicy(
            max_attempts=1,
            initial_delay=self.DELAY_BETWEEN_RETRIES,
            exponential_backoff=self.EXPONENTIAL_BACKOFF,
            timeout_seconds=self.ILLUSTRATION_TIMEOUT_SECONDS,
        )

    def fetch_policy(self) -> StagePolicy:
        """Policy for downloading the source image."""
        return StagePolicy(
            max_attempts=1,
            initial_delay=self.DELAY_BETWEEN_RETRIES,
            exponential_backoff=self.EXPONENTIAL_BACKOFF,
            timeout_seconds=self.FETCH_TIMEOUT_SECONDS,
        )

    def validate(self) -> None:
        """Validate required configuration.

        Raises:
            ValueError: If credentials are missing or invalid values provided.
        """
        if self.GOOGLE_GENAI_USE_VERTEXAI:
            if not self.GOOGLE_CLOUD_PROJECT:
                raise ValueError("GOOGLE_CLOUD_PROJECT environment variable is required when GOOGLE_GENAI_USE_VERTEXAI=true")
        elif not self.GEMINI_API_KEY:
            raise ValueError("GEMINI_API_KEY environment variable is required (or set GOOGLE_GENAI_USE_VERTEXAI=true)")
        for name in ("EXTRACTION_TEMPERATURE", "RECIPE_TEMPERATURE"):
            value = getattr(self, name)
            if not (0.0 <= value <= 2.0):
                raise ValueError(f"{name} must be between 0.0 and 2.0, got: {value}")
        if self.MAX_OUTPUT_TOKENS < 256:
            raise ValueError(f"MAX_OUTPUT_TOKENS must be at least 256, got: {self.MAX_OUTPUT_TOKENS}")
        if self.MAX_RETRIES < 1:
            raise ValueError(f"MAX_RETRIES must be at least 1, got: {self.MAX_RETRIES}")
        if self.DELAY_BETWEEN_RETRIES < 0:
            raise ValueError(f"DELAY_BETWEEN_RETRIES must not be negative, got: {self.DELAY_BETWEEN_RETRIES}")
        for name in ("MODEL_TIMEOUT_SECONDS", "ILLUSTRATION_TIMEOUT_SECONDS", "FETCH_TIMEOUT_SECONDS"):
            value = getattr(self, name)
            if value <= 0:
                raise ValueError(f"{name} must be positive, got: {value}")
        if self.MAX_CONCURRENT_MODEL_CALLS < 1:
            raise ValueError(
                f"MAX_CONCURRENT_MODEL_CALLS must be at least 1, got: {self.MAX_CONCURRENT_MODEL_CALLS}"
            )
        if self.MAX_IMAGE_SIZE_MB < 1:
            raise ValueError(f"MAX_IMAGE_SIZE_MB must be at least 1, got: {self.MAX_IMAGE_SIZE_MB}")
        if self.PROMPTS_DIR and not os.path.isdir(self.PROMPTS_DIR):
            raise ValueError(f"PROMPTS_DIR does not exist or is not a directory: {self.PROMPTS_DIR}")
