"""Provider client factories.

Gemini / Imagen go through one google-genai client, either with a Gemini API
key or through Vertex AI (project + location). Cloud Storage uses the
google-cloud-storage client with application default credentials.
"""

from google import genai
from google.cloud import storage
from google.genai import types

from fridge_chef.utils.config import Config
from fridge_chef.utils.logger import logger


def build_genai_client(config: Config) -> genai.Client:
    """Create the Gen AI client used by the extraction, recipe and illustration stages.

    The HTTP timeout is set slightly above the per-attempt stage timeout so the
    stage policy, not the transport, decides when an attempt is abandoned.
    """
    timeout_ms = int(max(config.MODEL_TIMEOUT_SECONDS, config.ILLUSTRATION_TIMEOUT_SECONDS) * 1000) + 5000
    http_options = types.HttpOptions(timeout=timeout_ms)

    if config.GOOGLE_GENAI_USE_VERTEXAI:
        logger.info(
            f"Using Vertex AI (project={config.GOOGLE_CLOUD_PROJECT}, location={config.GOOGLE_CLOUD_LOCATION})"
        )
        return genai.Client(
            vertexai=True,
            project=config.GOOGLE_CLOUD_PROJECT,
            location=config.GOOGLE_CLOUD_LOCATION,
            http_options=http_options,
        )

    logger.info("Using Gemini API key authentication")
    return genai.Client(api_key=config.GEMINI_API_KEY, http_options=http_options)


def build_storage_client(config: Config) -> storage.Client:
    """Create the Cloud Storage client used to resolve gs:// references."""
    return storage.Client(project=config.GOOGLE_CLOUD_PROJECT or None)
