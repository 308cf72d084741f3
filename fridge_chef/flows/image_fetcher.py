"""Image ingestion: resolve an image reference into inline image bytes.

Supported references:
- http:// and https:// URLs: downloaded with aiohttp
- gs://<bucket>/<object>: Cloud Storage metadata lookup plus download
- data:<type>;base64,<payload>: decoded in place

Every fetched image is normalized before it is handed to a model:
- content type detected from magic bytes (filetype), falling back to the
  declared Content-Type / object metadata
- only JPEG, PNG, WEBP, HEIC and HEIF are accepted
- large photos are resized and re-encoded as JPEG (Pillow)
- size limited to MAX_IMAGE_SIZE_MB

Any failure raises FetchError, before any model is called.
"""

import asyncio
import base64
import re
from io import BytesIO
from typing import NamedTuple, Optional

import aiohttp
import filetype
from google.api_core import exceptions as gcloud_exceptions
from google.cloud import storage
from PIL import Image

from fridge_chef.flows.errors import FetchError
from fridge_chef.utils.clients import build_storage_client
from fridge_chef.utils.config import Config
from fridge_chef.utils.logger import logger
from fridge_chef.utils.resilience import call_with_policy, safe_execute_sync

SUPPORTED_MIME_TYPES = ("image/jpeg", "image/png", "image/webp", "image/heic", "image/heif")

GCS_URL_PATTERN = re.compile(r"^gs://([^/]+)/(.+)$")
DATA_URI_PATTERN = re.compile(r"^data:([^;,]*)((?:;[^;,]*)*?)(;base64)?,(.*)$", re.DOTALL)


class FetchedImage(NamedTuple):
    """Raw image bytes plus their content type."""

    data: bytes
    content_type: str

    @property
    def size_mb(self) -> float:
        return len(self.data) / (1024 * 1024)

    def to_data_uri(self) -> str:
        """Inline representation: data:<content_type>;base64,<payload>."""
        payload = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.content_type};base64,{payload}"

    @classmethod
    def from_data_uri(cls, uri: str) -> "FetchedImage":
        """Decode a base64 data URI.

        Raises:
            ValueError: If `uri` is not a base64 data URI or the payload is not valid base64.
        """
        match = DATA_URI_PATTERN.match(uri or "")
        if not match or not match.group(3):
            raise ValueError("Expected a base64 data URI (data:<type>;base64,<payload>)")
        payload = "".join(match.group(4).split())
        return cls(base64.b64decode(payload, validate=True), _base_content_type(match.group(1)))


def _base_content_type(value: Optional[str]) -> str:
    """'image/jpeg; charset=binary' -> 'image/jpeg'."""
    return (value or "").split(";", 1)[0].strip().lower()


def detect_content_type(image_bytes: bytes, declared: Optional[str] = None) -> Optional[str]:
    """Return the supported MIME type of `image_bytes`, or None.

    Magic bytes win over the declared type. The declared type is only trusted
    when filetype cannot recognise the payload at all.
    """
    kind = filetype.guess(image_bytes) if image_bytes else None
    if kind is not None:
        if kind.mime in SUPPORTED_MIME_TYPES:
            return kind.mime
        logger.warning(f"Invalid image format: {kind.mime}. Supported: {', '.join(SUPPORTED_MIME_TYPES)}")
        return None

    declared_type = _base_content_type(declared)
    if image_bytes and declared_type in SUPPORTED_MIME_TYPES:
        logger.debug(f"Unrecognised magic bytes, trusting declared content type {declared_type}")
        return declared_type
    return None


def compress_image(image_bytes: bytes, max_width: int, threshold_kb: int) -> Optional[bytes]:
    """Resize and re-encode a large image as JPEG using Pillow.

    Uses JPEG quality=85 + optimize + progressive. Converts color modes to RGB.

    Args:
        image_bytes: Raw image bytes to compress.
        max_width: Maximum image width in pixels.
        threshold_kb: Images smaller than this are left alone.

    Returns:
        JPEG bytes, or None when compression was skipped, failed, or did not help.
    """
    size_kb = len(image_bytes) / 1024
    if size_kb < threshold_kb:
        logger.debug(f"Image size {size_kb:.1f}KB below compression threshold ({threshold_kb}KB), skipping")
        return None

    def _compress() -> Optional[bytes]:
        img = Image.open(BytesIO(image_bytes))

        if img.mode in ("RGBA", "LA", "P"):
            img = img.convert("RGBA")
            rgb_img = Image.new("RGB", img.size, (255, 255, 255))
            rgb_img.paste(img, mask=img.split()[-1])
            img = rgb_img
        elif img.mode != "RGB":
            img = img.convert("RGB")

        if img.width > max_width:
            ratio = max_width / img.width
            img = img.resize((max_width, max(1, int(img.height * ratio))), Image.Resampling.LANCZOS)

        output = BytesIO()
        img.save(output, format="JPEG", quality=85, optimize=True, progressive=True)
        compressed_bytes = output.getvalue()

        if len(compressed_bytes) >= len(image_bytes):
            logger.debug("Compressed image is not smaller than the original, keeping original")
            return None

        logger.debug(
            f"Image compressed: {size_kb:.1f}KB → {len(compressed_bytes) / 1024:.1f}KB "
            f"({(1 - len(compressed_bytes) / len(image_bytes)) * 100:.1f}% reduction)"
        )
        return compressed_bytes

    return safe_execute_sync(_compress, "Image compression", log_level="warning", default_return=None)


class ImageFetcher:
    """Resolve image references into normalized FetchedImage values."""

    def __init__(self, config: Config, storage_client: Optional[storage.Client] = None) -> None:
        self.config = config
        self.policy = config.fetch_policy()
        self._storage_client = storage_client

    @property
    def storage_client(self) -> storage.Client:
        if self._storage_client is None:
            self._storage_client = build_storage_client(self.config)
        return self._storage_client

    async def fetch(self, reference: str) -> FetchedImage:
        """Resolve `reference` into normalized image bytes and content type.

        Raises:
            FetchError: Unrecognized scheme, malformed reference, download or
                storage failure, missing object, unsupported or oversized image.
        """
        reference = (reference or "").strip()
        scheme = reference.split(":", 1)[0].lower() if ":" in reference else ""

        if scheme in ("http", "https"):
            image = await self._fetch_http(reference)
        elif scheme == "gs":
            image = await self._fetch_gcs(reference)
        elif scheme == "data":
            image = await asyncio.to_thread(self._decode_data_uri, reference)
        else:
            raise FetchError(
                f"Unsupported image reference {reference[:50]!r}: expected http://, https://, gs:// or data:"
            )

        # Pillow decode and re-encode are CPU bound, keep them off the event loop
        return await asyncio.to_thread(self.normalize, image)

    async def fetch_as_data_uri(self, reference: str) -> str:
        """Resolve `reference` and return its inline data URI."""
        return (await self.fetch(reference)).to_data_uri()

    async def _fetch_http(self, url: str) -> FetchedImage:
        async def _get() -> FetchedImage:
            timeout = aiohttp.ClientTimeout(total=self.policy.timeout_seconds)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url) as response:
                    response.raise_for_status()
                    data = await response.read()
                    return FetchedImage(data, _base_content_type(response.headers.get("Content-Type")))

        try:
            image = await call_with_policy(_get, self.policy, f"Fetch image from URL: {url}")
        except Exception as e:
            raise FetchError(f"Could not download image from {url}", cause=e) from e

        logger.debug(f"Downloaded {len(image.data)} bytes from {url} ({image.content_type or 'no content type'})")
        return image

    async def _fetch_gcs(self, reference: str) -> FetchedImage:
        match = GCS_URL_PATTERN.match(reference)
        if not match:
            raise FetchError(f"Invalid gs:// URL format {reference!r}: expected gs://<bucket>/<object>")
        bucket_name, object_name = match.groups()

        def _download() -> FetchedImage:
            blob = self.storage_client.bucket(bucket_name).get_blob(object_name)
            if blob is None:
                raise FileNotFoundError(reference)
            data = blob.download_as_bytes()
            return FetchedImage(data, _base_content_type(blob.content_type))

        try:
            image = await call_with_policy(
                lambda: asyncio.to_thread(_download), self.policy, f"Download {reference}"
            )
        except (FileNotFoundError, gcloud_exceptions.NotFound) as e:
            raise FetchError(f"Storage object does not exist: {reference}", cause=e) from e
        except Exception as e:
            raise FetchError(f"Could not download {reference}", cause=e) from e

        logger.debug(f"Downloaded {len(image.data)} bytes from {reference} ({image.content_type or 'no content type'})")
        return image

    def _decode_data_uri(self, reference: str) -> FetchedImage:
        try:
            return FetchedImage.from_data_uri(reference)
        except ValueError as e:
            raise FetchError("Malformed data URI", cause=e) from e

    def normalize(self, image: FetchedImage) -> FetchedImage:
        """Validate format, optionally compress, and enforce the size limit."""
        if not image.data:
            raise FetchError("Image is empty")

        content_type = detect_content_type(image.data, image.content_type)
        if content_type is None:
            raise FetchError(
                f"Invalid image format (declared {image.content_type or 'unknown'}). "
                f"Supported: {', '.join(SUPPORTED_MIME_TYPES)}"
            )
        image = FetchedImage(image.data, content_type)

        if self.config.COMPRESS_IMG:
            compressed = compress_image(image.data, self.config.IMAGE_MAX_WIDTH, self.config.COMPRESS_IMG_THRESHOLD_KB)
            if compressed is not None:
                image = FetchedImage(compressed, "image/jpeg")

        if image.size_mb > self.config.MAX_IMAGE_SIZE_MB:
            raise FetchError(
                f"Image too large ({image.size_mb:.2f}MB). Maximum size is {self.config.MAX_IMAGE_SIZE_MB}MB"
            )
        return image
