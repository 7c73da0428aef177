"""
Image upload collaborator.

Images picked in the editor are validated (type and size), then posted to
the configured upload endpoint. Any upload failure, or a missing endpoint,
degrades to an inline base64 data URL so the save can still go through.
"""

from __future__ import annotations

import base64

import httpx
from loguru import logger

from config import get_settings
from src.bank.errors import ImageRejectedError

ALLOWED_CONTENT_TYPES = frozenset({"image/jpeg", "image/jpg", "image/png", "image/webp"})


def to_data_url(data: bytes, content_type: str) -> str:
    """Inline an image as a base64 data URL."""
    return f"data:{content_type};base64,{base64.b64encode(data).decode('ascii')}"


def is_data_url(url: str | None) -> bool:
    return bool(url) and url.startswith("data:")


class ImageUploader:
    """Uploads question images over HTTP with a data URL fallback."""

    def __init__(
        self,
        upload_url: str | None = None,
        timeout_seconds: float | None = None,
        max_bytes: int | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize the uploader.

        Args:
            upload_url: Endpoint accepting multipart uploads and answering
                {"url": ...} (default: settings; None means inline only)
            timeout_seconds: Per-upload timeout
            max_bytes: Largest accepted image
            client: Preconfigured client (tests inject a MockTransport)
        """
        settings = get_settings()
        self.upload_url = upload_url if upload_url is not None else settings.image_upload_url
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else settings.image_upload_timeout_seconds
        )
        self.max_bytes = max_bytes if max_bytes is not None else settings.image_max_bytes
        self.client = client or httpx.AsyncClient(timeout=httpx.Timeout(self.timeout_seconds))

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    def validate(self, data: bytes, content_type: str) -> None:
        """Raise ImageRejectedError for unsupported types or oversized images."""
        if content_type.lower() not in ALLOWED_CONTENT_TYPES:
            raise ImageRejectedError(
                f"Unsupported image type {content_type} (use JPEG, PNG or WEBP)"
            )
        if len(data) > self.max_bytes:
            raise ImageRejectedError(
                f"Image is {len(data)} bytes, the limit is {self.max_bytes}"
            )

    async def upload(self, data: bytes, path_hint: str, content_type: str) -> str:
        """
        Upload an image and return its URL.

        Args:
            data: Image bytes
            path_hint: Storage path suggestion, e.g. "questions/1700000000_fig.png"
            content_type: MIME type

        Returns:
            Public URL, or a data URL if the upload could not be done

        Raises:
            ImageRejectedError: On validation failure (never degraded)
        """
        self.validate(data, content_type)

        if not self.upload_url:
            logger.debug("No upload endpoint configured, inlining {}", path_hint)
            return to_data_url(data, content_type)

        try:
            response = await self.client.post(
                self.upload_url,
                files={"file": (path_hint.rsplit("/", 1)[-1], data, content_type)},
                data={"path": path_hint},
                timeout=self.timeout_seconds,
            )
            response.raise_for_status()
            url = response.json()["url"]
        except httpx.TimeoutException:
            logger.warning("Upload of {} timed out after {}s, inlining", path_hint, self.timeout_seconds)
            return to_data_url(data, content_type)
        except (httpx.HTTPError, ValueError, KeyError) as e:
            logger.warning("Upload of {} failed ({}), inlining", path_hint, e)
            return to_data_url(data, content_type)

        logger.info("Uploaded image {}", path_hint)
        return url

    async def delete_image(self, url: str) -> bool:
        """
        Delete an uploaded image.

        Data URLs have nothing to delete. Failures are logged and reported
        as False.
        """
        if is_data_url(url) or not self.upload_url:
            return False
        try:
            response = await self.client.request(
                "DELETE", self.upload_url, params={"url": url}, timeout=self.timeout_seconds
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Could not delete image {}: {}", url, e)
            return False
        return True
