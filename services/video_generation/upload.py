"""
Kie.ai File Upload Adapter

Turns image references into public URLs a generation provider can fetch:
- http(s) URLs are returned unchanged
- local files are base64-encoded and uploaded to Kie.ai file storage

Uploaded files are deleted by Kie.ai after 3 days.
"""

import asyncio
import base64
import logging
import time
import uuid
from pathlib import Path
from typing import Awaitable, Callable, Optional, Sequence
from urllib.parse import unquote, urlparse

import aiofiles
import httpx

from .errors import UploadError

logger = logging.getLogger(__name__)

DEFAULT_UPLOAD_BASE = "https://kieai.redpandaai.co"
UPLOAD_ENDPOINT = "/api/file-base64-upload"
DEFAULT_UPLOAD_PATH = "images/video-generation"

PUBLIC_SCHEMES = ("http://", "https://")
LOCAL_SCHEMES = ("file://", "content://", "assets-library://", "ph://")

MIME_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "bmp": "image/bmp",
    "svg": "image/svg+xml",
}
DEFAULT_MIME_TYPE = "image/jpeg"


def is_public_url(uri: str) -> bool:
    # Schemes are case-insensitive
    return uri.lower().startswith(PUBLIC_SCHEMES)


def is_local_uri(uri: str) -> bool:
    """Local file reference: a known local scheme or a bare filesystem path."""
    return uri.lower().startswith(LOCAL_SCHEMES) or "://" not in uri


def get_mime_type(extension: str) -> str:
    return MIME_TYPES.get(extension.lower(), DEFAULT_MIME_TYPE)


def file_extension(uri: str) -> str:
    suffix = Path(urlparse(uri).path or uri).suffix.lstrip(".").lower()
    return suffix or "jpg"


def generate_file_name(extension: str) -> str:
    """image_<epoch ms>_<random>.<ext>"""
    return f"image_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}.{extension}"


class UploadAdapter:
    """
    Resolves image URIs to public URLs, uploading local files when needed.

    Usage:
        uploader = UploadAdapter(api_key)
        urls = await uploader.resolve_public_urls(["file:///tmp/cat.png"])
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_UPLOAD_BASE,
        upload_path: str = DEFAULT_UPLOAD_PATH,
        timeout: float = 60.0,
        inter_upload_delay: float = 0.5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.base_url = base_url.rstrip("/")
        self.upload_path = upload_path
        self.timeout = timeout
        self.inter_upload_delay = inter_upload_delay
        self.headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        self._transport = transport
        self._sleep = sleep
        self._http_client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self.headers,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._http_client

    async def close(self):
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def _read_local(self, uri: str) -> bytes:
        if uri.lower().startswith("file://"):
            path = unquote(urlparse(uri).path)
        elif "://" in uri:
            # content://, ph:// etc. need the device's media APIs
            raise UploadError(
                f"Cannot read local URI on this platform: {uri}",
                error_code="UNREADABLE_URI",
            )
        else:
            path = uri

        try:
            async with aiofiles.open(path, "rb") as f:
                return await f.read()
        except OSError as e:
            raise UploadError(
                f"Failed to read {uri}: {e}",
                error_code="READ_FAILED",
            ) from e

    async def upload_file(self, uri: str, file_name: Optional[str] = None) -> str:
        """
        Upload a local image using base64 encoding.

        Args:
            uri: file:// URI or filesystem path
            file_name: Custom filename (generated if not provided)

        Returns:
            The public downloadUrl of the uploaded file
        """
        content = await self._read_local(uri)

        extension = file_extension(uri)
        mime_type = get_mime_type(extension)
        encoded = base64.b64encode(content).decode("ascii")
        file_name = file_name or generate_file_name(extension)

        logger.info(
            f"Uploading {uri} as {self.upload_path}/{file_name} "
            f"({mime_type}, {len(content) / 1024:.1f} KB)"
        )

        client = self._get_client()
        try:
            response = await client.post(
                UPLOAD_ENDPOINT,
                json={
                    "base64Data": f"data:{mime_type};base64,{encoded}",
                    "uploadPath": self.upload_path,
                    "fileName": file_name,
                },
            )
            body = response.json()
        except httpx.HTTPError as e:
            raise UploadError(
                f"Upload request failed: {type(e).__name__}: {e}",
                error_code="UPLOAD_REQUEST_FAILED",
            ) from e
        except ValueError as e:
            raise UploadError(
                f"Upload returned a non-JSON response (HTTP {response.status_code})",
                error_code="UPLOAD_INVALID_RESPONSE",
            ) from e

        if not isinstance(body, dict) or not body.get("success") or body.get("code") != 200:
            msg = body.get("msg") if isinstance(body, dict) else None
            raise UploadError(
                f"Upload failed: {msg or 'unknown error'}",
                error_code="UPLOAD_REJECTED",
            )

        download_url = (body.get("data") or {}).get("downloadUrl")
        if not download_url:
            raise UploadError("Upload response has no downloadUrl", error_code="UPLOAD_NO_URL")

        logger.info(f"Upload successful: {download_url}")
        return download_url

    async def resolve_public_url(self, uri: str) -> str:
        """Return a public URL for uri, uploading it first if it is local."""
        if is_public_url(uri):
            return uri

        if is_local_uri(uri):
            return await self.upload_file(uri)

        raise UploadError(f"Unsupported URI format: {uri}", error_code="UNSUPPORTED_URI")

    async def resolve_public_urls(self, uris: Sequence[str]) -> list[str]:
        """Resolve URIs in order, one upload at a time."""
        results: list[str] = []
        uploads = 0

        for uri in uris:
            if not is_public_url(uri):
                # Space out uploads to stay under rate limits
                if uploads and self.inter_upload_delay > 0:
                    await self._sleep(self.inter_upload_delay)
                uploads += 1
            results.append(await self.resolve_public_url(uri))

        if uploads:
            logger.info(f"Uploaded {uploads} of {len(uris)} images")
        return results
