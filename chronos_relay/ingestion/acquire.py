"""Image acquisition: download attachment bytes into the working directory."""

import asyncio
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit
from urllib.request import url2pathname

import httpx

from .attachments import Attachment, has_image_extension
from .errors import AcquisitionError

logger = logging.getLogger("chronos_relay.acquire")

DEFAULT_WORK_DIR = "temp_images"
FALLBACK_EXTENSION = "png"

_UNSAFE_CHARS_RE = re.compile(r"[^a-zA-Z0-9._-]")


@dataclass
class AcquiredImage:
    """An attachment persisted locally, owned by the orchestrator until cleanup."""
    attachment_id: str
    path: str
    size: int
    filename: str

    def cleanup(self) -> bool:
        """Delete the local file. Best-effort: failures are logged, not raised."""
        try:
            os.unlink(self.path)
            logger.info(f"Deleted temp image: {self.filename}")
            return True
        except FileNotFoundError:
            return True
        except OSError as e:
            logger.warning(f"Failed to delete temp image {self.path}: {e}")
            return False


def sanitize_filename(name: str) -> str:
    """Replace every character outside ``[a-zA-Z0-9._-]`` with underscore."""
    safe = _UNSAFE_CHARS_RE.sub("_", name)
    # "." and ".." survive the allow-list but address directories
    if not safe.strip("."):
        safe = f"_{safe}"
    return safe


def _extension_for(content_type: Optional[str]) -> str:
    if not content_type or "/" not in content_type:
        return FALLBACK_EXTENSION
    subtype = content_type.split("/", 1)[1].split(";", 1)[0].strip()
    return subtype or FALLBACK_EXTENSION


def derive_filename(attachment: Attachment) -> str:
    """Pick a safe local filename for an attachment.

    Title/name first, then the last URL path segment, then ``image_<id>``.
    A name without an image extension gets one from the content type.
    """
    name = attachment.title or attachment.name
    if not name and attachment.url:
        name = urlsplit(attachment.url).path.rsplit("/", 1)[-1]
    if not name:
        name = f"image_{attachment.id}"

    if not has_image_extension(name):
        name = f"{name}.{_extension_for(attachment.content_type)}"

    return sanitize_filename(name)


def describe_url(url: str) -> str:
    """Host + last path segment, for logs.

    Chat platforms put bot tokens inside file URLs, so full URLs are
    never logged.
    """
    try:
        parts = urlsplit(url)
    except ValueError:
        return "<invalid url>"
    tail = parts.path.rsplit("/", 1)[-1]
    return f"{parts.netloc}/…/{tail}" if tail else parts.netloc or "<invalid url>"


class ImageAcquirer:
    """Fetches image attachments and stores them under one working directory."""

    def __init__(
        self,
        work_dir: str = DEFAULT_WORK_DIR,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        self.work_dir = os.path.abspath(work_dir)
        self.timeout = timeout
        self._client = client

    def ensure_work_dir(self) -> str:
        """Create the working directory if needed. Safe to call repeatedly."""
        if not os.path.isdir(self.work_dir):
            try:
                os.makedirs(self.work_dir, exist_ok=True)
            except OSError as e:
                raise AcquisitionError(f"Failed to create working directory {self.work_dir}: {e}") from e
            logger.info(f"Created directory: {self.work_dir}")
        return self.work_dir

    def target_path(self, filename: str) -> Path:
        root = Path(self.work_dir).resolve()
        path = (root / filename).resolve()
        if path.parent != root:
            raise AcquisitionError(f"Refusing to write outside working directory: {filename}")
        return path

    async def _fetch(self, url: str) -> bytes:
        if url.startswith("file://"):
            return await self._read_local(url)
        try:
            if self._client is not None:
                response = await self._client.get(url)
            else:
                async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                    response = await client.get(url)
        except httpx.HTTPError as e:
            raise AcquisitionError(f"Failed to fetch image: {type(e).__name__}: {e}") from e

        if not response.is_success:
            reason = response.reason_phrase or "error"
            raise AcquisitionError(
                f"Failed to fetch image: HTTP {response.status_code} {reason}",
                status_code=response.status_code,
            )
        return response.content

    @staticmethod
    async def _read_local(url: str) -> bytes:
        """Read a ``file://`` URL (command-line analysis of local images)."""
        path = url2pathname(urlsplit(url).path)
        try:
            return await asyncio.to_thread(Path(path).read_bytes)
        except OSError as e:
            raise AcquisitionError(f"Failed to read image {path}: {e}") from e

    async def acquire(self, attachment: Attachment) -> AcquiredImage:
        """Download one image attachment into the working directory.

        Raises:
            AcquisitionError: no URL, bad response, or the file could not
                be written. Scoped to this attachment only.
        """
        self.ensure_work_dir()

        url = attachment.url
        if not url:
            logger.warning(f"Attachment {attachment.display_name} missing URL, skipping")
            raise AcquisitionError("Attachment has no URL")

        filename = derive_filename(attachment)
        path = self.target_path(filename)

        logger.info(f"Downloading image from {describe_url(url)} to {filename}")
        data = await self._fetch(url)

        try:
            await asyncio.to_thread(path.write_bytes, data)
        except OSError as e:
            raise AcquisitionError(f"Failed to save image {filename}: {e}") from e

        logger.info(f"Saved image to: {path} ({len(data)} bytes)")
        return AcquiredImage(
            attachment_id=attachment.id,
            path=str(path),
            size=len(data),
            filename=filename,
        )
