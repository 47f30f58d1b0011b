"""Attachment records and image classification.

Attachments arrive from the chat platform as loosely-typed records.
They are validated once here, at the boundary, into an ``Attachment``
with explicit optional fields. Everything downstream trusts the
dataclass, never the raw record.
"""

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional
from urllib.parse import urlsplit


# Tag the chat platform puts on attachments it already recognised as images
IMAGE_SOURCE_TAG = "Image"
IMAGE_CONTENT_PREFIX = "image/"
IMAGE_EXTENSIONS = ("jpg", "jpeg", "png", "gif", "webp", "bmp")


def _opt_str(value: Any) -> Optional[str]:
    if isinstance(value, str) and value:
        return value
    return None


@dataclass
class Attachment:
    """A media reference (URL + metadata) from an inbound chat message."""
    id: str = ""
    url: Optional[str] = None
    source: Optional[str] = None
    content_type: Optional[str] = None
    title: Optional[str] = None
    name: Optional[str] = None

    @classmethod
    def from_dict(cls, record: Mapping[str, Any]) -> "Attachment":
        """Build an Attachment from a platform record.

        Accepts both ``contentType`` and ``content_type``. Unknown keys are
        ignored and non-string values are dropped, so a malformed record
        degrades to "not an image" instead of raising.
        """
        if not isinstance(record, Mapping):
            raise TypeError(f"attachment record must be a mapping, got {type(record).__name__}")

        raw_id = record.get("id")
        content_type = record.get("contentType")
        if content_type is None:
            content_type = record.get("content_type")

        return cls(
            id=str(raw_id) if raw_id is not None else "",
            url=_opt_str(record.get("url")),
            source=_opt_str(record.get("source")),
            content_type=_opt_str(content_type),
            title=_opt_str(record.get("title")),
            name=_opt_str(record.get("name")),
        )

    @property
    def display_name(self) -> str:
        return self.title or self.name or self.id or "attachment"


def has_image_extension(name: Optional[str]) -> bool:
    """True if ``name`` ends with a recognised image extension (any case)."""
    if not name:
        return False
    lowered = name.lower()
    return any(lowered.endswith(f".{ext}") for ext in IMAGE_EXTENSIONS)


def _url_has_image_extension(url: str) -> bool:
    if has_image_extension(url):
        return True
    # CDN links usually carry a query string after the filename
    try:
        path = urlsplit(url).path
    except ValueError:
        return False
    return has_image_extension(path)


def is_image_attachment(attachment: Attachment) -> bool:
    """Decide whether an attachment is image-like.

    Matches on the platform's image tag, an ``image/`` content type, or a
    URL ending in a known image extension. Pure and total: missing fields
    count as "not an image".
    """
    if attachment.source == IMAGE_SOURCE_TAG:
        return True
    if attachment.content_type and attachment.content_type.lower().startswith(IMAGE_CONTENT_PREFIX):
        return True
    if attachment.url and _url_has_image_extension(attachment.url):
        return True
    return False


def filter_image_attachments(attachments: Iterable[Attachment]) -> list[Attachment]:
    """Keep image-like attachments, preserving message order."""
    return [a for a in attachments if is_image_attachment(a)]
