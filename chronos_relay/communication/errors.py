"""Channel-agnostic error classification for user-facing failure notices."""

import asyncio
from typing import Optional

import httpx

from ..ingestion.errors import AcquisitionError, DeliveryError, ExtractionError, InvocationError


def classify_error(e: Exception, name: Optional[str] = None) -> str:
    """Turn a per-attachment failure into one short chat notice.

    Works for every channel. ``name`` is the attachment's display name
    and is included when known.
    """
    label = f" `{name}`" if name else ""

    # 1: Download problems
    if isinstance(e, AcquisitionError):
        if e.status_code == 404:
            return f"❌ Couldn't download image{label}: it no longer exists."
        if e.status_code in (401, 403):
            return f"❌ Couldn't download image{label}: access was denied."
        return f"❌ Couldn't download image{label}. Please try sending it again."

    # 2: Pipeline run
    if isinstance(e, InvocationError):
        if e.timed_out:
            return f"⚠️ Analysis of image{label} took too long and was stopped."
        return f"⚠️ Failed to process image{label}. Please check the logs for details."

    # 3: Pipeline output without a results block
    if isinstance(e, ExtractionError):
        return f"⚠️ Analysis of image{label} returned no results. Please check the logs for details."

    # 4: Delivery
    if isinstance(e, DeliveryError):
        return f"⚠️ Some results for image{label} could not be delivered."

    # 5-6: Network / timeout errors outside acquisition
    if isinstance(e, httpx.ConnectError):
        return "⚠️ Cannot connect to the image host. Please check connectivity and try again."
    if isinstance(e, (httpx.TimeoutException, asyncio.TimeoutError)):
        return "⚠️ Request timed out. Please try again."

    # 7: Fallback with the type name
    type_name = type(e).__name__
    return f"❌ An error occurred while processing the image{label} ({type_name})."
