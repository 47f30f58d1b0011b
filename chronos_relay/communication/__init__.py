"""Communication sub-core: channel-agnostic outbound handling.

- Outbound: report formatting, message splitting
- Errors: per-attachment failure notices
"""

from .errors import classify_error
from .outbound import (
    DEFAULT_CHUNK_LENGTH,
    format_download_summary,
    format_results,
    split_message,
    split_sentences,
)

__all__ = [
    "DEFAULT_CHUNK_LENGTH",
    "classify_error",
    "format_download_summary",
    "format_results",
    "split_message",
    "split_sentences",
]
