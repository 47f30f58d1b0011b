"""Outbound message processing: report formatting and length-bounded splitting.

These operations are channel-agnostic. Every channel formats the
analysis report here and splits it before platform delivery.
"""

import re
from typing import Iterable, Sequence

from ..ingestion.results import QAResult


# Chat platforms cap messages at 2000 characters; leave headroom
DEFAULT_CHUNK_LENGTH = 1900

REPORT_TITLE = "🔬 **Chronos Analysis Results**"
NO_RESULTS_TEXT = "🔬 The analysis finished but did not produce any questions for this image."


# ============================================================
# REPORT FORMATTING
# ============================================================

def format_results(results: Sequence[QAResult], title: str = REPORT_TITLE) -> str:
    """Render question/answer pairs as a readable chat report.

    Each pair becomes ``**Qn:** question``, ``**An:** answer`` and a
    ``---`` separator, with blank lines between them so the chunker can
    split cleanly at pair boundaries.
    """
    parts = [f"{title}\n\n"]
    for i, result in enumerate(results, start=1):
        parts.append(f"**Q{i}:** {result.question}\n\n")
        parts.append(f"**A{i}:** {result.answer}\n\n")
        parts.append("---\n\n")
    return "".join(parts)


def format_download_summary(downloaded: Iterable[str], errors: Iterable[str]) -> str:
    """Summary for download-only requests: saved files first, then failures."""
    downloaded = list(downloaded)
    errors = list(errors)

    text = ""
    if downloaded:
        listing = "\n".join(f"- {name}" for name in downloaded)
        text = f"Successfully downloaded {len(downloaded)} image(s):\n{listing}"
    if errors:
        text += f"\n\nFailed to download {len(errors)} image(s):\n" + "\n".join(errors)
    return text.strip() or "No images found in message"


# ============================================================
# MESSAGE SPLITTING
# ============================================================

# A sentence is text up to a run of terminal punctuation; trailing text
# without punctuation is its own piece so nothing is dropped.
_SENTENCE_RE = re.compile(r"[^.!?]*[.!?]+|[^.!?]+")


def split_sentences(line: str) -> list[str]:
    """Split a line into sentence pieces whose concatenation is the line."""
    return _SENTENCE_RE.findall(line) or [line]


def split_message(text: str, max_length: int = DEFAULT_CHUNK_LENGTH) -> list[str]:
    """Split a long message into chunks respecting a platform length limit.

    Lines are accumulated until the next line (with its newline) would
    overflow, then the chunk is flushed trimmed. A line that is too long on
    its own is split at sentence boundaries. A single sentence longer than
    the limit is sent as-is, never truncated.

    Args:
        text: Message text to split
        max_length: Maximum length per chunk (default: 1900)

    Returns:
        Ordered list of chunks
    """
    if max_length < 1:
        raise ValueError(f"max_length must be at least 1, got {max_length}")

    if len(text) <= max_length:
        return [text]

    chunks: list[str] = []
    current = ""

    def flush():
        nonlocal current
        piece = current.strip()
        if piece:
            chunks.append(piece)
        current = ""

    for line in text.split("\n"):
        if len(current) + len(line) + 1 <= max_length:
            current += line + "\n"
            continue

        flush()

        if len(line) <= max_length:
            current = line + "\n"
            continue

        for sentence in split_sentences(line):
            if len(current) + len(sentence) > max_length:
                flush()
                current = sentence
            else:
                current += sentence
        current += "\n"

    flush()
    return chunks or [text.strip()]
