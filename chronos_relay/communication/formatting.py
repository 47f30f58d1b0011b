"""Markdown to Telegram HTML converter.

Reports use a small markdown subset (``**bold**``, ``*italic*``,
```` `code` ````, ```` ``` ```` fences, links). Telegram only accepts
a limited HTML subset, so reports are converted chunk by chunk just
before sending. Text outside those patterns is HTML-escaped.
"""

import html as _html
import re

_CODE_SPAN_RE = re.compile(r"`([^`]+)`")
_LINK_RE = re.compile(r"\[([^\]]+)\]\((https?://[^)\s]+)\)")
_BOLD_RE = re.compile(r"\*\*(.+?)\*\*")
_ITALIC_RE = re.compile(r"(?<!\w)\*([^*]+?)\*(?!\w)")


def _escape(text: str) -> str:
    """Escape HTML special characters in plain text segments."""
    return _html.escape(text, quote=False)


def markdown_to_telegram_html(text: str) -> str:
    """Convert one report chunk to Telegram-safe HTML.

    An unterminated code fence (a chunk boundary fell inside it) is
    closed at the end of the chunk.
    """
    if not text:
        return text

    out: list[str] = []
    code: list[str] = []
    in_fence = False

    for line in text.split("\n"):
        if line.strip().startswith("```"):
            if in_fence:
                out.append(f"<pre>{_escape(chr(10).join(code))}</pre>")
                code = []
            in_fence = not in_fence
            continue
        if in_fence:
            code.append(line)
        else:
            out.append(_format_inline(line))

    if in_fence:
        out.append(f"<pre>{_escape(chr(10).join(code))}</pre>")

    return "\n".join(out)


def _format_inline(line: str) -> str:
    parts = []
    last_end = 0
    for match in _CODE_SPAN_RE.finditer(line):
        parts.append(_format_text_segment(line[last_end:match.start()]))
        parts.append(f"<code>{_escape(match.group(1))}</code>")
        last_end = match.end()
    parts.append(_format_text_segment(line[last_end:]))
    return "".join(parts)


def _format_text_segment(text: str) -> str:
    """Apply links, bold and italic to an escaped text segment."""
    if not text:
        return text
    text = _escape(text)
    text = _LINK_RE.sub(r'<a href="\2">\1</a>', text)
    text = _BOLD_RE.sub(r"<b>\1</b>", text)
    text = _ITALIC_RE.sub(r"<i>\1</i>", text)
    return text
