"""Shared utilities for chronos-relay CLI commands."""

from pathlib import Path

from rich.console import Console

console = Console()


def to_attachment_url(source: str) -> str:
    """Local paths become ``file://`` URLs; URLs pass through unchanged."""
    if "://" in source:
        return source
    return Path(source).expanduser().resolve().as_uri()
