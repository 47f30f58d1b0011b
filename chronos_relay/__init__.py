"""Chronos relay: chat image ingestion for the Chronos analysis pipeline."""

__version__ = "0.1.0"
