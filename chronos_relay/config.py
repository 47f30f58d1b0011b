"""Chronos relay configuration management."""

import logging
import os
import sys
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings

from .communication.outbound import DEFAULT_CHUNK_LENGTH


class RelaySettings(BaseSettings):
    """Settings loaded from environment variables or .env file."""

    # Telegram
    telegram_bot_token: Optional[str] = Field(default=None, description="Telegram bot token")

    # Analysis pipeline
    pipeline_python: str = Field(
        default=sys.executable,
        description="Interpreter used to run the pipeline script",
    )
    pipeline_script: str = Field(
        default=os.path.join("chronos", "discord_main.py"),
        description="Pipeline entry script (relative paths resolve against the current directory)",
    )
    pipeline_cwd: Optional[str] = Field(default=None, description="Pipeline working directory")
    pipeline_timeout: Optional[float] = Field(
        default=None, gt=0,
        description="Kill the pipeline after this many seconds (unset = wait indefinitely)",
    )
    pipeline_exclusive: bool = Field(
        default=False,
        description="Serialize all pipeline runs (the pipeline resets a shared store per run)",
    )

    # Ingestion
    work_dir: str = Field(default="temp_images", description="Scratch directory for downloaded images")
    download_timeout: float = Field(default=30.0, gt=0, description="Image download timeout (seconds)")
    chunk_length: int = Field(
        default=DEFAULT_CHUNK_LENGTH, ge=1, le=4096,
        description="Maximum characters per outbound chat message",
    )
    default_user_id: str = Field(default="chat_user", description="User id passed when the sender is unknown")

    # Logging
    log_file: Optional[str] = Field(
        default="~/chronos-relay.log",
        description="Log file path (empty = console only)",
    )

    model_config = {"env_prefix": "CHRONOS_", "env_file": ".env", "extra": "ignore"}


def resolve_path(path: str) -> str:
    """Expand ``~`` and anchor relative paths at the current directory."""
    return os.path.abspath(os.path.expanduser(path))


def load_settings() -> RelaySettings:
    """Load settings from environment."""
    settings = RelaySettings()

    logger = logging.getLogger("chronos_relay.config")
    script = resolve_path(settings.pipeline_script)
    if not os.path.isfile(script):
        logger.warning(
            f"Pipeline script not found at {script}. "
            "Set CHRONOS_PIPELINE_SCRIPT; every analysis will fail until it exists."
        )

    return settings
