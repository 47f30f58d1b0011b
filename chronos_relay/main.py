"""Chronos relay: Main entry point."""

import asyncio
import logging
from typing import Optional

from .config import RelaySettings, load_settings, resolve_path
from .ingestion.acquire import ImageAcquirer
from .ingestion.orchestrator import IngestionOrchestrator
from .ingestion.pipeline import PipelineInvoker

_log_format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

logger = logging.getLogger("chronos_relay")


def configure_logging(log_file: Optional[str] = None, debug: bool = False):
    """Console logging plus an optional log file."""
    handlers: list[logging.Handler] = [logging.StreamHandler()]  # stderr (console)
    if log_file:
        handlers.append(logging.FileHandler(resolve_path(log_file), encoding="utf-8"))

    logging.basicConfig(level=logging.INFO, format=_log_format, handlers=handlers)
    if debug:
        logging.getLogger("chronos_relay").setLevel(logging.DEBUG)
    # httpx logs every request URL at INFO, and Telegram file URLs carry the bot token
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def build_orchestrator(settings: RelaySettings) -> IngestionOrchestrator:
    """Wire acquirer, invoker and orchestrator from settings.

    One invoker is shared by every channel, so ``pipeline_exclusive``
    serializes pipeline runs process-wide.
    """
    acquirer = ImageAcquirer(
        work_dir=resolve_path(settings.work_dir),
        timeout=settings.download_timeout,
    )
    invoker = PipelineInvoker(
        python=settings.pipeline_python,
        script=resolve_path(settings.pipeline_script),
        cwd=resolve_path(settings.pipeline_cwd) if settings.pipeline_cwd else None,
        timeout=settings.pipeline_timeout,
        exclusive=settings.pipeline_exclusive,
    )
    return IngestionOrchestrator(
        acquirer=acquirer,
        invoker=invoker,
        chunk_length=settings.chunk_length,
        default_user_id=settings.default_user_id,
    )


async def run(settings: Optional[RelaySettings] = None):
    """Main run loop."""
    from .channels.telegram import TelegramChannel

    settings = settings or load_settings()
    if not settings.telegram_bot_token:
        logger.error("No Telegram bot token configured. Set CHRONOS_TELEGRAM_BOT_TOKEN in .env.")
        return

    orchestrator = build_orchestrator(settings)
    telegram = TelegramChannel(orchestrator, settings.telegram_bot_token)
    stop_event = asyncio.Event()

    try:
        await telegram.start()
        logger.info(
            f"Chronos relay is running (pipeline exclusive={orchestrator.invoker.exclusive}). "
            "Press Ctrl+C to stop."
        )
        await stop_event.wait()
    except (KeyboardInterrupt, asyncio.CancelledError):
        pass
    except Exception as e:
        logger.critical(f"Fatal error: {type(e).__name__}: {e}", exc_info=True)
    finally:
        await telegram.stop()


def main():
    """Entry point."""
    settings = load_settings()
    configure_logging(settings.log_file)
    asyncio.run(run(settings))


if __name__ == "__main__":
    main()
