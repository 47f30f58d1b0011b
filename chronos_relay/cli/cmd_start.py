"""Start command."""

import asyncio

import click

from . import cli
from .shared import console


@cli.command()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def start(debug):
    """Start the relay (Telegram bot)."""
    from chronos_relay.config import load_settings
    from chronos_relay.main import configure_logging, run

    settings = load_settings()
    configure_logging(settings.log_file, debug=debug)

    console.print("[bold blue]Starting Chronos relay...[/bold blue]")
    asyncio.run(run(settings))
