"""Analyze and download commands: run the ingestion core from the terminal."""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import click
from rich.markdown import Markdown
from rich.rule import Rule
from rich.table import Table

from . import cli
from .shared import console, to_attachment_url


def _build_message(sources: tuple[str, ...], user_id: Optional[str]):
    from chronos_relay.ingestion.attachments import Attachment
    from chronos_relay.ingestion.orchestrator import InboundMessage

    attachments = []
    for i, source in enumerate(sources, start=1):
        url = to_attachment_url(source)
        name = None if "://" in source else Path(source).name
        attachments.append(Attachment(id=f"cli{i}", url=url, name=name))
    return InboundMessage(id="cli", entity_id=user_id, source="cli", attachments=attachments)


async def _print_chunk(text: str, source: Optional[str] = None):
    console.print(Markdown(text))
    console.print(Rule(style="dim"))


def _setup(debug: bool):
    from chronos_relay.config import load_settings
    from chronos_relay.main import build_orchestrator, configure_logging

    settings = load_settings()
    configure_logging(None, debug=debug)
    if not debug:
        # Terminal output is the report itself; keep logs to errors
        logging.getLogger("chronos_relay").setLevel(logging.ERROR)
    return settings, build_orchestrator(settings)


def _print_summary(report):
    table = Table(title="Summary", padding=(0, 2))
    table.add_column("Image", style="bold")
    table.add_column("Status")
    table.add_column("Detail")
    for outcome in report.outcomes:
        if outcome.success:
            detail = f"{len(outcome.results)} result(s)" if outcome.results is not None else outcome.path or ""
            table.add_row(outcome.name, "[green]ok[/green]", detail)
        else:
            table.add_row(outcome.name, f"[red]{outcome.error_kind}[/red]", outcome.error or "")
    console.print(table)


@cli.command()
@click.argument("sources", nargs=-1, required=True)
@click.option("--user", "user_id", default=None, help="User id passed to the pipeline")
@click.option("--timeout", type=float, default=None, help="Kill the pipeline after this many seconds")
@click.option("--debug", is_flag=True, help="Show pipeline logs")
def analyze(sources, user_id, timeout, debug):
    """Analyse local images or image URLs and print the results."""
    _, orchestrator = _setup(debug)
    if timeout:
        orchestrator.invoker.timeout = timeout

    message = _build_message(sources, user_id)
    from chronos_relay.ingestion.attachments import filter_image_attachments
    skipped = len(message.attachments) - len(filter_image_attachments(message.attachments))
    if skipped:
        console.print(f"[yellow]Skipping {skipped} source(s) that do not look like images.[/yellow]")

    with console.status("[bold blue]Running analysis...[/bold blue]"):
        report = asyncio.run(orchestrator.handle_message(message, _print_chunk))

    _print_summary(report)
    if not report.success:
        raise SystemExit(1)


@cli.command()
@click.argument("sources", nargs=-1, required=True)
@click.option("--debug", is_flag=True, help="Show download logs")
def download(sources, debug):
    """Download images into the working directory without analysing them."""
    _, orchestrator = _setup(debug)
    message = _build_message(sources, None)

    report = asyncio.run(orchestrator.download_only(message, _print_chunk))

    console.print(f"[dim]Working directory: {orchestrator.acquirer.work_dir}[/dim]")
    if not report.success:
        raise SystemExit(1)
