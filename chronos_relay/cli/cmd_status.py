"""Status command."""

import os

from rich.table import Table

from . import cli
from .shared import console


@cli.command()
def status():
    """Show effective configuration."""
    from chronos_relay import __version__
    from chronos_relay.config import load_settings, resolve_path

    settings = load_settings()

    table = Table(title=f"Chronos relay v{__version__}", show_header=False, padding=(0, 2))
    table.add_column("Key", style="bold")
    table.add_column("Value")

    table.add_row(
        "Telegram",
        "[green]token set[/green]" if settings.telegram_bot_token else "[red]no token (CHRONOS_TELEGRAM_BOT_TOKEN)[/red]",
    )

    python_ok = os.path.isfile(settings.pipeline_python) and os.access(settings.pipeline_python, os.X_OK)
    table.add_row(
        "Interpreter",
        settings.pipeline_python if python_ok else f"[red]{settings.pipeline_python} (not executable)[/red]",
    )

    script = resolve_path(settings.pipeline_script)
    table.add_row("Pipeline script", script if os.path.isfile(script) else f"[red]{script} (missing)[/red]")
    table.add_row("Pipeline timeout", f"{settings.pipeline_timeout:g}s" if settings.pipeline_timeout else "none")
    table.add_row(
        "Pipeline runs",
        "serialized" if settings.pipeline_exclusive else "[yellow]unguarded across messages[/yellow]",
    )
    table.add_row("Working directory", resolve_path(settings.work_dir))
    table.add_row("Chunk length", str(settings.chunk_length))
    table.add_row("Log file", resolve_path(settings.log_file) if settings.log_file else "console only")

    console.print(table)
