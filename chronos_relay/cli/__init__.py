"""Chronos relay CLI: command line interface."""

import sys

import click

from chronos_relay import __version__
from .shared import console


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="chronos-relay")
@click.pass_context
def cli(ctx):
    """Chronos relay: chat image ingestion for the Chronos analysis pipeline"""
    if ctx.invoked_subcommand is None:
        _show_help()


def _show_help():
    """Show all available commands grouped by category."""
    console.print(f"[bold]chronos-relay v{__version__}[/bold], Chronos analysis over chat\n")

    groups = {
        "Usage": [
            ("start", "Start the relay (Telegram bot)"),
            ("analyze", "Analyse local images or image URLs and print the results"),
            ("download", "Download image URLs into the working directory"),
        ],
        "Info": [
            ("status", "Show effective configuration"),
        ],
    }

    for category, commands in groups.items():
        console.print(f"  [bold cyan]{category}[/bold cyan]")
        for name, desc in commands:
            console.print(f"    [bold]chronos-relay {name:10s}[/bold] {desc}")
        console.print()

    console.print("[dim]Run 'chronos-relay <command> --help' for details on a specific command.[/dim]")


# Import all command modules (registers commands onto cli group)
from . import cmd_start  # noqa: E402, F401
from . import cmd_analyze  # noqa: E402, F401
from . import cmd_status  # noqa: E402, F401


@cli.command(name="help", hidden=True)
def help_cmd():
    """Show all available commands."""
    _show_help()


def main():
    """CLI entry point."""
    try:
        cli(standalone_mode=False)
    except click.UsageError as e:
        if e.ctx:
            click.echo(e.ctx.command.get_usage(e.ctx), err=True)
        click.echo("Try 'chronos-relay help' for help.\n", err=True)
        click.echo(f"Error: {e.format_message()}", err=True)
        sys.exit(2)
    except click.ClickException as e:
        e.show()
        sys.exit(e.exit_code)
    except click.exceptions.Exit as e:
        sys.exit(e.code)
    except click.Abort:
        click.echo("Aborted!", err=True)
        sys.exit(1)
