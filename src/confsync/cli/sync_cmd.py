"""Sync commands: status, push, pull."""

from __future__ import annotations

import json
import sys

import click
from rich.panel import Panel
from rich.table import Table

from ..errors import ConfigIncomplete, ConfSyncError
from ..models import SyncReport
from ..settings import SYNC_LAST_TIME
from ._common import CONFSYNC_HOME, console, load_controller


def _print_report(report: SyncReport) -> None:
    table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
    table.add_column("Collection", style="cyan")
    table.add_column("Result")
    for r in report.results:
        if r.skipped:
            outcome = "[dim]absent in store[/]"
        elif report.direction.value == "push":
            outcome = f"{r.pushed} record(s) pushed"
        else:
            outcome = f"{r.inserted} inserted, {r.updated} updated"
        table.add_row(r.collection.value, outcome)
    console.print(table)


def register_sync_commands(main: click.Group) -> None:
    """Register status, push and pull."""

    @main.command("status")
    @click.option("--home", default=CONFSYNC_HOME, type=click.Path())
    @click.option("--json-out", is_flag=True, help="Output as JSON.")
    def status(home: str, json_out: bool):
        """Show whether sync is configured and when it last ran."""
        from ..daemon import is_running

        controller = load_controller(home)
        data = controller.status()
        # A one-shot controller has not synced; report the persisted stamp.
        data["last_sync_time"] = controller.settings.get(SYNC_LAST_TIME) or None
        data["running"] = is_running(controller.home)

        if json_out:
            click.echo(json.dumps(data, indent=2))
            return

        enabled = "[green]configured[/]" if data["enabled"] else "[yellow]not configured[/]"
        daemon = "[green]running[/]" if data["running"] else "[dim]stopped[/]"
        console.print()
        console.print(
            Panel(
                f"Sync: {enabled}\n"
                f"Daemon: {daemon}\n"
                f"Interval: [bold]{data['interval_seconds']:g}s[/]\n"
                f"Last sync: {data['last_sync_time'] or '[dim]never[/]'}",
                title="confsync",
                border_style="cyan",
            )
        )
        console.print()

    @main.command("push")
    @click.option("--home", default=CONFSYNC_HOME, type=click.Path())
    @click.option("--api-url", default=None, help="Override the store API base URL.")
    def push(home: str, api_url: str):
        """Push tokens, channels and models to the remote store now."""
        controller = load_controller(home, api_url)
        console.print("\n  Pushing collections...", end=" ")
        try:
            report = controller.trigger()
        except ConfigIncomplete as exc:
            console.print(f"[yellow]skipped[/]\n  {exc}\n")
            sys.exit(1)
        except ConfSyncError as exc:
            console.print(f"[red]failed[/]\n  {exc}\n")
            sys.exit(1)

        console.print(f"[green]done[/] [dim]({report.target})[/]")
        _print_report(report)
        console.print()

    @main.command("pull")
    @click.option("--home", default=CONFSYNC_HOME, type=click.Path())
    @click.option("--api-url", default=None, help="Override the store API base URL.")
    @click.option("--yes", is_flag=True, help="Do not ask for confirmation.")
    def pull(home: str, api_url: str, yes: bool):
        """Restore collections from the remote store.

        Records present remotely overwrite local records with the same id.
        Nothing local is deleted.
        """
        if not yes:
            click.confirm("Overwrite local records with the remote copies?", abort=True)

        controller = load_controller(home, api_url)
        console.print("\n  Pulling collections...", end=" ")
        try:
            report = controller.restore()
        except ConfigIncomplete as exc:
            console.print(f"[yellow]skipped[/]\n  {exc}\n")
            sys.exit(1)
        except ConfSyncError as exc:
            console.print(f"[red]failed[/]\n  {exc}\n")
            sys.exit(1)

        console.print(f"[green]done[/] [dim]({report.target})[/]")
        _print_report(report)
        console.print()
