"""Config commands: show, set, unset."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click
from rich.table import Table

from ..admin import EDITABLE_KEYS
from ..resolver import ENV_REPO, ENV_TOKEN
from ..settings import SettingsStore
from ._common import CONFSYNC_HOME, console


def register_config_commands(main: click.Group) -> None:
    """Register the config command group."""

    @main.group()
    def config():
        """Read and edit persisted sync settings.

        GITHUB_SYNC_TOKEN and GITHUB_SYNC_REPO in the environment take
        precedence over these when both are set.
        """

    @config.command("show")
    @click.option("--home", default=CONFSYNC_HOME, type=click.Path())
    @click.option("--json-out", is_flag=True, help="Output as JSON.")
    def config_show(home: str, json_out: bool):
        """Show settings, with secrets masked."""
        settings = SettingsStore(Path(home).expanduser())
        values = settings.redacted()

        if json_out:
            click.echo(json.dumps(values, indent=2))
            return

        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
        table.add_column("Key", style="cyan")
        table.add_column("Value")
        for key in sorted(values):
            table.add_row(key, values[key])
        console.print()
        console.print(table if values else "  [dim]No settings stored.[/]")
        console.print(f"\n  [dim]Environment override: {ENV_TOKEN} + {ENV_REPO}[/]\n")

    @config.command("set")
    @click.argument("key", type=click.Choice(EDITABLE_KEYS))
    @click.argument("value")
    @click.option("--home", default=CONFSYNC_HOME, type=click.Path())
    def config_set(key: str, value: str, home: str):
        """Persist one sync setting."""
        settings = SettingsStore(Path(home).expanduser())
        try:
            changed = settings.update({key: value})
        except OSError as exc:
            console.print(f"[red]Could not write settings:[/] {exc}")
            sys.exit(1)
        if changed:
            console.print(f"  [green]{key} updated[/]")
        else:
            console.print(f"  [dim]{key} unchanged[/]")

    @config.command("unset")
    @click.argument("key", type=click.Choice(EDITABLE_KEYS))
    @click.option("--home", default=CONFSYNC_HOME, type=click.Path())
    def config_unset(key: str, home: str):
        """Remove one sync setting."""
        settings = SettingsStore(Path(home).expanduser())
        settings.update({key: None})
        console.print(f"  [green]{key} removed[/]")
