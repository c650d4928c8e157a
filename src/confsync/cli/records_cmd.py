"""Records commands: list local collections."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click
from rich.table import Table

from ..errors import RecordStoreError
from ..models import CollectionKind
from ..records import JsonRecordRepository
from ._common import CONFSYNC_HOME, console


def register_records_commands(main: click.Group) -> None:
    """Register the records command group."""

    @main.group()
    def records():
        """Inspect the local record collections."""

    @records.command("list")
    @click.argument(
        "collection",
        type=click.Choice([k.value for k in CollectionKind]),
        required=False,
    )
    @click.option("--home", default=CONFSYNC_HOME, type=click.Path())
    @click.option("--json-out", is_flag=True, help="Output as JSON.")
    def records_list(collection: str, home: str, json_out: bool):
        """Count records per collection, or dump one collection as JSON."""
        repo = JsonRecordRepository(Path(home).expanduser())
        try:
            if collection:
                kind = CollectionKind(collection)
                rows = [
                    {k: v for k, v in rec.items() if k not in kind.sensitive_fields}
                    for rec in repo.list_records(kind)
                ]
                click.echo(json.dumps(rows, indent=2, ensure_ascii=False))
                return
            counts = {k.value: repo.count(k) for k in CollectionKind}
        except RecordStoreError as exc:
            console.print(f"[red]{exc}[/]")
            sys.exit(1)

        if json_out:
            click.echo(json.dumps(counts, indent=2))
            return

        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
        table.add_column("Collection", style="cyan")
        table.add_column("Records", justify="right")
        for name, count in counts.items():
            table.add_row(name, str(count))
        console.print()
        console.print(table)
        console.print()
