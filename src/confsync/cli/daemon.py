"""Daemon commands: start, stop, status."""

from __future__ import annotations

import json
import os
import signal
import sys
from pathlib import Path

import click
from rich.panel import Panel

from ..daemon import DEFAULT_PORT
from ..store import DEFAULT_API_URL
from ._common import CONFSYNC_HOME, console


def register_daemon_commands(main: click.Group) -> None:
    """Register the daemon command group."""

    @main.group()
    def daemon():
        """Background daemon: periodic push and local admin API."""

    @daemon.command("start")
    @click.option("--home", default=CONFSYNC_HOME, type=click.Path())
    @click.option("--port", default=DEFAULT_PORT, help="Admin API port.")
    @click.option("--api-url", default=DEFAULT_API_URL, help="Remote store API base URL.")
    def daemon_start(home: str, port: int, api_url: str):
        """Run the sync daemon in the foreground (Ctrl+C to stop).

        Pushes on the configured interval and serves
        http://127.0.0.1:<port>/status, /sync, /sync/pull and /settings.
        """
        from ..daemon import DaemonConfig, DaemonService, is_running

        home_path = Path(home).expanduser()
        if is_running(home_path):
            console.print("[yellow]Daemon is already running.[/]")
            sys.exit(0)

        config = DaemonConfig(home=home_path, port=port, api_url=api_url)
        svc = DaemonService(config)

        console.print(f"\n  [green]Starting daemon[/] on port [cyan]{port}[/]")
        console.print(f"  Log: {config.log_file}\n")

        svc.start()
        if not svc.controller.running:
            console.print(
                "  [yellow]Sync not configured — the loop will start once "
                "sync_token and sync_repo are set.[/]\n"
            )
        svc.run_forever()

    @daemon.command("stop")
    @click.option("--home", default=CONFSYNC_HOME, type=click.Path())
    def daemon_stop(home: str):
        """Stop the running daemon."""
        from ..daemon import read_pid

        home_path = Path(home).expanduser()
        pid = read_pid(home_path)
        if pid is None:
            console.print("[yellow]Daemon is not running.[/]")
            return

        try:
            os.kill(pid, signal.SIGTERM)
        except ProcessLookupError:
            console.print("[yellow]Daemon exited before it could be stopped.[/]")
            return
        console.print(f"\n  [green]Sent SIGTERM to daemon (PID {pid})[/]\n")

    @daemon.command("status")
    @click.option("--home", default=CONFSYNC_HOME, type=click.Path())
    @click.option("--port", default=DEFAULT_PORT, help="Admin API port to query.")
    @click.option("--json-out", is_flag=True, help="Output as JSON.")
    def daemon_status(home: str, port: int, json_out: bool):
        """Show the running daemon's sync status."""
        from ..daemon import call_daemon, is_running, read_pid

        home_path = Path(home).expanduser()
        if not is_running(home_path):
            if json_out:
                click.echo(json.dumps({"running": False}))
            else:
                console.print("\n  [yellow]Daemon is not running.[/]\n")
            return

        resp = call_daemon("GET", "/status", port=port)
        status = (resp or {}).get("data")
        if json_out:
            click.echo(json.dumps(status or {"pid": read_pid(home_path), "api": "unreachable"}, indent=2))
            return

        if not status:
            console.print(f"\n  [yellow]Daemon PID {read_pid(home_path)} is alive but the API is unreachable.[/]\n")
            return

        loop = "[green]armed[/]" if status.get("running") else "[yellow]idle[/]"
        console.print()
        console.print(
            Panel(
                f"PID: [bold]{status.get('pid')}[/]\n"
                f"Sync loop: {loop}\n"
                f"Configured: {'yes' if status.get('enabled') else 'no'}\n"
                f"Interval: {status.get('interval_seconds')}s\n"
                f"Last sync: {status.get('last_sync_time') or '[dim]never[/]'}\n"
                f"API: [green]http://127.0.0.1:{port}[/]",
                title="[green]Daemon Running[/]",
                border_style="green",
            )
        )
        console.print()
