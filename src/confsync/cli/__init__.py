"""
confsync CLI.

The main Click group lives here; each command group registers itself from
its own module.

Entry point: confsync.cli:main
"""

from __future__ import annotations

import click

from .. import __version__


@click.group()
@click.version_option(version=__version__, prog_name="confsync")
def main():
    """confsync: mirror gateway configuration to a remote store."""


from .sync_cmd import register_sync_commands
from .config_cmd import register_config_commands
from .records_cmd import register_records_commands
from .daemon import register_daemon_commands

register_sync_commands(main)
register_config_commands(main)
register_records_commands(main)
register_daemon_commands(main)
