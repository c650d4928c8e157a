"""Shared helpers for the CLI command modules."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from rich.console import Console

from .. import CONFSYNC_HOME
from ..controller import LifecycleController
from ..daemon import build_controller

console = Console()


def load_controller(home: str, api_url: Optional[str] = None) -> LifecycleController:
    """Build a one-shot controller for a CLI invocation."""
    home_path = Path(home).expanduser()
    if api_url:
        return build_controller(home_path, api_url=api_url)
    return build_controller(home_path)
