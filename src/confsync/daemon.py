"""
confsync daemon -- the always-on mirror.

Wires settings, records, engine and controller together, arms the periodic
push, and serves a local HTTP API for status queries, manual pushes,
restores and settings edits.
"""

from __future__ import annotations

import json
import logging
import os
import signal
import threading
from datetime import datetime, timezone
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any, Optional

import requests

from . import CONFSYNC_HOME
from .admin import AdminFacade
from .controller import LifecycleController
from .engine import SyncEngine
from .records import JsonRecordRepository
from .resolver import ConfigResolver
from .settings import SettingsStore
from .store import DEFAULT_API_URL

logger = logging.getLogger("confsync.daemon")

DEFAULT_PORT = 7788
PID_FILE = "daemon.pid"
LOG_DIR = "logs"
SETTINGS_POLL_INTERVAL = 1.0


class DaemonConfig:
    """Configuration for the daemon process.

    Attributes:
        home: confsync home directory.
        port: HTTP API port for local admin calls.
        api_url: Remote store API base URL.
        log_file: Path for daemon log output.
    """

    def __init__(
        self,
        home: Optional[Path] = None,
        port: int = DEFAULT_PORT,
        api_url: str = DEFAULT_API_URL,
    ):
        self.home = (home or Path(CONFSYNC_HOME)).expanduser()
        self.port = port
        self.api_url = api_url

        log_dir = self.home / LOG_DIR
        log_dir.mkdir(parents=True, exist_ok=True)
        self.log_file = log_dir / "daemon.log"


def build_controller(home: Path, api_url: str = DEFAULT_API_URL) -> LifecycleController:
    """Assemble a controller over the file-backed settings and records."""
    home = Path(home).expanduser()
    settings = SettingsStore(home)
    resolver = ConfigResolver(settings)
    engine = SyncEngine(JsonRecordRepository(home), api_url=api_url)
    return LifecycleController(resolver, engine, home=home)


class DaemonService:
    """The sync daemon process.

    Args:
        config: Daemon configuration.
        controller: Pre-built controller. Built from ``config`` if omitted.
    """

    def __init__(
        self,
        config: DaemonConfig,
        controller: Optional[LifecycleController] = None,
    ):
        self.config = config
        self.controller = controller or build_controller(config.home, config.api_url)
        self.admin = AdminFacade(self.controller)
        self.started_at: Optional[datetime] = None
        self._stop_event = threading.Event()
        self._threads: list[threading.Thread] = []
        self._server: Optional[ThreadingHTTPServer] = None

    def start(self) -> None:
        """Write the PID file, arm the sync loop and open the API."""
        self._write_pid()
        self._setup_logging()
        self._setup_signals()
        self.started_at = datetime.now(timezone.utc)

        logger.info(
            "Daemon starting — home=%s port=%d", self.config.home, self.config.port
        )

        self.controller.bind()
        self.controller.start()
        self._start_api_server()

        logger.info("Daemon started — PID %d", os.getpid())

    def stop(self) -> None:
        """Stop the sync loop, the API server and clean up."""
        logger.info("Daemon stopping...")
        self._stop_event.set()
        self.controller.stop()

        if self._server:
            self._server.shutdown()
            self._server.server_close()
            self._server = None

        for t in self._threads:
            t.join(timeout=5)
        self._threads.clear()

        self._remove_pid()
        logger.info("Daemon stopped.")

    def run_forever(self) -> None:
        """Block until stop is signaled.

        Meanwhile the settings file is polled, so edits made with the CLI
        restart the sync loop like edits made through the API.
        """
        try:
            while not self._stop_event.wait(timeout=SETTINGS_POLL_INTERVAL):
                self.controller.settings.reload()
        except KeyboardInterrupt:
            pass
        finally:
            self.stop()

    def status(self) -> dict[str, Any]:
        data = self.controller.status()
        data["pid"] = os.getpid()
        data["uptime_seconds"] = (
            (datetime.now(timezone.utc) - self.started_at).total_seconds()
            if self.started_at
            else 0
        )
        return data

    def _start_api_server(self) -> None:
        """Start the local HTTP API server in a background thread."""
        service = self
        admin = self.admin

        class DaemonHandler(BaseHTTPRequestHandler):
            """HTTP handler for the admin API."""

            def do_GET(self):
                if self.path == "/status":
                    self._json_response({"success": True, "data": service.status()})
                elif self.path == "/ping":
                    self._json_response({"pong": True, "pid": os.getpid()})
                else:
                    self._json_response(
                        {"endpoints": ["/status", "/ping", "/sync", "/sync/pull", "/settings"]}
                    )

            def do_POST(self):
                if self.path == "/sync":
                    self._json_response(admin.trigger())
                elif self.path == "/sync/pull":
                    self._json_response(admin.pull())
                else:
                    self._json_response({"success": False, "message": "not found"}, status=404)

            def do_PUT(self):
                if self.path != "/settings":
                    self._json_response({"success": False, "message": "not found"}, status=404)
                    return
                length = int(self.headers.get("Content-Length") or 0)
                try:
                    body = json.loads(self.rfile.read(length) or b"{}")
                except json.JSONDecodeError:
                    self._json_response({"success": False, "message": "invalid JSON"}, status=400)
                    return
                self._json_response(admin.update_settings(body))

            def _json_response(self, data: dict, status: int = 200):
                self.send_response(status)
                self.send_header("Content-Type", "application/json")
                self.end_headers()
                self.wfile.write(json.dumps(data, indent=2, default=str).encode())

            def log_message(self, format, *args):
                logger.debug("API: %s", format % args)

        try:
            self._server = ThreadingHTTPServer(("127.0.0.1", self.config.port), DaemonHandler)
        except OSError as exc:
            logger.error("Failed to start API server: %s", exc)
            return

        t = threading.Thread(
            target=self._server.serve_forever,
            name="confsync-api",
            daemon=True,
        )
        t.start()
        self._threads.append(t)
        logger.info("API server listening on http://127.0.0.1:%d", self.config.port)

    def _setup_logging(self) -> None:
        """Configure file logging."""
        handler = logging.FileHandler(self.config.log_file)
        handler.setFormatter(
            logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s")
        )
        root = logging.getLogger()
        root.addHandler(handler)
        root.setLevel(logging.INFO)

    def _setup_signals(self) -> None:
        """Register signal handlers for graceful shutdown."""
        if threading.current_thread() is not threading.main_thread():
            return
        for sig in (signal.SIGTERM, signal.SIGINT):
            signal.signal(sig, self._handle_signal)

    def _handle_signal(self, signum, frame):
        logger.info("Received signal %s — stopping", signal.Signals(signum).name)
        self._stop_event.set()

    def _write_pid(self) -> None:
        pid_path = self.config.home / PID_FILE
        pid_path.parent.mkdir(parents=True, exist_ok=True)
        pid_path.write_text(str(os.getpid()), encoding="utf-8")

    def _remove_pid(self) -> None:
        pid_path = self.config.home / PID_FILE
        if pid_path.exists():
            pid_path.unlink()


def read_pid(home: Optional[Path] = None) -> Optional[int]:
    """Read the daemon PID, removing a stale PID file.

    Returns:
        PID as int, or None if not running.
    """
    home = (home or Path(CONFSYNC_HOME)).expanduser()
    pid_path = home / PID_FILE
    if not pid_path.exists():
        return None
    try:
        pid = int(pid_path.read_text(encoding="utf-8").strip())
        os.kill(pid, 0)
        return pid
    except (ValueError, ProcessLookupError, PermissionError):
        pid_path.unlink(missing_ok=True)
        return None


def is_running(home: Optional[Path] = None) -> bool:
    return read_pid(home) is not None


def call_daemon(
    method: str, endpoint: str, port: int = DEFAULT_PORT, payload: Optional[dict] = None
) -> Optional[dict]:
    """Call the running daemon's admin API.

    Returns:
        Decoded response, or None if the daemon is unreachable.
    """
    try:
        resp = requests.request(
            method, f"http://127.0.0.1:{port}{endpoint}", json=payload, timeout=60
        )
        return resp.json()
    except (requests.RequestException, ValueError):
        return None
