"""
Lifecycle controller -- owns the periodic push loop.

States are Stopped and Running. ``start`` from Running stops the old loop
first, under the same lock, so a process never has two loops ticking.
Stopping is cooperative: the loop is told not to tick again, an in-flight
push is allowed to finish on its own.

Manual ``trigger`` (push) and ``restore`` (pull) bypass the timer and may
overlap a scheduled tick.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional

from .audit import audit_event
from .engine import SyncEngine
from .errors import ConfigIncomplete, ConfSyncError
from .models import EffectiveConfig, SyncReport, SyncRunState
from .resolver import ConfigResolver
from .settings import SYNC_CONFIG_KEYS, SYNC_LAST_TIME, SettingsStore

logger = logging.getLogger("confsync.controller")

STOP_GRACE_PERIOD = 0.1


class LifecycleController:
    """Start/stop/restart state machine around the sync loop.

    Args:
        resolver: Source of the effective configuration.
        engine: Performs the actual push and pull.
        home: confsync home, for the audit log. None disables auditing.
        grace_period: Seconds ``stop`` waits for the loop thread to exit.
    """

    def __init__(
        self,
        resolver: ConfigResolver,
        engine: SyncEngine,
        home: Optional[Path] = None,
        grace_period: float = STOP_GRACE_PERIOD,
    ):
        self.resolver = resolver
        self.engine = engine
        self.home = home
        self.grace_period = grace_period

        self._lock = threading.Lock()
        self._state = SyncRunState()
        self._stop_event: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None
        self._interval: Optional[float] = None

    @property
    def settings(self) -> SettingsStore:
        return self.resolver.settings

    @property
    def running(self) -> bool:
        with self._lock:
            return self._state.running

    @property
    def last_sync_time(self) -> Optional[datetime]:
        with self._lock:
            return self._state.last_sync_time

    def bind(self, settings: Optional[SettingsStore] = None) -> None:
        """Restart the loop whenever a sync setting changes."""
        (settings or self.settings).subscribe(self.restart, SYNC_CONFIG_KEYS)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def start(self) -> bool:
        """Arm the periodic loop.

        Returns:
            True if a loop is now running, False if the configuration is
            incomplete (the controller is then Stopped).
        """
        with self._lock:
            if self._state.running:
                logger.info("Stopping the current sync loop before re-arming")
                self._stop_locked()

            config, ok = self.resolver.resolve()
            if not ok:
                logger.info(
                    "Sync configuration incomplete, auto-sync not started. "
                    "Set GITHUB_SYNC_TOKEN and GITHUB_SYNC_REPO, or configure "
                    "sync_token and sync_repo in settings."
                )
                return False

            stop_event = threading.Event()
            thread = threading.Thread(
                target=self._run_loop,
                args=(stop_event, config.interval),
                name="confsync-sync",
                daemon=True,
            )
            self._stop_event = stop_event
            self._thread = thread
            self._interval = config.interval
            self._state.running = True
            thread.start()

        logger.info(
            "Auto-sync started from %s config, interval %gs",
            config.source, config.interval,
        )
        return True

    def stop(self) -> None:
        """Stop the loop. No-op when already stopped."""
        with self._lock:
            if not self._state.running:
                return
            logger.info("Stopping auto-sync")
            self._stop_locked()

    def restart(self, changed: Optional[Iterable[str]] = None) -> bool:
        """Re-read configuration and re-arm. Settings observer entry point."""
        if changed:
            logger.info("Sync settings changed (%s), restarting", ", ".join(sorted(changed)))
        else:
            logger.info("Restarting auto-sync")
        return self.start()

    def _stop_locked(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self.grace_period)
            if thread.is_alive():
                logger.info("Sync loop is mid-push, it will exit when the push returns")
        self._stop_event = None
        self._thread = None
        self._interval = None
        self._state.running = False

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def _run_loop(self, stop_event: threading.Event, interval: float) -> None:
        while not stop_event.wait(timeout=interval):
            self._tick()
        logger.info("Auto-sync loop exited")

    def _tick(self) -> None:
        config, ok = self.resolver.resolve()
        if not ok:
            logger.info("Sync configuration incomplete, skipping this tick")
            return

        logger.info("Starting scheduled sync to %s", config.destination)
        try:
            report = self.engine.push_all(
                config.target, policies=self.resolver.resolve_policies()
            )
        except Exception as exc:
            logger.error("Scheduled sync failed: %s", exc)
            self._audit("SYNC_ERROR", f"Scheduled push failed: {exc}")
            return

        self._record_sync()
        self._audit("SYNC_PUSH", f"Scheduled push: {report.summary()}", report)
        logger.info("Scheduled sync completed")

    # ------------------------------------------------------------------
    # Manual operations
    # ------------------------------------------------------------------

    def _require_config(self) -> EffectiveConfig:
        config, ok = self.resolver.resolve()
        if not ok:
            raise ConfigIncomplete()
        return config

    def trigger(self) -> SyncReport:
        """Push once, right now, outside the schedule.

        Raises:
            ConfigIncomplete: If no credential/destination is configured.
            ConfSyncError: If the push fails.
        """
        config = self._require_config()
        try:
            report = self.engine.push_all(
                config.target, policies=self.resolver.resolve_policies()
            )
        except ConfSyncError as exc:
            self._audit("SYNC_ERROR", f"Manual push failed: {exc}")
            raise

        self._record_sync()
        self._audit("SYNC_PUSH", f"Manual push: {report.summary()}", report)
        return report

    def restore(self) -> SyncReport:
        """Pull once from the store into the local collections.

        Raises:
            ConfigIncomplete: If no credential/destination is configured.
            ConfSyncError: If the pull fails.
        """
        config = self._require_config()
        try:
            report = self.engine.pull_all(
                config.target, policies=self.resolver.resolve_policies()
            )
        except ConfSyncError as exc:
            self._audit("SYNC_ERROR", f"Restore failed: {exc}")
            raise

        self._record_sync()
        self._audit("SYNC_PULL", f"Restore: {report.summary()}", report)
        return report

    def status(self) -> dict:
        """Serializable view of the controller."""
        with self._lock:
            running = self._state.running
            last = self._state.last_sync_time
            interval = self._interval
        return {
            "enabled": self.resolver.is_enabled(),
            "running": running,
            "last_sync_time": last.isoformat() if last else None,
            "interval_seconds": interval if interval is not None else self.resolver.resolve_interval(),
        }

    def _record_sync(self) -> None:
        now = datetime.now(timezone.utc)
        with self._lock:
            self._state.last_sync_time = now
        try:
            self.settings.set(SYNC_LAST_TIME, now.isoformat())
        except OSError as exc:
            logger.warning("Could not persist last sync time: %s", exc)

    def _audit(self, event_type: str, detail: str, report: Optional[SyncReport] = None) -> None:
        if self.home is None:
            return
        metadata = report.model_dump(mode="json") if report else None
        audit_event(self.home, event_type, detail, metadata=metadata)
