"""
Persisted settings -- a small YAML-backed option map.

Readers take a shared lock so a consistent snapshot of several keys can be
read while an administrator writes elsewhere. Writers take the exclusive
side, persist to disk, then notify subscribers of the keys that changed.
"""

from __future__ import annotations

import logging
import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional

import yaml

from ._atomic import write_text_atomic

logger = logging.getLogger("confsync.settings")

SYNC_TOKEN = "sync_token"
SYNC_REPO = "sync_repo"
SYNC_INTERVAL = "sync_interval"
SYNC_REDACT = "sync_redact"
SYNC_LAST_TIME = "sync_last_time"

# Keys whose change must re-arm the sync loop.
SYNC_CONFIG_KEYS = frozenset({SYNC_TOKEN, SYNC_REPO, SYNC_INTERVAL, SYNC_REDACT})

SECRET_KEYS = frozenset({SYNC_TOKEN})

ChangeCallback = Callable[[set[str]], None]


class ReadWriteLock:
    """Many concurrent readers or one writer."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writing = False

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writing:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            while self._writing or self._readers:
                self._cond.wait()
            self._writing = True
        try:
            yield
        finally:
            with self._cond:
                self._writing = False
                self._cond.notify_all()


class SettingsStore:
    """String-valued settings persisted to ``config/settings.yaml``.

    The file is shared with other processes (the CLI edits it while the
    daemon runs). Reads pick up a changed file, and writes merge into the
    current file rather than the in-memory copy.

    Args:
        home: confsync home directory.
    """

    def __init__(self, home: Path):
        self.path = Path(home).expanduser() / "config" / "settings.yaml"
        self._lock = ReadWriteLock()
        self._signature = self._stat_signature()
        self._values: dict[str, str] = self._load()
        self._external: set[str] = set()
        self._subscribers: list[tuple[ChangeCallback, frozenset[str]]] = []

    def _stat_signature(self, stat: Optional[os.stat_result] = None) -> Optional[tuple]:
        if stat is None:
            try:
                stat = self.path.stat()
            except FileNotFoundError:
                return None
        return (stat.st_ino, stat.st_mtime_ns, stat.st_size)

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = yaml.safe_load(self.path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as exc:
            logger.warning("Failed to load settings from %s: %s", self.path, exc)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring malformed settings file %s", self.path)
            return {}
        return {str(k): "" if v is None else str(v) for k, v in data.items()}

    def _save(self) -> None:
        stat = write_text_atomic(
            self.path, yaml.safe_dump(self._values, default_flow_style=False)
        )
        self._signature = self._stat_signature(stat)

    def _reload_locked(self) -> None:
        """Re-read the file if another writer replaced it. Write lock held."""
        signature = self._stat_signature()
        if signature == self._signature:
            return
        fresh = self._load()
        changed = {
            k for k in fresh.keys() | self._values.keys()
            if fresh.get(k, "") != self._values.get(k, "")
        }
        self._values = fresh
        self._signature = signature
        if changed:
            logger.info("Settings changed on disk: %s", ", ".join(sorted(changed)))
            self._external |= changed

    def _refresh(self) -> None:
        if self._stat_signature() != self._signature:
            with self._lock.write():
                self._reload_locked()

    def get(self, key: str, default: str = "") -> str:
        self._refresh()
        with self._lock.read():
            return self._values.get(key, default)

    def snapshot(self, *keys: str) -> dict[str, str]:
        """Read several keys under one consistent read lock.

        With no keys, returns a copy of every setting.
        """
        self._refresh()
        with self._lock.read():
            if not keys:
                return dict(self._values)
            return {k: self._values.get(k, "") for k in keys}

    def set(self, key: str, value: str) -> None:
        self.update({key: value})

    def update(self, values: dict[str, Optional[str]]) -> set[str]:
        """Write several settings at once.

        ``None`` or an empty string removes a key. Only the given keys are
        written; whatever else is on disk is kept.

        Returns:
            The keys whose value actually changed.
        """
        with self._lock.write():
            self._reload_locked()
            changed = set()
            for key, value in values.items():
                value = "" if value is None else str(value).strip()
                if self._values.get(key, "") == value:
                    continue
                if value:
                    self._values[key] = value
                else:
                    self._values.pop(key, None)
                changed.add(key)
            if changed:
                self._save()

        if changed:
            logger.info("Settings updated: %s", ", ".join(sorted(changed)))
            self._notify(changed)
        return changed

    def reload(self) -> set[str]:
        """Notify subscribers of edits other processes made to the file.

        Covers edits already absorbed by an earlier read, so nothing is
        missed between two calls.

        Returns:
            The keys changed on disk since the last call.
        """
        with self._lock.write():
            self._reload_locked()
            changed, self._external = self._external, set()
        if changed:
            self._notify(changed)
        return changed

    def subscribe(
        self,
        callback: ChangeCallback,
        keys: Optional[frozenset[str]] = None,
    ) -> None:
        """Call ``callback(changed_keys)`` after writes touching ``keys``.

        Callbacks run on the writer's thread after the lock is released.
        Edits made by other processes are delivered by ``reload``.
        """
        self._subscribers.append((callback, frozenset(keys or ())))

    def _notify(self, changed: set[str]) -> None:
        for callback, keys in list(self._subscribers):
            if keys and not (keys & changed):
                continue
            try:
                callback(changed)
            except Exception as exc:
                logger.error("Settings observer %r failed: %s", callback, exc)

    def redacted(self) -> dict[str, str]:
        """All settings with secrets masked, for display."""
        out = self.snapshot()
        for key in SECRET_KEYS & out.keys():
            out[key] = mask_secret(out[key])
        return out


def mask_secret(value: str) -> str:
    """Mask all but the last four characters of a secret."""
    if not value:
        return ""
    if len(value) <= 4:
        return "*" * len(value)
    return "*" * (len(value) - 4) + value[-4:]
