"""
Audit trail for sync activity.

One JSON object per line under ``<home>/security/audit.log``: append-only
and machine-parseable. Entries record what was synced and where, never
credentials or record contents.
"""

from __future__ import annotations

import json
import logging
import socket
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError

AUDIT_LOG_NAME = "audit.log"

logger = logging.getLogger("confsync.audit")

_write_lock = threading.Lock()


class AuditEntry(BaseModel):
    """A single audit log line."""

    timestamp: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    event_type: str
    detail: str
    host: str = Field(default_factory=socket.gethostname)
    metadata: Optional[dict] = None


def audit_event(
    home: Path,
    event_type: str,
    detail: str,
    metadata: Optional[dict] = None,
) -> Optional[AuditEntry]:
    """Append an event to the audit log.

    Args:
        home: confsync home directory.
        event_type: SYNC_PUSH, SYNC_PULL, SYNC_ERROR, SETTINGS, ...
        detail: Human-readable description.
        metadata: Extra structured data.

    Returns:
        The written entry, or None if the log could not be written.
    """
    entry = AuditEntry(event_type=event_type, detail=detail, metadata=metadata)
    audit_log = Path(home).expanduser() / "security" / AUDIT_LOG_NAME
    try:
        audit_log.parent.mkdir(parents=True, exist_ok=True)
        with _write_lock, audit_log.open("a", encoding="utf-8") as f:
            f.write(entry.model_dump_json() + "\n")
    except OSError as exc:
        logger.warning("Could not write audit entry %s: %s", event_type, exc)
        return None
    return entry


def read_audit_log(home: Path, limit: int = 0) -> list[AuditEntry]:
    """Read the audit log.

    Args:
        home: confsync home directory.
        limit: Keep only the newest ``limit`` entries (0 = all).

    Returns:
        Entries in the order they were written. Unparseable lines are
        skipped.
    """
    audit_log = Path(home).expanduser() / "security" / AUDIT_LOG_NAME
    if not audit_log.exists():
        return []

    entries: list[AuditEntry] = []
    for line in audit_log.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            entries.append(AuditEntry.model_validate(json.loads(line)))
        except (json.JSONDecodeError, ValidationError):
            logger.debug("Skipping malformed audit line: %s", line[:80])

    if limit > 0:
        entries = entries[-limit:]
    return entries
