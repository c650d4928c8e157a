"""
Administrative handlers -- status, manual push, restore, settings edits.

Each handler returns a ``{"success": bool, "message"/"data": ...}`` dict
ready to serialize. Failures come back as messages rather than exceptions.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from .audit import audit_event
from .controller import LifecycleController
from .errors import ConfigIncomplete, ConfSyncError
from .settings import SYNC_INTERVAL, SYNC_REDACT, SYNC_REPO, SYNC_TOKEN

logger = logging.getLogger("confsync.admin")

EDITABLE_KEYS = (SYNC_TOKEN, SYNC_REPO, SYNC_INTERVAL, SYNC_REDACT)

NOT_CONFIGURED = "Sync is not configured: set a token and a repository first"


class AdminFacade:
    """Thin request handlers over a LifecycleController."""

    def __init__(self, controller: LifecycleController):
        self.controller = controller

    def status(self) -> dict[str, Any]:
        return {"success": True, "data": self.controller.status()}

    def trigger(self) -> dict[str, Any]:
        """Run one push now. The schedule is untouched."""
        try:
            report = self.controller.trigger()
        except ConfigIncomplete:
            return {"success": False, "message": NOT_CONFIGURED}
        except ConfSyncError as exc:
            logger.warning("Manual sync failed: %s", exc)
            return {"success": False, "message": f"Sync failed: {exc}"}
        return {"success": True, "message": f"Sync succeeded ({report.summary()})"}

    def pull(self) -> dict[str, Any]:
        """Restore the local collections from the store."""
        try:
            report = self.controller.restore()
        except ConfigIncomplete:
            return {"success": False, "message": NOT_CONFIGURED}
        except ConfSyncError as exc:
            logger.warning("Restore failed: %s", exc)
            return {"success": False, "message": f"Restore failed: {exc}"}
        return {
            "success": True,
            "message": f"Restore succeeded, data recovered ({report.summary()})",
        }

    def update_settings(self, values: Any) -> dict[str, Any]:
        """Persist sync settings. The loop restarts through the observer."""
        if not isinstance(values, dict):
            return {"success": False, "message": "Expected a JSON object"}

        unknown = sorted(set(values) - set(EDITABLE_KEYS))
        if unknown:
            logger.warning("Rejected unknown settings: %s", unknown)
            return {"success": False, "message": f"Unknown settings: {', '.join(unknown)}"}

        cleaned: dict[str, Optional[str]] = {
            k: None if v is None else str(v) for k, v in values.items()
        }
        changed = self.controller.settings.update(cleaned)
        if changed and self.controller.home is not None:
            audit_event(
                self.controller.home,
                "SETTINGS",
                f"Updated: {', '.join(sorted(changed))}",
            )
        return {"success": True, "message": f"{len(changed)} setting(s) changed"}
