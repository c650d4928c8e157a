"""
Effective configuration -- environment first, persisted settings second.
"""

from __future__ import annotations

import logging
import math
import os
from typing import Mapping, Optional

from .models import DEFAULT_SYNC_INTERVAL, CollectionKind, CollectionPolicy, EffectiveConfig
from .settings import SYNC_INTERVAL, SYNC_REDACT, SYNC_REPO, SYNC_TOKEN, SettingsStore

logger = logging.getLogger("confsync.resolver")

ENV_TOKEN = "GITHUB_SYNC_TOKEN"
ENV_REPO = "GITHUB_SYNC_REPO"


class ConfigResolver:
    """Computes the effective sync configuration on demand.

    Nothing is cached: every call re-reads the environment and the
    settings, so edits are seen by the very next tick.

    Args:
        settings: Persisted settings.
        environ: Environment mapping. Defaults to ``os.environ``.
        default_interval: Tick interval used when none is persisted.
    """

    def __init__(
        self,
        settings: SettingsStore,
        environ: Optional[Mapping[str, str]] = None,
        default_interval: float = DEFAULT_SYNC_INTERVAL,
    ):
        self.settings = settings
        self.environ = os.environ if environ is None else environ
        self.default_interval = default_interval

    def resolve(self) -> tuple[Optional[EffectiveConfig], bool]:
        """Return ``(config, True)``, or ``(None, False)`` when incomplete.

        An environment pair wins only when both halves are set. Otherwise
        both halves come from the settings, read as one snapshot.
        """
        env_token = self.environ.get(ENV_TOKEN, "")
        env_repo = self.environ.get(ENV_REPO, "")
        if env_token and env_repo:
            credential, destination, source = env_token, env_repo, "environment"
        else:
            snap = self.settings.snapshot(SYNC_TOKEN, SYNC_REPO)
            credential, destination, source = snap[SYNC_TOKEN], snap[SYNC_REPO], "settings"

        if not credential or not destination:
            return None, False

        return EffectiveConfig(
            credential=credential,
            destination=destination,
            interval=self.resolve_interval(),
            source=source,
        ), True

    def resolve_interval(self) -> float:
        """Persisted interval in seconds, else the default. Never raises."""
        raw = self.settings.get(SYNC_INTERVAL)
        if not raw:
            return self.default_interval
        try:
            seconds = float(raw)
        except ValueError:
            logger.warning("Ignoring unparseable sync interval %r", raw)
            return self.default_interval
        if not math.isfinite(seconds) or seconds <= 0:
            logger.warning("Ignoring non-positive sync interval %r", raw)
            return self.default_interval
        return seconds

    def is_enabled(self) -> bool:
        """True when both a credential and a destination are configured."""
        return self.resolve()[1]

    def resolve_policies(self) -> dict[CollectionKind, CollectionPolicy]:
        """Per-collection export policy from the ``sync_redact`` setting.

        The setting is a comma-separated list of collection names whose
        sensitive fields stay local.
        """
        raw = self.settings.get(SYNC_REDACT)
        names = {n.strip().lower() for n in raw.split(",") if n.strip()}
        known = {k.value for k in CollectionKind}
        for unknown in sorted(names - known):
            logger.warning("Ignoring unknown collection %r in %s", unknown, SYNC_REDACT)
        return {kind: CollectionPolicy(redact=kind.value in names) for kind in CollectionKind}
