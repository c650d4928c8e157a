"""
Sync data models -- targets, blobs, effective configuration and run state.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional
from urllib.parse import urlsplit

from pydantic import BaseModel, Field

from .errors import InvalidDestination

DEFAULT_SYNC_INTERVAL = 300.0


class CollectionKind(str, Enum):
    """The record collections mirrored to the remote store.

    Declaration order is the processing order for push and pull.
    """

    TOKENS = "tokens"
    CHANNELS = "channels"
    MODELS = "models"

    @property
    def blob_path(self) -> str:
        """Remote blob name for this collection."""
        return f"{self.value}.json"

    @property
    def sensitive_fields(self) -> tuple[str, ...]:
        """Fields carrying secret key material."""
        return _SENSITIVE_FIELDS[self]


_SENSITIVE_FIELDS = {
    CollectionKind.TOKENS: ("key",),
    CollectionKind.CHANNELS: ("key",),
    CollectionKind.MODELS: (),
}


class SyncDirection(str, Enum):
    """Sync operation direction."""

    PUSH = "push"
    PULL = "pull"


def parse_destination(destination: str) -> tuple[str, str]:
    """Normalize a repository locator to ``(owner, repo)``.

    Accepts the bare ``owner/repo`` form and full URLs such as
    ``https://github.com/owner/repo/``.

    Raises:
        InvalidDestination: Unless exactly two non-empty segments remain
            after dropping the scheme, host and surrounding slashes.
    """
    text = (destination or "").strip()
    if "://" in text:
        text = urlsplit(text).path
    parts = text.strip("/").split("/")
    if len(parts) != 2 or not all(parts):
        raise InvalidDestination(destination)
    return parts[0], parts[1]


class SyncTarget(BaseModel):
    """Where a push or pull goes, and the credential to get there."""

    credential: str
    destination: str

    def locate(self) -> tuple[str, str]:
        """Return ``(owner, repo)`` or raise InvalidDestination."""
        return parse_destination(self.destination)


class RemoteBlob(BaseModel):
    """A named document in the remote store.

    ``revision`` is the store's version token: required to update an
    existing blob, absent when creating one.
    """

    path: str
    content: bytes
    revision: Optional[str] = None


class EffectiveConfig(BaseModel):
    """Resolved credential, destination and tick interval."""

    credential: str
    destination: str
    interval: float = DEFAULT_SYNC_INTERVAL
    source: str = "settings"

    @property
    def target(self) -> SyncTarget:
        return SyncTarget(credential=self.credential, destination=self.destination)


class CollectionPolicy(BaseModel):
    """Per-collection export rules.

    When ``redact`` is set the collection's sensitive fields are left out of
    the pushed snapshot, and pull keeps the local values for them.
    """

    redact: bool = False


class CollectionResult(BaseModel):
    """Outcome of syncing one collection."""

    collection: CollectionKind
    pushed: int = 0
    inserted: int = 0
    updated: int = 0
    skipped: bool = False


class SyncReport(BaseModel):
    """Outcome of a push_all or pull_all run."""

    direction: SyncDirection
    target: str
    results: list[CollectionResult] = Field(default_factory=list)

    def summary(self) -> str:
        """One-line human summary of the run."""
        chunks = []
        for r in self.results:
            if r.skipped:
                chunks.append(f"{r.collection.value}: absent")
            elif self.direction == SyncDirection.PUSH:
                chunks.append(f"{r.collection.value}: {r.pushed}")
            else:
                chunks.append(
                    f"{r.collection.value}: +{r.inserted} ~{r.updated}"
                )
        return ", ".join(chunks)


class SyncRunState(BaseModel):
    """Controller state. Mutated only under the controller lock."""

    running: bool = False
    last_sync_time: Optional[datetime] = None
