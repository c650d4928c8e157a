"""
Error kinds raised by the sync core.

Everything derives from ConfSyncError so the periodic loop and the admin
surface can catch one type and report the message.
"""

from __future__ import annotations

from typing import Any, Optional


class ConfSyncError(Exception):
    """Base class for all confsync failures."""


class ConfigIncomplete(ConfSyncError):
    """Credential or destination is missing."""

    def __init__(self, message: str = "sync is not configured: set a token and a repository"):
        super().__init__(message)


class InvalidDestination(ConfSyncError):
    """Destination does not normalize to exactly ``owner/repo``."""

    def __init__(self, destination: str):
        self.destination = destination
        super().__init__(
            f"invalid repository {destination!r}, expected owner/repo"
        )


class TransportError(ConfSyncError):
    """Non-success HTTP status or a network failure.

    Attributes:
        status: HTTP status code, or None when no response arrived.
        path: Blob path the request targeted.
        body: Decoded error body returned by the store, if any.
    """

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        path: Optional[str] = None,
        body: Any = None,
    ):
        self.status = status
        self.path = path
        self.body = body
        super().__init__(message)


class EncodingError(ConfSyncError):
    """Base64 or JSON encode/decode failure."""


class RecordStoreError(ConfSyncError):
    """Local record collection could not be read or written."""


class CollectionSyncError(ConfSyncError):
    """A push or pull failed for one collection.

    Attributes:
        collection: Name of the collection that failed.
        cause: The underlying error.
    """

    def __init__(self, collection: str, cause: Exception):
        self.collection = collection
        self.cause = cause
        super().__init__(f"{collection}: {cause}")
