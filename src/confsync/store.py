"""
Remote blob store -- a GitHub-contents style revisioned document store.

Two operations: fetch a named blob, create-or-update a named blob.
Every request carries a bounded timeout so a hung remote cannot wedge
the sync loop.
"""

from __future__ import annotations

import base64
import binascii
import logging
from datetime import datetime
from typing import Any, Optional

import requests

from .errors import EncodingError, TransportError
from .models import RemoteBlob

logger = logging.getLogger("confsync.store")

DEFAULT_API_URL = "https://api.github.com"
REQUEST_TIMEOUT = 30


class RemoteBlobStore:
    """Client for one ``owner/repo`` on a contents API.

    Args:
        credential: Access token sent in the Authorization header.
        owner: Repository owner.
        repo: Repository name.
        api_url: API base URL.
        session: Optional requests session (shared connection pool).
        timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        credential: str,
        owner: str,
        repo: str,
        api_url: str = DEFAULT_API_URL,
        session: Optional[requests.Session] = None,
        timeout: float = REQUEST_TIMEOUT,
    ):
        self.owner = owner
        self.repo = repo
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._credential = credential
        self._session = session or requests.Session()

    def _url(self, path: str) -> str:
        return f"{self.api_url}/repos/{self.owner}/{self.repo}/contents/{path}"

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"token {self._credential}",
            "Accept": "application/vnd.github.v3+json",
        }

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        try:
            return self._session.request(
                method,
                self._url(path),
                headers=self._headers(),
                timeout=self.timeout,
                **kwargs,
            )
        except requests.RequestException as exc:
            raise TransportError(
                f"{method} {path} failed: {exc}", path=path
            ) from exc

    def fetch_blob(self, path: str) -> Optional[RemoteBlob]:
        """Fetch a blob with its revision.

        Returns:
            The blob, or None if the store has no blob at ``path``.

        Raises:
            TransportError: On any status other than 200 or 404.
            EncodingError: If the body or its base64 content is malformed.
        """
        resp = self._request("GET", path)
        if resp.status_code == 404:
            return None
        if resp.status_code != 200:
            raise TransportError(
                f"store returned {resp.status_code} for {path}",
                status=resp.status_code,
                path=path,
            )

        try:
            payload = resp.json()
        except ValueError as exc:
            raise EncodingError(f"{path}: response is not JSON: {exc}") from exc

        encoded = payload.get("content") if isinstance(payload, dict) else None
        if not isinstance(encoded, str):
            raise EncodingError(f"{path}: response carries no content")

        # The store wraps base64 at fixed width.
        encoded = encoded.replace("\n", "").replace("\r", "")
        try:
            content = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise EncodingError(f"{path}: base64 decode failed: {exc}") from exc

        sha = payload.get("sha")
        if sha is not None and not isinstance(sha, str):
            logger.debug("Ignoring non-string revision %r for %s", sha, path)
            sha = None
        return RemoteBlob(path=path, content=content, revision=sha or None)

    def fetch(self, path: str) -> tuple[Optional[bytes], bool]:
        """Fetch a blob's content.

        Returns:
            ``(content, True)`` if found, ``(None, False)`` on 404.
        """
        blob = self.fetch_blob(path)
        if blob is None:
            return None, False
        return blob.content, True

    def _current_revision(self, path: str) -> Optional[str]:
        """Best-effort lookup of the revision of an existing blob.

        Any failure reads as "no revision", which turns the put into a
        create.
        """
        try:
            blob = self.fetch_blob(path)
        except (TransportError, EncodingError) as exc:
            logger.debug("Revision lookup for %s failed: %s", path, exc)
            return None
        return blob.revision if blob else None

    def put(self, path: str, content: bytes) -> None:
        """Create or update the blob at ``path``.

        Raises:
            TransportError: On a network failure or a status other than
                200/201. The store's decoded error body rides along.
        """
        payload: dict[str, Any] = {
            "message": f"Update {path} - {datetime.now():%Y-%m-%d %H:%M:%S}",
            "content": base64.b64encode(content).decode("ascii"),
        }
        revision = self._current_revision(path)
        if revision:
            payload["sha"] = revision

        resp = self._request("PUT", path, json=payload)
        if resp.status_code not in (200, 201):
            try:
                body = resp.json()
            except ValueError:
                body = resp.text
            raise TransportError(
                f"store returned {resp.status_code} for {path}: {body}",
                status=resp.status_code,
                path=path,
                body=body,
            )

        logger.debug(
            "Wrote %s to %s/%s (%s)",
            path, self.owner, self.repo, "update" if revision else "create",
        )

    def close(self) -> None:
        """Release pooled connections."""
        self._session.close()
