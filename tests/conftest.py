"""Shared test fixtures for confsync."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import pytest

from confsync.errors import TransportError
from confsync.models import CollectionKind


@pytest.fixture(autouse=True)
def _clean_sync_env(monkeypatch):
    """Keep a developer's real sync credentials out of the tests."""
    monkeypatch.delenv("GITHUB_SYNC_TOKEN", raising=False)
    monkeypatch.delenv("GITHUB_SYNC_REPO", raising=False)


@pytest.fixture
def confsync_home(tmp_path: Path) -> Path:
    """Provide a temporary confsync home directory."""
    home = tmp_path / ".confsync"
    home.mkdir()
    return home


@pytest.fixture
def seeded_home(confsync_home: Path) -> Path:
    """Home with one record in each collection."""
    records = confsync_home / "records"
    records.mkdir()
    (records / "tokens.json").write_text(
        json.dumps([{"id": 1, "name": "default", "key": "sk-local-1", "status": 1}])
    )
    (records / "channels.json").write_text(
        json.dumps([{"id": 7, "name": "openai", "key": "ch-secret", "base_url": "https://a"}])
    )
    (records / "models.json").write_text(
        json.dumps([{"id": 3, "model_name": "gpt-4o", "vendor": "openai"}])
    )
    return confsync_home


class FakeBlobStore:
    """In-memory stand-in for RemoteBlobStore bound to one repo."""

    def __init__(self, server: "FakeBlobServer", owner: str, repo: str):
        self.server = server
        self.owner = owner
        self.repo = repo
        self.closed = False

    def fetch(self, path: str) -> tuple[Optional[bytes], bool]:
        self.server.calls.append(("fetch", path))
        if path in self.server.fail_on:
            raise TransportError(f"store returned 500 for {path}", status=500, path=path)
        if path not in self.server.blobs:
            return None, False
        return self.server.blobs[path], True

    def put(self, path: str, content: bytes) -> None:
        self.server.calls.append(("put", path))
        if path in self.server.fail_on:
            raise TransportError(f"store returned 500 for {path}", status=500, path=path)
        self.server.blobs[path] = content

    def close(self) -> None:
        self.closed = True


class FakeBlobServer:
    """Records every call; ``factory`` plugs into SyncEngine."""

    def __init__(self):
        self.blobs: dict[str, bytes] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_on: set[str] = set()
        self.opened: list[tuple[str, str, str]] = []

    def factory(self, credential: str, owner: str, repo: str) -> FakeBlobStore:
        self.opened.append((credential, owner, repo))
        return FakeBlobStore(self, owner, repo)

    def load(self, kind: CollectionKind):
        return json.loads(self.blobs[kind.blob_path])


@pytest.fixture
def blob_server() -> FakeBlobServer:
    return FakeBlobServer()
