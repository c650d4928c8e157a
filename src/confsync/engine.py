"""
Sync Engine -- moves the record collections to and from the remote store.

    push_all  ->  for tokens, channels, models: list -> redact -> JSON -> put
    pull_all  ->  for tokens, channels, models: fetch -> parse -> upsert

Collections are processed in a fixed order and the run stops at the first
collection that fails. Nothing already written is rolled back: each blob
write, and each local upsert, is independently durable.
"""

from __future__ import annotations

import json
import logging
from typing import Callable, Optional

from .errors import CollectionSyncError, ConfSyncError, EncodingError
from .models import (
    CollectionKind,
    CollectionPolicy,
    CollectionResult,
    SyncDirection,
    SyncReport,
    SyncTarget,
)
from .records import Record, RecordRepository
from .store import DEFAULT_API_URL, RemoteBlobStore

logger = logging.getLogger("confsync.engine")

StoreFactory = Callable[[str, str, str], RemoteBlobStore]


class SyncEngine:
    """Pushes and pulls the three record collections.

    Args:
        records: Local persistence for the collections.
        policies: Per-collection export policy. Missing entries mean
            "export every field".
        store_factory: Builds a store client from
            ``(credential, owner, repo)``.
        api_url: Store API base URL for the default factory.
    """

    def __init__(
        self,
        records: RecordRepository,
        policies: Optional[dict[CollectionKind, CollectionPolicy]] = None,
        store_factory: Optional[StoreFactory] = None,
        api_url: str = DEFAULT_API_URL,
    ):
        self.records = records
        self.policies = dict(policies or {})
        self._store_factory = store_factory or (
            lambda credential, owner, repo: RemoteBlobStore(
                credential, owner, repo, api_url=api_url
            )
        )

    def _policy(
        self,
        kind: CollectionKind,
        overrides: Optional[dict[CollectionKind, CollectionPolicy]] = None,
    ) -> CollectionPolicy:
        if overrides is not None and kind in overrides:
            return overrides[kind]
        return self.policies.get(kind, CollectionPolicy())

    def _open_store(self, target: SyncTarget) -> tuple[RemoteBlobStore, str]:
        owner, repo = target.locate()
        return self._store_factory(target.credential, owner, repo), f"{owner}/{repo}"

    # ------------------------------------------------------------------
    # Push
    # ------------------------------------------------------------------

    def push_all(
        self,
        target: SyncTarget,
        policies: Optional[dict[CollectionKind, CollectionPolicy]] = None,
    ) -> SyncReport:
        """Export every collection to the store.

        ``policies`` overrides the engine-wide export policies for this run.

        Raises:
            InvalidDestination: Before any request is made.
            CollectionSyncError: Naming the first collection that failed.
        """
        store, label = self._open_store(target)
        report = SyncReport(direction=SyncDirection.PUSH, target=label)
        try:
            for kind in CollectionKind:
                try:
                    policy = self._policy(kind, policies)
                    report.results.append(self._push_collection(store, kind, policy))
                except ConfSyncError as exc:
                    logger.error("Push of %s to %s failed: %s", kind.value, label, exc)
                    raise CollectionSyncError(kind.value, exc) from exc
        finally:
            store.close()

        logger.info("Pushed to %s (%s)", label, report.summary())
        return report

    def _push_collection(
        self, store: RemoteBlobStore, kind: CollectionKind, policy: CollectionPolicy
    ) -> CollectionResult:
        records = self.records.list_records(kind)
        if policy.redact:
            records = [self._redact(kind, rec) for rec in records]

        try:
            content = json.dumps(records, indent=2, ensure_ascii=False).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise EncodingError(f"cannot serialize {kind.value}: {exc}") from exc

        store.put(kind.blob_path, content)
        return CollectionResult(collection=kind, pushed=len(records))

    @staticmethod
    def _redact(kind: CollectionKind, record: Record) -> Record:
        return {k: v for k, v in record.items() if k not in kind.sensitive_fields}

    # ------------------------------------------------------------------
    # Pull
    # ------------------------------------------------------------------

    def pull_all(
        self,
        target: SyncTarget,
        policies: Optional[dict[CollectionKind, CollectionPolicy]] = None,
    ) -> SyncReport:
        """Restore every collection present in the store.

        A missing blob skips its collection. Records are upserted by id,
        remote wins on conflict, and local records absent remotely stay.

        Raises:
            InvalidDestination: Before any request is made.
            CollectionSyncError: Naming the first collection that failed.
        """
        store, label = self._open_store(target)
        report = SyncReport(direction=SyncDirection.PULL, target=label)
        try:
            for kind in CollectionKind:
                try:
                    policy = self._policy(kind, policies)
                    report.results.append(self._pull_collection(store, kind, policy))
                except ConfSyncError as exc:
                    logger.error("Pull of %s from %s failed: %s", kind.value, label, exc)
                    raise CollectionSyncError(kind.value, exc) from exc
        finally:
            store.close()

        logger.info("Pulled from %s (%s)", label, report.summary())
        return report

    def _pull_collection(
        self, store: RemoteBlobStore, kind: CollectionKind, policy: CollectionPolicy
    ) -> CollectionResult:
        content, found = store.fetch(kind.blob_path)
        if not found:
            logger.info("No %s in store, leaving local copy alone", kind.blob_path)
            return CollectionResult(collection=kind, skipped=True)

        remote = decode_collection(kind, content)
        result = CollectionResult(collection=kind)

        for rec in remote:
            existing = self.records.get_record(kind, rec["id"])
            if existing is None:
                self.records.insert_record(kind, rec)
                result.inserted += 1
                continue

            replacement = dict(rec)
            if policy.redact:
                for field in kind.sensitive_fields:
                    if field in existing:
                        replacement[field] = existing[field]
            self.records.replace_record(kind, replacement)
            result.updated += 1

        return result


def decode_collection(kind: CollectionKind, content: Optional[bytes]) -> list[Record]:
    """Parse a collection blob and validate every record.

    The whole document is checked before anything is written, so one
    malformed record rejects the collection.

    Raises:
        EncodingError: If the blob is not a JSON array of objects that
            each carry an ``id``.
    """
    try:
        data = json.loads((content or b"").decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise EncodingError(f"cannot parse {kind.blob_path}: {exc}") from exc

    if not isinstance(data, list):
        raise EncodingError(f"{kind.blob_path} is not a JSON array")

    for i, rec in enumerate(data):
        if not isinstance(rec, dict) or rec.get("id") is None:
            raise EncodingError(f"{kind.blob_path}: record {i} has no id")
    return data
