"""
Local record collections -- the canonical copies the sync mirrors.

The sync engine only ever lists (push) and upserts (pull) through the
RecordRepository interface. JsonRecordRepository keeps each collection as
a JSON array under ``<home>/records/``.
"""

from __future__ import annotations

import json
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

from ._atomic import write_text_atomic
from .errors import RecordStoreError
from .models import CollectionKind

Record = dict[str, Any]


class RecordRepository(ABC):
    """Persistence interface for the synced collections."""

    @abstractmethod
    def list_records(self, kind: CollectionKind) -> list[Record]:
        """Return every record of a collection in storage order."""

    @abstractmethod
    def get_record(self, kind: CollectionKind, record_id: Any) -> Optional[Record]:
        """Return the record with ``id == record_id``, or None."""

    @abstractmethod
    def replace_record(self, kind: CollectionKind, record: Record) -> None:
        """Overwrite the stored record sharing ``record["id"]``."""

    @abstractmethod
    def insert_record(self, kind: CollectionKind, record: Record) -> None:
        """Append a new record."""


class JsonRecordRepository(RecordRepository):
    """File-backed repository, one JSON array per collection.

    Args:
        home: confsync home directory.
    """

    def __init__(self, home: Path):
        self.records_dir = Path(home).expanduser() / "records"
        self.records_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _path(self, kind: CollectionKind) -> Path:
        return self.records_dir / kind.blob_path

    def _load(self, kind: CollectionKind) -> list[Record]:
        path = self._path(kind)
        if not path.exists():
            return []
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise RecordStoreError(f"cannot read {path.name}: {exc}") from exc
        if not isinstance(data, list):
            raise RecordStoreError(f"{path.name} does not hold a list")
        return data

    def _save(self, kind: CollectionKind, records: list[Record]) -> None:
        path = self._path(kind)
        try:
            write_text_atomic(path, json.dumps(records, indent=2, ensure_ascii=False))
        except (OSError, TypeError, ValueError) as exc:
            raise RecordStoreError(f"cannot write {path.name}: {exc}") from exc

    def list_records(self, kind: CollectionKind) -> list[Record]:
        with self._lock:
            return self._load(kind)

    def get_record(self, kind: CollectionKind, record_id: Any) -> Optional[Record]:
        with self._lock:
            for rec in self._load(kind):
                if rec.get("id") == record_id:
                    return rec
        return None

    def replace_record(self, kind: CollectionKind, record: Record) -> None:
        with self._lock:
            records = self._load(kind)
            for i, rec in enumerate(records):
                if rec.get("id") == record["id"]:
                    records[i] = dict(record)
                    break
            else:
                raise RecordStoreError(
                    f"{kind.value}: no record with id {record['id']!r}"
                )
            self._save(kind, records)

    def insert_record(self, kind: CollectionKind, record: Record) -> None:
        with self._lock:
            records = self._load(kind)
            if any(rec.get("id") == record["id"] for rec in records):
                raise RecordStoreError(
                    f"{kind.value}: id {record['id']!r} already exists"
                )
            records.append(dict(record))
            self._save(kind, records)

    def count(self, kind: CollectionKind) -> int:
        """Number of records in a collection."""
        return len(self.list_records(kind))
