"""Atomic, concurrency-safe JSON files and the record collections built on them."""

import json
import os
import tempfile
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Union

from filelock import FileLock, Timeout

COLLECTION_NAMES = ("settings", "transactions", "transfers", "webhooks", "logs")


class StoreUnavailableError(Exception):
    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Store unavailable ({path}): {reason}")


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class FileStore:

    @staticmethod
    def _lock_path(file_path: str) -> str:
        return f"{file_path}.lock"

    @staticmethod
    def _load(file_path: str, default: Any) -> Any:
        if not os.path.exists(file_path):
            return default
        with open(file_path, "r") as f:
            return json.load(f)

    @staticmethod
    def _dump(file_path: str, data: Any) -> None:
        os.makedirs(os.path.dirname(file_path), exist_ok=True)
        fd, tmp = tempfile.mkstemp(
            dir=os.path.dirname(file_path), suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(data, f, indent=2, default=str)
            os.replace(tmp, file_path)
        except Exception:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    @staticmethod
    def read_json(file_path: str, default: Any = None) -> Any:
        os.makedirs(os.path.dirname(file_path), exist_ok=True)
        lock = FileLock(FileStore._lock_path(file_path))
        with lock:
            return FileStore._load(file_path, default if default is not None else {})

    @staticmethod
    def write_json(file_path: str, data: Any) -> None:
        os.makedirs(os.path.dirname(file_path), exist_ok=True)
        lock = FileLock(FileStore._lock_path(file_path))
        with lock:
            FileStore._dump(file_path, data)


class Collection:
    """A named list of JSON records kept in ``<data_dir>/<name>.json``.

    Every public operation holds the collection's file lock for its whole
    read-modify-write, so each call is atomic with respect to other threads
    and to other processes sharing the data directory (e.g. the CLI).
    Filters are simple field equality.
    """

    def __init__(self, data_dir: str, name: str, lock_timeout: float = 5.0):
        self.name = name
        self.path = os.path.join(data_dir, f"{name}.json")
        self.lock_timeout = lock_timeout

    @contextmanager
    def _locked(self):
        try:
            os.makedirs(os.path.dirname(self.path), exist_ok=True)
            lock = FileLock(FileStore._lock_path(self.path), timeout=self.lock_timeout)
            with lock:
                yield
        except Timeout:
            raise StoreUnavailableError(self.path, "lock timeout")
        except OSError as e:
            raise StoreUnavailableError(self.path, str(e))

    def _read(self) -> list[dict]:
        try:
            return FileStore._load(self.path, [])
        except json.JSONDecodeError as e:
            raise StoreUnavailableError(self.path, f"corrupt data: {e}")

    def _write(self, records: list[dict]) -> None:
        FileStore._dump(self.path, records)

    @staticmethod
    def _matches(record: dict, filters: dict) -> bool:
        return all(record.get(k) == v for k, v in filters.items())

    def add(self, record: dict, cap: Optional[int] = None) -> dict:
        now = utc_now()
        saved = {
            **record,
            "id": record.get("id") or uuid.uuid4().hex[:16],
            "created_at": now,
            "updated_at": now,
        }
        with self._locked():
            records = self._read()
            records.append(saved)
            if cap is not None and len(records) > cap:
                records = records[-cap:]
            self._write(records)
        return dict(saved)

    def get_one(self, **filters) -> Optional[dict]:
        with self._locked():
            for record in self._read():
                if self._matches(record, filters):
                    return record
        return None

    def get_by_id(self, record_id: str) -> Optional[dict]:
        return self.get_one(id=record_id)

    def find(self, **filters) -> list[dict]:
        with self._locked():
            return [r for r in self._read() if self._matches(r, filters)]

    def update_by_id(self, record_id: str, fields: dict) -> Optional[dict]:
        with self._locked():
            records = self._read()
            for record in records:
                if record.get("id") == record_id:
                    record.update(fields)
                    record["updated_at"] = utc_now()
                    self._write(records)
                    return dict(record)
        return None

    def update_where(
        self,
        record_id: str,
        expected: dict,
        fields: Union[dict, Callable[[dict], dict]],
    ) -> Optional[dict]:
        """Compare-and-set: apply ``fields`` only while the stored record still
        matches ``expected``. Returns None when it no longer does (or is gone).

        ``fields`` may be a callable; it is evaluated under the lock with the
        current record, so anything it consumes is only consumed by the winner.
        """
        with self._locked():
            records = self._read()
            for record in records:
                if record.get("id") != record_id:
                    continue
                if not self._matches(record, expected):
                    return None
                record.update(fields(dict(record)) if callable(fields) else fields)
                record["updated_at"] = utc_now()
                self._write(records)
                return dict(record)
        return None

    def upsert(self, filters: dict, fields: dict) -> Optional[dict]:
        """Write ``fields`` into the record matching ``filters`` (creating it
        if needed) and return a copy of the record as it was before."""
        now = utc_now()
        with self._locked():
            records = self._read()
            for record in records:
                if self._matches(record, filters):
                    previous = dict(record)
                    record.update(fields)
                    record["updated_at"] = now
                    self._write(records)
                    return previous
            records.append({
                **filters,
                **fields,
                "id": uuid.uuid4().hex[:16],
                "created_at": now,
                "updated_at": now,
            })
            self._write(records)
        return None

    def delete_all(self) -> None:
        with self._locked():
            self._write([])


class CollectionStore:
    """The fixed set of collections living under one data directory."""

    def __init__(self, data_dir: str, lock_timeout: float = 5.0):
        self.data_dir = data_dir
        self.settings = Collection(data_dir, "settings", lock_timeout)
        self.transactions = Collection(data_dir, "transactions", lock_timeout)
        self.transfers = Collection(data_dir, "transfers", lock_timeout)
        self.webhooks = Collection(data_dir, "webhooks", lock_timeout)
        self.logs = Collection(data_dir, "logs", lock_timeout)

    def all(self) -> list[Collection]:
        return [getattr(self, name) for name in COLLECTION_NAMES]
