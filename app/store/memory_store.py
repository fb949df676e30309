"""
In-process store adapter.

Thread-safe dictionary implementation of the key-value port. Values are
deep-copied on the way in and out so callers never share state with the
store. Used by unit tests (including the concurrency tests) and selectable
for local experiments with ``KV_STORE_BACKEND=memory``.
"""

from __future__ import annotations

import copy
import threading
from typing import Any

from app.store.base import KeyNotFound, KeyValueStore, Record, VersionConflict


class MemoryStore(KeyValueStore):
    backend_name = "memory"

    def __init__(self) -> None:
        self._records: dict[str, Record] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Record:
        with self._lock:
            record = self._records.get(key)
        if record is None:
            raise KeyNotFound(key)
        return _copy(record)

    def put(self, key: str, value: dict[str, Any], expected_version: int | None = None) -> Record:
        with self._lock:
            current = self._records.get(key)
            actual = current.version if current else 0
            if expected_version is not None and expected_version != actual:
                raise VersionConflict(key, expected_version, actual or None)
            record = Record(key=key, value=copy.deepcopy(value), version=actual + 1)
            self._records[key] = record
        return _copy(record)

    def delete(self, key: str) -> None:
        with self._lock:
            if self._records.pop(key, None) is None:
                raise KeyNotFound(key)

    def query(self, prefix: str) -> list[Record]:
        with self._lock:
            matches = [r for k, r in self._records.items() if k.startswith(prefix)]
        return [_copy(r) for r in sorted(matches, key=lambda r: r.key)]

    def clear(self) -> None:
        with self._lock:
            self._records.clear()


def _copy(record: Record) -> Record:
    return Record(key=record.key, value=copy.deepcopy(record.value), version=record.version)
