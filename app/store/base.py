"""
Key-value store port.

The relationship graph and the ticket service talk to persistence only
through this interface:

    get(key)                            -> Record        (KeyNotFound)
    put(key, value, expected_version?)  -> Record        (VersionConflict)
    delete(key)                         -> None          (KeyNotFound)
    query(prefix)                       -> list[Record]  (ordered by key)

``expected_version`` semantics:
    None  unconditional write (last writer wins)
    0     create-if-absent: the key must not exist yet
    n>0   the stored version must still be n

Transient backend failures are raised as
``app.core.exceptions.StorageUnavailableError``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Record:
    """A stored document together with its current version."""

    key: str
    value: dict[str, Any]
    version: int


class KeyNotFound(Exception):
    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Key {key!r} not found")


class VersionConflict(Exception):
    """A conditional write lost the race: the stored version moved on."""

    def __init__(self, key: str, expected_version: int, actual_version: int | None = None) -> None:
        self.key = key
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Key {key!r}: expected version {expected_version}, found {actual_version}"
        )


class KeyValueStore(ABC):
    """Abstract key-value store (the port); adapters provide the behaviour."""

    backend_name = "abstract"

    @abstractmethod
    def get(self, key: str) -> Record:
        """Return the record for *key* or raise KeyNotFound."""

    @abstractmethod
    def put(self, key: str, value: dict[str, Any], expected_version: int | None = None) -> Record:
        """Write *value* under *key*, optionally conditional on the stored version."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove *key* or raise KeyNotFound."""

    @abstractmethod
    def query(self, prefix: str) -> list[Record]:
        """Return every record whose key starts with *prefix*, ordered by key."""

    def get_or_none(self, key: str) -> Record | None:
        try:
            return self.get(key)
        except KeyNotFound:
            return None

    def ping(self) -> None:
        """Round-trip the backend; raises StorageUnavailableError when it is down."""
        self.query("__ping__#")
