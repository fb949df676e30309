"""
SQL store adapter (production backend).

Implements the key-value port on the ``kv_records`` table through
Flask-SQLAlchemy. Conditional writes are a single
``UPDATE … WHERE key = :key AND version = :expected`` so the database is
the serialisation point; a zero row count means another writer got there
first. Create-if-absent relies on the primary key constraint.

Every call commits (or rolls back) its own transaction.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import (
    DisconnectionError,
    IntegrityError,
    InterfaceError,
    OperationalError,
    TimeoutError as PoolTimeoutError,
)

from app.core.exceptions import StorageUnavailableError
from app.models import db
from app.models.kv_record import KVRecord
from app.store.base import KeyNotFound, KeyValueStore, Record, VersionConflict
from app.utils.helpers import utc_now

logger = logging.getLogger(__name__)

# Errors that mean "try again later" rather than "your request is wrong"
_TRANSIENT_ERRORS = (OperationalError, InterfaceError, DisconnectionError, PoolTimeoutError)


class SQLAlchemyStore(KeyValueStore):
    backend_name = "sqlalchemy"

    def __init__(self) -> None:
        self._table = KVRecord.__table__

    @contextmanager
    def _guard(self, operation: str):
        try:
            yield
        except _TRANSIENT_ERRORS as exc:
            db.session.rollback()
            logger.warning("kv store %s failed: %s", operation, type(exc).__name__)
            raise StorageUnavailableError(operation) from exc

    def _select(self, key: str):
        return db.session.execute(
            select(self._table.c.key, self._table.c.value, self._table.c.version)
            .where(self._table.c.key == key)
        ).first()

    # ── Port ─────────────────────────────────────────────────────────────

    def get(self, key: str) -> Record:
        with self._guard("get"):
            row = self._select(key)
        if row is None:
            raise KeyNotFound(key)
        return Record(key=row.key, value=row.value, version=row.version)

    def put(self, key: str, value: dict[str, Any], expected_version: int | None = None) -> Record:
        with self._guard("put"):
            if expected_version == 0:
                return self._insert(key, value)
            if expected_version is None:
                return self._overwrite(key, value)
            return self._update(key, value, expected_version)

    def delete(self, key: str) -> None:
        with self._guard("delete"):
            result = db.session.execute(delete(self._table).where(self._table.c.key == key))
            if result.rowcount == 0:
                db.session.rollback()
                raise KeyNotFound(key)
            db.session.commit()

    def query(self, prefix: str) -> list[Record]:
        with self._guard("query"):
            rows = db.session.execute(
                select(self._table.c.key, self._table.c.value, self._table.c.version)
                .where(self._table.c.key.startswith(prefix, autoescape=True))
                .order_by(self._table.c.key)
            ).all()
        return [Record(key=r.key, value=r.value, version=r.version) for r in rows]

    # ── Writes ───────────────────────────────────────────────────────────

    def _insert(self, key: str, value: dict[str, Any]) -> Record:
        now = utc_now()
        try:
            db.session.execute(
                insert(self._table).values(
                    key=key, value=value, version=1, created_at=now, updated_at=now,
                )
            )
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            current = self._select(key)
            raise VersionConflict(key, 0, current.version if current else None) from exc
        return Record(key=key, value=value, version=1)

    def _update(self, key: str, value: dict[str, Any], expected_version: int) -> Record:
        result = db.session.execute(
            update(self._table)
            .where(self._table.c.key == key, self._table.c.version == expected_version)
            .values(value=value, version=expected_version + 1, updated_at=utc_now())
        )
        if result.rowcount != 1:
            db.session.rollback()
            current = self._select(key)
            raise VersionConflict(key, expected_version, current.version if current else None)
        db.session.commit()
        return Record(key=key, value=value, version=expected_version + 1)

    def _overwrite(self, key: str, value: dict[str, Any]) -> Record:
        """Unconditional write: bump whatever version is stored, or insert."""
        version = db.session.execute(
            update(self._table)
            .where(self._table.c.key == key)
            .values(value=value, version=self._table.c.version + 1, updated_at=utc_now())
            .returning(self._table.c.version)
        ).scalar()
        if version is None:
            db.session.rollback()
            return self._insert(key, value)
        db.session.commit()
        return Record(key=key, value=value, version=version)
