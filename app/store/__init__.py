"""
Key-value store extension.

Usage:
    from app.store import init_store, get_store

    init_store(app)          # in create_app, picks KV_STORE_BACKEND
    store = get_store()      # inside an app/request context
"""

from flask import Flask, current_app

from app.store.base import KeyNotFound, KeyValueStore, Record, VersionConflict
from app.store.memory_store import MemoryStore
from app.store.sql_store import SQLAlchemyStore

_EXTENSION_KEY = "kv_store"

_BACKENDS = {
    "sqlalchemy": SQLAlchemyStore,
    "memory": MemoryStore,
}


def init_store(app: Flask, store: KeyValueStore | None = None) -> KeyValueStore:
    """Attach a store to *app*; an explicit *store* wins over the config."""
    if store is None:
        backend = app.config.get("KV_STORE_BACKEND", "sqlalchemy")
        try:
            store = _BACKENDS[backend]()
        except KeyError:
            raise RuntimeError(f"Unknown KV_STORE_BACKEND {backend!r}") from None
    app.extensions[_EXTENSION_KEY] = store
    app.logger.debug("kv store backend=%s", store.backend_name)
    return store


def get_store() -> KeyValueStore:
    return current_app.extensions[_EXTENSION_KEY]


__all__ = [
    "KeyNotFound",
    "KeyValueStore",
    "MemoryStore",
    "Record",
    "SQLAlchemyStore",
    "VersionConflict",
    "get_store",
    "init_store",
]
