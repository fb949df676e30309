"""
Startup diagnostics — runs once when the Flask app starts.

Checks critical dependencies and logs a summary banner.
"""

import logging
import sys

from flask import Flask
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import StorageUnavailableError
from app.models import db
from app.store import get_store

logger = logging.getLogger(__name__)


def run_startup_diagnostics(app: Flask):
    """Run diagnostic checks during app startup."""
    if app.config.get("TESTING"):
        return  # skip during tests for speed

    issues: list[str] = []

    with app.app_context():
        py = f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"

        # ── Database connectivity ────────────────────────────────────
        db_status = "ok"
        db_uri = str(app.config.get("SQLALCHEMY_DATABASE_URI", ""))
        db_type = "PostgreSQL" if "postgresql" in db_uri else "SQLite" if "sqlite" in db_uri else "unknown"
        kv_table = "missing"
        try:
            db.session.execute(db.text("SELECT 1"))
            if "kv_records" in sa_inspect(db.engine).get_table_names():
                kv_table = "present"
            else:
                issues.append("kv_records table not found — run 'flask db upgrade'")
        except SQLAlchemyError as exc:
            db.session.rollback()
            db_status = "FAILED"
            issues.append(f"Database unreachable: {exc}")

        # ── Key-value store ──────────────────────────────────────────
        store = get_store()
        try:
            store.ping()
            store_status = f"{store.backend_name} (ok)"
        except StorageUnavailableError:
            store_status = f"{store.backend_name} (unreachable)"
            issues.append("Key-value store unreachable — ticket and relationship writes will fail")

        # ── Redis (rate limiter storage) ─────────────────────────────
        redis_url = app.config.get("REDIS_URL", "")
        redis_status = "not configured"
        if redis_url and "redis" in redis_url:
            try:
                import redis as redis_lib
                redis_lib.from_url(redis_url, socket_timeout=2).ping()
                redis_status = "ok"
            except ImportError:
                redis_status = "package not installed"
            except Exception:
                redis_status = "unreachable"
                issues.append("Redis unreachable — rate limiter may not work")

        graph_scope = "global" if app.config.get("ALLOW_CROSS_EPIC_RELATIONSHIPS") else "per-epic"

        banner = f"""
╔══════════════════════════════════════════════════════════════╗
║  Ticketing API — Startup Diagnostics                         ║
╠══════════════════════════════════════════════════════════════╣
║  Python      : {py:<46s}║
║  Debug       : {str(app.debug):<46s}║
║  Database    : {f'{db_type} ({db_status})':<46s}║
║  kv_records  : {kv_table:<46s}║
║  KV store    : {store_status:<46s}║
║  Graph scope : {graph_scope:<46s}║
║  Redis       : {redis_status:<46s}║
╚══════════════════════════════════════════════════════════════╝"""
        logger.info(banner)

        if issues:
            logger.warning("Startup issues detected:")
            for issue in issues:
                logger.warning("  ⚠ %s", issue)
        else:
            logger.info("✅ All startup checks passed")
