"""
Ticketing API
Configuration classes for Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

# Default SQLite path for local dev when PostgreSQL is not running
_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'ticketing_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Generate a random key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _db_url(name: str = "DATABASE_URL") -> str:
    # Railway/Heroku use postgres:// but SQLAlchemy 2.0 requires postgresql://
    raw = os.getenv(name, "")
    return raw.replace("postgres://", "postgresql://", 1) if raw else ""


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False

    # SQLAlchemy
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,   # recycle connections every 5 min
    }

    # Key-value store: "sqlalchemy" (kv_records table) or "memory"
    KV_STORE_BACKEND = os.getenv("KV_STORE_BACKEND", "sqlalchemy")

    # Relationship graph writes
    RELATIONSHIP_MAX_ATTEMPTS = int(os.getenv("RELATIONSHIP_MAX_ATTEMPTS", "5"))
    RELATIONSHIP_TIMEOUT_SECONDS = float(os.getenv("RELATIONSHIP_TIMEOUT_SECONDS", "5.0"))
    RELATIONSHIP_RETRY_BACKOFF_SECONDS = float(os.getenv("RELATIONSHIP_RETRY_BACKOFF_SECONDS", "0.05"))
    ALLOW_CROSS_EPIC_RELATIONSHIPS = _env_bool("ALLOW_CROSS_EPIC_RELATIONSHIPS")

    # Redis (rate limiter storage)
    REDIS_URL = os.getenv("REDIS_URL", "")

    # Rate limits per blueprint group
    RATELIMIT_API = os.getenv("RATELIMIT_API", "120/minute")
    RATELIMIT_RELATIONSHIPS = os.getenv("RATELIMIT_RELATIONSHIPS", "60/minute")

    # CORS
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL")
    LOG_FORMAT = os.getenv("LOG_FORMAT")

    # Request body cap
    MAX_CONTENT_LENGTH = int(os.getenv("MAX_CONTENT_LENGTH", str(1024 * 1024)))


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _db_url() or _SQLITE_DEV


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    # In-memory SQLite runs on a single StaticPool connection
    SQLALCHEMY_ENGINE_OPTIONS = {}
    KV_STORE_BACKEND = "sqlalchemy"
    RATELIMIT_ENABLED = False
    ALLOW_CROSS_EPIC_RELATIONSHIPS = False
    RELATIONSHIP_RETRY_BACKOFF_SECONDS = 0.0


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    SQLALCHEMY_DATABASE_URI = _db_url() or None
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")  # Must be set explicitly in production

    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,    # wait max 20s for a connection from pool
        "connect_args": {
            "options": "-c statement_timeout=30000",  # 30s query timeout
        },
    }

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")


# Configuration mapping: environment name -> config class
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
