"""
VSAQ Questionnaire Service
Configuration classes for the app factory.

``create_app(name)`` instantiates ``config[name]``; ``name`` defaults to the
APP_ENV env var, then "development".

Env vars:
    DATABASE_URL        SQLAlchemy URL (postgres:// is rewritten to postgresql://)
    SECRET_KEY          required in production
    API_AUTH_ENABLED    "false" turns the admin gate off (dev-admin identity)
    API_KEYS            see vsaq/auth.py
    REDIS_URL           rate-limit storage; in-memory when unset
    CORS_ORIGINS        comma-separated origins, "*" in development
    FILL_BASE_URL       prefix of respondent links handed to admins
    MAX_CONTENT_LENGTH  request body cap in bytes
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'vsaq_dev.db')}"
_SQLITE_MEMORY = "sqlite:///:memory:"


def _database_url() -> str:
    raw = os.getenv("DATABASE_URL", "")
    if raw.startswith("postgres://"):
        return "postgresql://" + raw[len("postgres://"):]
    return raw


class Config:
    """Settings shared by every environment."""

    # Per-process random key unless SECRET_KEY is set
    SECRET_KEY = os.getenv("SECRET_KEY") or secrets.token_hex(32)
    DEBUG = False
    TESTING = False

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True, "pool_recycle": 300}

    API_AUTH_ENABLED = os.getenv("API_AUTH_ENABLED", "true")
    REDIS_URL = os.getenv("REDIS_URL", "")
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    FILL_BASE_URL = os.getenv("FILL_BASE_URL", "/fill")
    # Template documents are small; 2 MB leaves ample room
    MAX_CONTENT_LENGTH = int(os.getenv("MAX_CONTENT_LENGTH", str(2 * 1024 * 1024)))


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url() or _SQLITE_DEV
    API_AUTH_ENABLED = os.getenv("API_AUTH_ENABLED", "false")


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_MEMORY)
    # :memory: runs on one static connection, so no pool tuning
    SQLALCHEMY_ENGINE_OPTIONS = {}
    API_AUTH_ENABLED = "false"
    RATELIMIT_ENABLED = False
    FILL_BASE_URL = "http://vsaq.test/fill"


class ProductionConfig(Config):
    SQLALCHEMY_DATABASE_URI = _database_url()
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_timeout": 20,
    }

    def __init__(self):
        missing = [name for name, value in (
            ("DATABASE_URL", self.SQLALCHEMY_DATABASE_URI),
            ("SECRET_KEY", os.getenv("SECRET_KEY")),
        ) if not value]
        if missing:
            raise RuntimeError(f"Production config requires: {', '.join(missing)}")


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
