"""
Rental Marketplace Workflow Service
Configuration classes for Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

# Default SQLite path for local dev when PostgreSQL is not running
_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'rentflow_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Generate a random key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)


def _db_url(raw):
    # Heroku-style postgres:// is rejected by SQLAlchemy 2.x
    return raw.replace("postgres://", "postgresql://", 1) if raw else None


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False

    # SQLAlchemy
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
    }

    # Redis (rate-limit storage) and key-value store (feature flags)
    REDIS_URL = os.getenv("REDIS_URL", "memory://")
    RATELIMIT_STORAGE_URI = REDIS_URL
    KV_STORE_URL = os.getenv("KV_STORE_URL", "memory://")

    # CORS
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    DEFAULT_LOCALE = os.getenv("DEFAULT_LOCALE", "fr")
    API_AUTH_ENABLED = os.getenv("API_AUTH_ENABLED", "false")

    # Document storage
    DOCUMENT_STORAGE_BACKEND = os.getenv("DOCUMENT_STORAGE_BACKEND", "local")
    DOCUMENT_BUCKET = os.getenv("DOCUMENT_BUCKET", "role-transformation-docs")
    DOCUMENT_LOCAL_DIR = os.getenv("DOCUMENT_LOCAL_DIR", os.path.join(basedir, "instance", "documents"))
    DOCUMENT_PUBLIC_BASE_URL = os.getenv("DOCUMENT_PUBLIC_BASE_URL", "/documents")
    S3_ENDPOINT_URL = os.getenv("S3_ENDPOINT_URL")
    AWS_REGION = os.getenv("AWS_REGION", "eu-west-1")

    # Workflow constants
    DOCUMENT_MAX_BYTES = 10 * 1024 * 1024
    DOCUMENT_ALLOWED_TYPES = ("image/jpeg", "image/png", "image/webp", "application/pdf")
    DEFAULT_DEADLINE_HOURS = 48
    MIN_DEADLINE_HOURS = 24
    MAX_DEADLINE_HOURS = 168
    MANDATE_EXPIRING_SOON_DAYS = 30
    MANDATE_EXPIRY_SWEEP_ENABLED = os.getenv("MANDATE_EXPIRY_SWEEP_ENABLED", "false").lower() == "true"

    # Uploads arrive as multipart; leave headroom over DOCUMENT_MAX_BYTES for several files
    MAX_CONTENT_LENGTH = 50 * 1024 * 1024


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _db_url(os.getenv("DATABASE_URL", "")) or _SQLITE_DEV


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    # In-memory SQLite uses a static pool; pool sizing options do not apply
    SQLALCHEMY_ENGINE_OPTIONS = {}
    API_AUTH_ENABLED = "false"
    RATELIMIT_ENABLED = False
    RATELIMIT_STORAGE_URI = "memory://"
    KV_STORE_URL = "memory://"
    DOCUMENT_STORAGE_BACKEND = "local"
    DEFAULT_LOCALE = "en"


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    SQLALCHEMY_DATABASE_URI = _db_url(os.getenv("DATABASE_URL", ""))
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")  # Must be set explicitly in production
    DOCUMENT_STORAGE_BACKEND = os.getenv("DOCUMENT_STORAGE_BACKEND", "s3")

    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
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
