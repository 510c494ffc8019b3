"""
Rental Marketplace Workflow Service
Model package.

``db`` is the shared Flask-SQLAlchemy handle; every model module imports it
from here so that metadata is collected in one place for Alembic.
"""

from datetime import datetime, timezone
import uuid

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from SQLite."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def isoformat(value) -> str | None:
    return value.isoformat() if value else None


def enum_type(enum_cls, name: str):
    """Non-native Enum column storing the member *values* ("pending", ...)."""
    return db.Enum(
        enum_cls,
        name=name,
        native_enum=False,
        create_constraint=True,
        validate_strings=True,
        length=20,
        values_callable=lambda members: [m.value for m in members],
    )
