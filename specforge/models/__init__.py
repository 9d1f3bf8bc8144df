"""
SpecForge
Persistence layer — shared Flask-SQLAlchemy handle.

Every model module imports ``db`` from here; ``create_app`` binds it to the
application and imports each module so metadata is complete before
``db.create_all()`` / Alembic autogenerate run.
"""

import uuid
from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def new_uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(value) -> str | None:
    return value.isoformat() if value else None
