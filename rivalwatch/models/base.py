"""Declarative base for RivalWatch models."""

import uuid

from sqlalchemy.orm import DeclarativeBase


def new_id() -> str:
    """Opaque primary key for every table."""
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass
