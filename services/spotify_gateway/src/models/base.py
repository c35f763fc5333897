"""Base model for SQLAlchemy models."""

from sqlalchemy.orm import DeclarativeBase  # type: ignore[attr-defined]  # SQLAlchemy 2.0 features


class Base(DeclarativeBase):
    """Base class for all gateway models."""
