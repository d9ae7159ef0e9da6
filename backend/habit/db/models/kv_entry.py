"""Key-value entry ORM model."""
from __future__ import annotations

from sqlalchemy import Column, DateTime, Text, func

from habit.db.base import Base
from habit.db.types import JSONBCompat


class KeyValueEntry(Base):
    """One JSON blob per storage key (``tasks``, ``scheduledAlarms``, ...)."""

    __tablename__ = "kv_entries"

    key = Column(Text, primary_key=True)
    value = Column(JSONBCompat, nullable=True)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
