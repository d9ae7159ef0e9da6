"""Database utilities and models."""

from habit.db.base import Base
from habit.db import models  # noqa: F401  (imported for side effects)

__all__ = ["Base"]
