"""ORM models exposed for metadata discovery."""
from habit.db.models.kv_entry import KeyValueEntry

__all__ = ["KeyValueEntry"]
