"""Key-value persistence over the ``kv_entries`` table."""
from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified

from habit.db.models.kv_entry import KeyValueEntry
from habit.services.alarms.errors import StorageError

logger = logging.getLogger(__name__)


class KeyValueStorage:
    """JSON values addressed by string keys, one row per key.

    Values are written whole; callers own any read-modify-write cycle.
    Database failures surface as ``StorageError``.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_item(self, key: str, default: Any = None) -> Any:
        try:
            entry = self.db.get(KeyValueEntry, key)
        except SQLAlchemyError as exc:
            raise StorageError(f"failed to read {key!r}") from exc
        if entry is None or entry.value is None:
            return default
        return entry.value

    def set_item(self, key: str, value: Any) -> None:
        try:
            entry = self.db.get(KeyValueEntry, key)
            if entry is None:
                entry = KeyValueEntry(key=key, value=value)
            else:
                entry.value = value
                # Callers may hand back the same dict/list they read; force the UPDATE.
                flag_modified(entry, "value")
            self.db.add(entry)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StorageError(f"failed to write {key!r}") from exc
        logger.debug("Stored key %s", key)

    def remove_item(self, key: str) -> None:
        try:
            entry = self.db.get(KeyValueEntry, key)
            if entry is not None:
                self.db.delete(entry)
                self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StorageError(f"failed to remove {key!r}") from exc
