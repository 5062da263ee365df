from __future__ import annotations

import json
from typing import Any, Optional

from loguru import logger
from sqlalchemy.orm import Session, sessionmaker

from app.models.kv_item import KeyValueItem


class KeyValueStore:
    """
    Flat string key-value persistence for device state.

    Every write commits immediately so state survives a process restart.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def get_item(self, key: str) -> Optional[str]:
        db: Session = self._session_factory()
        try:
            row = db.get(KeyValueItem, key)
            return row.value if row else None
        finally:
            db.close()

    def set_item(self, key: str, value: str) -> None:
        db: Session = self._session_factory()
        try:
            row = db.get(KeyValueItem, key)
            if row:
                row.value = value
            else:
                db.add(KeyValueItem(key=key, value=value))
            db.commit()
        finally:
            db.close()

    def remove_item(self, key: str) -> None:
        db: Session = self._session_factory()
        try:
            row = db.get(KeyValueItem, key)
            if row:
                db.delete(row)
                db.commit()
        finally:
            db.close()

    # ---------------------------
    # JSON helpers
    # ---------------------------

    def get_json(self, key: str, default: Any = None) -> Any:
        raw = self.get_item(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"Discarding unreadable value | key={key}")
            return default

    def set_json(self, key: str, value: Any) -> None:
        self.set_item(key, json.dumps(value, default=str))
