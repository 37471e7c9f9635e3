"""Typed repository over the local key-value state."""

import json
import logging
import sqlite3
from abc import ABC, abstractmethod
from typing import Dict, Optional

from .db import delete_meta, get_meta, init_db, set_meta
from .models import Session

logger = logging.getLogger(__name__)

NOTIFIED_KEY = "uni-tracker-notified-evals"
PROMPT_DISMISSED_KEY = "uni-tracker-notif-prompt-dismissed"
PERMISSION_KEY = "uni-tracker-notif-permission"
SESSION_KEY = "uni-tracker-session"


class StateRepository(ABC):
    """
    Local durable state: notified-evaluation map, notification consent and session.

    Subclasses only provide raw string storage; the typed accessors live here so
    every backend decodes and tolerates corrupt values the same way.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the raw stored value for key, or None."""
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store a raw string value under key."""
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove key if present."""
        pass

    def _get_json(self, key: str):
        stored = self.get(key)
        if not stored:
            return None
        try:
            return json.loads(stored)
        except ValueError:
            logger.warning(f"Ignoring corrupt JSON stored under {key!r}")
            return None

    # Notified map

    def get_notified_map(self) -> Dict[str, int]:
        """
        Return the evaluation id -> epoch milliseconds map as stored.

        Corrupt or non-mapping contents read as an empty map.
        """
        parsed = self._get_json(NOTIFIED_KEY)
        if not isinstance(parsed, dict):
            return {}
        cleaned = {}
        for eval_id, timestamp in parsed.items():
            if isinstance(timestamp, (int, float)) and not isinstance(timestamp, bool):
                cleaned[str(eval_id)] = int(timestamp)
        return cleaned

    def put_notified_map(self, notified: Dict[str, int]) -> None:
        self.set(NOTIFIED_KEY, json.dumps(notified))

    # Notification prompt and consent

    def is_prompt_dismissed(self) -> bool:
        return self.get(PROMPT_DISMISSED_KEY) == "true"

    def set_prompt_dismissed(self, dismissed: bool = True) -> None:
        if dismissed:
            self.set(PROMPT_DISMISSED_KEY, "true")
        else:
            self.delete(PROMPT_DISMISSED_KEY)

    def get_permission(self) -> str:
        value = self.get(PERMISSION_KEY)
        if value in ("granted", "denied"):
            return value
        return "default"

    def set_permission(self, permission: str) -> None:
        self.set(PERMISSION_KEY, permission)

    # Session

    def get_session(self) -> Optional[Session]:
        data = self._get_json(SESSION_KEY)
        if not isinstance(data, dict):
            return None
        try:
            return Session.from_dict(data)
        except KeyError:
            logger.warning("Stored session is missing fields; ignoring it")
            return None

    def put_session(self, session: Session) -> None:
        self.set(SESSION_KEY, json.dumps(session.to_dict()))

    def clear_session(self) -> None:
        self.delete(SESSION_KEY)


class SQLiteStateRepository(StateRepository):
    """State stored in the SQLite `meta` table."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    @classmethod
    def open(cls, db_path: str) -> "SQLiteStateRepository":
        logger.debug(f"Opening local state database at {db_path}")
        return cls(init_db(db_path))

    def get(self, key: str) -> Optional[str]:
        return get_meta(self.conn, key)

    def set(self, key: str, value: str) -> None:
        set_meta(self.conn, key, value)

    def delete(self, key: str) -> None:
        delete_meta(self.conn, key)

    def close(self) -> None:
        self.conn.close()


class InMemoryStateRepository(StateRepository):
    """Dictionary-backed state, for tests and throwaway runs."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.values: Dict[str, str] = dict(initial or {})
        self.writes = 0

    def get(self, key: str) -> Optional[str]:
        return self.values.get(key)

    def set(self, key: str, value: str) -> None:
        self.writes += 1
        self.values[key] = value

    def delete(self, key: str) -> None:
        self.values.pop(key, None)
