"""
Infrastructure layer: SQLite session store.

Keeps the per-session values a browser would hold in local storage: the last
polygon, the user config, the last summary bundle and the API key.
"""
import json
import logging
import sqlite3
import threading
from datetime import datetime
from typing import Any, Optional

from pydantic import ValidationError

from eos_agritech.domain.models import SavedSummaryBundle

logger = logging.getLogger(__name__)


class SessionKeys:
    """Keys accepted by the session store."""
    POLYGON = "eos_polygon"
    USER_CONFIG = "eos_user_config"
    LAST_SUMMARY = "eos_last_summary"
    API_KEY = "eos_api_key"

    ALL = (POLYGON, USER_CONFIG, LAST_SUMMARY, API_KEY)


class SessionStore:
    """JSON values keyed by session id and key name."""

    def __init__(self, path: str = ":memory:"):
        self.path = path
        self.conn = sqlite3.connect(path, check_same_thread=False)
        self._lock = threading.Lock()
        self.create_table()

    def create_table(self):
        with self.conn:
            self.conn.execute("""
                CREATE TABLE IF NOT EXISTS session_values (
                    session_id TEXT NOT NULL,
                    key TEXT NOT NULL,
                    data TEXT,
                    timestamp DATETIME,
                    PRIMARY KEY (session_id, key)
                )
            """)

    def get(self, session_id: str, key: str) -> Optional[Any]:
        with self._lock:
            row = self.conn.execute(
                "SELECT data FROM session_values WHERE session_id = ? AND key = ?",
                (session_id, key),
            ).fetchone()
        if row is None:
            return None
        try:
            return json.loads(row[0])
        except (TypeError, json.JSONDecodeError):
            logger.warning(f"Discarding unreadable session value {key} of {session_id}")
            self.delete(session_id, key)
            return None

    def set(self, session_id: str, key: str, data: Any):
        timestamp = datetime.now().isoformat()
        with self._lock, self.conn:
            self.conn.execute(
                """
                INSERT OR REPLACE INTO session_values (session_id, key, data, timestamp)
                VALUES (?, ?, ?, ?)
                """,
                (session_id, key, json.dumps(data), timestamp),
            )

    def delete(self, session_id: str, key: str) -> bool:
        with self._lock, self.conn:
            cursor = self.conn.execute(
                "DELETE FROM session_values WHERE session_id = ? AND key = ?",
                (session_id, key),
            )
        return cursor.rowcount > 0

    def save_last_summary(self, session_id: str, bundle: SavedSummaryBundle) -> bool:
        """
        Store the last summary bundle if it is worth keeping.

        Returns:
            True when the bundle had observations and no fallback and was saved
        """
        if not bundle.is_valid:
            logger.info(f"Not saving summary of {session_id}: no observations or fallback used")
            return False
        self.set(session_id, SessionKeys.LAST_SUMMARY, bundle.model_dump(mode="json"))
        return True

    def load_last_summary(self, session_id: str) -> Optional[SavedSummaryBundle]:
        """Saved summary bundle; invalid or malformed bundles are deleted and ignored."""
        data = self.get(session_id, SessionKeys.LAST_SUMMARY)
        if data is None:
            return None
        try:
            bundle = SavedSummaryBundle.model_validate(data)
        except ValidationError:
            bundle = None
        if bundle is None or not bundle.is_valid:
            logger.warning(f"Discarding invalid saved summary of {session_id}")
            self.delete(session_id, SessionKeys.LAST_SUMMARY)
            return None
        return bundle

    def close(self):
        self.conn.close()
