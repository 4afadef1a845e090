from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from studytrackr.config.settings import settings
from studytrackr.state.study_state import STATE_KEYS, StudyState

logger = logging.getLogger(__name__)


class LocalStoreError(Exception):
    pass


class LocalStore:
    """Key -> JSON text store backed by a single SQLite table."""

    def __init__(self, db_path: str = "studytrackr.db") -> None:
        self.db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._init_schema()

    @classmethod
    def from_settings(cls) -> "LocalStore":
        return cls(settings.local_db_path)

    def _init_schema(self) -> None:
        self.conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS kv_store (
              key TEXT PRIMARY KEY,
              value TEXT NOT NULL,
              updated_at TEXT NOT NULL
            );
            """
        )
        self.conn.commit()

    def close(self) -> None:
        self.conn.close()

    def get(self, key: str) -> str | None:
        cur = self.conn.cursor()
        cur.execute("SELECT value FROM kv_store WHERE key=?", (key,))
        row = cur.fetchone()
        return None if row is None else str(row["value"])

    def set(self, key: str, value: str) -> None:
        now = datetime.now(timezone.utc).isoformat()
        try:
            self.conn.execute(
                """INSERT INTO kv_store(key, value, updated_at)
                   VALUES(?,?,?)
                   ON CONFLICT(key) DO UPDATE SET
                       value=excluded.value,
                       updated_at=excluded.updated_at""",
                (key, value, now),
            )
            self.conn.commit()
        except sqlite3.Error as exc:
            raise LocalStoreError(str(exc)) from exc

    def load_state(self) -> StudyState:
        bundle = {}
        for key in STATE_KEYS:
            raw = self.get(key)
            if raw is None:
                continue
            try:
                bundle[key] = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("Malformed JSON under local key %r, using defaults", key)

        def _report(key: str, exc: Exception) -> None:
            logger.warning("Unreadable data under local key %r (%s), using defaults", key, exc)

        return StudyState.from_bundle(bundle, on_error=_report)

    def save_state(self, state: StudyState) -> None:
        for key, value in state.to_bundle().items():
            self.set(key, json.dumps(value))
