# src/heroic_tasks/tasks/slot_store.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import time
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

GUEST_TASKS_KEY = "heroicTasks_guestTasks"
GUEST_PROFILE_KEY = "heroicTasks_guestProfile"
MUTE_STATE_KEY = "heroicTasksMuteState"


class SlotStore:
    """
    SQLite-backed key/value slots for on-device data.

    Each slot holds one JSON document (a whole snapshot, never a partial update).
    The schema is intentionally simple:
    - create table if missing
    - one row per slot key

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(self, db_path: str | Path = "guest.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        logger.info("SlotStore ready db=%s", self._db_path)

    @property
    def path(self) -> Path:
        return self._db_path

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS slots (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )
            conn.commit()
        finally:
            conn.close()

    # ---- public API ----

    def read_slot(self, key: str) -> Any | None:
        """Return the decoded slot value, or None if missing/corrupt."""
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT value FROM slots WHERE key = ?", (key,)).fetchone()
        finally:
            conn.close()

        if row is None:
            return None
        try:
            return json.loads(row["value"])
        except (TypeError, ValueError):
            logger.warning("Slot %s holds invalid JSON; ignoring it.", key)
            return None

    def write_slot(self, key: str, value: Any) -> None:
        """Replace the slot content. Raises on serialization or storage errors."""
        payload = json.dumps(value, ensure_ascii=False)
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO slots(key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (key, payload, time.time()),
            )
            conn.commit()
        finally:
            conn.close()
        logger.debug("Slot written key=%s bytes=%d", key, len(payload))

