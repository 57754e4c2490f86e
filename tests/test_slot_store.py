# tests/test_slot_store.py

from __future__ import annotations

import sqlite3
from pathlib import Path

from heroic_tasks.tasks.slot_store import MUTE_STATE_KEY, SlotStore


def test_slots_round_trip_and_overwrite(tmp_path: Path) -> None:
    store = SlotStore(tmp_path / "nested" / "guest.sqlite3")

    assert store.read_slot(MUTE_STATE_KEY) is None
    store.write_slot(MUTE_STATE_KEY, True)
    store.write_slot(MUTE_STATE_KEY, False)

    assert store.read_slot(MUTE_STATE_KEY) is False
    assert store.path.exists()


def test_invalid_json_reads_as_missing(tmp_path: Path) -> None:
    store = SlotStore(tmp_path / "guest.sqlite3")
    conn = sqlite3.connect(str(store.path))
    try:
        conn.execute("INSERT INTO slots(key, value, updated_at) VALUES ('broken', '{nope', 0)")
        conn.commit()
    finally:
        conn.close()

    assert store.read_slot("broken") is None
