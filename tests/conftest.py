# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from heroic_tasks.core.events import EventBus
from heroic_tasks.core.session import SessionController
from heroic_tasks.progress.ledger import RewardLedger

from .fakes import EventRecorder, FakeClock, FakeRemoteDocuments, MemorySlots, ScriptedBackend


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with bootstrap and core modules.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="heroic-tasks-test",
        log_level="DEBUG",
        console_enabled=False,
        sound_muted=False,
        # Remote store off: guest mode only, no network.
        remote_configured=False,
        firebase_api_key="",
        firebase_project_id="",
        firebase_database="(default)",
        remote_poll_seconds=0.05,
        http_timeout_seconds=1.0,
        focus_work_minutes=25,
        focus_short_break_minutes=5,
        focus_long_break_minutes=15,
        # Paths (tmp per test run)
        data_dir=tmp_path,
        guest_db_path=tmp_path / "guest.sqlite3",
        session_path=tmp_path / "session.json",
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def slots() -> MemorySlots:
    return MemorySlots()


@pytest.fixture()
def documents(clock: FakeClock) -> FakeRemoteDocuments:
    return FakeRemoteDocuments(clock)


@pytest.fixture()
def bus() -> EventBus:
    return EventBus()


@pytest.fixture()
def recorder(bus: EventBus) -> EventRecorder:
    return EventRecorder(bus)


@pytest.fixture()
def backends(clock: FakeClock) -> dict[str, ScriptedBackend]:
    """
    Backends handed out by the controller factories, keyed by owner id.

    Pre-populate an entry to control what an owner "has" in the store.
    """
    return {}


@pytest.fixture()
def controller(bus: EventBus, clock: FakeClock, backends: dict[str, ScriptedBackend]) -> SessionController:
    def _local() -> ScriptedBackend:
        if "guest" not in backends:
            backends["guest"] = ScriptedBackend("guest", kind="guest", clock=clock)
        return backends["guest"]

    def _remote(owner_id: str) -> ScriptedBackend:
        if owner_id not in backends:
            backends[owner_id] = ScriptedBackend(owner_id, clock=clock)
        return backends[owner_id]

    return SessionController(
        local_backend_factory=_local,
        remote_backend_factory=_remote,
        events=bus,
        ledger=RewardLedger(clock=clock),
    )
