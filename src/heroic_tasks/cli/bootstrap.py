# src/heroic_tasks/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations into AppState (slots/auth/remote store/session/timer),
- persists the sound mute flag in its own slot.
"""

from __future__ import annotations

import logging
import sqlite3

from ..config import get_settings
from ..connectors.engine_loop import EngineLoop
from ..core.errors import StoreUnavailable, ValidationFailed
from ..core.events import EventBus
from ..core.session import SessionContext, SessionController
from ..core.state import AppState
from ..focus.timer import DEFAULT_WORK_MINUTES, FocusTimer
from ..remote.auth import AuthProvider, FirebaseAuthClient
from ..remote.firestore import FirestoreDocuments
from ..tasks.local_backend import LocalTaskBackend
from ..tasks.remote_backend import RemoteTaskBackend
from ..tasks.slot_store import MUTE_STATE_KEY, SlotStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.guest_db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.session_path.parent.mkdir(parents=True, exist_ok=True)


def load_mute_state(slots: SlotStore, default: bool = False) -> bool:
    try:
        raw = slots.read_slot(MUTE_STATE_KEY)
    except sqlite3.Error:
        logger.exception("Failed to read mute state.")
        return default
    return raw if isinstance(raw, bool) else default


def save_mute_state(slots: SlotStore, muted: bool) -> None:
    try:
        slots.write_slot(MUTE_STATE_KEY, bool(muted))
    except (sqlite3.Error, OSError):
        logger.exception("Failed to persist mute state.")


def _build_timer(settings) -> FocusTimer:
    try:
        return FocusTimer(
            work_minutes=settings.focus_work_minutes,
            short_break_minutes=settings.focus_short_break_minutes,
            long_break_minutes=settings.focus_long_break_minutes,
        )
    except ValidationFailed as e:
        logger.warning("Invalid focus settings (%s); using %d minute work cycles.", e, DEFAULT_WORK_MINUTES)
        return FocusTimer(
            short_break_minutes=settings.focus_short_break_minutes,
            long_break_minutes=settings.focus_long_break_minutes,
        )


def create_initial_state(*, settings=None, engine: EngineLoop | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()
    if engine is None:
        engine = EngineLoop()

    _ensure_local_dirs(settings)

    events = EventBus()
    slots = SlotStore(settings.guest_db_path)

    auth_client: FirebaseAuthClient | None = None
    documents: FirestoreDocuments | None = None
    if settings.remote_configured:
        auth_client = FirebaseAuthClient(
            settings.firebase_api_key,
            timeout_seconds=settings.http_timeout_seconds,
        )
    else:
        # Demos / local runs without a Firebase project: guest mode only.
        logger.info("Remote store not configured; only guest mode is available.")

    auth = AuthProvider(auth_client, settings.session_path)
    if auth_client is not None:
        documents = FirestoreDocuments(
            project_id=settings.firebase_project_id,
            api_key=settings.firebase_api_key,
            database=settings.firebase_database,
            token_provider=auth.id_token,
            timeout_seconds=settings.http_timeout_seconds,
        )

    def remote_backend_factory(owner_id: str) -> RemoteTaskBackend:
        if documents is None:
            raise StoreUnavailable("remote store is not configured")
        return RemoteTaskBackend(
            documents,
            owner_id,
            poll_interval_seconds=settings.remote_poll_seconds,
        )

    session = SessionController(
        local_backend_factory=lambda: LocalTaskBackend(slots),
        remote_backend_factory=remote_backend_factory,
        events=events,
        context=SessionContext(muted=load_mute_state(slots, default=settings.sound_muted)),
    )
    auth.subscribe(session.handle_identity_change)

    return AppState(
        settings=settings,
        engine=engine,
        events=events,
        slots=slots,
        auth=auth,
        session=session,
        timer=_build_timer(settings),
        auth_client=auth_client,
        documents=documents,
    )


async def start_session(state: AppState) -> None:
    """Restore a persisted sign-in (if any) and bring the session out of 'uninitialized'."""
    uid = await state.auth.restore()
    await state.session.start(uid)


async def shutdown_state(state: AppState) -> None:
    """Best-effort async teardown (no exceptions should escape)."""
    try:
        await state.session.close()
    except Exception:
        logger.exception("Session close failed.")

    for closer in (state.documents, state.auth_client):
        if closer is None:
            continue
        try:
            await closer.aclose()
        except Exception:
            logger.debug("HTTP client close failed.", exc_info=True)
