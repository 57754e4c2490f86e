# src/heroic_tasks/core/state.py

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from .events import EventBus
from .session import SessionController

if TYPE_CHECKING:
    from ..connectors.engine_loop import EngineLoop
    from ..focus.timer import FocusTimer
    from ..remote.auth import AuthProvider, FirebaseAuthClient
    from ..remote.firestore import FirestoreDocuments
    from ..tasks.slot_store import SlotStore


@dataclass
class AppState:
    """
    Runtime state shared by connectors and commands.

    Keep this as a plain container: wiring happens in cli/bootstrap.py.
    """

    # Store Settings on the state for easy access in other modules later.
    settings: object

    engine: EngineLoop
    events: EventBus
    slots: SlotStore
    auth: AuthProvider
    session: SessionController
    timer: FocusTimer

    # Only set when the remote store is configured.
    auth_client: FirebaseAuthClient | None = None
    documents: FirestoreDocuments | None = None
