# src/heroic_tasks/cli/main.py

"""
CLI entrypoint.

Initializes logging, starts the engine loop thread, builds AppState, then:
- restores a persisted sign-in (if any),
- starts the focus timer driver on the engine loop,
- runs the console REPL in the main thread (optional).
"""

from __future__ import annotations

import logging
import signal
import threading

from ..cli.bootstrap import create_initial_state, shutdown_state, start_session
from ..config import get_settings
from ..connectors.console_connector import attach_event_renderer, run_console_loop
from ..connectors.engine_loop import EngineLoop
from ..core.errors import HeroicTasksError
from ..focus.timer import run_focus_timer
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


def main() -> None:
    settings = get_settings()

    # choose console log level from settings.log_level
    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    setup_logging(log_dir=settings.data_dir, console_level=console_level)
    logger.info("Starting %s...", settings.app_name)

    engine = EngineLoop().start()
    # IMPORTANT: reuse same settings object
    state = create_initial_state(settings=settings, engine=engine)

    try:
        engine.run(start_session(state))
    except HeroicTasksError as e:
        # Not fatal: the console can still enter guest mode or retry /login.
        logger.warning("Session restore failed: %s", e)

    timer_future = engine.submit(run_focus_timer(state.timer, state.events.publish))

    stop_main = threading.Event()

    def _handle_signal(signum, _frame) -> None:
        logger.info("Signal %s received, shutting down...", signum)
        stop_main.set()

    try:
        signal.signal(signal.SIGTERM, _handle_signal)
    except (ValueError, OSError, AttributeError):
        # Some platforms may not support SIGTERM, etc.
        pass

    try:
        if settings.console_enabled:
            run_console_loop(state)
        else:
            detach = attach_event_renderer(state)
            logger.info("Console disabled. Running the engine only. Press Ctrl+C to stop.")
            try:
                stop_main.wait()
            except KeyboardInterrupt:
                pass
            detach()
    finally:
        timer_future.cancel()
        try:
            engine.run(shutdown_state(state), timeout=15.0)
        except Exception:
            logger.exception("Shutdown failed.")
        engine.stop()
        logger.info("Bye.")


if __name__ == "__main__":
    main()
