# src/heroic_tasks/connectors/engine_loop.py

from __future__ import annotations

import asyncio
import concurrent.futures
import contextlib
import logging
import threading
from collections.abc import Callable, Coroutine
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EngineLoop:
    """
    asyncio event loop running in a background thread.

    Why a thread:
    - console REPL is blocking (input()).
    - the session controller, live queries and the focus timer are async and
      need a loop that keeps running between two prompts.
    """

    def __init__(self, name: str = "heroic-engine") -> None:
        self._name = name
        self._thread: threading.Thread | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._stop_event: asyncio.Event | None = None

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            raise RuntimeError("engine loop is not running")
        return self._loop

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> EngineLoop:
        if self.running:
            return self

        ready = threading.Event()

        def runner() -> None:
            loop = asyncio.new_event_loop()
            asyncio.set_event_loop(loop)
            self._loop = loop
            self._stop_event = asyncio.Event()
            ready.set()

            try:
                loop.run_until_complete(self._main())
            finally:
                with contextlib.suppress(Exception):
                    loop.run_until_complete(loop.shutdown_asyncgens())
                loop.close()

        self._thread = threading.Thread(target=runner, name=self._name, daemon=True)
        self._thread.start()

        if not ready.wait(timeout=5.0):
            raise RuntimeError("engine loop thread did not initialize")
        logger.info("Engine loop thread started.")
        return self

    async def _main(self) -> None:
        assert self._stop_event is not None
        await self._stop_event.wait()

        pending = [t for t in asyncio.all_tasks() if t is not asyncio.current_task()]
        for t in pending:
            t.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        logger.info("Engine loop stopped (%d background tasks cancelled).", len(pending))

    def submit(self, coro: Coroutine[Any, Any, T]) -> concurrent.futures.Future[T]:
        """Schedule a coroutine without waiting for it (e.g. long-running drivers)."""
        return asyncio.run_coroutine_threadsafe(coro, self.loop)

    def run(self, coro: Coroutine[Any, Any, T], timeout: float | None = 60.0) -> T:
        """Run a coroutine on the engine loop and block until it finishes."""
        return self.submit(coro).result(timeout=timeout)

    def run_sync(self, fn: Callable[..., T], *args: Any, timeout: float | None = 60.0) -> T:
        """Call a plain function on the loop thread (serialized with engine callbacks)."""

        async def _call() -> T:
            return fn(*args)

        return self.run(_call(), timeout=timeout)

    def stop(self, timeout: float | None = 10.0) -> None:
        if self._loop is None or self._stop_event is None:
            return
        try:
            self._loop.call_soon_threadsafe(self._stop_event.set)
        except RuntimeError:
            logger.debug("Engine loop already closed.", exc_info=True)
        if self._thread is not None:
            self._thread.join(timeout=timeout)
