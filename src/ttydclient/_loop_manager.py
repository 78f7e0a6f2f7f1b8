# SPDX-FileCopyrightText: 2025 CoreWeave, Inc.
# SPDX-License-Identifier: Apache-2.0
# SPDX-PackageName: ttydclient

"""Background event loop for the synchronous TerminalClient API.

A singleton _LoopManager runs an asyncio event loop in a daemon thread so
blocking callers can run exec jobs without managing a loop themselves. It
also works from inside Jupyter, where a loop is already running on the main
thread.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
import weakref
from collections.abc import Coroutine
from typing import TYPE_CHECKING, Any, TypeVar

if TYPE_CHECKING:
    from ttydclient._client import TerminalClient

T = TypeVar("T")

logger = logging.getLogger(__name__)


class _LoopManager:
    """Singleton owner of the background event loop thread.

    Usage:
        manager = _LoopManager.get()

        # Block until the coroutine completes
        result = manager.run_sync(execute_command(endpoint, "ls"))

        # Get a Future immediately
        future = manager.run_async(execute_command(endpoint, "ls"))
        result = future.result()

    The loop thread is named "ttydclient-event-loop" and is a daemon, so it
    never keeps the process alive. Clients are tracked in a WeakSet so the
    terminals of their in-flight jobs can be closed at exit.
    """

    _instance: _LoopManager | None = None
    _instance_lock: threading.Lock = threading.Lock()

    def __init__(self) -> None:
        """Use _LoopManager.get() instead."""
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()
        self._clients: weakref.WeakSet[TerminalClient] = weakref.WeakSet()

    @classmethod
    def get(cls) -> _LoopManager:
        """Return the singleton, creating it on first use. Thread-safe."""
        if cls._instance is None:
            with cls._instance_lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    def get_loop(self) -> asyncio.AbstractEventLoop:
        """Return the background loop, starting its thread if necessary."""
        if self._loop is None:
            with self._lock:
                if self._loop is None:
                    self._loop = asyncio.new_event_loop()
                    self._thread = threading.Thread(
                        target=self._run_loop,
                        args=(self._loop,),
                        name="ttydclient-event-loop",
                        daemon=True,
                    )
                    self._thread.start()
                    logger.debug("Started background event loop thread")
        return self._loop

    def _run_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        asyncio.set_event_loop(loop)
        loop.run_forever()

    def run_sync(self, coro: Coroutine[Any, Any, T]) -> T:
        """Run coro on the background loop and block for its result.

        Raises:
            RuntimeError: If called from the loop thread (would deadlock).
            Exception: Any exception raised by the coroutine.
        """
        if threading.current_thread() is self._thread:
            coro.close()
            raise RuntimeError(
                "Cannot call run_sync from the ttydclient event loop thread - this "
                "would deadlock. Await the operation instead."
            )
        future = asyncio.run_coroutine_threadsafe(coro, self.get_loop())
        return future.result()

    def run_async(self, coro: Coroutine[Any, Any, T]) -> concurrent.futures.Future[T]:
        """Schedule coro on the background loop and return a Future immediately."""
        return asyncio.run_coroutine_threadsafe(coro, self.get_loop())

    def register_client(self, client: TerminalClient) -> None:
        """Track a client so close_all_terminals can reach its job terminals."""
        self._clients.add(client)

    def close_all_terminals(self, code: int, reason: str) -> int:
        """Close every registered client's job terminals and cancel its jobs.

        Called at process shutdown with 1001 (going away). Blocks until the
        jobs have finished tearing down their sockets.

        Returns:
            The number of terminals that were still open.
        """
        clients = list(self._clients)
        if not clients or self._loop is None:
            return 0

        async def _close_clients() -> int:
            open_count = 0
            for client in clients:
                open_count += client.open_terminal_count
                try:
                    await client.aclose(code, reason)
                except Exception:
                    logger.exception("Error closing %r", client)
            return open_count

        try:
            return self.run_sync(_close_clients())
        except Exception:
            logger.exception("Error closing terminals")
            return 0

    @classmethod
    def _reset_for_testing(cls) -> None:
        """Stop the background loop and drop the singleton. Tests only."""
        if cls._instance is not None:
            instance = cls._instance
            if instance._loop is not None:
                instance._loop.call_soon_threadsafe(instance._loop.stop)
                if instance._thread is not None:
                    instance._thread.join(timeout=1.0)
            cls._instance = None
