# SPDX-FileCopyrightText: 2025 CoreWeave, Inc.
# SPDX-License-Identifier: Apache-2.0
# SPDX-PackageName: ttydclient

"""Sync/async facade over the exec engine."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine, Sequence
from typing import Any, TypeVar

from ttydclient import _cleanup  # noqa: F401  installs exit handlers
from ttydclient._defaults import CLOSE_NORMAL, TerminalDefaults
from ttydclient._endpoint import SessionEndpoint
from ttydclient._env import endpoint_from_env
from ttydclient._exec import command_succeeds, execute_command, run_command
from ttydclient._loop_manager import _LoopManager
from ttydclient._transport import (
    ReadyState,
    Transport,
    TransportFactory,
    create_websocket_transport,
)
from ttydclient._types import ExecResult, OperationRef
from ttydclient.exceptions import TtydError

T = TypeVar("T")

logger = logging.getLogger(__name__)


class TerminalClient:
    """Run commands in a remote ttyd shell.

    Every call returns an OperationRef immediately. Block with ``.result()``
    or ``await`` it. Jobs run on a shared background event loop, each on its
    own terminal connection.

    Example:
        ```python
        client = TerminalClient("https://ttyd.example.com", access_token="s3cret")

        result = client.exec("ls -la").result()
        print(result.output, result.exit_code)

        version = client.run("node --version", check=True).result()

        if client.succeeds("test -f package.json").result():
            ...
        ```

    Closing the client closes the terminals of jobs still in flight, then
    cancels the jobs.
    """

    def __init__(
        self,
        url: str,
        *,
        access_token: str | None = None,
        authorization: str | None = None,
        session_id: str | None = None,
        defaults: TerminalDefaults | None = None,
        transport_factory: TransportFactory | None = None,
    ) -> None:
        self._endpoint = SessionEndpoint(
            url,
            access_token=access_token,
            authorization=authorization,
            session_id=session_id,
        )
        self._defaults = defaults or TerminalDefaults()
        self._transport_factory = transport_factory or create_websocket_transport
        self._tasks: set[asyncio.Task[Any]] = set()
        self._transports: list[Transport] = []
        self._closed = False
        _LoopManager.get().register_client(self)

    @classmethod
    def from_env(
        cls,
        url: str | None = None,
        *,
        defaults: TerminalDefaults | None = None,
        transport_factory: TransportFactory | None = None,
        **kwargs: Any,
    ) -> TerminalClient:
        """Build a client from TTYD_URL, TTYD_ACCESS_TOKEN and TTYD_AUTHORIZATION.

        Explicit arguments win over the environment.
        """
        endpoint = endpoint_from_env(url, **kwargs)
        return cls(
            endpoint.url,
            access_token=endpoint.access_token,
            authorization=endpoint.authorization,
            session_id=endpoint.session_id,
            defaults=defaults,
            transport_factory=transport_factory,
        )

    def __repr__(self) -> str:
        status = "closed" if self._closed else "open"
        return f"<TerminalClient {self._endpoint.masked_url()} status={status}>"

    def __enter__(self) -> TerminalClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    async def __aenter__(self) -> TerminalClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await OperationRef(_LoopManager.get().run_async(self.aclose()))

    @property
    def endpoint(self) -> SessionEndpoint:
        return self._endpoint

    @property
    def defaults(self) -> TerminalDefaults:
        return self._defaults

    @property
    def pending_count(self) -> int:
        """Number of jobs still running."""
        return len(self._tasks)

    @property
    def open_terminal_count(self) -> int:
        """Number of job terminals whose socket is not yet closed."""
        return len(self._live_transports())

    def exec(
        self,
        command: str,
        *,
        timeout_seconds: float | None = None,
        strip_ansi: bool | None = None,
    ) -> OperationRef[ExecResult]:
        """Execute a command. Timeouts resolve with ``timed_out=True``."""
        return self._submit(
            execute_command(
                self._endpoint, command, **self._exec_kwargs(timeout_seconds, strip_ansi)
            )
        )

    def run(
        self,
        command: str,
        *,
        check: bool = False,
        timeout_seconds: float | None = None,
        strip_ansi: bool | None = None,
    ) -> OperationRef[str]:
        """Execute a command and return its output.

        The operation raises TtydTimeoutError on timeout and, with
        check=True, TtydExecutionError on a non-zero exit.
        """
        return self._submit(
            run_command(
                self._endpoint,
                command,
                check=check,
                **self._exec_kwargs(timeout_seconds, strip_ansi),
            )
        )

    def succeeds(self, command: str, *, timeout_seconds: float | None = None) -> OperationRef[bool]:
        """True if the command exits 0 in time. Connection failures give False."""
        return self._submit(
            command_succeeds(self._endpoint, command, **self._exec_kwargs(timeout_seconds, None))
        )

    def close(self, code: int = CLOSE_NORMAL, reason: str = "Client closed") -> None:
        """Close in-flight job terminals, cancel the jobs, and wait for them."""
        _LoopManager.get().run_sync(self.aclose(code, reason))

    async def aclose(self, code: int = CLOSE_NORMAL, reason: str = "Client closed") -> None:
        """Async variant of close(). Must run on the background loop.

        Each open job terminal is closed with code and reason first, so the
        server sees why its shell went away; the jobs are then cancelled.
        """
        self._closed = True
        for transport in self._live_transports():
            transport.close(code, reason)
        tasks = list(self._tasks)
        if not tasks:
            return
        logger.debug("Cancelling %d in-flight job(s)", len(tasks))
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def _live_transports(self) -> list[Transport]:
        self._transports = [t for t in self._transports if t.ready_state is not ReadyState.CLOSED]
        return list(self._transports)

    def _open_transport(self, url: str, subprotocols: Sequence[str]) -> Transport:
        transport = self._transport_factory(url, subprotocols)
        self._live_transports()
        self._transports.append(transport)
        return transport

    def _exec_kwargs(
        self, timeout_seconds: float | None, strip_ansi: bool | None
    ) -> dict[str, Any]:
        if timeout_seconds is None:
            timeout_seconds = self._defaults.exec_timeout_seconds
        return {
            "timeout_seconds": timeout_seconds,
            "columns": self._defaults.columns,
            "rows": self._defaults.rows,
            "strip_ansi": strip_ansi if strip_ansi is not None else self._defaults.strip_ansi,
            "settle_seconds": self._defaults.settle_seconds,
            "transport_factory": self._open_transport,
        }

    def _submit(self, coro: Coroutine[Any, Any, T]) -> OperationRef[T]:
        if self._closed:
            coro.close()
            raise TtydError("TerminalClient is closed")

        async def tracked() -> T:
            task = asyncio.current_task()
            if task is None:
                coro.close()
                raise RuntimeError("TerminalClient jobs must run inside an asyncio task")
            self._tasks.add(task)
            try:
                return await coro
            finally:
                self._tasks.discard(task)

        return OperationRef(_LoopManager.get().run_async(tracked()))
