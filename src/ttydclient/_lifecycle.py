# SPDX-FileCopyrightText: 2025 CoreWeave, Inc.
# SPDX-License-Identifier: Apache-2.0
# SPDX-PackageName: ttydclient

"""Connection lifecycle for interactive terminals.

SessionLifecycle wraps one TerminalSession and owns its connection state
(disconnected, connecting, connected, error) and the reconnect policy. One
controller per terminal tab; controllers share nothing.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from ttydclient._defaults import CLOSE_NORMAL, DEFAULT_CLOSE_GRACE_SECONDS, TerminalDefaults
from ttydclient._endpoint import SessionEndpoint
from ttydclient._terminal import TerminalSession
from ttydclient._transport import TransportFactory
from ttydclient._types import ConnectionStatus
from ttydclient.exceptions import TtydError

logger = logging.getLogger(__name__)

StatusListener = Callable[[ConnectionStatus], None]


class SessionLifecycle:
    """Connection state machine with automatic reconnect.

    A clean close (code 1000) ends in ``disconnected``. Any other close ends
    in ``error`` and, while auto reconnect is enabled, schedules a single
    reconnect after ``reconnect_delay_seconds``. At most one reconnect timer
    is pending at any time.

    All methods must be called on the event loop that runs the session.

    Example:
        ```python
        async with SessionLifecycle(on_output=sys.stdout.buffer.write) as lifecycle:
            lifecycle.add_status_listener(lambda status: print("status:", status))
            lifecycle.set_endpoint(SessionEndpoint(url, access_token=token))
            lifecycle.session.send_input("uptime\\r")
            ...
        ```
    """

    def __init__(
        self,
        *,
        defaults: TerminalDefaults | None = None,
        transport_factory: TransportFactory | None = None,
        require_authorization: bool = True,
        on_output: Callable[[bytes], None] | None = None,
        on_title: Callable[[str], None] | None = None,
        on_error: Callable[[str], None] | None = None,
        on_close: Callable[[int, str], None] | None = None,
    ) -> None:
        self._defaults = defaults or TerminalDefaults()
        self._on_error = on_error
        self._on_close = on_close
        self._session = TerminalSession(
            columns=self._defaults.columns,
            rows=self._defaults.rows,
            transport_factory=transport_factory,
            require_authorization=require_authorization,
            on_output=on_output,
            on_title=on_title,
            on_open=self._handle_open,
            on_close=self._handle_close,
            on_error=self._handle_error,
        )
        self._status = ConnectionStatus.DISCONNECTED
        self._endpoint: SessionEndpoint | None = None
        self._auto_reconnect = self._defaults.auto_reconnect
        self._closed_by_user = False
        self._reconnect_handle: asyncio.TimerHandle | None = None
        self._listeners: list[StatusListener] = []

    def __repr__(self) -> str:
        return f"<SessionLifecycle status={self._status}>"

    async def __aenter__(self) -> SessionLifecycle:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def is_ready(self) -> bool:
        """True when the terminal is connected and accepts input."""
        return self._status is ConnectionStatus.CONNECTED and self._session.is_open

    @property
    def endpoint(self) -> SessionEndpoint | None:
        return self._endpoint

    @property
    def session(self) -> TerminalSession:
        """The wrapped session, for input, resize and flow control."""
        return self._session

    @property
    def auto_reconnect(self) -> bool:
        return self._auto_reconnect

    @property
    def reconnect_pending(self) -> bool:
        """True while a reconnect timer is scheduled."""
        return self._reconnect_handle is not None

    @property
    def reconnect_delay_seconds(self) -> float:
        return self._defaults.reconnect_delay_seconds

    def add_status_listener(self, listener: StatusListener) -> Callable[[], None]:
        """Observe status changes. Returns a function that removes the listener."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def set_endpoint(self, endpoint: SessionEndpoint | None) -> None:
        """Point the terminal at a new endpoint, or at nothing.

        A new endpoint tears down the current connection, restores the
        configured auto reconnect policy, and connects again.
        None disconnects and leaves the controller idle.

        Raises:
            TtydAuthenticationError: If the endpoint carries no credential
                and the session requires one
        """
        self._cancel_reconnect()
        self._endpoint = endpoint
        if endpoint is None:
            self._closed_by_user = True
            self._session.disconnect(CLOSE_NORMAL, "Endpoint cleared")
            self._set_status(ConnectionStatus.DISCONNECTED)
            return
        self._auto_reconnect = self._defaults.auto_reconnect
        self._connect(endpoint)

    def reconnect(self) -> None:
        """Reconnect now, cancelling any pending timer.

        Re-enables auto reconnect if disconnect() turned it off.
        """
        self._cancel_reconnect()
        self._auto_reconnect = True
        if self._endpoint is None:
            logger.debug("Reconnect requested without an endpoint")
            return
        self._connect(self._endpoint)

    def disconnect(self) -> None:
        """Close the connection and stop reconnecting."""
        self._cancel_reconnect()
        self._auto_reconnect = False
        self._closed_by_user = True
        self._session.disconnect(CLOSE_NORMAL, "Client disconnected")
        self._set_status(ConnectionStatus.DISCONNECTED)

    async def close(self, grace_seconds: float = DEFAULT_CLOSE_GRACE_SECONDS) -> None:
        """Disconnect and wait (bounded) for the socket to close."""
        self.disconnect()
        try:
            await asyncio.wait_for(self._session.wait_closed(), timeout=grace_seconds)
        except TimeoutError:
            logger.warning("Terminal socket did not close within %.1fs", grace_seconds)

    def _connect(self, endpoint: SessionEndpoint) -> None:
        self._closed_by_user = False
        self._set_status(ConnectionStatus.CONNECTING)
        try:
            self._session.connect(endpoint)
        except TtydError:
            self._set_status(ConnectionStatus.ERROR)
            raise

    def _schedule_reconnect(self) -> None:
        self._cancel_reconnect()
        delay = self._defaults.reconnect_delay_seconds
        logger.info("Connection lost, reconnecting in %.1fs", delay)
        self._reconnect_handle = asyncio.get_running_loop().call_later(
            delay, self._fire_reconnect
        )

    def _cancel_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    def _fire_reconnect(self) -> None:
        self._reconnect_handle = None
        if not self._auto_reconnect or self._endpoint is None:
            return
        try:
            self._connect(self._endpoint)
        except TtydError as e:
            logger.warning("Reconnect failed: %s", e)

    def _handle_open(self) -> None:
        self._set_status(ConnectionStatus.CONNECTED)

    def _handle_error(self, message: str) -> None:
        self._notify(self._on_error, message)
        if not self._closed_by_user:
            self._set_status(ConnectionStatus.ERROR)

    def _handle_close(self, code: int, reason: str) -> None:
        if self._closed_by_user or code == CLOSE_NORMAL:
            self._set_status(ConnectionStatus.DISCONNECTED)
        else:
            logger.warning("Terminal closed abnormally: code=%s reason=%s", code, reason)
            # Schedule first so observers can see the pending reconnect
            if self._auto_reconnect and self._endpoint is not None:
                self._schedule_reconnect()
            self._set_status(ConnectionStatus.ERROR)
        self._notify(self._on_close, code, reason)

    @staticmethod
    def _notify(callback: Callable[..., None] | None, *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Lifecycle callback raised")

    def _set_status(self, status: ConnectionStatus) -> None:
        if status is self._status:
            return
        logger.debug("Terminal status %s -> %s", self._status, status)
        self._status = status
        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception:
                logger.exception("Status listener raised")
