# SPDX-FileCopyrightText: 2025 CoreWeave, Inc.
# SPDX-License-Identifier: Apache-2.0
# SPDX-PackageName: ttydclient

"""Duplex socket abstraction.

TerminalSession and the exec engine only talk to the Transport protocol
defined here, so they run unmodified over any socket implementation the
caller selects at construction time. WebSocketTransport is the default,
built on the websockets asyncio client; this module is the only place that
touches the websockets API.

Events are delivered through listener callbacks, mirroring the browser
WebSocket API: on_open, on_message(bytes), on_error(message),
on_close(code, reason). Listener exceptions are logged and never propagate
into the transport.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import ssl as ssl_module
from collections.abc import Callable, Sequence
from enum import IntEnum
from typing import Any, Protocol, runtime_checkable

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidStatus, InvalidURI
from websockets.typing import Subprotocol

from ttydclient._defaults import (
    CLOSE_ABNORMAL,
    CLOSE_NORMAL,
    CLOSE_POLICY_VIOLATION,
    DEFAULT_OPEN_TIMEOUT_SECONDS,
    TTY_SUBPROTOCOL,
)

logger = logging.getLogger(__name__)

OpenListener = Callable[[], None]
MessageListener = Callable[[bytes], None]
ErrorListener = Callable[[str], None]
CloseListener = Callable[[int, str], None]


class ReadyState(IntEnum):
    """Socket states, numbered like the browser WebSocket API."""

    CONNECTING = 0
    OPEN = 1
    CLOSING = 2
    CLOSED = 3


@runtime_checkable
class Transport(Protocol):
    """Minimal duplex socket used by TerminalSession."""

    @property
    def ready_state(self) -> ReadyState: ...

    def on_open(self, listener: OpenListener) -> None: ...

    def on_message(self, listener: MessageListener) -> None: ...

    def on_error(self, listener: ErrorListener) -> None: ...

    def on_close(self, listener: CloseListener) -> None: ...

    def open(self) -> None:
        """Start connecting. Must be called from a running event loop."""
        ...

    def send(self, data: bytes) -> None:
        """Queue one message. Dropped when the socket is not open."""
        ...

    def close(self, code: int = CLOSE_NORMAL, reason: str = "") -> None:
        """Start closing. on_close fires once the socket is closed."""
        ...

    async def wait_closed(self) -> None:
        """Wait until the socket is fully closed."""
        ...


TransportFactory = Callable[[str, Sequence[str]], Transport]


class _Listeners:
    """Listener registry shared by transport implementations."""

    def __init__(self) -> None:
        self.open: list[OpenListener] = []
        self.message: list[MessageListener] = []
        self.error: list[ErrorListener] = []
        self.close: list[CloseListener] = []

    def emit(self, event: str, listeners: Sequence[Callable[..., None]], *args: Any) -> None:
        for listener in list(listeners):
            try:
                listener(*args)
            except Exception:
                logger.exception("Transport %s listener raised", event)


class WebSocketTransport:
    """Transport over a websockets asyncio client connection.

    Outbound messages go through an ordered queue drained by a writer task,
    so send() never blocks and frames reach the wire in call order.

    Example:
        ```python
        transport = WebSocketTransport("wss://ttyd.example.com/ws?arg=token")
        transport.on_open(lambda: transport.send(b'{"columns":80,"rows":24}'))
        transport.on_message(lambda data: print(data))
        transport.open()
        ...
        transport.close()
        await transport.wait_closed()
        ```
    """

    def __init__(
        self,
        url: str,
        subprotocols: Sequence[str] = (TTY_SUBPROTOCOL,),
        *,
        open_timeout: float | None = DEFAULT_OPEN_TIMEOUT_SECONDS,
        ssl: ssl_module.SSLContext | None = None,
    ) -> None:
        self.url = url
        self._subprotocols = [Subprotocol(p) for p in subprotocols]
        self._open_timeout = open_timeout
        self._ssl = ssl
        self._state = ReadyState.CONNECTING
        self._listeners = _Listeners()
        self._ws: ClientConnection | None = None
        self._task: asyncio.Task[None] | None = None
        self._writer_task: asyncio.Task[None] | None = None
        self._closer_task: asyncio.Task[None] | None = None
        self._outbound: asyncio.Queue[bytes] = asyncio.Queue()
        self._requested_close: tuple[int, str] | None = None
        self._close_emitted = False

    def __repr__(self) -> str:
        return f"<WebSocketTransport state={self._state.name}>"

    @property
    def ready_state(self) -> ReadyState:
        return self._state

    def on_open(self, listener: OpenListener) -> None:
        self._listeners.open.append(listener)

    def on_message(self, listener: MessageListener) -> None:
        self._listeners.message.append(listener)

    def on_error(self, listener: ErrorListener) -> None:
        self._listeners.error.append(listener)

    def on_close(self, listener: CloseListener) -> None:
        self._listeners.close.append(listener)

    def open(self) -> None:
        if self._task is not None:
            raise RuntimeError("Transport was already opened")
        if self._state is ReadyState.CLOSED:
            raise RuntimeError("Transport is closed")
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name="ttydclient-websocket"
        )

    def send(self, data: bytes) -> None:
        if self._state is not ReadyState.OPEN:
            logger.debug("Dropping %d bytes, socket is %s", len(data), self._state.name)
            return
        self._outbound.put_nowait(bytes(data))

    def close(self, code: int = CLOSE_NORMAL, reason: str = "") -> None:
        if self._state in (ReadyState.CLOSING, ReadyState.CLOSED):
            return
        self._requested_close = (code, reason)

        if self._task is None:
            # Never opened
            self._finish(code, reason)
            return

        self._state = ReadyState.CLOSING
        if self._ws is None:
            # Still in the opening handshake; the task may not have started yet
            self._task.cancel()
            self._task.add_done_callback(lambda _task: self._finish(code, reason))
            return

        self._closer_task = asyncio.get_running_loop().create_task(
            self._close_open_connection(self._ws, code, reason)
        )

    async def wait_closed(self) -> None:
        tasks = {t for t in (self._task, self._closer_task) if t is not None}
        if tasks:
            await asyncio.wait(tasks)

    async def _run(self) -> None:
        try:
            ws = await self._connect()
        except asyncio.CancelledError:
            code, reason = self._requested_close or (CLOSE_ABNORMAL, "cancelled")
            self._finish(code, reason)
            raise
        if ws is None:
            return

        self._ws = ws
        self._state = ReadyState.OPEN
        self._writer_task = asyncio.get_running_loop().create_task(self._write_loop(ws))
        logger.debug("WebSocket open (subprotocol=%s)", ws.subprotocol)
        self._listeners.emit("open", self._listeners.open)

        try:
            async for message in ws:
                data = message.encode("utf-8") if isinstance(message, str) else message
                self._listeners.emit("message", self._listeners.message, data)
        except ConnectionClosed:
            pass
        finally:
            if self._requested_close is not None:
                code, reason = self._requested_close
            else:
                code = ws.close_code if ws.close_code is not None else CLOSE_ABNORMAL
                reason = ws.close_reason or ""
            self._finish(code, reason)

    async def _connect(self) -> ClientConnection | None:
        kwargs: dict[str, Any] = {
            "subprotocols": self._subprotocols,
            "open_timeout": self._open_timeout,
            "max_size": None,
        }
        if self._ssl is not None:
            kwargs["ssl"] = self._ssl

        try:
            return await connect(self.url, **kwargs)
        except InvalidStatus as e:
            status = e.response.status_code
            if status in (401, 403):
                self._finish(CLOSE_POLICY_VIOLATION, f"authentication failed (HTTP {status})")
            else:
                message = f"server rejected WebSocket upgrade: HTTP {status}"
                self._listeners.emit("error", self._listeners.error, message)
                self._finish(CLOSE_ABNORMAL, message)
        except (OSError, TimeoutError, InvalidHandshake, InvalidURI) as e:
            message = str(e) or type(e).__name__
            logger.debug("WebSocket connect failed: %s", message)
            self._listeners.emit("error", self._listeners.error, message)
            self._finish(CLOSE_ABNORMAL, message)
        return None

    async def _write_loop(self, ws: ClientConnection) -> None:
        while True:
            data = await self._outbound.get()
            try:
                await ws.send(data)
            except ConnectionClosed:
                return

    async def _close_open_connection(self, ws: ClientConnection, code: int, reason: str) -> None:
        await self._stop_writer()
        try:
            await ws.close(code, reason)
        except ConnectionClosed:
            pass
        if self._task is not None:
            await asyncio.wait({self._task})

    async def _stop_writer(self) -> None:
        if self._writer_task is not None and not self._writer_task.done():
            self._writer_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._writer_task

    def _finish(self, code: int, reason: str) -> None:
        self._state = ReadyState.CLOSED
        if self._writer_task is not None and not self._writer_task.done():
            self._writer_task.cancel()
        if self._close_emitted:
            return
        self._close_emitted = True
        logger.debug("WebSocket closed: code=%s reason=%s", code, reason)
        self._listeners.emit("close", self._listeners.close, code, reason)


def create_websocket_transport(
    url: str, subprotocols: Sequence[str] = (TTY_SUBPROTOCOL,)
) -> Transport:
    """Default TransportFactory: an unopened WebSocketTransport."""
    return WebSocketTransport(url, subprotocols)
