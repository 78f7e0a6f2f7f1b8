# SPDX-FileCopyrightText: 2025 CoreWeave, Inc.
# SPDX-License-Identifier: Apache-2.0
# SPDX-PackageName: ttydclient

"""Terminal session client: one live ttyd connection.

TerminalSession owns exactly one physical connection at a time. It sends the
handshake, relays input and output frames, and propagates resize and flow
control. It reports raw open/close/error events and leaves reconnect policy
and connection state to SessionLifecycle.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from ttydclient._defaults import (
    CLOSE_NORMAL,
    DEFAULT_COLUMNS,
    DEFAULT_ROWS,
    TTY_SUBPROTOCOL,
)
from ttydclient._endpoint import SessionEndpoint
from ttydclient._protocol import (
    ServerCommand,
    decode_frame,
    encode_handshake,
    encode_input,
    encode_pause,
    encode_resize,
    encode_resume,
)
from ttydclient._transport import (
    ReadyState,
    Transport,
    TransportFactory,
    create_websocket_transport,
)
from ttydclient.exceptions import TtydAuthenticationError

logger = logging.getLogger(__name__)


def _validate_geometry(columns: int, rows: int) -> None:
    if columns <= 0 or rows <= 0:
        raise ValueError(f"Terminal size must be positive, got {columns}x{rows}")


class TerminalSession:
    """Client side of one ttyd terminal.

    Example:
        ```python
        session = TerminalSession(
            columns=80,
            rows=24,
            on_output=lambda data: sys.stdout.buffer.write(data),
        )
        session.connect(SessionEndpoint("https://ttyd.example.com", access_token="s3cret"))
        session.send_input("ls -la\\r")
        session.resize(120, 40)
        session.disconnect()
        await session.wait_closed()
        ```

    Callbacks run on the event loop thread. Exceptions raised by callbacks
    are logged and swallowed.
    """

    def __init__(
        self,
        *,
        columns: int = DEFAULT_COLUMNS,
        rows: int = DEFAULT_ROWS,
        transport_factory: TransportFactory | None = None,
        require_authorization: bool = True,
        on_output: Callable[[bytes], None] | None = None,
        on_title: Callable[[str], None] | None = None,
        on_preferences: Callable[[str], None] | None = None,
        on_open: Callable[[], None] | None = None,
        on_close: Callable[[int, str], None] | None = None,
        on_error: Callable[[str], None] | None = None,
    ) -> None:
        """Initialize a session (does not connect).

        Args:
            columns: Initial terminal width sent in the handshake
            rows: Initial terminal height sent in the handshake
            transport_factory: Builds the socket for each connection attempt.
                Defaults to a websockets-based transport.
            require_authorization: If True (default), connect() fails fast
                when no credential can be resolved for the endpoint
            on_output: Receives raw OUTPUT bytes
            on_title: Receives SET_WINDOW_TITLE strings
            on_preferences: Receives SET_PREFERENCES strings (informational)
            on_open: Called after the socket opened and the handshake was sent
            on_close: Called with (code, reason) when the socket closes
            on_error: Called with a message on transport errors
        """
        _validate_geometry(columns, rows)
        self._columns = columns
        self._rows = rows
        self._transport_factory = transport_factory or create_websocket_transport
        self._require_authorization = require_authorization
        self._on_output = on_output
        self._on_title = on_title
        self._on_preferences = on_preferences
        self._on_open = on_open
        self._on_close = on_close
        self._on_error = on_error

        self._endpoint: SessionEndpoint | None = None
        self._authorization: str | None = None
        self._transport: Transport | None = None
        # Replaced transports that are still shutting down
        self._retired: list[Transport] = []

    def __repr__(self) -> str:
        state = self.ready_state.name if self._transport is not None else "IDLE"
        return f"<TerminalSession {self._columns}x{self._rows} state={state}>"

    @property
    def columns(self) -> int:
        return self._columns

    @property
    def rows(self) -> int:
        return self._rows

    @property
    def endpoint(self) -> SessionEndpoint | None:
        """The endpoint of the current or most recent connection."""
        return self._endpoint

    @property
    def ready_state(self) -> ReadyState:
        if self._transport is None:
            return ReadyState.CLOSED
        return self._transport.ready_state

    @property
    def is_open(self) -> bool:
        return self.ready_state is ReadyState.OPEN

    def connect(self, endpoint: SessionEndpoint) -> None:
        """Open a new connection to endpoint, replacing any existing one.

        Events from a replaced connection are no longer reported, so at most
        one socket is live per session.

        Raises:
            TtydAuthenticationError: If authorization is required and no
                credential could be resolved. Raised before any socket opens
                or the current one is closed.
            RuntimeError: If called outside a running event loop
        """
        authorization = endpoint.resolved_authorization()
        if self._require_authorization and not authorization:
            raise TtydAuthenticationError(
                f"No authorization found for {endpoint.masked_url()}; "
                "pass authorization or access_token, or set TTYD_AUTHORIZATION"
            )

        self._retire_transport("Reconnecting")
        self._endpoint = endpoint
        self._authorization = authorization
        logger.info("Connecting to %s", endpoint.masked_url())

        transport = self._transport_factory(endpoint.websocket_url(), (TTY_SUBPROTOCOL,))
        self._transport = transport
        transport.on_open(lambda: self._handle_open(transport))
        transport.on_message(lambda data: self._handle_message(transport, data))
        transport.on_error(lambda message: self._handle_error(transport, message))
        transport.on_close(lambda code, reason: self._handle_close(transport, code, reason))
        transport.open()

    def disconnect(self, code: int = CLOSE_NORMAL, reason: str = "Client disconnected") -> None:
        """Close the current connection. on_close still fires for it."""
        if self._transport is None:
            return
        logger.debug("Disconnecting: code=%s reason=%s", code, reason)
        self._transport.close(code, reason)

    async def wait_closed(self) -> None:
        """Wait until the current and any replaced sockets have closed."""
        transports = [*self._retired]
        if self._transport is not None:
            transports.append(self._transport)
        await asyncio.gather(*(t.wait_closed() for t in transports))
        self._retired = [t for t in self._retired if t.ready_state is not ReadyState.CLOSED]

    def send_input(self, data: str | bytes) -> None:
        """Send typed or injected input as an INPUT frame."""
        self._send(encode_input(data), "input")

    def resize(self, columns: int, rows: int) -> None:
        """Change the terminal geometry.

        Sends one RESIZE_TERMINAL frame when connected and the size changed.
        The new size is kept for the handshake of later connections.
        """
        _validate_geometry(columns, rows)
        if (columns, rows) == (self._columns, self._rows):
            return
        self._columns = columns
        self._rows = rows
        self._send(encode_resize(columns, rows), "resize")

    def pause(self) -> None:
        """Ask the server to stop sending output (flow control)."""
        self._send(encode_pause(), "pause")

    def resume(self) -> None:
        """Ask the server to resume sending output."""
        self._send(encode_resume(), "resume")

    def _send(self, frame: bytes, what: str) -> None:
        if self._transport is None or self._transport.ready_state is not ReadyState.OPEN:
            logger.debug("Dropping %s frame, session is not open", what)
            return
        self._transport.send(frame)

    def _retire_transport(self, reason: str) -> None:
        transport = self._transport
        if transport is None:
            return
        self._transport = None
        if transport.ready_state is not ReadyState.CLOSED:
            self._retired.append(transport)
            transport.close(CLOSE_NORMAL, reason)

    def _handle_open(self, transport: Transport) -> None:
        if transport is not self._transport:
            return
        # Only place the credential travels over the live channel
        transport.send(encode_handshake(self._columns, self._rows, self._authorization))
        logger.info("Terminal connected (%dx%d)", self._columns, self._rows)
        self._notify(self._on_open)

    def _handle_message(self, transport: Transport, data: bytes) -> None:
        if transport is not self._transport:
            return
        frame = decode_frame(data)
        if frame.is_empty:
            return

        if frame.code == ServerCommand.OUTPUT:
            self._notify(self._on_output, frame.payload)
        elif frame.code == ServerCommand.SET_WINDOW_TITLE:
            self._notify(self._on_title, frame.text())
        elif frame.code == ServerCommand.SET_PREFERENCES:
            logger.debug("Terminal preferences: %s", frame.text())
            self._notify(self._on_preferences, frame.text())
        else:
            logger.warning("Ignoring frame with unknown command %r", frame.code)

    def _handle_error(self, transport: Transport, message: str) -> None:
        if transport is not self._transport:
            return
        logger.warning("Terminal transport error: %s", message)
        self._notify(self._on_error, message)

    def _handle_close(self, transport: Transport, code: int, reason: str) -> None:
        if transport is not self._transport:
            return
        logger.info("Terminal closed: code=%s reason=%s", code, reason)
        self._notify(self._on_close, code, reason)

    @staticmethod
    def _notify(callback: Callable[..., None] | None, *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Terminal session callback raised")
