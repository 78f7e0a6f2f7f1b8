# SPDX-FileCopyrightText: 2025 CoreWeave, Inc.
# SPDX-License-Identifier: Apache-2.0
# SPDX-PackageName: ttydclient

"""Shared fixtures for ttydclient unit tests."""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import re
from collections.abc import AsyncIterator, Callable, Sequence
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any, TypeVar
from urllib.parse import parse_qs, urlsplit

import pytest
import pytest_asyncio
from websockets.asyncio.server import ServerConnection, serve
from websockets.exceptions import ConnectionClosed
from websockets.http11 import Request, Response
from websockets.typing import Subprotocol

from ttydclient._auth import basic_credential
from ttydclient._transport import ReadyState
from ttydclient._types import OperationRef

T = TypeVar("T")

# Environment variables that affect endpoint and authorization resolution.
# These are cleared before each test to ensure isolation.
TTYD_ENV_VARS = (
    "TTYD_URL",
    "TTYD_ACCESS_TOKEN",
    "TTYD_AUTHORIZATION",
)

WRAPPED_COMMAND = re.compile(
    r"^\((?P<command>.*)\); echo \"___TTYD_EXEC_END___(?P<marker>\w+):\$\?___\"$",
    re.S,
)

TEST_TOKEN = "s3cret"
TEST_CREDENTIAL = basic_credential(TEST_TOKEN)


@pytest.fixture(autouse=True)
def clean_ttyd_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Clear all ttyd env vars before each test."""
    for var in TTYD_ENV_VARS:
        monkeypatch.delenv(var, raising=False)


async def wait_for(condition: Callable[[], bool], timeout: float = 1.0) -> None:
    """Poll condition on the running loop until it holds."""
    async with asyncio.timeout(timeout):
        while not condition():
            await asyncio.sleep(0.01)


# Helper functions for creating real OperationRef objects in tests


def make_operation_ref(value: T) -> OperationRef[T]:
    """Create an OperationRef with a pre-completed future."""
    future: concurrent.futures.Future[T] = concurrent.futures.Future()
    future.set_result(value)
    return OperationRef(future)


def make_failed_operation_ref(error: BaseException) -> OperationRef[Any]:
    """Create an OperationRef whose result() raises error."""
    future: concurrent.futures.Future[Any] = concurrent.futures.Future()
    future.set_exception(error)
    return OperationRef(future)


# In-memory transport


Responder = Callable[["FakeTransport", bytes], None]


class FakeTransport:
    """In-memory Transport driven by the test.

    Frames passed to send() are recorded in ``sent``. The simulate_* methods
    play the server side. close() completes immediately with the requested
    code. An optional responder is called for every sent frame.
    """

    def __init__(
        self,
        url: str,
        subprotocols: Sequence[str],
        *,
        auto_open: bool = False,
        responder: Responder | None = None,
    ) -> None:
        self.url = url
        self.subprotocols = list(subprotocols)
        self.sent: list[bytes] = []
        self.close_calls: list[tuple[int, str]] = []
        self.open_called = False
        self._auto_open = auto_open
        self._responder = responder
        self._state = ReadyState.CONNECTING
        self._closed = asyncio.Event()
        self._open_listeners: list[Callable[[], None]] = []
        self._message_listeners: list[Callable[[bytes], None]] = []
        self._error_listeners: list[Callable[[str], None]] = []
        self._close_listeners: list[Callable[[int, str], None]] = []

    @property
    def ready_state(self) -> ReadyState:
        return self._state

    @property
    def query(self) -> dict[str, list[str]]:
        return parse_qs(urlsplit(self.url).query)

    def on_open(self, listener: Callable[[], None]) -> None:
        self._open_listeners.append(listener)

    def on_message(self, listener: Callable[[bytes], None]) -> None:
        self._message_listeners.append(listener)

    def on_error(self, listener: Callable[[str], None]) -> None:
        self._error_listeners.append(listener)

    def on_close(self, listener: Callable[[int, str], None]) -> None:
        self._close_listeners.append(listener)

    def open(self) -> None:
        self.open_called = True
        if self._auto_open:
            asyncio.get_running_loop().call_soon(self.simulate_open)

    def send(self, data: bytes) -> None:
        if self._state is not ReadyState.OPEN:
            return
        self.sent.append(data)
        if self._responder is not None:
            self._responder(self, data)

    def close(self, code: int = 1000, reason: str = "") -> None:
        if self._state in (ReadyState.CLOSING, ReadyState.CLOSED):
            return
        self.close_calls.append((code, reason))
        self.simulate_close(code, reason)

    async def wait_closed(self) -> None:
        await self._closed.wait()

    # Server side

    def simulate_open(self) -> None:
        if self._state is not ReadyState.CONNECTING:
            return
        self._state = ReadyState.OPEN
        for listener in list(self._open_listeners):
            listener()

    def simulate_message(self, data: bytes) -> None:
        for listener in list(self._message_listeners):
            listener(data)

    def simulate_output(self, data: str | bytes) -> None:
        payload = data.encode() if isinstance(data, str) else data
        self.simulate_message(b"0" + payload)

    def simulate_error(self, message: str) -> None:
        for listener in list(self._error_listeners):
            listener(message)

    def simulate_close(self, code: int = 1006, reason: str = "") -> None:
        if self._state is ReadyState.CLOSED:
            return
        self._state = ReadyState.CLOSED
        self._closed.set()
        for listener in list(self._close_listeners):
            listener(code, reason)

    # Inspection

    def frames(self, code: str) -> list[bytes]:
        """Payloads of sent frames with the given command code."""
        return [frame[1:] for frame in self.sent if frame[:1] == code.encode()]

    def handshake(self) -> dict[str, Any]:
        frames = [frame for frame in self.sent if frame[:1] == b"{"]
        assert len(frames) == 1, f"expected one handshake, got {len(frames)}"
        return json.loads(frames[0])


class FakeTransportFactory:
    """TransportFactory that records every transport it builds."""

    def __init__(self, *, auto_open: bool = False, responder: Responder | None = None) -> None:
        self._auto_open = auto_open
        self._responder = responder
        self.created: list[FakeTransport] = []

    def __call__(self, url: str, subprotocols: Sequence[str]) -> FakeTransport:
        transport = FakeTransport(
            url, subprotocols, auto_open=self._auto_open, responder=self._responder
        )
        self.created.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        assert self.created, "no transport was created"
        return self.created[-1]


class FakeShell:
    """Responder that answers wrapped exec commands like an interactive bash.

    Args:
        commands: Maps a command line to (output, exit_code). Unknown
            commands print nothing and exit 0.
        banner: Printed after the handshake, before the first prompt
        echo: Echo the typed command line back
        finish: Print the end marker; False simulates a command that never ends
    """

    def __init__(
        self,
        commands: dict[str, tuple[str, int]] | None = None,
        *,
        banner: str = "Welcome to the sandbox\r\n",
        prompt: str = "user@sandbox:~$ ",
        echo: bool = True,
        finish: bool = True,
    ) -> None:
        self.commands = commands or {}
        self.banner = banner
        self.prompt = prompt
        self.echo = echo
        self.finish = finish
        self._typed = ""

    def __call__(self, transport: FakeTransport, data: bytes) -> None:
        loop = asyncio.get_running_loop()
        if data[:1] == b"{":
            loop.call_soon(transport.simulate_output, self.banner + self.prompt)
            return
        if data[:1] != b"0":
            return

        text = data[1:].decode()
        if text != "\r":
            self._typed += text
            return

        typed, self._typed = self._typed, ""
        match = WRAPPED_COMMAND.match(typed)
        if match is None:
            return
        output, exit_code = self.commands.get(match["command"], ("", 0))

        chunks = []
        if self.echo:
            chunks.append(typed + "\r\n")
        if output:
            chunks.append(output.replace("\n", "\r\n"))
        if self.finish:
            marker = match["marker"]
            chunks.append(f"___TTYD_EXEC_END___{marker}:{exit_code}___\r\n{self.prompt}")
        for chunk in chunks:
            loop.call_soon(transport.simulate_output, chunk)


# In-process ttyd server


@dataclass
class FakeTtydServer:
    """State and knobs of the in-process ttyd server.

    Attributes:
        url: http:// base URL of the server
        credential: Accepted base64 credential (URL and handshake)
        commands: Command line -> (output, exit_code)
        hang: Commands that never finish
        received: Every frame received, per connection, in order
        handshakes: Decoded handshake of every connection
        reject_handshake: Close every connection with 1008 after the handshake
    """

    url: str = ""
    credential: str = TEST_CREDENTIAL
    commands: dict[str, tuple[str, int]] = field(default_factory=dict)
    hang: set[str] = field(default_factory=set)
    received: list[list[bytes]] = field(default_factory=list)
    handshakes: list[dict[str, Any]] = field(default_factory=list)
    outputs_sent: int = 0
    reject_handshake: bool = False
    connections: list[ServerConnection] = field(default_factory=list)

    def frames(self, code: str, connection: int = -1) -> list[bytes]:
        return [f[1:] for f in self.received[connection] if f[:1] == code.encode()]

    def drop_all(self) -> None:
        """Abort every connection without a close frame (client sees 1006)."""
        for connection in self.connections:
            connection.transport.abort()


async def _send_output(state: FakeTtydServer, connection: ServerConnection, text: str) -> None:
    state.outputs_sent += 1
    await connection.send(b"0" + text.encode())


def _make_handlers(
    state: FakeTtydServer,
) -> tuple[Callable[[ServerConnection, Request], Response | None], Any]:
    def process_request(connection: ServerConnection, request: Request) -> Response | None:
        query = parse_qs(urlsplit(request.path).query)
        if query.get("authorization", [None])[0] != state.credential:
            return connection.respond(HTTPStatus.UNAUTHORIZED, "Unauthorized\n")
        return None

    async def handler(connection: ServerConnection) -> None:
        state.connections.append(connection)
        frames: list[bytes] = []
        state.received.append(frames)

        try:
            first = await connection.recv()
            raw = first.encode() if isinstance(first, str) else first
            frames.append(raw)
            handshake = json.loads(raw)
            state.handshakes.append(handshake)
            if state.reject_handshake or handshake.get("AuthToken") != state.credential:
                await connection.close(1008, "authentication failed")
                return

            await _send_output(state, connection, "bash-5.2$ ")
            typed = ""
            async for message in connection:
                raw = message.encode() if isinstance(message, str) else message
                frames.append(raw)
                if raw[:1] != b"0":
                    continue
                text = raw[1:].decode()
                if text != "\r":
                    typed += text
                    continue

                line, typed = typed, ""
                match = WRAPPED_COMMAND.match(line)
                if match is None:
                    continue
                command = match["command"]
                await _send_output(state, connection, line + "\r\n")
                if command in state.hang:
                    continue
                output, exit_code = state.commands.get(command, ("", 0))
                if output:
                    await _send_output(state, connection, output.replace("\n", "\r\n"))
                await _send_output(
                    state,
                    connection,
                    f"___TTYD_EXEC_END___{match['marker']}:{exit_code}___\r\nbash-5.2$ ",
                )
        except ConnectionClosed:
            pass

    return process_request, handler


@pytest_asyncio.fixture
async def ttyd_server() -> AsyncIterator[FakeTtydServer]:
    """A ttyd-compatible WebSocket server on a random local port.

    Accepts TEST_CREDENTIAL, echoes typed lines, and answers wrapped exec
    commands from ``state.commands``.
    """
    state = FakeTtydServer(
        commands={
            "echo hello": ("hello\n", 0),
            "exit 7": ("", 7),
        },
        hang={"sleep 60"},
    )
    process_request, handler = _make_handlers(state)
    async with serve(
        handler,
        "127.0.0.1",
        0,
        subprotocols=[Subprotocol("tty")],
        process_request=process_request,
    ) as server:
        port = next(iter(server.sockets)).getsockname()[1]
        state.url = f"http://127.0.0.1:{port}"
        yield state
