# SPDX-FileCopyrightText: 2025 CoreWeave, Inc.
# SPDX-License-Identifier: Apache-2.0
# SPDX-PackageName: ttydclient

"""End-to-end tests against an in-process ttyd-compatible WebSocket server."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable

import pytest

from ttydclient import (
    ConnectionStatus,
    SessionEndpoint,
    SessionLifecycle,
    TerminalDefaults,
    TerminalSession,
    TtydAuthenticationError,
    execute_command,
)
from tests.unit.ttydclient.conftest import TEST_CREDENTIAL, TEST_TOKEN, FakeTtydServer


async def _eventually(condition: Callable[[], bool], timeout: float = 5.0) -> None:
    async with asyncio.timeout(timeout):
        while not condition():
            await asyncio.sleep(0.01)


@pytest.fixture
def endpoint(ttyd_server: FakeTtydServer) -> SessionEndpoint:
    return SessionEndpoint(ttyd_server.url, access_token=TEST_TOKEN)


class TestExecEndToEnd:
    """Exec jobs over a real WebSocket connection."""

    @pytest.mark.asyncio
    async def test_echo(self, ttyd_server: FakeTtydServer, endpoint: SessionEndpoint) -> None:
        result = await execute_command(endpoint, "echo hello", settle_seconds=0)

        assert result.output == "hello"
        assert result.exit_code == 0
        assert result.timed_out is False
        assert ttyd_server.handshakes == [
            {"AuthToken": TEST_CREDENTIAL, "columns": 120, "rows": 30}
        ]

    @pytest.mark.asyncio
    async def test_exit_code(self, endpoint: SessionEndpoint) -> None:
        result = await execute_command(endpoint, "exit 7", settle_seconds=0)

        assert result.output == ""
        assert result.exit_code == 7
        assert result.timed_out is False

    @pytest.mark.asyncio
    async def test_timeout(self, endpoint: SessionEndpoint) -> None:
        result = await execute_command(
            endpoint, "sleep 60", timeout_seconds=0.2, settle_seconds=0
        )

        assert result.timed_out is True
        assert result.exit_code == -1
        assert result.output == ""

    @pytest.mark.asyncio
    async def test_wrong_credential(self, ttyd_server: FakeTtydServer) -> None:
        endpoint = SessionEndpoint(ttyd_server.url, access_token="wrong")

        with pytest.raises(TtydAuthenticationError):
            await execute_command(endpoint, "echo hello", settle_seconds=0)

        assert ttyd_server.outputs_sent == 0

    @pytest.mark.asyncio
    async def test_rejected_handshake(
        self, ttyd_server: FakeTtydServer, endpoint: SessionEndpoint
    ) -> None:
        """The server closes with 1008 when the handshake token is wrong."""
        ttyd_server.reject_handshake = True

        with pytest.raises(TtydAuthenticationError) as exc_info:
            await execute_command(endpoint, "echo hello", settle_seconds=0)

        assert exc_info.value.close_code == 1008
        assert ttyd_server.outputs_sent == 0


class TestSessionEndToEnd:
    """Interactive sessions over a real WebSocket connection."""

    @pytest.mark.asyncio
    async def test_resize_sends_one_frame(
        self, ttyd_server: FakeTtydServer, endpoint: SessionEndpoint
    ) -> None:
        output = bytearray()
        session = TerminalSession(columns=80, rows=24, on_output=output.extend)
        session.connect(endpoint)
        await _eventually(lambda: b"bash-5.2$ " in output)

        session.resize(120, 40)
        session.resize(120, 40)
        await _eventually(lambda: len(ttyd_server.frames("1")) == 1)

        session.disconnect()
        await session.wait_closed()

        assert ttyd_server.handshakes[0]["columns"] == 80
        assert ttyd_server.handshakes[0]["rows"] == 24
        assert [json.loads(frame) for frame in ttyd_server.frames("1")] == [
            {"columns": 120, "rows": 40}
        ]
        assert ttyd_server.frames("0") == []

    @pytest.mark.asyncio
    async def test_typed_input_reaches_server(
        self, ttyd_server: FakeTtydServer, endpoint: SessionEndpoint
    ) -> None:
        opened = asyncio.Event()
        session = TerminalSession(columns=80, rows=24, on_open=opened.set)
        session.connect(endpoint)
        await asyncio.wait_for(opened.wait(), timeout=5)

        session.send_input("ls\r")
        await _eventually(lambda: ttyd_server.frames("0") == [b"ls\r"])

        session.disconnect()
        await session.wait_closed()

    @pytest.mark.asyncio
    async def test_reconnects_after_drop(
        self, ttyd_server: FakeTtydServer, endpoint: SessionEndpoint
    ) -> None:
        lifecycle = SessionLifecycle(defaults=TerminalDefaults(reconnect_delay_seconds=0.05))
        statuses: list[ConnectionStatus] = []
        lifecycle.add_status_listener(statuses.append)

        async with lifecycle:
            lifecycle.set_endpoint(endpoint)
            await _eventually(lambda: lifecycle.status is ConnectionStatus.CONNECTED)

            ttyd_server.drop_all()
            await _eventually(lambda: ConnectionStatus.ERROR in statuses)
            await _eventually(lambda: len(ttyd_server.handshakes) == 2)
            await _eventually(lambda: lifecycle.status is ConnectionStatus.CONNECTED)

        assert statuses[:4] == [
            ConnectionStatus.CONNECTING,
            ConnectionStatus.CONNECTED,
            ConnectionStatus.ERROR,
            ConnectionStatus.CONNECTING,
        ]
        assert lifecycle.status is ConnectionStatus.DISCONNECTED
