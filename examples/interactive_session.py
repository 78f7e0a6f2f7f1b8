#!/usr/bin/env python3
"""Drive an interactive terminal session and watch its connection status.

SessionLifecycle reconnects automatically after an abnormal close. This
example types a few commands, resizes the terminal, and prints everything
the shell sends back.

Usage:
    uv run examples/interactive_session.py
"""

import asyncio
import sys

from ttydclient import (
    ConnectionStatus,
    SessionLifecycle,
    TerminalDefaults,
    endpoint_from_env,
    new_session_id,
)


async def main() -> None:
    endpoint = endpoint_from_env(session_id=new_session_id())
    connected = asyncio.Event()

    def on_status(status: ConnectionStatus) -> None:
        print(f"\n[status: {status}]", file=sys.stderr)
        if status is ConnectionStatus.CONNECTED:
            connected.set()

    async with SessionLifecycle(
        defaults=TerminalDefaults(columns=100, rows=30),
        on_output=lambda data: print(data.decode(errors="replace"), end=""),
        on_title=lambda title: print(f"\n[title: {title}]", file=sys.stderr),
    ) as lifecycle:
        lifecycle.add_status_listener(on_status)
        lifecycle.set_endpoint(endpoint)
        await asyncio.wait_for(connected.wait(), timeout=10)

        session = lifecycle.session
        session.send_input("echo $COLUMNS x $LINES\r")
        await asyncio.sleep(0.5)

        session.resize(140, 40)
        session.send_input("echo $COLUMNS x $LINES\r")
        await asyncio.sleep(0.5)


if __name__ == "__main__":
    asyncio.run(main())
