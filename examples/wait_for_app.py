#!/usr/bin/env python3
"""Start a dev server in the sandbox and poll until it answers.

Each check runs in its own short-lived terminal, so the long-running server
keeps its shell to itself.

Usage:
    uv run examples/wait_for_app.py
"""

import asyncio

from ttydclient import (
    async_poll_until,
    command_succeeds,
    endpoint_from_env,
    execute_command,
    load_dotenv,
)


async def main() -> None:
    load_dotenv()
    endpoint = endpoint_from_env()

    # Background the server; the job returns as soon as the shell prints the marker
    started = await execute_command(
        endpoint, "cd /app && nohup npm run dev > /tmp/dev.log 2>&1 &"
    )
    print(f"Launched dev server (exit {started.exit_code})")

    ready = await async_poll_until(
        lambda: command_succeeds(endpoint, "curl -sf http://localhost:3000", timeout_seconds=5),
        attempts=15,
        interval_seconds=2.0,
    )
    if not ready:
        log = await execute_command(endpoint, "tail -n 20 /tmp/dev.log")
        print("Server did not come up. Last log lines:")
        print(log.output)
        return

    print("Server is up")


if __name__ == "__main__":
    asyncio.run(main())
