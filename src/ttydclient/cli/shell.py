# SPDX-FileCopyrightText: 2025 CoreWeave, Inc.
# SPDX-License-Identifier: Apache-2.0
# SPDX-PackageName: ttydclient

"""ttydclient shell: attach the local terminal to a ttyd terminal."""

from __future__ import annotations

import asyncio
import logging
import os
import platform
import shutil
import signal
import sys

import click

from ttydclient._defaults import TerminalDefaults
from ttydclient._endpoint import SessionEndpoint, new_session_id
from ttydclient._lifecycle import SessionLifecycle
from ttydclient._types import ConnectionStatus
from ttydclient.cli._options import build_endpoint, connection_options

logger = logging.getLogger(__name__)

# Ctrl+C and Ctrl+D end the local shell while the remote one is unreachable
_LOCAL_EXIT_KEYS = (b"\x03", b"\x04")


def _write(data: bytes) -> None:
    sys.stdout.buffer.write(data)
    sys.stdout.buffer.flush()


def _notice(text: str) -> None:
    _write(f"\r\n[{text}]\r\n".encode())


async def _attach(endpoint: SessionEndpoint, stdin_fd: int) -> int:
    loop = asyncio.get_running_loop()
    finished = asyncio.Event()
    size = shutil.get_terminal_size()
    exit_code = 0

    def on_title(title: str) -> None:
        _write(f"\x1b]0;{title}\x07".encode())

    def on_close(code: int, reason: str) -> None:
        nonlocal exit_code
        if finished.is_set():
            return
        if lifecycle.reconnect_pending:
            _notice(
                f"Connection lost. Reconnecting in {lifecycle.reconnect_delay_seconds:g}s..."
            )
            return
        _notice("Connection closed")
        exit_code = 0 if lifecycle.status is ConnectionStatus.DISCONNECTED else 1
        finished.set()

    lifecycle = SessionLifecycle(
        defaults=TerminalDefaults(columns=size.columns, rows=size.lines),
        on_output=_write,
        on_title=on_title,
        on_close=on_close,
    )

    def on_stdin() -> None:
        nonlocal exit_code
        data = os.read(stdin_fd, 1024)
        if not data:
            finished.set()
            return
        if not lifecycle.is_ready:
            if any(key in data for key in _LOCAL_EXIT_KEYS):
                exit_code = 130
                finished.set()
            return
        lifecycle.session.send_input(data)

    def on_sigwinch() -> None:
        new_size = shutil.get_terminal_size()
        logger.debug("Local terminal resized to %dx%d", new_size.columns, new_size.lines)
        lifecycle.session.resize(new_size.columns, new_size.lines)

    async with lifecycle:
        lifecycle.set_endpoint(endpoint)
        loop.add_reader(stdin_fd, on_stdin)
        loop.add_signal_handler(signal.SIGWINCH, on_sigwinch)
        try:
            await finished.wait()
        finally:
            loop.remove_reader(stdin_fd)
            loop.remove_signal_handler(signal.SIGWINCH)
    return exit_code


@click.command()
@click.argument("url", required=False)
@connection_options
def shell(url: str | None, token: str | None, authorization: str | None) -> None:
    """Open an interactive terminal.

    URL defaults to TTYD_URL. The terminal runs in raw mode, so Ctrl+C is
    forwarded to the remote shell. Type 'exit' or press Ctrl+D to leave.
    Lost connections are retried automatically; while disconnected, Ctrl+C
    or Ctrl+D exits locally.

    Examples:

        ttydclient shell https://ttyd.example.com

        TTYD_URL=https://ttyd.example.com ttydclient shell --token s3cret
    """
    if platform.system() == "Windows":
        raise click.ClickException("Interactive shell is not supported on Windows.")

    if not sys.stdin.isatty() or not sys.stdout.isatty():
        raise click.ClickException(
            "Interactive shell requires a TTY (stdin and stdout must be a terminal)."
        )

    # Late imports for Unix-only modules
    import termios
    import tty

    endpoint = build_endpoint(url, token, authorization, session_id=new_session_id())

    stdin_fd = sys.stdin.fileno()
    old_settings = termios.tcgetattr(stdin_fd)

    exit_code = 1
    try:
        tty.setraw(stdin_fd)
        exit_code = asyncio.run(_attach(endpoint, stdin_fd))
    except KeyboardInterrupt:
        exit_code = 130
    finally:
        # Must restore before printing anything, otherwise output is garbled
        termios.tcsetattr(stdin_fd, termios.TCSADRAIN, old_settings)

    sys.exit(exit_code)
