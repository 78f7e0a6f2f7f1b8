# SPDX-FileCopyrightText: 2025 CoreWeave, Inc.
# SPDX-License-Identifier: Apache-2.0
# SPDX-PackageName: ttydclient

"""One-shot command execution over a ttyd terminal.

A ttyd shell has no side channel for exit status, so each job wraps the
command so the shell prints a unique end marker carrying ``$?``:

    (ls -la); echo "___TTYD_EXEC_END___<marker_id>:$?___"

The job opens its own terminal, types the wrapped command, collects OUTPUT
frames until the marker appears, and closes the terminal. The typed line is
echoed back by the shell with a literal ``$?``, so only the executed echo
matches ``:<digits>___``.
"""

from __future__ import annotations

import asyncio
import codecs
import logging
import re
import secrets
import string
import time
from typing import Any

from ttydclient._defaults import (
    CLOSE_NORMAL,
    DEFAULT_CLOSE_GRACE_SECONDS,
    DEFAULT_COLUMNS,
    DEFAULT_EXEC_TIMEOUT_SECONDS,
    DEFAULT_ROWS,
    DEFAULT_SETTLE_SECONDS,
    END_MARKER_PREFIX,
    END_MARKER_SUFFIX,
    MARKER_ID_LENGTH,
    UNKNOWN_EXIT_CODE,
)
from ttydclient._endpoint import SessionEndpoint
from ttydclient._terminal import TerminalSession
from ttydclient._transport import TransportFactory
from ttydclient._types import ExecResult
from ttydclient.exceptions import (
    TtydConnectionError,
    TtydError,
    TtydExecutionError,
    TtydTimeoutError,
    TtydWebSocketError,
    error_for_close,
)

logger = logging.getLogger(__name__)

_MARKER_ALPHABET = string.ascii_letters + string.digits
_WRAP_GAP = r"(?: \r)?"

_ANSI_PATTERN = re.compile(
    r"""
    \x1b\][^\x07\x1b]*(?:\x07|\x1b\\)   # OSC ... BEL or ST
    | \x1b\[[0-?]*[ -/]*[@-~]           # CSI
    | \x1b[()#][0-9A-Za-z]              # charset selection
    | \x1b[@-Z\\-_]                     # two-byte escapes
    """,
    re.VERBOSE,
)


def generate_marker_id(length: int = MARKER_ID_LENGTH) -> str:
    """Random alphanumeric id that scopes one job's end marker."""
    return "".join(secrets.choice(_MARKER_ALPHABET) for _ in range(length))


def wrap_command(command: str, marker_id: str) -> str:
    """Wrap command so the shell prints the end marker with its exit status."""
    return f'({command}); echo "{END_MARKER_PREFIX}{marker_id}:$?{END_MARKER_SUFFIX}"'


def strip_ansi_codes(text: str) -> str:
    """Remove terminal escape sequences and normalize CRLF to LF."""
    return _ANSI_PATTERN.sub("", text).replace("\r\n", "\n")


def _marker_pattern(marker_id: str) -> re.Pattern[str]:
    return re.compile(
        re.escape(f"{END_MARKER_PREFIX}{marker_id}:") + r"(\d+)" + re.escape(END_MARKER_SUFFIX)
    )


def _echo_pattern(marker_id: str) -> re.Pattern[str]:
    # Readline wraps a long echoed line by writing " \r" at the right margin,
    # which can land anywhere inside the needle
    return re.compile(_WRAP_GAP.join(re.escape(char) for char in f"{marker_id}:$?"))


def _clean_output(text: str, marker_id: str, *, strip_ansi: bool) -> str:
    # The echoed command line carries the literal "<id>:$?"; drop it along
    # with the prompt and banner that precede it
    echoes = list(_echo_pattern(marker_id).finditer(text))
    if echoes:
        line_end = text.find("\n", echoes[-1].end())
        text = "" if line_end == -1 else text[line_end + 1 :]

    tag = f"{END_MARKER_PREFIX}{marker_id}"
    lines = [line for line in text.split("\n") if tag not in line]
    text = "\n".join(lines)

    if strip_ansi:
        text = strip_ansi_codes(text)
    return text.strip()


def extract_command_output(
    buffer: str, marker_id: str, *, strip_ansi: bool = True
) -> tuple[str, int] | None:
    """Find this job's end marker in buffer.

    Args:
        buffer: Decoded terminal output collected so far
        marker_id: The id passed to wrap_command
        strip_ansi: Remove escape sequences and normalize line endings

    Returns:
        (output, exit_code) once the marker has arrived, otherwise None.
        Output excludes the command echo, the preceding prompt, and the
        marker line, and is trimmed.
    """
    match = _marker_pattern(marker_id).search(buffer)
    if match is None:
        return None
    exit_code = int(match.group(1))
    return _clean_output(buffer[: match.start()], marker_id, strip_ansi=strip_ansi), exit_code


class _ExecJob:
    """Collects output for one command and settles a future exactly once."""

    def __init__(
        self,
        session_factory: Any,
        command: str,
        marker_id: str,
        *,
        strip_ansi: bool,
        settle_seconds: float,
    ) -> None:
        self._loop = asyncio.get_running_loop()
        self.command = command
        self.marker_id = marker_id
        self.strip_ansi = strip_ansi
        self.settle_seconds = settle_seconds
        self.future: asyncio.Future[tuple[str, int]] = self._loop.create_future()
        self.buffer = ""
        self.opened = False
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._send_handle: asyncio.TimerHandle | None = None
        self.session: TerminalSession = session_factory(
            on_output=self._on_output,
            on_open=self._on_open,
            on_close=self._on_close,
            on_error=self._on_error,
        )

    def partial_output(self) -> str:
        return _clean_output(self.buffer, self.marker_id, strip_ansi=self.strip_ansi)

    def cancel_pending_send(self) -> None:
        if self._send_handle is not None:
            self._send_handle.cancel()
            self._send_handle = None

    def _send_command(self) -> None:
        self._send_handle = None
        if self.future.done():
            return
        logger.debug("Sending command (marker %s)", self.marker_id)
        self.session.send_input(wrap_command(self.command, self.marker_id))
        self.session.send_input("\r")

    def _on_open(self) -> None:
        self.opened = True
        # Let the shell print its banner and prompt before typing
        self._send_handle = self._loop.call_later(self.settle_seconds, self._send_command)

    def _on_output(self, data: bytes) -> None:
        if self.future.done():
            return
        self.buffer += self._decoder.decode(data)
        found = extract_command_output(self.buffer, self.marker_id, strip_ansi=self.strip_ansi)
        if found is not None:
            self.future.set_result(found)

    def _on_error(self, message: str) -> None:
        if self.future.done():
            return
        if self.opened:
            self.future.set_exception(TtydWebSocketError(f"WebSocket error: {message}"))
        else:
            self.future.set_exception(
                TtydConnectionError(f"Failed to connect to terminal: {message}")
            )

    def _on_close(self, code: int, reason: str) -> None:
        if self.future.done():
            return
        self.future.set_exception(error_for_close(code, reason))


async def execute_command(
    endpoint: SessionEndpoint,
    command: str,
    *,
    timeout_seconds: float = DEFAULT_EXEC_TIMEOUT_SECONDS,
    columns: int = DEFAULT_COLUMNS,
    rows: int = DEFAULT_ROWS,
    strip_ansi: bool = True,
    settle_seconds: float = DEFAULT_SETTLE_SECONDS,
    transport_factory: TransportFactory | None = None,
) -> ExecResult:
    """Run one command in a fresh terminal and capture its output.

    Args:
        endpoint: Terminal to connect to
        command: Shell command line
        timeout_seconds: Give up waiting for the end marker after this long
        columns: Terminal width for the job's terminal
        rows: Terminal height for the job's terminal
        strip_ansi: Remove escape sequences from the output
        settle_seconds: Delay between the handshake and typing the command
        transport_factory: Socket implementation, websockets by default

    Returns:
        ExecResult. A timeout is a result with ``timed_out=True`` and
        ``exit_code=-1`` carrying whatever output arrived.

    Raises:
        ValueError: If command is empty
        TtydAuthenticationError: If the server rejected the credential
        TtydConnectionError: If the socket never opened or closed before
            the marker arrived
        TtydWebSocketError: On a transport error after the socket opened
    """
    if not command.strip():
        raise ValueError("command cannot be empty")

    marker_id = generate_marker_id()
    start = time.monotonic()

    def session_factory(**callbacks: Any) -> TerminalSession:
        return TerminalSession(
            columns=columns,
            rows=rows,
            transport_factory=transport_factory,
            require_authorization=False,
            **callbacks,
        )

    job = _ExecJob(
        session_factory,
        command,
        marker_id,
        strip_ansi=strip_ansi,
        settle_seconds=settle_seconds,
    )
    logger.debug("Executing %r on %s (marker %s)", command, endpoint.masked_url(), marker_id)

    try:
        job.session.connect(endpoint)
        try:
            async with asyncio.timeout(timeout_seconds):
                output, exit_code = await job.future
        except TimeoutError:
            duration_ms = int((time.monotonic() - start) * 1000)
            logger.warning("Command timed out after %.1fs: %r", timeout_seconds, command)
            return ExecResult(
                output=job.partial_output(),
                exit_code=UNKNOWN_EXIT_CODE,
                timed_out=True,
                duration_ms=duration_ms,
                command=command,
            )
    finally:
        job.cancel_pending_send()
        await _close_session(job.session)

    duration_ms = int((time.monotonic() - start) * 1000)
    logger.debug("Command exited with %d after %dms", exit_code, duration_ms)
    return ExecResult(
        output=output,
        exit_code=exit_code,
        timed_out=False,
        duration_ms=duration_ms,
        command=command,
    )


async def _close_session(session: TerminalSession) -> None:
    session.disconnect(CLOSE_NORMAL, "Command complete")
    try:
        await asyncio.wait_for(session.wait_closed(), timeout=DEFAULT_CLOSE_GRACE_SECONDS)
    except TimeoutError:
        logger.warning(
            "Terminal socket did not close within %.1fs", DEFAULT_CLOSE_GRACE_SECONDS
        )


async def run_command(
    endpoint: SessionEndpoint,
    command: str,
    *,
    check: bool = False,
    timeout_seconds: float = DEFAULT_EXEC_TIMEOUT_SECONDS,
    **kwargs: Any,
) -> str:
    """Run a command and return its output.

    Raises:
        TtydTimeoutError: If the command timed out. Partial output is on
            ``exec_result``.
        TtydExecutionError: If check=True and the command exited non-zero
        TtydError: Any connection failure from execute_command
    """
    result = await execute_command(
        endpoint, command, timeout_seconds=timeout_seconds, **kwargs
    )
    if result.timed_out:
        raise TtydTimeoutError(
            f"Command timed out after {timeout_seconds}s: {command}",
            exec_result=result,
        )
    if check and result.exit_code != 0:
        raise TtydExecutionError(
            f"Command exited with code {result.exit_code}: {command}",
            exec_result=result,
        )
    return result.output


async def command_succeeds(endpoint: SessionEndpoint, command: str, **kwargs: Any) -> bool:
    """True if the command exited 0 within the timeout. Never raises TtydError."""
    try:
        result = await execute_command(endpoint, command, **kwargs)
    except TtydError as e:
        logger.debug("Command %r failed to run: %s", command, e)
        return False
    return result.ok
