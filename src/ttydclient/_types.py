# SPDX-FileCopyrightText: 2025 CoreWeave, Inc.
# SPDX-License-Identifier: Apache-2.0
# SPDX-PackageName: ttydclient

from __future__ import annotations

import asyncio
import concurrent.futures
from collections.abc import Generator
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class ConnectionStatus(StrEnum):
    """Interactive session connection states."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


@dataclass(frozen=True)
class ExecResult:
    """Result from a completed command execution.

    Attributes:
        output: Captured output with the command echo and end marker removed
        exit_code: Exit code parsed from the end marker, -1 if it never arrived
        timed_out: True if the timeout fired before the end marker
        duration_ms: Wall-clock time from call to resolution
        command: The command that was executed (for debugging)
    """

    output: str
    exit_code: int
    timed_out: bool
    duration_ms: int
    command: str = ""

    @property
    def ok(self) -> bool:
        """True if the command finished with exit code 0."""
        return self.exit_code == 0 and not self.timed_out


class OperationRef(Generic[T]):
    """Handle to an operation running on the background event loop.

    Block with .result() from sync code, or await it from async code.

    Example:
        ```python
        ref = client.exec("ls -la")
        result = ref.result()        # sync
        result = await client.exec("ls -la")  # async
        ```
    """

    def __init__(self, future: concurrent.futures.Future[T]) -> None:
        self._future = future

    def __repr__(self) -> str:
        state = "done" if self._future.done() else "pending"
        return f"<OperationRef {state}>"

    def result(self, timeout: float | None = None) -> T:
        """Block until the operation completes and return its result.

        Args:
            timeout: Maximum seconds to wait. None waits indefinitely.

        Raises:
            TimeoutError: If timeout expires before completion
            Exception: Any exception raised by the operation
        """
        return self._future.result(timeout)

    def done(self) -> bool:
        """True if the operation has completed."""
        return self._future.done()

    def cancel(self) -> bool:
        """Attempt to cancel the operation."""
        return self._future.cancel()

    def __await__(self) -> Generator[Any, None, T]:
        return asyncio.wrap_future(self._future).__await__()
