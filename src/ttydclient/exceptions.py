# SPDX-FileCopyrightText: 2025 CoreWeave, Inc.
# SPDX-License-Identifier: Apache-2.0
# SPDX-PackageName: ttydclient

"""Exception hierarchy for terminal sessions and command execution."""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING, ClassVar

from ttydclient._defaults import CLOSE_POLICY_VIOLATION

if TYPE_CHECKING:
    from ttydclient._types import ExecResult


class ErrorKind(StrEnum):
    """Classification carried by every TtydError."""

    CONNECTION_FAILED = "CONNECTION_FAILED"
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"
    TIMEOUT = "TIMEOUT"
    WEBSOCKET_ERROR = "WEBSOCKET_ERROR"
    PROTOCOL_ERROR = "PROTOCOL_ERROR"


class TtydError(Exception):
    """Base exception for all ttydclient errors.

    Catch this to handle any terminal or exec failure. The ``kind``
    attribute classifies the failure without isinstance checks.
    """

    kind: ClassVar[ErrorKind | None] = None

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class TtydConnectionError(TtydError):
    """Raised when the transport could not be opened or closed before a result."""

    kind = ErrorKind.CONNECTION_FAILED

    def __init__(
        self,
        message: str,
        *,
        close_code: int | None = None,
        close_reason: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, cause=cause)
        self.close_code = close_code
        self.close_reason = close_reason


class TtydAuthenticationError(TtydError):
    """Raised when the handshake secret is missing or was rejected."""

    kind = ErrorKind.AUTHENTICATION_FAILED

    def __init__(
        self,
        message: str,
        *,
        close_code: int | None = None,
        close_reason: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, cause=cause)
        self.close_code = close_code
        self.close_reason = close_reason


class TtydTimeoutError(TtydError):
    """Raised by success-or-throw wrappers when a command timed out.

    The exec primitive itself reports timeouts as a result with
    ``timed_out=True``; this error only appears where a caller asked for
    output or failure. Partial output is available via exec_result.
    """

    kind = ErrorKind.TIMEOUT

    def __init__(self, message: str, *, exec_result: ExecResult | None = None) -> None:
        super().__init__(message)
        self.exec_result = exec_result


class TtydWebSocketError(TtydError):
    """Raised for transport-layer errors without a more specific classification."""

    kind = ErrorKind.WEBSOCKET_ERROR


class TtydProtocolError(TtydError):
    """Raised when a received frame violates the expected code/payload shape.

    Unknown server codes are currently logged and ignored rather than raised.
    """

    kind = ErrorKind.PROTOCOL_ERROR


class TtydExecutionError(TtydError):
    """Raised when check=True and a command exits non-zero.

    Access execution details via exec_result
    """

    def __init__(self, message: str, *, exec_result: ExecResult | None = None) -> None:
        super().__init__(message)
        self.exec_result = exec_result


def error_for_close(code: int, reason: str) -> TtydError:
    """Classify a close that arrived before a result was produced.

    Close code 1008 (policy violation) or a reason mentioning auth means the
    credential was rejected; anything else is an unexpected disconnect.
    """
    if code == CLOSE_POLICY_VIOLATION or "auth" in (reason or "").lower():
        return TtydAuthenticationError(
            f"Authentication failed: {reason}",
            close_code=code,
            close_reason=reason,
        )
    return TtydConnectionError(
        f"Connection closed unexpectedly: code={code}, reason={reason}",
        close_code=code,
        close_reason=reason,
    )
