# SPDX-FileCopyrightText: 2025 CoreWeave, Inc.
# SPDX-License-Identifier: Apache-2.0
# SPDX-PackageName: ttydclient

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any

# Terminal geometry sent in the handshake when the caller does not supply one
DEFAULT_COLUMNS: int = 120
DEFAULT_ROWS: int = 30

# WebSocket subprotocol negotiated with ttyd
TTY_SUBPROTOCOL: str = "tty"

# ttyd HTTP Basic Auth username; the password is the sandbox access token
DEFAULT_BASIC_AUTH_USER: str = "user"

# How long a one-shot command may run before the job resolves as timed out
DEFAULT_EXEC_TIMEOUT_SECONDS: float = 30.0

# Delay between the handshake and the injected command, so the interactive
# shell can print its banner and prompt first
DEFAULT_SETTLE_SECONDS: float = 0.1

# Delay before an interactive session reconnects after an abnormal close
DEFAULT_RECONNECT_DELAY_SECONDS: float = 3.0

# Upper bound on waiting for a socket to finish closing during teardown
DEFAULT_CLOSE_GRACE_SECONDS: float = 5.0

# Timeout for the WebSocket opening handshake
DEFAULT_OPEN_TIMEOUT_SECONDS: float = 10.0

# Exec end marker: ___TTYD_EXEC_END___<marker_id>:<exit_code>___
END_MARKER_PREFIX: str = "___TTYD_EXEC_END___"
END_MARKER_SUFFIX: str = "___"
MARKER_ID_LENGTH: int = 12

# Exit code reported when the marker never arrived
UNKNOWN_EXIT_CODE: int = -1

# WebSocket close codes (RFC 6455)
CLOSE_NORMAL: int = 1000
CLOSE_GOING_AWAY: int = 1001
CLOSE_ABNORMAL: int = 1006
CLOSE_POLICY_VIOLATION: int = 1008

# Generic polling defaults
DEFAULT_POLL_ATTEMPTS: int = 30
DEFAULT_POLL_INTERVAL_SECONDS: float = 2.0
DEFAULT_MAX_POLL_INTERVAL_SECONDS: float = 10.0
DEFAULT_POLL_BACKOFF_FACTOR: float = 1.0


@dataclass(frozen=True)
class TerminalDefaults:
    """Immutable configuration defaults for terminal sessions and exec jobs.

    All fields have sensible defaults. Override only what you need.

    Example:
        ```python
        defaults = TerminalDefaults(
            columns=200,
            exec_timeout_seconds=300,
            strip_ansi=False,
        )
        client = TerminalClient("https://ttyd.example.com", defaults=defaults)
        ```
    """

    columns: int = DEFAULT_COLUMNS
    rows: int = DEFAULT_ROWS
    exec_timeout_seconds: float = DEFAULT_EXEC_TIMEOUT_SECONDS
    settle_seconds: float = DEFAULT_SETTLE_SECONDS
    reconnect_delay_seconds: float = DEFAULT_RECONNECT_DELAY_SECONDS
    auto_reconnect: bool = True
    strip_ansi: bool = True

    def with_overrides(self, **kwargs: Any) -> TerminalDefaults:
        """Create new defaults with some values overridden."""
        return replace(self, **kwargs)
