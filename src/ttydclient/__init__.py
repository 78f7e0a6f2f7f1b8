# SPDX-FileCopyrightText: 2025 CoreWeave, Inc.
# SPDX-License-Identifier: Apache-2.0
# SPDX-PackageName: ttydclient

"""A Python client for ttyd web terminals."""

from ttydclient._auth import ResolvedAuthorization, basic_credential, resolve_authorization
from ttydclient._client import TerminalClient
from ttydclient._defaults import TerminalDefaults
from ttydclient._endpoint import SessionEndpoint, new_session_id, validate_session_id
from ttydclient._env import endpoint_from_env, load_dotenv
from ttydclient._exec import (
    command_succeeds,
    execute_command,
    extract_command_output,
    run_command,
    strip_ansi_codes,
    wrap_command,
)
from ttydclient._lifecycle import SessionLifecycle
from ttydclient._poll import async_poll_until, poll_until
from ttydclient._protocol import ClientCommand, Frame, ServerCommand, decode_frame, encode_frame
from ttydclient._terminal import TerminalSession
from ttydclient._transport import ReadyState, Transport, TransportFactory, WebSocketTransport
from ttydclient._types import ConnectionStatus, ExecResult, OperationRef
from ttydclient.exceptions import (
    ErrorKind,
    TtydAuthenticationError,
    TtydConnectionError,
    TtydError,
    TtydExecutionError,
    TtydProtocolError,
    TtydTimeoutError,
    TtydWebSocketError,
)

__all__ = [
    "ClientCommand",
    "ConnectionStatus",
    "ErrorKind",
    "ExecResult",
    "Frame",
    "OperationRef",
    "ReadyState",
    "ResolvedAuthorization",
    "ServerCommand",
    "SessionEndpoint",
    "SessionLifecycle",
    "TerminalClient",
    "TerminalDefaults",
    "TerminalSession",
    "Transport",
    "TransportFactory",
    "TtydAuthenticationError",
    "TtydConnectionError",
    "TtydError",
    "TtydExecutionError",
    "TtydProtocolError",
    "TtydTimeoutError",
    "TtydWebSocketError",
    "WebSocketTransport",
    "async_poll_until",
    "basic_credential",
    "command_succeeds",
    "decode_frame",
    "encode_frame",
    "endpoint_from_env",
    "execute_command",
    "extract_command_output",
    "load_dotenv",
    "new_session_id",
    "poll_until",
    "resolve_authorization",
    "run_command",
    "strip_ansi_codes",
    "validate_session_id",
    "wrap_command",
]
