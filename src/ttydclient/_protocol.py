# SPDX-FileCopyrightText: 2025 CoreWeave, Inc.
# SPDX-License-Identifier: Apache-2.0
# SPDX-PackageName: ttydclient

"""ttyd wire format.

Every WebSocket message is exactly one frame: a single command byte followed
by the payload. There is no length prefix or checksum since the WebSocket
layer already delivers whole messages.

Server -> client:
    '0' OUTPUT            raw terminal bytes
    '1' SET_WINDOW_TITLE  UTF-8 string
    '2' SET_PREFERENCES   UTF-8 JSON string (informational)

Client -> server:
    '0' INPUT             raw bytes typed or injected
    '1' RESIZE_TERMINAL   UTF-8 JSON {"columns": N, "rows": N}
    '2' PAUSE             flow control, empty payload
    '3' RESUME            flow control, empty payload
    '{' JSON_DATA         the handshake; the JSON's own opening brace is the code
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import StrEnum


class ServerCommand(StrEnum):
    """Server-to-client command codes."""

    OUTPUT = "0"
    SET_WINDOW_TITLE = "1"
    SET_PREFERENCES = "2"


class ClientCommand(StrEnum):
    """Client-to-server command codes."""

    INPUT = "0"
    RESIZE_TERMINAL = "1"
    PAUSE = "2"
    RESUME = "3"
    JSON_DATA = "{"


@dataclass(frozen=True)
class Frame:
    """One decoded message.

    Attributes:
        code: Single-character command tag, or "" for an empty message
        payload: Everything after the command byte
    """

    code: str
    payload: bytes

    @property
    def is_empty(self) -> bool:
        """True for a zero-length message, which callers treat as a no-op."""
        return self.code == ""

    def text(self) -> str:
        """Decode the payload as UTF-8, replacing invalid bytes."""
        return self.payload.decode("utf-8", errors="replace")


def encode_frame(code: str, payload: str | bytes = b"") -> bytes:
    """Prepend the command byte to a payload.

    Args:
        code: Single ASCII command character
        payload: Text (encoded as UTF-8) or raw bytes

    Returns:
        The wire bytes for one frame

    Raises:
        ValueError: If code is not exactly one ASCII character
    """
    if len(code) != 1 or not code.isascii():
        raise ValueError(f"Frame code must be a single ASCII character, got {code!r}")
    body = payload.encode("utf-8") if isinstance(payload, str) else bytes(payload)
    return code.encode("ascii") + body


def decode_frame(data: bytes | bytearray | memoryview) -> Frame:
    """Split a message into its command character and payload."""
    raw = bytes(data)
    if not raw:
        return Frame(code="", payload=b"")
    return Frame(code=chr(raw[0]), payload=raw[1:])


def encode_handshake(columns: int, rows: int, auth_token: str | None = None) -> bytes:
    """Build the first client frame: terminal geometry plus the ttyd AuthToken.

    ttyd spawns the shell only after receiving this message. AuthToken is
    required when ttyd runs with HTTP Basic Auth (-c) and must equal the
    base64 user:password credential.
    """
    message: dict[str, object] = {}
    if auth_token:
        message["AuthToken"] = auth_token
    message["columns"] = columns
    message["rows"] = rows
    return json.dumps(message).encode("utf-8")


def encode_input(data: str | bytes) -> bytes:
    """Wrap typed or injected input as an INPUT frame."""
    return encode_frame(ClientCommand.INPUT, data)


def encode_resize(columns: int, rows: int) -> bytes:
    """Wrap a geometry change as a RESIZE_TERMINAL frame."""
    return encode_frame(
        ClientCommand.RESIZE_TERMINAL,
        json.dumps({"columns": columns, "rows": rows}),
    )


def encode_pause() -> bytes:
    return encode_frame(ClientCommand.PAUSE)


def encode_resume() -> bytes:
    return encode_frame(ClientCommand.RESUME)
