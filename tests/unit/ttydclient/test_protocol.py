# SPDX-FileCopyrightText: 2025 CoreWeave, Inc.
# SPDX-License-Identifier: Apache-2.0
# SPDX-PackageName: ttydclient

"""Tests for the ttyd frame codec."""

from __future__ import annotations

import json

import pytest

from ttydclient._protocol import (
    ClientCommand,
    Frame,
    ServerCommand,
    decode_frame,
    encode_frame,
    encode_handshake,
    encode_input,
    encode_pause,
    encode_resize,
    encode_resume,
)


class TestCommandCodes:
    """Tests for the command code values."""

    def test_server_codes(self) -> None:
        """Server codes are the ASCII digits ttyd uses."""
        assert ServerCommand.OUTPUT == "0"
        assert ServerCommand.SET_WINDOW_TITLE == "1"
        assert ServerCommand.SET_PREFERENCES == "2"

    def test_client_codes(self) -> None:
        """Client codes include the handshake's opening brace."""
        assert ClientCommand.INPUT == "0"
        assert ClientCommand.RESIZE_TERMINAL == "1"
        assert ClientCommand.PAUSE == "2"
        assert ClientCommand.RESUME == "3"
        assert ClientCommand.JSON_DATA == "{"


class TestEncodeFrame:
    """Tests for encode_frame."""

    def test_prepends_code(self) -> None:
        assert encode_frame("0", b"ls\r") == b"0ls\r"

    def test_encodes_text_payload_as_utf8(self) -> None:
        assert encode_frame("0", "héllo") == b"0" + "héllo".encode()

    def test_empty_payload(self) -> None:
        assert encode_frame("2") == b"2"

    @pytest.mark.parametrize("code", ["", "01", "é"])
    def test_rejects_invalid_code(self, code: str) -> None:
        """Codes must be exactly one ASCII character."""
        with pytest.raises(ValueError, match="single ASCII character"):
            encode_frame(code, b"x")


class TestDecodeFrame:
    """Tests for decode_frame."""

    def test_splits_code_and_payload(self) -> None:
        frame = decode_frame(b"0hello")
        assert frame == Frame(code="0", payload=b"hello")
        assert frame.code == ServerCommand.OUTPUT

    def test_empty_message(self) -> None:
        """A zero-length message decodes to an empty frame."""
        frame = decode_frame(b"")
        assert frame.is_empty
        assert frame.payload == b""

    def test_code_only(self) -> None:
        frame = decode_frame(b"2")
        assert frame.code == "2"
        assert frame.payload == b""
        assert not frame.is_empty

    def test_payload_bytes_preserved(self) -> None:
        """Non-UTF-8 payload bytes pass through untouched."""
        frame = decode_frame(bytearray(b"0\xff\xfe\x00"))
        assert frame.payload == b"\xff\xfe\x00"

    def test_text_decodes_utf8(self) -> None:
        assert decode_frame("1my title ✓".encode()).text() == "my title ✓"

    def test_text_replaces_invalid_bytes(self) -> None:
        assert decode_frame(b"1bad\xff").text() == "bad�"

    def test_decode_inverts_encode(self) -> None:
        """A frame survives an encode/decode cycle."""
        frame = decode_frame(encode_frame("1", '{"columns": 80}'))
        assert frame.code == "1"
        assert frame.payload == b'{"columns": 80}'


class TestHandshake:
    """Tests for encode_handshake."""

    def test_with_auth_token(self) -> None:
        data = encode_handshake(80, 24, "dXNlcjpwYXNz")
        assert data.startswith(b"{")
        assert json.loads(data) == {"AuthToken": "dXNlcjpwYXNz", "columns": 80, "rows": 24}

    def test_without_auth_token(self) -> None:
        """AuthToken is omitted entirely when there is no credential."""
        assert json.loads(encode_handshake(120, 30)) == {"columns": 120, "rows": 30}

    def test_leading_brace_is_json_data_code(self) -> None:
        assert decode_frame(encode_handshake(80, 24)).code == ClientCommand.JSON_DATA


class TestClientFrames:
    """Tests for the outbound frame helpers."""

    def test_input(self) -> None:
        assert encode_input("echo hi\r") == b"0echo hi\r"
        assert encode_input(b"\x03") == b"0\x03"

    def test_resize(self) -> None:
        data = encode_resize(120, 40)
        assert data[:1] == b"1"
        assert json.loads(data[1:]) == {"columns": 120, "rows": 40}

    def test_flow_control(self) -> None:
        assert encode_pause() == b"2"
        assert encode_resume() == b"3"
