# SPDX-FileCopyrightText: 2025 CoreWeave, Inc.
# SPDX-License-Identifier: Apache-2.0
# SPDX-PackageName: ttydclient

"""Session endpoint: where to connect and with which credentials."""

from __future__ import annotations

import re
import secrets
import time
from dataclasses import dataclass, field, replace
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from ttydclient._auth import resolve_authorization

_SESSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")

_WS_SCHEMES = {
    "http": "ws",
    "https": "wss",
    "ws": "ws",
    "wss": "wss",
}


def new_session_id() -> str:
    """Generate an opaque terminal session id.

    The sandbox records the shell PID under this id so collaborators can
    discover the terminal's working directory.
    """
    return f"terminal-{int(time.time() * 1000)}-{secrets.token_hex(5)}"


def validate_session_id(session_id: str) -> None:
    """Validate a session id against the characters the sandbox accepts.

    Raises:
        ValueError: If session_id is empty or contains other characters
    """
    if not _SESSION_ID_PATTERN.match(session_id):
        raise ValueError(
            "session_id must contain only letters, numbers, hyphens, and underscores, "
            f"got: {session_id!r}"
        )


@dataclass(frozen=True)
class SessionEndpoint:
    """Immutable description of one connectable remote shell.

    A new endpoint value always means tear down and reconnect; endpoints are
    never mutated in place.

    Attributes:
        url: ttyd base URL (http, https, ws or wss). May already carry
            ``authorization`` and ``arg`` query parameters.
        access_token: Pre-shared sandbox token, sent as the first ``arg``.
        authorization: base64 ``user:secret`` credential. When omitted it is
            resolved from the URL, the environment, or access_token.
        session_id: Opaque tag sent as an extra ``arg`` for working-directory
            discovery.

    Example:
        ```python
        endpoint = SessionEndpoint(
            "https://ttyd.example.com",
            access_token="s3cret",
            session_id=new_session_id(),
        )
        endpoint.websocket_url()
        # 'wss://ttyd.example.com/ws?arg=s3cret&arg=terminal-...&authorization=dXNlcjpzM2NyZXQ%3D'
        ```
    """

    url: str
    access_token: str | None = field(default=None, repr=False)
    authorization: str | None = field(default=None, repr=False)
    session_id: str | None = None

    def __post_init__(self) -> None:
        if not self.url:
            raise ValueError("url cannot be empty")
        parsed = urlsplit(self.url)
        if parsed.scheme not in _WS_SCHEMES:
            raise ValueError(
                f"URL must use http, https, ws or wss scheme, got: {parsed.scheme!r}"
            )
        if not parsed.hostname:
            raise ValueError(f"URL must have a hostname: {self.url!r}")
        if self.session_id is not None:
            validate_session_id(self.session_id)

    def with_session_id(self, session_id: str | None) -> SessionEndpoint:
        """Return a copy of this endpoint tagged with another session id."""
        return replace(self, session_id=session_id)

    def resolved_authorization(self) -> str | None:
        """The credential sent in the URL and the handshake, if any."""
        return resolve_authorization(
            authorization=self.authorization,
            url=self.url,
            access_token=self.access_token,
        ).credential

    def websocket_url(self) -> str:
        """Build the ttyd WebSocket URL.

        Shape: ``<ws|wss>://<host><basePath>/ws?arg=<token>&arg=<session>&authorization=<b64>``.
        Query parameters already on the base URL are kept, except
        ``authorization`` which is re-appended once from the resolved value.
        """
        parsed = urlsplit(self.url)
        scheme = _WS_SCHEMES[parsed.scheme]

        path = parsed.path.rstrip("/")
        if not path.endswith("/ws"):
            path = f"{path}/ws"

        params = [
            (key, value)
            for key, value in parse_qsl(parsed.query, keep_blank_values=True)
            if key != "authorization"
        ]
        if self.access_token:
            params.append(("arg", self.access_token))
        if self.session_id:
            params.append(("arg", self.session_id))
        authorization = self.resolved_authorization()
        if authorization:
            params.append(("authorization", authorization))

        return urlunsplit((scheme, parsed.netloc, path, urlencode(params), ""))

    def masked_url(self) -> str:
        """WebSocket URL with credentials replaced by ``***`` for logging."""
        parsed = urlsplit(self.websocket_url())
        secrets_to_mask = {self.access_token, self.resolved_authorization()}
        params = [
            (key, "***" if key == "authorization" or value in secrets_to_mask else value)
            for key, value in parse_qsl(parsed.query, keep_blank_values=True)
        ]
        netloc = parsed.netloc.rpartition("@")[2]
        return urlunsplit((parsed.scheme, netloc, parsed.path, urlencode(params, safe="*"), ""))
