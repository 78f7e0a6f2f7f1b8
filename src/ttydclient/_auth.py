# SPDX-FileCopyrightText: 2025 CoreWeave, Inc.
# SPDX-License-Identifier: Apache-2.0
# SPDX-PackageName: ttydclient

"""Authorization resolution for ttyd connections.

ttyd started with ``-c user:password`` gates both the WebSocket upgrade and
the handshake on the base64 ``user:password`` credential. The credential is
resolved from (first match wins):

1. An explicit ``authorization`` argument
2. The ``authorization`` query parameter already present in the ttyd URL
3. ``TTYD_AUTHORIZATION`` env var
4. An access token (explicit argument, then ``TTYD_ACCESS_TOKEN`` env var),
   combined with the fixed Basic Auth username
5. No credential
"""

from __future__ import annotations

import base64
import logging
import os
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal
from urllib.parse import parse_qs, urlsplit

from ttydclient._defaults import DEFAULT_BASIC_AUTH_USER

logger = logging.getLogger(__name__)

AUTHORIZATION_ENV_VAR = "TTYD_AUTHORIZATION"
ACCESS_TOKEN_ENV_VAR = "TTYD_ACCESS_TOKEN"


@dataclass(frozen=True)
class ResolvedAuthorization:
    """Resolved credential and the strategy that produced it."""

    credential: str | None
    strategy: Literal["explicit", "url", "env", "token", "none"]

    def __bool__(self) -> bool:
        """Return True if a credential is present."""
        return bool(self.credential)


@dataclass(frozen=True)
class _AuthContext:
    authorization: str | None
    url: str | None
    access_token: str | None


class _AuthMode:
    """Configuration for an authorization mode."""

    def __init__(self, try_auth: Callable[[_AuthContext], ResolvedAuthorization | None]) -> None:
        self.try_auth = try_auth


def basic_credential(secret: str, user: str = DEFAULT_BASIC_AUTH_USER) -> str:
    """Encode ``user:secret`` as the base64 credential ttyd expects."""
    return base64.b64encode(f"{user}:{secret}".encode()).decode("ascii")


def authorization_from_url(url: str) -> str | None:
    """Return the ``authorization`` query parameter of a URL, if any."""
    values = parse_qs(urlsplit(url).query).get("authorization")
    if not values or not values[0]:
        return None
    return values[0]


def resolve_authorization(
    *,
    authorization: str | None = None,
    url: str | None = None,
    access_token: str | None = None,
) -> ResolvedAuthorization:
    """Resolve the ttyd credential from available sources.

    Tries each mode in priority order (defined in _AUTH_MODES) and returns
    the first one that succeeds.

    Args:
        authorization: Explicit base64 user:password credential
        url: ttyd URL that may carry an authorization query parameter
        access_token: Sandbox access token used as the Basic Auth password

    Returns:
        ResolvedAuthorization with the credential and strategy name
    """
    ctx = _AuthContext(authorization=authorization, url=url, access_token=access_token)
    for mode in _AUTH_MODES:
        auth = mode.try_auth(ctx)
        if auth is not None:
            logger.debug("Using %s authorization", auth.strategy)
            return auth

    logger.debug("No ttyd authorization found")
    return ResolvedAuthorization(credential=None, strategy="none")


def _try_explicit(ctx: _AuthContext) -> ResolvedAuthorization | None:
    if not ctx.authorization:
        return None
    return ResolvedAuthorization(credential=ctx.authorization, strategy="explicit")


def _try_url(ctx: _AuthContext) -> ResolvedAuthorization | None:
    if not ctx.url:
        return None
    credential = authorization_from_url(ctx.url)
    if credential is None:
        return None
    return ResolvedAuthorization(credential=credential, strategy="url")


def _try_env(ctx: _AuthContext) -> ResolvedAuthorization | None:
    credential = os.environ.get(AUTHORIZATION_ENV_VAR)
    if not credential:
        return None
    return ResolvedAuthorization(credential=credential, strategy="env")


def _try_token(ctx: _AuthContext) -> ResolvedAuthorization | None:
    token = ctx.access_token or os.environ.get(ACCESS_TOKEN_ENV_VAR)
    if not token:
        return None
    return ResolvedAuthorization(credential=basic_credential(token), strategy="token")


# Auth modes in priority order - first successful returns
_AUTH_MODES = [
    _AuthMode(try_auth=_try_explicit),
    _AuthMode(try_auth=_try_url),
    _AuthMode(try_auth=_try_env),
    _AuthMode(try_auth=_try_token),
]
