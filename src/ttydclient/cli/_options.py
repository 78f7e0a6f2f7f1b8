# SPDX-FileCopyrightText: 2025 CoreWeave, Inc.
# SPDX-License-Identifier: Apache-2.0
# SPDX-PackageName: ttydclient

"""Connection options shared by the CLI commands."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

import click

from ttydclient._endpoint import SessionEndpoint
from ttydclient._env import endpoint_from_env

F = TypeVar("F", bound=Callable[..., Any])


def connection_options(f: F) -> F:
    """Add --token and --authorization."""
    f = click.option(
        "--authorization",
        "-a",
        default=None,
        help="base64 user:password credential (default: $TTYD_AUTHORIZATION).",
    )(f)
    f = click.option(
        "--token",
        "-k",
        default=None,
        help="Sandbox access token (default: $TTYD_ACCESS_TOKEN).",
    )(f)
    return f


def looks_like_url(value: str) -> bool:
    return "://" in value


def build_endpoint(
    url: str | None,
    token: str | None,
    authorization: str | None,
    *,
    session_id: str | None = None,
) -> SessionEndpoint:
    """Resolve the endpoint, turning configuration problems into usage errors."""
    try:
        return endpoint_from_env(
            url,
            access_token=token,
            authorization=authorization,
            session_id=session_id,
        )
    except ValueError as e:
        raise click.UsageError(str(e)) from None
