# SPDX-FileCopyrightText: 2025 CoreWeave, Inc.
# SPDX-License-Identifier: Apache-2.0
# SPDX-PackageName: ttydclient

"""Environment configuration.

Variables:
    TTYD_URL            ttyd base URL
    TTYD_ACCESS_TOKEN   sandbox access token (first ``arg`` and Basic Auth password)
    TTYD_AUTHORIZATION  base64 ``user:password`` credential, overrides the token
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import find_dotenv
from dotenv import load_dotenv as _load_dotenv

from ttydclient._auth import ACCESS_TOKEN_ENV_VAR, AUTHORIZATION_ENV_VAR
from ttydclient._endpoint import SessionEndpoint

logger = logging.getLogger(__name__)

URL_ENV_VAR = "TTYD_URL"


def load_dotenv(path: str | Path | None = None) -> bool:
    """Load a .env file without overriding variables already set.

    Args:
        path: Explicit file. Defaults to the nearest .env found from the
            current working directory.

    Returns:
        True if a file was found and loaded
    """
    dotenv_path = str(path) if path is not None else find_dotenv(usecwd=True)
    if not dotenv_path:
        return False
    loaded = _load_dotenv(dotenv_path, override=False)
    if loaded:
        logger.debug("Loaded environment from %s", dotenv_path)
    return loaded


def endpoint_from_env(
    url: str | None = None,
    *,
    access_token: str | None = None,
    authorization: str | None = None,
    session_id: str | None = None,
) -> SessionEndpoint:
    """Build an endpoint, filling unset values from the environment.

    Raises:
        ValueError: If no URL was given and TTYD_URL is unset
    """
    url = url or os.environ.get(URL_ENV_VAR)
    if not url:
        raise ValueError(f"No ttyd URL given and {URL_ENV_VAR} is not set")
    return SessionEndpoint(
        url,
        access_token=access_token or os.environ.get(ACCESS_TOKEN_ENV_VAR) or None,
        authorization=authorization or os.environ.get(AUTHORIZATION_ENV_VAR) or None,
        session_id=session_id,
    )
