# SPDX-FileCopyrightText: 2025 CoreWeave, Inc.
# SPDX-License-Identifier: Apache-2.0
# SPDX-PackageName: ttydclient

"""Bounded polling helpers for "is it up yet" loops above the exec engine."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from ttydclient._defaults import (
    DEFAULT_MAX_POLL_INTERVAL_SECONDS,
    DEFAULT_POLL_ATTEMPTS,
    DEFAULT_POLL_BACKOFF_FACTOR,
    DEFAULT_POLL_INTERVAL_SECONDS,
)

logger = logging.getLogger(__name__)


def _validate(attempts: int, interval_seconds: float, backoff_factor: float) -> None:
    if attempts < 1:
        raise ValueError(f"attempts must be at least 1, got {attempts}")
    if interval_seconds < 0:
        raise ValueError(f"interval_seconds cannot be negative, got {interval_seconds}")
    if backoff_factor < 1.0:
        raise ValueError(f"backoff_factor must be >= 1.0, got {backoff_factor}")


async def async_poll_until(
    predicate: Callable[[], Awaitable[bool]],
    *,
    attempts: int = DEFAULT_POLL_ATTEMPTS,
    interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
    backoff_factor: float = DEFAULT_POLL_BACKOFF_FACTOR,
    max_interval_seconds: float = DEFAULT_MAX_POLL_INTERVAL_SECONDS,
) -> bool:
    """Await predicate until it returns True or attempts run out.

    Typically paired with command_succeeds:

        ```python
        ready = await async_poll_until(
            lambda: command_succeeds(endpoint, "curl -sf localhost:3000"),
            attempts=15,
        )
        ```

    Returns:
        True as soon as predicate returns True, False after the last attempt.
        Exceptions raised by predicate propagate.
    """
    _validate(attempts, interval_seconds, backoff_factor)
    poll_interval = interval_seconds

    for attempt in range(1, attempts + 1):
        if await predicate():
            logger.debug("Poll succeeded on attempt %d/%d", attempt, attempts)
            return True
        if attempt == attempts:
            break
        logger.debug(
            "Poll attempt %d/%d failed, retrying in %.1fs", attempt, attempts, poll_interval
        )
        await asyncio.sleep(poll_interval)
        poll_interval = min(poll_interval * backoff_factor, max_interval_seconds)

    logger.debug("Poll gave up after %d attempts", attempts)
    return False


def poll_until(
    predicate: Callable[[], bool],
    *,
    attempts: int = DEFAULT_POLL_ATTEMPTS,
    interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
    backoff_factor: float = DEFAULT_POLL_BACKOFF_FACTOR,
    max_interval_seconds: float = DEFAULT_MAX_POLL_INTERVAL_SECONDS,
) -> bool:
    """Blocking variant of async_poll_until for sync predicates."""
    _validate(attempts, interval_seconds, backoff_factor)
    poll_interval = interval_seconds

    for attempt in range(1, attempts + 1):
        if predicate():
            logger.debug("Poll succeeded on attempt %d/%d", attempt, attempts)
            return True
        if attempt == attempts:
            break
        time.sleep(poll_interval)
        poll_interval = min(poll_interval * backoff_factor, max_interval_seconds)

    logger.debug("Poll gave up after %d attempts", attempts)
    return False
