# SPDX-FileCopyrightText: 2025 CoreWeave, Inc.
# SPDX-License-Identifier: Apache-2.0
# SPDX-PackageName: ttydclient

"""Exit handlers that close terminal sockets still open at shutdown.

ttyd keeps a shell alive until its socket closes. An exec job interrupted
by Ctrl+C or SIGTERM would otherwise leave that shell running until the
server notices the dead TCP connection. At exit every job terminal is
closed with 1001 (going away) so the server reaps the shell right away.

Handlers are installed when this module is imported.
"""

from __future__ import annotations

import atexit
import logging
import signal
import sys
from collections.abc import Callable
from types import FrameType

from ttydclient._defaults import CLOSE_GOING_AWAY

logger = logging.getLogger(__name__)

EXIT_CLOSE_REASON = "Client exiting"

_SignalHandler = Callable[[int, FrameType | None], None] | int | None

_closing: bool = False
_original_sigint: _SignalHandler = None
_original_sigterm: _SignalHandler = None
_handlers_installed: bool = False


def _close_terminals_at_exit() -> None:
    """Close open job terminals with 1001. Runs at most once."""
    global _closing
    if _closing:
        return
    _closing = True

    try:
        # Imported lazily to avoid a cycle with _client
        from ttydclient._loop_manager import _LoopManager

        closed = _LoopManager.get().close_all_terminals(CLOSE_GOING_AWAY, EXIT_CLOSE_REASON)
    except Exception:
        logger.exception("Error closing terminals at exit")
        return
    if closed:
        logger.info("Closed %d open terminal(s) at exit", closed)


def _on_exit_signal(signum: int, frame: FrameType | None) -> None:
    """Close open terminals, then chain to the handler installed before ours.

    A second signal while terminals are closing exits immediately.
    """
    if _closing:
        sys.exit(128 + signum)

    logger.debug("Received %s, closing open terminals", signal.Signals(signum).name)
    _close_terminals_at_exit()

    original = _original_sigint if signum == signal.SIGINT else _original_sigterm

    if original == signal.SIG_DFL:
        sys.exit(128 + signum)
    elif original == signal.SIG_IGN:
        pass
    elif callable(original):
        original(signum, frame)


def _install_exit_handlers() -> None:
    """Register the atexit hook and the SIGINT/SIGTERM handlers once."""
    global _original_sigint, _original_sigterm, _handlers_installed

    if _handlers_installed:
        return

    atexit.register(_close_terminals_at_exit)

    _original_sigint = signal.signal(signal.SIGINT, _on_exit_signal)
    _original_sigterm = signal.signal(signal.SIGTERM, _on_exit_signal)

    _handlers_installed = True
    logger.debug("Installed terminal exit handlers")


def _reset_for_testing() -> None:
    """Restore the original signal handlers and allow reinstalling. Tests only."""
    global _closing, _handlers_installed
    global _original_sigint, _original_sigterm

    _closing = False
    _handlers_installed = False

    if _original_sigint is not None:
        signal.signal(signal.SIGINT, _original_sigint)
        _original_sigint = None
    if _original_sigterm is not None:
        signal.signal(signal.SIGTERM, _original_sigterm)
        _original_sigterm = None


_install_exit_handlers()
