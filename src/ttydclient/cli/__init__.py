# SPDX-FileCopyrightText: 2025 CoreWeave, Inc.
# SPDX-License-Identifier: Apache-2.0
# SPDX-PackageName: ttydclient

"""ttydclient CLI: run commands in and attach to ttyd web terminals.

The functions in this package are intended to be called via the CLI,
not from Python code. No backwards compatibility guarantees are made
for Python calling patterns.
"""

from __future__ import annotations

import logging
from typing import Any

try:
    import click
except ModuleNotFoundError as e:
    if getattr(e, "name", None) == "click":
        raise ImportError(
            "ttydclient CLI requires the 'cli' extra. Install it with: pip install ttydclient[cli]",
            name="click",
        ) from e
    raise

from ttydclient._env import load_dotenv
from ttydclient.cli.exec import exec_command
from ttydclient.cli.shell import shell
from ttydclient.exceptions import TtydError


class _TtydCLI(click.Group):
    """Click group with top-level TtydError handling.

    Connection and auth failures are printed as clean "Error: <message>"
    output instead of raw tracebacks.
    """

    def invoke(self, ctx: click.Context) -> Any:
        try:
            return super().invoke(ctx)
        except TtydError as exc:
            raise click.ClickException(str(exc)) from None


@click.group(cls=_TtydCLI)
@click.version_option(package_name="ttydclient")
@click.option("--verbose", "-v", count=True, help="Log connection details (-vv for protocol).")
def cli(verbose: int) -> None:
    """ttydclient CLI.

    Reads TTYD_URL, TTYD_ACCESS_TOKEN and TTYD_AUTHORIZATION from the
    environment or a .env file in the working directory.
    """
    load_dotenv()
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG if verbose > 1 else logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )


cli.add_command(exec_command, "exec")
cli.add_command(shell, "shell")
