# SPDX-FileCopyrightText: 2025 CoreWeave, Inc.
# SPDX-License-Identifier: Apache-2.0
# SPDX-PackageName: ttydclient

"""ttydclient exec: run one command in a ttyd terminal."""

from __future__ import annotations

import sys

import click

from ttydclient._client import TerminalClient
from ttydclient.cli._options import build_endpoint, connection_options, looks_like_url

# Same convention as coreutils timeout(1)
TIMEOUT_EXIT_CODE = 124


@click.command(context_settings={"ignore_unknown_options": True})
@click.argument("args", nargs=-1, required=True, type=click.UNPROCESSED)
@click.option(
    "--timeout",
    "-t",
    "timeout_seconds",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Seconds to wait for the command to finish (default: 30).",
)
@click.option("--raw", is_flag=True, help="Keep ANSI escape sequences and CRLF line endings.")
@connection_options
def exec_command(
    args: tuple[str, ...],
    timeout_seconds: float | None,
    raw: bool,
    token: str | None,
    authorization: str | None,
) -> None:
    """Execute a command in a ttyd terminal.

    The first argument is the ttyd URL when it contains "://", otherwise
    TTYD_URL is used. The remaining arguments are joined with spaces and run
    by the remote shell. Exits with the command's exit code, or 124 if it
    timed out.

    Examples:

        ttydclient exec https://ttyd.example.com ls -la

        TTYD_URL=https://ttyd.example.com ttydclient exec "cd /app && npm test"

        ttydclient exec --timeout 120 https://ttyd.example.com make build
    """
    url: str | None = None
    if looks_like_url(args[0]):
        url, args = args[0], args[1:]
    if not args:
        raise click.UsageError("Missing COMMAND.")

    endpoint = build_endpoint(url, token, authorization)
    client = TerminalClient(
        endpoint.url,
        access_token=endpoint.access_token,
        authorization=endpoint.authorization,
    )

    try:
        result = client.exec(
            " ".join(args),
            timeout_seconds=timeout_seconds,
            strip_ansi=not raw,
        ).result()
    except KeyboardInterrupt:
        client.close()
        sys.exit(130)

    if result.output:
        try:
            click.echo(result.output)
        except BrokenPipeError:
            pass  # Piped to head/etc

    if result.timed_out:
        click.echo(f"Error: command timed out after {result.duration_ms / 1000:.1f}s", err=True)
        sys.exit(TIMEOUT_EXIT_CODE)
    sys.exit(result.exit_code)
