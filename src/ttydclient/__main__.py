# SPDX-FileCopyrightText: 2025 CoreWeave, Inc.
# SPDX-License-Identifier: Apache-2.0
# SPDX-PackageName: ttydclient

"""Entry point for `python -m ttydclient` and the `ttydclient` console script."""

from __future__ import annotations

import sys


def main() -> None:
    """Run the ttydclient CLI."""
    try:
        from ttydclient.cli import cli
    except ImportError as e:
        if getattr(e, "name", None) in ("ttydclient.cli", "click"):
            print(
                "ttydclient CLI requires the 'cli' extra.\n"
                "Install it with: pip install ttydclient[cli]",
                file=sys.stderr,
            )
            sys.exit(1)
        raise
    cli()


if __name__ == "__main__":
    main()
