"""Run commands in a ttyd terminal with the blocking API.

Usage:
    TTYD_URL=https://ttyd.example.com TTYD_ACCESS_TOKEN=... uv run examples/quick_start.py
"""

from ttydclient import TerminalClient, TtydExecutionError


def main() -> None:
    with TerminalClient.from_env() as client:
        result = client.exec("uname -a").result()
        print(f"exit={result.exit_code} in {result.duration_ms}ms")
        print(result.output)

        # run() returns the output directly
        print(f"node: {client.run('node --version').result()}")

        # check=True turns a non-zero exit into an exception
        try:
            client.run("test -d /nonexistent", check=True).result()
        except TtydExecutionError as e:
            assert e.exec_result is not None
            print(f"check failed with exit code {e.exec_result.exit_code}")

        # Timeouts are results, not errors
        slow = client.exec("sleep 10", timeout_seconds=1).result()
        print(f"timed_out={slow.timed_out} exit_code={slow.exit_code}")


if __name__ == "__main__":
    main()
