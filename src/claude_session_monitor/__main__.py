"""Entry point for `python -m claude_session_monitor`."""

import sys


def main():
    from claude_session_monitor.app import run
    sys.exit(run())


if __name__ == "__main__":
    main()
