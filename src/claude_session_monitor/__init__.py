"""Claude Session Monitor: live state tracking for running Claude Code sessions."""

__version__ = "0.1.0"
