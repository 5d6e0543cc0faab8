"""Command-line interface for raidbot."""

from raidbot.cli.main import cli

__all__ = ["cli"]
