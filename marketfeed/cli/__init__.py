"""Command-line interface."""

from marketfeed.cli.main import cli


__all__ = ["cli"]
