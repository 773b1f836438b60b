"""Command line interface."""

from feedrank.cli.main import cli


__all__ = ["cli"]
