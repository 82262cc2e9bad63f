"""CLI commands for treescan.

This package contains all subcommand implementations.
"""

from treescan.cli.commands import config, scan, show

__all__ = ["config", "scan", "show"]
