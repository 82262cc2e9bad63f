"""CLI package for treescan.

This package contains the Typer application and all subcommands.
"""

from treescan.cli.main import app

__all__ = ["app"]
