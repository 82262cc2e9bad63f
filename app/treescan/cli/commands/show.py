"""Show command implementation.

Renders a tree saved by ``treescan scan --cache`` without scanning again.
"""

import json
from pathlib import Path
from typing import Annotated

import typer

from treescan.cli.commands.scan import OutputFormat
from treescan.cli.display import build_tree, node_to_dict
from treescan.core.config import ConfigError, load_config_or_default
from treescan.core.paths import get_default_cache_path
from treescan.tree.coordinator import DirTree
from treescan.tree.errors import CacheFormatError
from treescan.tree.models import FileInfo
from treescan.utils.formatting import console, print_error

app = typer.Typer(
    help="Show a previously saved directory tree.",
    invoke_without_command=True,
    context_settings={"allow_interspersed_args": True},
)


@app.callback(invoke_without_command=True)
def show_command(
    cache_file: Annotated[
        Path | None,
        typer.Argument(
            help="Cache file to show. Defaults to the last saved scan.",
            show_default=False,
        ),
    ] = None,
    path: Annotated[
        str | None,
        typer.Option(
            "--path",
            "-p",
            help="Show only the subtree at this full path.",
        ),
    ] = None,
    depth: Annotated[
        int | None,
        typer.Option(
            "--depth",
            "-d",
            min=0,
            help="Levels to show below each shown node.",
        ),
    ] = None,
    output_format: Annotated[
        OutputFormat,
        typer.Option(
            "--format",
            "-f",
            help="Output format: tree or json.",
            case_sensitive=False,
        ),
    ] = OutputFormat.TREE,
) -> None:
    """Show a previously saved directory tree.

    Examples:
        treescan show                               # Last scan saved with --save
        treescan show srv.jsonl                     # A specific cache file
        treescan show srv.jsonl --path /srv/www     # One subtree
        treescan show srv.jsonl --format json       # Output as JSON
    """
    try:
        config = load_config_or_default()
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e

    if cache_file is None:
        cache_file = get_default_cache_path(config.compress_cache)
    max_depth = depth if depth is not None else config.display_depth

    if not cache_file.is_file():
        print_error(f"Cache file not found: {cache_file}")
        raise typer.Exit(code=1)

    tree = DirTree(config=config, background=False)
    try:
        tree.read_cache(cache_file)
    except CacheFormatError as e:
        print_error(f"Invalid cache file {cache_file}: {e}")
        raise typer.Exit(code=1) from e
    except OSError as e:
        print_error(f"Failed to read {cache_file}: {e}")
        raise typer.Exit(code=1) from e

    nodes: list[FileInfo]
    if path is not None:
        found = tree.locate(path.rstrip("/") or "/")
        if found is None:
            print_error(f"Path not found in {cache_file}: {path}")
            raise typer.Exit(code=1)
        nodes = [found]
    else:
        nodes = tree.toplevels

    if output_format == OutputFormat.JSON:
        console.print_json(json.dumps([node_to_dict(node, max_depth) for node in nodes]))
        return

    for node in nodes:
        console.print(build_tree(node, max_depth))
