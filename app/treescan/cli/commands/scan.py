"""Scan command implementation.

Reads one or more directory trees in the background and reports their
sizes.
"""

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Annotated

import typer
from rich.status import Status

from treescan.cli.display import build_tree, node_to_dict
from treescan.core.config import ConfigError, TreeScanConfig, load_config_or_default
from treescan.core.paths import ensure_cache_dir, get_default_cache_path
from treescan.tree.coordinator import DirTree
from treescan.tree.listener import QueuedListener, TreeListener
from treescan.tree.models import DirInfo, ReadState, printable_name
from treescan.utils.formatting import (
    console,
    err_console,
    format_size,
    print_error,
    print_warning,
)

logger = logging.getLogger(__name__)

app = typer.Typer(
    help="Scan directories and show their sizes.",
    invoke_without_command=True,
    # Options may follow the paths
    context_settings={"allow_interspersed_args": True},
)

# Seconds to wait for notifications before checking for Ctrl-C again
POLL_INTERVAL = 0.1


class OutputFormat(str, Enum):
    """Output format options."""

    TREE = "tree"
    JSON = "json"


class ScanProgress(TreeListener):
    """Collects scan events on the main thread and feeds the spinner."""

    def __init__(self, status: Status | None = None) -> None:
        self.status = status
        self.done = False
        self.aborted = False
        self.unreadable: list[str] = []

    def on_progress(self, text: str) -> None:
        if self.status is not None:
            self.status.update(f"[info]{text}[/]")

    def on_directory_finished(self, directory: DirInfo) -> None:
        if directory.read_state is ReadState.ERROR:
            self.unreadable.append(directory.path)

    def on_scan_finished(self) -> None:
        self.done = True

    def on_scan_aborted(self) -> None:
        self.aborted = True
        self.done = True


def run_scan(tree: DirTree, paths: list[str], status: Status | None = None) -> ScanProgress:
    """Scan ``paths`` and wait for the scan to end.

    Notifications are replayed on the calling thread. Ctrl-C aborts the
    scan; the function still waits until the abort has completed.

    Args:
        tree: Tree to read into.
        paths: Paths to scan.
        status: Spinner that shows the progress text.

    Returns:
        The progress listener with the scan's outcome.
    """
    progress = ScanProgress(status)
    queued = QueuedListener(progress)
    tree.add_listener(queued)
    try:
        tree.start_reading(*paths)
        while not progress.done:
            try:
                queued.drain(timeout=POLL_INTERVAL)
            except KeyboardInterrupt:
                logger.info("Interrupted, aborting scan")
                tree.abort_reading()
        queued.drain()
    finally:
        tree.remove_listener(queued)
    return progress


@app.callback(invoke_without_command=True)
def scan_command(
    paths: Annotated[
        list[Path],
        typer.Argument(
            help="Directories (or files) to scan.",
            show_default=False,
        ),
    ],
    cross_filesystems: Annotated[
        bool | None,
        typer.Option(
            "--cross-filesystems/--one-filesystem",
            help="Descend into mounted filesystems. Defaults to the config setting.",
            show_default=False,
        ),
    ] = None,
    depth: Annotated[
        int | None,
        typer.Option(
            "--depth",
            "-d",
            min=0,
            help="Levels to show below each scanned path.",
        ),
    ] = None,
    cache_path: Annotated[
        Path | None,
        typer.Option(
            "--cache",
            "-c",
            help="Write the scanned tree to this cache file (.gz to compress).",
        ),
    ] = None,
    save: Annotated[
        bool,
        typer.Option(
            "--save",
            "-s",
            help="Write the scanned tree to the default cache file.",
        ),
    ] = False,
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
    """Scan directories and show their sizes.

    Examples:
        treescan scan ~/Downloads              # Scan one directory
        treescan scan / --one-filesystem       # Stay on the root filesystem
        treescan scan . --depth 3              # Show three levels
        treescan scan /srv --cache srv.jsonl   # Save the tree for later
        treescan scan . --format json          # Output as JSON
    """
    try:
        config = load_config_or_default()
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e

    if cross_filesystems is not None:
        config = config.model_copy(update={"cross_filesystems": cross_filesystems})
    max_depth = depth if depth is not None else config.display_depth

    tree = DirTree(config=config)
    with err_console.status("[info]Scanning...[/]") as status:
        progress = run_scan(tree, [str(p) for p in paths], status)

    for path in progress.unreadable:
        print_warning(f"Cannot read {printable_name(path)}")

    if cache_path is not None or save:
        _write_cache(tree, cache_path or _default_cache_path(config))

    if output_format == OutputFormat.JSON:
        data = [node_to_dict(node, max_depth) for node in tree.toplevels]
        console.print_json(json.dumps(data))
    else:
        for node in tree.toplevels:
            console.print(build_tree(node, max_depth))
        totals = tree.root.totals
        console.print(
            f"\n[dim]{format_size(totals.size)} in {totals.items} items "
            f"({totals.subdirs} directories)[/]"
        )

    if progress.aborted:
        print_warning("Scan aborted; the results are incomplete.")
        raise typer.Exit(code=1)
    if any(
        isinstance(node, DirInfo) and node.read_state is ReadState.ERROR for node in tree.toplevels
    ):
        raise typer.Exit(code=1)


def _default_cache_path(config: TreeScanConfig) -> Path:
    try:
        ensure_cache_dir()
    except RuntimeError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e
    return get_default_cache_path(config.compress_cache)


def _write_cache(tree: DirTree, path: Path) -> None:
    try:
        count = tree.write_cache(path)
    except OSError as e:
        print_error(f"Failed to write cache file: {e}")
        raise typer.Exit(code=1) from e
    # Keep stdout clean for JSON output
    err_console.print(f"[info]Wrote {count} nodes to {path}[/]")
