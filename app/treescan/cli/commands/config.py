"""Config command implementation.

Shows and initializes the scan configuration file.
"""

from typing import Annotated

import typer
from rich.table import Table

from treescan.core.config import (
    ConfigError,
    TreeScanConfig,
    load_config_or_default,
    save_config,
)
from treescan.core.paths import get_config_path
from treescan.utils.formatting import console, print_error, print_info, print_success

app = typer.Typer(
    help="Show or initialize the scan configuration.",
    no_args_is_help=True,
)


@app.command()
def show() -> None:
    """Show the effective configuration and where it comes from."""
    config_path = get_config_path()
    try:
        config = load_config_or_default()
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e

    source = str(config_path) if config_path.exists() else "built-in defaults"
    table = Table(
        title=f"Configuration ({source})",
        show_header=True,
        header_style="bold_header",
        border_style="border",
    )
    table.add_column("Setting", no_wrap=True)
    table.add_column("Value", style="info")
    table.add_column("Description", style="muted")

    for name, field in TreeScanConfig.model_fields.items():
        table.add_row(name, str(getattr(config, name)), field.description or "")

    console.print(table)


@app.command()
def init(
    force: Annotated[
        bool,
        typer.Option(
            "--force",
            help="Overwrite an existing config file.",
        ),
    ] = False,
) -> None:
    """Write a config file with the default settings."""
    config_path = get_config_path()
    if config_path.exists() and not force:
        print_info(f"Config file already exists: {config_path}")
        print_info("Use --force to overwrite it.")
        raise typer.Exit(code=1)

    try:
        saved = save_config(TreeScanConfig(), config_path)
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e

    print_success(f"Config written to {saved}")
