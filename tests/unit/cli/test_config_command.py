"""Unit tests for config CLI commands.

Tests for the treescan config show and treescan config init commands.
"""

import tomllib

from treescan.cli.main import app
from treescan.core.config import TreeScanConfig, save_config
from treescan.core.paths import get_config_path
from typer.testing import CliRunner

runner = CliRunner()


class TestConfigShow:
    """Tests for treescan config show command."""

    def test_show_defaults(self) -> None:
        """Without a file the built-in defaults are listed."""
        result = runner.invoke(app, ["config", "show"])

        assert result.exit_code == 0
        assert "built-in defaults" in result.stdout
        assert "cross_filesystems" in result.stdout
        assert "display_depth" in result.stdout
        assert "compress_cache" in result.stdout

    def test_show_file_values(self) -> None:
        """Values from the config file are shown."""
        save_config(TreeScanConfig(display_depth=7))

        result = runner.invoke(app, ["config", "show"])

        assert result.exit_code == 0
        assert "built-in defaults" not in result.stdout
        assert "7" in result.stdout

    def test_show_broken_file(self) -> None:
        """A config file with errors is reported."""
        path = get_config_path()
        path.parent.mkdir(parents=True)
        path.write_text("display_depth = 'deep'\n")

        result = runner.invoke(app, ["config", "show"])

        assert result.exit_code == 1
        assert "Invalid config content" in result.output

    def test_no_args_shows_help(self) -> None:
        """The config group prints its help without a subcommand."""
        result = runner.invoke(app, ["config"])

        assert "show" in result.output
        assert "init" in result.output


class TestConfigInit:
    """Tests for treescan config init command."""

    def test_init_writes_defaults(self) -> None:
        """init creates the config file."""
        result = runner.invoke(app, ["config", "init"])

        assert result.exit_code == 0
        assert "Config written" in result.stdout
        with open(get_config_path(), "rb") as f:
            assert tomllib.load(f) == {"cross_filesystems": False}

    def test_init_keeps_existing_file(self) -> None:
        """An existing file is not overwritten without --force."""
        save_config(TreeScanConfig(display_depth=9))

        result = runner.invoke(app, ["config", "init"])

        assert result.exit_code == 1
        assert "already exists" in result.stdout
        assert "display_depth = 9" in get_config_path().read_text()

    def test_init_force_overwrites(self) -> None:
        """--force replaces an existing file with the defaults."""
        save_config(TreeScanConfig(display_depth=9))

        result = runner.invoke(app, ["config", "init", "--force"])

        assert result.exit_code == 0
        assert "display_depth" not in get_config_path().read_text()
