"""Unit tests for scan command.

Tests for the CLI scan command implementation.
"""

import json
import os
import sys
from pathlib import Path
from unittest.mock import patch

import pytest
from treescan.cli.commands.scan import run_scan
from treescan.cli.main import app
from treescan.core.config import TreeScanConfig, save_config
from treescan.core.paths import get_config_path, get_default_cache_path
from treescan.tree.cache import read_cache
from treescan.tree.coordinator import DirTree
from treescan.tree.listener import QueuedListener
from treescan.tree.models import DirInfo, ReadState
from typer.testing import CliRunner

runner = CliRunner()


@pytest.fixture
def scan_dir(tmp_path: Path) -> Path:
    """Directory with a/f1 (100 bytes), b/f2 (50 bytes) and top.txt (10 bytes)."""
    root = tmp_path / "tree"
    (root / "a").mkdir(parents=True)
    (root / "b").mkdir()
    (root / "a" / "f1").write_bytes(b"x" * 100)
    (root / "b" / "f2").write_bytes(b"x" * 50)
    (root / "top.txt").write_bytes(b"x" * 10)
    return root


class TestScanCommand:
    """Tests for treescan scan command."""

    def test_scan_help(self) -> None:
        """Scan command shows help."""
        result = runner.invoke(app, ["scan", "--help"])

        assert result.exit_code == 0
        assert "Scan directories and show their sizes" in result.stdout

    def test_scan_tree_output(self, scan_dir: Path) -> None:
        """Default output is a tree with names and sizes."""
        result = runner.invoke(app, ["scan", str(scan_dir)])

        assert result.exit_code == 0
        assert "f1" in result.stdout
        assert "top.txt" in result.stdout
        assert "100 B" in result.stdout
        assert "160 B in 6 items (3 directories)" in result.stdout

    def test_scan_json_output(self, scan_dir: Path) -> None:
        """JSON output carries totals and children, largest first."""
        result = runner.invoke(app, ["scan", str(scan_dir), "--format", "json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert len(data) == 1
        top = data[0]
        assert top["path"] == str(scan_dir)
        assert top["size"] == 160
        assert top["items"] == 5
        assert top["subdirs"] == 2
        assert [c["name"] for c in top["children"]] == ["a", "b", "<Files>"]

    def test_options_before_paths(self, scan_dir: Path) -> None:
        """Options may come before or between several paths."""
        result = runner.invoke(
            app,
            ["scan", "--format", "json", str(scan_dir / "a"), "-d", "0", str(scan_dir / "b")],
        )

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert [node["size"] for node in data] == [100, 50]
        assert all("children" not in node for node in data)

    def test_requires_a_path(self) -> None:
        """Scanning without a path is a usage error."""
        result = runner.invoke(app, ["scan"])

        assert result.exit_code == 2

    def test_depth_limits_output(self, scan_dir: Path) -> None:
        """--depth 0 shows only the scanned path."""
        result = runner.invoke(app, ["scan", str(scan_dir), "--depth", "0", "--format", "json"])

        assert result.exit_code == 0
        assert "children" not in json.loads(result.stdout)[0]

    def test_depth_from_config(self, scan_dir: Path) -> None:
        """The configured display depth is the default."""
        save_config(TreeScanConfig(display_depth=1))

        result = runner.invoke(app, ["scan", str(scan_dir), "--format", "json"])

        children = json.loads(result.stdout)[0]["children"]
        assert all("children" not in child for child in children)

    def test_cache_option_writes_file(self, scan_dir: Path, tmp_path: Path) -> None:
        """--cache saves the scanned tree."""
        cache_file = tmp_path / "scan.jsonl"

        result = runner.invoke(app, ["scan", str(scan_dir), "--cache", str(cache_file)])

        assert result.exit_code == 0
        root = read_cache(cache_file)
        assert root.totals.size == 160

    def test_save_writes_default_cache(self, scan_dir: Path) -> None:
        """--save writes the compressed default cache file."""
        result = runner.invoke(app, ["scan", str(scan_dir), "--save"])

        assert result.exit_code == 0
        assert get_default_cache_path().exists()

    @pytest.mark.skipif(sys.platform != "linux", reason="needs arbitrary file name bytes")
    def test_save_undecodable_name(self, tmp_path: Path) -> None:
        """Files whose names are not valid UTF-8 can be shown and saved."""
        scanned = tmp_path / "scanned"
        scanned.mkdir()
        with open(os.path.join(os.fsencode(scanned), b"bad\xff"), "wb") as f:
            f.write(b"x" * 9)

        result = runner.invoke(app, ["scan", str(scanned), "--save", "--format", "json"])

        assert result.exit_code == 0
        assert json.loads(result.stdout)[0]["children"][0]["name"] == "bad\ufffd"
        saved = read_cache(get_default_cache_path())
        top = saved.children[0]
        assert isinstance(top, DirInfo)
        assert [c.name for c in top.children] == [os.fsdecode(b"bad\xff")]
        assert list(get_default_cache_path().parent.glob("*.tmp*")) == []

    def test_missing_path_fails(self, tmp_path: Path) -> None:
        """An unreadable path is reported and the exit code is 1."""
        result = runner.invoke(app, ["scan", str(tmp_path / "missing")])

        assert result.exit_code == 1
        assert "Cannot read" in result.output

    def test_one_filesystem_flag(self, scan_dir: Path) -> None:
        """Both filesystem flags are accepted."""
        for flag in ("--one-filesystem", "--cross-filesystems"):
            result = runner.invoke(app, ["scan", str(scan_dir), flag, "--format", "json"])
            assert result.exit_code == 0
            assert json.loads(result.stdout)[0]["size"] == 160

    def test_invalid_config(self, scan_dir: Path) -> None:
        """A broken config file stops the command."""
        path = get_config_path()
        path.parent.mkdir(parents=True)
        path.write_text("display_depth = [")

        result = runner.invoke(app, ["scan", str(scan_dir)])

        assert result.exit_code == 1
        assert "Invalid TOML" in result.output


class TestRunScan:
    """Tests for the progress loop."""

    def test_completes(self, fake_fs) -> None:
        """The loop returns once the scan finished."""
        tree = DirTree(config=TreeScanConfig(), filesystem=fake_fs)

        progress = run_scan(tree, ["/data"])

        assert progress.done
        assert not progress.aborted
        assert tree.root.totals.size == 160

    def test_records_unreadable_directories(self, fake_fs) -> None:
        """Directories that cannot be listed are collected."""
        fake_fs.list_errors.add("/data/b")
        tree = DirTree(config=TreeScanConfig(), filesystem=fake_fs)

        progress = run_scan(tree, ["/data"])

        assert progress.unreadable == ["/data/b"]

    def test_interrupt_aborts(self, fake_fs) -> None:
        """Ctrl-C aborts the scan and the loop waits for the abort.

        The directory being read when Ctrl-C arrives keeps its entries;
        its subdirectories are left unread.
        """
        entered, gate = fake_fs.block("/data")
        tree = DirTree(config=TreeScanConfig(), filesystem=fake_fs)
        original_drain = QueuedListener.drain
        calls: list[int] = []

        def interrupted_drain(self: QueuedListener, timeout: float | None = None) -> int:
            calls.append(1)
            if len(calls) == 1:
                assert entered.wait(timeout=5)
                raise KeyboardInterrupt
            gate.set()
            return original_drain(self, timeout)

        with patch.object(QueuedListener, "drain", interrupted_drain):
            progress = run_scan(tree, ["/data"])

        assert progress.aborted
        assert tree.wait(timeout=5)
        assert tree.root.totals.items == 4
        for path in ("/data/a", "/data/b"):
            node = tree.locate(path)
            assert isinstance(node, DirInfo)
            assert node.read_state is ReadState.ABORTED
