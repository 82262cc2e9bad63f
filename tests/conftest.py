"""Pytest configuration and shared fixtures.

This module contains fixtures used across all test modules.
"""

import os
import threading
from collections.abc import Iterator
from pathlib import Path

import pytest
from treescan.core.config import TreeScanConfig
from treescan.tree.coordinator import DirTree
from treescan.tree.fs import EntryType, FileSystem, StatResult
from treescan.tree.listener import TreeListener
from treescan.tree.models import DirInfo, FileInfo


class FakeFileSystem(FileSystem):
    """In-memory filesystem with controllable failures.

    Parent directories are created on demand with the device of the
    entry being added.
    """

    def __init__(self) -> None:
        self.entries: dict[str, StatResult] = {}
        self.listings: dict[str, list[str]] = {}
        self.stat_errors: set[str] = set()
        self.list_errors: set[str] = set()
        self.listed: list[str] = []
        self._gates: dict[str, threading.Event] = {}
        self._entered: dict[str, threading.Event] = {}

    def _link(self, path: str, device: int) -> None:
        parent = os.path.dirname(path)
        if parent == path:
            return
        if parent not in self.entries:
            self.add_dir(parent, device=device)
        names = self.listings[parent]
        name = os.path.basename(path)
        if name not in names:
            names.append(name)

    def add_dir(self, path: str, device: int = 1) -> None:
        self.entries[path] = StatResult(EntryType.DIRECTORY, 4096, 1000.0, device, 2)
        self.listings.setdefault(path, [])
        self._link(path, device)

    def add_file(self, path: str, size: int, device: int = 1) -> None:
        self.entries[path] = StatResult(EntryType.FILE, size, 1000.0, device, 1)
        self._link(path, device)

    def block(self, path: str) -> tuple[threading.Event, threading.Event]:
        """Make listing ``path`` wait until the returned gate is set.

        Returns:
            (entered, gate): ``entered`` is set once the listing started.
        """
        self._gates[path] = threading.Event()
        self._entered[path] = threading.Event()
        return self._entered[path], self._gates[path]

    def list_dir(self, path: str) -> list[str]:
        self.listed.append(path)
        if path in self._gates:
            self._entered[path].set()
            self._gates[path].wait(timeout=5)
        if path in self.list_errors:
            raise PermissionError(13, "Permission denied", path)
        if path not in self.listings:
            raise FileNotFoundError(2, "No such file or directory", path)
        return list(self.listings[path])

    def stat(self, path: str) -> StatResult:
        if path in self.stat_errors:
            raise PermissionError(13, "Permission denied", path)
        if path not in self.entries:
            raise FileNotFoundError(2, "No such file or directory", path)
        return self.entries[path]


class RecordingListener(TreeListener):
    """Records every notification as an (event, argument) pair."""

    def __init__(self) -> None:
        self.events: list[tuple[str, object]] = []

    def names(self) -> list[str]:
        return [name for name, _ in self.events]

    def count(self, name: str) -> int:
        return sum(1 for event, _ in self.events if event == name)

    def args(self, name: str) -> list[object]:
        return [arg for event, arg in self.events if event == name]

    def on_child_added(self, node: FileInfo) -> None:
        self.events.append(("child_added", node))

    def on_deleting_child(self, node: FileInfo) -> None:
        self.events.append(("deleting_child", node))

    def on_children_deleted(self) -> None:
        self.events.append(("children_deleted", None))

    def on_scan_starting(self) -> None:
        self.events.append(("scan_starting", None))

    def on_scan_finished(self) -> None:
        self.events.append(("scan_finished", None))

    def on_scan_aborted(self) -> None:
        self.events.append(("scan_aborted", None))

    def on_directory_starting(self, directory: DirInfo) -> None:
        self.events.append(("directory_starting", directory))

    def on_directory_finished(self, directory: DirInfo) -> None:
        self.events.append(("directory_finished", directory))

    def on_selection_changed(self, node: FileInfo | None) -> None:
        self.events.append(("selection_changed", node))

    def on_progress(self, text: str) -> None:
        self.events.append(("progress", text))


@pytest.fixture(autouse=True)
def isolated_xdg(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    """Point XDG config and cache directories into the test's tmp_path."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg-config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "xdg-cache"))
    yield tmp_path


@pytest.fixture
def fake_fs() -> FakeFileSystem:
    """Small fake tree.

    /data
        a/f1   100 bytes
        b/f2    50 bytes
        top.txt 10 bytes
    """
    fs = FakeFileSystem()
    fs.add_dir("/data")
    fs.add_file("/data/a/f1", 100)
    fs.add_file("/data/b/f2", 50)
    fs.add_file("/data/top.txt", 10)
    return fs


@pytest.fixture
def recorder() -> RecordingListener:
    """Listener recording all notifications."""
    return RecordingListener()


@pytest.fixture
def tree(fake_fs: FakeFileSystem, recorder: RecordingListener) -> DirTree:
    """Foreground DirTree on the fake filesystem with a recorder attached."""
    dir_tree = DirTree(config=TreeScanConfig(), filesystem=fake_fs, background=False)
    dir_tree.add_listener(recorder)
    return dir_tree


@pytest.fixture
def empty_fs() -> FakeFileSystem:
    """Fake filesystem holding only the root directory."""
    fs = FakeFileSystem()
    fs.add_dir("/")
    return fs
