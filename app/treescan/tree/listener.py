"""Notification interface for directory tree observers.

Observers subclass TreeListener and override the notifications they
care about. DirTree calls them synchronously on whichever thread
applies the change, usually the job queue's worker thread. Observers
that must run on a thread of their own choosing wrap themselves in a
QueuedListener and drain it from that thread.
"""

from __future__ import annotations

import queue
from collections.abc import Callable
from functools import partial
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from treescan.tree.models import DirInfo, FileInfo


class TreeListener:
    """Observer of a DirTree. All notifications default to no-ops."""

    def on_child_added(self, node: FileInfo) -> None:
        """A node was attached to the tree."""

    def on_deleting_child(self, node: FileInfo) -> None:
        """A node is about to be removed from the tree."""

    def on_children_deleted(self) -> None:
        """One batch of deletions has completed."""

    def on_scan_starting(self) -> None:
        """A scan (or refresh) is starting."""

    def on_scan_finished(self) -> None:
        """The scan completed with all queued directories read."""

    def on_scan_aborted(self) -> None:
        """The scan was aborted before completion."""

    def on_directory_starting(self, directory: DirInfo) -> None:
        """Reading of one directory level is starting."""

    def on_directory_finished(self, directory: DirInfo) -> None:
        """One directory level is read and finalized.

        Sent after the directory's dot entry has been cleaned up. This
        does not mean its subdirectories are read.
        """

    def on_selection_changed(self, node: FileInfo | None) -> None:
        """The current selection changed (None: nothing selected)."""

    def on_progress(self, text: str) -> None:
        """Single-line status text. Content is advisory only."""


class QueuedListener(TreeListener):
    """Forward notifications to another listener on the consumer's thread.

    Every notification is stored in a thread-safe queue; ``drain()``
    replays them, in order, on the thread that calls it.

    Args:
        target: Listener that finally receives the notifications.
    """

    def __init__(self, target: TreeListener) -> None:
        self._target = target
        self._calls: queue.Queue[Callable[[], None]] = queue.Queue()

    def _post(self, name: str, *args: object) -> None:
        self._calls.put(partial(getattr(self._target, name), *args))

    def drain(self, timeout: float | None = None) -> int:
        """Deliver queued notifications to the target.

        Args:
            timeout: Wait up to this many seconds for the first
                notification. None or 0 delivers only what is queued.

        Returns:
            Number of notifications delivered.
        """
        delivered = 0
        if timeout:
            try:
                call = self._calls.get(timeout=timeout)
            except queue.Empty:
                return 0
            call()
            delivered += 1
        while True:
            try:
                call = self._calls.get_nowait()
            except queue.Empty:
                return delivered
            call()
            delivered += 1

    def on_child_added(self, node: FileInfo) -> None:
        self._post("on_child_added", node)

    def on_deleting_child(self, node: FileInfo) -> None:
        self._post("on_deleting_child", node)

    def on_children_deleted(self) -> None:
        self._post("on_children_deleted")

    def on_scan_starting(self) -> None:
        self._post("on_scan_starting")

    def on_scan_finished(self) -> None:
        self._post("on_scan_finished")

    def on_scan_aborted(self) -> None:
        self._post("on_scan_aborted")

    def on_directory_starting(self, directory: DirInfo) -> None:
        self._post("on_directory_starting", directory)

    def on_directory_finished(self, directory: DirInfo) -> None:
        self._post("on_directory_finished", directory)

    def on_selection_changed(self, node: FileInfo | None) -> None:
        self._post("on_selection_changed", node)

    def on_progress(self, text: str) -> None:
        self._post("on_progress", text)
