"""Directory tree coordinator.

DirTree is the single entry point for building and maintaining a
scanned tree. It owns the pseudo root, the job queue and the tree-wide
policies, translates job results into tree mutations, and tells the
registered listeners about every change.

All mutations happen under one re-entrant lock. Scan jobs list
directories outside that lock, so a slow filesystem delays the scan but
never blocks the caller of ``start_reading``.
"""

import logging
import os
import threading
import time
from pathlib import Path

from treescan.core.config import TreeScanConfig, load_config_or_default
from treescan.tree import cache
from treescan.tree.errors import AlreadyBusyError, InvalidSubtreeError
from treescan.tree.fs import FileSystem, LocalFileSystem
from treescan.tree.job import JobOutcome, JobResult, ScanJob, ScanPolicy
from treescan.tree.listener import TreeListener
from treescan.tree.models import DirInfo, FileInfo, NodeKind, ReadState
from treescan.tree.queue import JobQueue

logger = logging.getLogger(__name__)


class DirTree:
    """A scanned directory tree with background reading.

    Register listeners with ``add_listener()`` before calling
    ``start_reading()``: reading starts immediately and notifications
    are sent from the job queue's worker thread.

    Args:
        config: Scan configuration. Defaults to the user's config file,
            or built-in defaults if there is none.
        filesystem: Source of directory listings and metadata.
        background: Read directories on a worker thread. When False, the
            caller drives the scan with ``run_pending()``.
    """

    def __init__(
        self,
        *,
        config: TreeScanConfig | None = None,
        filesystem: FileSystem | None = None,
        background: bool = True,
    ) -> None:
        self._lock = threading.RLock()
        self._root = DirInfo.pseudo_root()
        self._selection: FileInfo | None = None
        self._listeners: list[TreeListener] = []
        self._filesystem = filesystem if filesystem is not None else LocalFileSystem()
        self._toplevel_paths: list[str] = []
        self._started_at = 0.0
        self._dirs_read = 0

        self.read_config(config if config is not None else load_config_or_default())

        self._queue = JobQueue(
            self._apply_result,
            on_job_starting=self._job_starting,
            on_job_discarded=self._job_discarded,
            on_finished=self._queue_finished,
            on_aborted=self._queue_aborted,
            lock=self._lock,
            background=background,
        )

    def read_config(self, config: TreeScanConfig) -> None:
        """Take over the tree-wide policies from ``config``."""
        self._cross_filesystems = config.cross_filesystems

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def add_listener(self, listener: TreeListener) -> None:
        """Register a listener for tree notifications."""
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: TreeListener) -> None:
        """Unregister a listener. Unknown listeners are ignored."""
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _notify(self, name: str, *args: object) -> None:
        for listener in list(self._listeners):
            try:
                getattr(listener, name)(*args)
            except Exception:
                # One faulty observer must not stop the scan or the others
                logger.exception("Listener %r failed in %s", listener, name)

    # -------------------------------------------------------------------------
    # Tree-wide state
    # -------------------------------------------------------------------------

    @property
    def root(self) -> DirInfo:
        """The pseudo root. Its children are the toplevel scanned paths."""
        return self._root

    def set_root(self, new_root: DirInfo) -> None:
        """Replace the whole tree with the one below ``new_root``.

        Raises:
            AlreadyBusyError: If a scan is in progress.
            InvalidSubtreeError: If ``new_root`` is not a pseudo root.
        """
        if not new_root.is_pseudo_root:
            raise InvalidSubtreeError("New root must be a pseudo root")
        with self._lock:
            self._check_idle()
            self.clear()
            self._root = new_root
            self._toplevel_paths = [toplevel.name for toplevel in new_root.children]
            for toplevel in new_root.children:
                self._notify("on_child_added", toplevel)

    @property
    def toplevels(self) -> list[FileInfo]:
        """The toplevel nodes, in the order they were added."""
        return list(self._root.children)

    @property
    def first_toplevel(self) -> FileInfo | None:
        """The first toplevel node, or None if the tree is empty."""
        return self._root.children[0] if self._root.children else None

    def is_toplevel(self, node: FileInfo | None) -> bool:
        """Check if ``node`` is a direct child of the pseudo root."""
        return node is not None and node.parent is self._root

    def contains(self, node: FileInfo | None) -> bool:
        """Check if ``node`` is the pseudo root or part of this tree."""
        return node is self._root or self._root.is_ancestor_of(node)

    def locate(self, path: str, include_aggregate: bool = False) -> FileInfo | None:
        """Find a node by its full path. See DirInfo.locate()."""
        with self._lock:
            return self._root.locate(path, include_aggregate)

    @property
    def cross_filesystems(self) -> bool:
        """Whether scans descend into directories on other filesystems.

        Changing it affects only jobs created afterwards.
        """
        return self._cross_filesystems

    @cross_filesystems.setter
    def cross_filesystems(self, value: bool) -> None:
        self._cross_filesystems = value

    @property
    def policy(self) -> ScanPolicy:
        """Snapshot of the current scan policy."""
        return ScanPolicy(cross_filesystems=self._cross_filesystems)

    @property
    def is_busy(self) -> bool:
        """Check if a scan is in progress (including one being aborted)."""
        return self._queue.is_busy

    @property
    def selection(self) -> FileInfo | None:
        """The currently selected node, or None."""
        return self._selection

    def wait(self, timeout: float | None = None) -> bool:
        """Block until no scan is in progress.

        Returns:
            True if the tree is idle, False if the timeout expired.
        """
        return self._queue.wait_idle(timeout)

    def run_pending(self) -> None:
        """Read all queued directories on the calling thread."""
        self._queue.run_until_idle()

    def _check_idle(self) -> None:
        if self._queue.is_busy:
            raise AlreadyBusyError("A scan is already in progress")

    def _check_member(self, node: FileInfo) -> None:
        if not self.contains(node):
            raise InvalidSubtreeError(f"{node!r} is not part of this tree")

    # -------------------------------------------------------------------------
    # Reading
    # -------------------------------------------------------------------------

    def start_reading(self, *paths: str | Path) -> None:
        """Start scanning one or more paths.

        The previous tree is cleared. Each path becomes a toplevel node;
        directories are read in the background and the call returns
        immediately.

        Raises:
            AlreadyBusyError: If a scan is already in progress.
            ValueError: If no path is given.
        """
        if not paths:
            raise ValueError("At least one path is required")

        with self._lock:
            self._check_idle()
            self.clear()
            self._toplevel_paths = [os.path.abspath(os.path.expanduser(p)) for p in paths]
            self._begin_scan()
            jobs = [
                job
                for path in self._toplevel_paths
                if (job := self._add_toplevel(path)) is not None
            ]
            self._submit(jobs)

    def _add_toplevel(self, path: str) -> ScanJob | None:
        try:
            st = self._filesystem.stat(path)
        except OSError as e:
            # Reading the directory reports the failure through its job
            logger.warning("Cannot stat %s: %s", path, e)
            st = None

        if st is not None and not st.is_dir:
            node: FileInfo = FileInfo(
                path,
                NodeKind.FILE,
                size=st.size,
                mtime=st.mtime,
                device=st.device,
                links=st.links,
            )
            self._root.attach_child(node)
            self._notify("on_child_added", node)
            return None

        directory = DirInfo(path, NodeKind.DIRECTORY)
        if st is not None:
            directory.size = st.size
            directory.mtime = st.mtime
            directory.device = st.device
            directory.links = st.links
        self._root.attach_child(directory)
        self._notify("on_child_added", directory)
        return ScanJob(directory, self.policy, self._filesystem)

    def _begin_scan(self) -> None:
        self._started_at = time.monotonic()
        self._dirs_read = 0
        self._notify("on_scan_starting")

    def _submit(self, jobs: list[ScanJob]) -> None:
        if not jobs:
            # Nothing to read: the scan is complete right away
            self._queue_finished()
            return
        for job in jobs:
            self._queue.add_job(job)

    def abort_reading(self) -> bool:
        """Abort the scan in progress.

        Queued directories are dropped. The directory being read is
        finished and keeps its entries, but its subdirectories are not
        read; they are left in read state aborted.

        Returns:
            True if a scan was aborted, False if none was running.
        """
        return self._queue.abort()

    def refresh(self, subtree: FileInfo | None = None) -> None:
        """Read a subtree again.

        The node itself stays valid; all its descendants are deleted
        before anything new is attached. A non-directory refreshes the
        directory it lives in. None, or the pseudo root, rereads all
        toplevel paths from scratch.

        Raises:
            AlreadyBusyError: If a scan is in progress.
            InvalidSubtreeError: If ``subtree`` is not part of this tree.
        """
        with self._lock:
            self._check_idle()
            if subtree is None or subtree is self._root:
                paths = list(self._toplevel_paths)
                if not paths:
                    logger.debug("Nothing to refresh")
                    return
                self.start_reading(*paths)
                return

            self._check_member(subtree)
            directory = self._refresh_target(subtree)
            if directory is None:
                self.start_reading(*self._toplevel_paths)
                return

            logger.info("Refreshing %s", directory.path)
            self._delete_children(directory)
            if directory.kind is NodeKind.EXCLUDED:
                directory.kind = NodeKind.DIRECTORY
            directory.read_state = ReadState.PENDING
            self._begin_scan()
            self._submit([ScanJob(directory, self.policy, self._filesystem)])

    def _refresh_target(self, node: FileInfo) -> DirInfo | None:
        current: FileInfo | None = node
        while current is not None and not (isinstance(current, DirInfo) and current.is_directory):
            current = current.parent
            if current is not None and current.is_pseudo_root:
                return None
        return current if isinstance(current, DirInfo) else None

    def _delete_children(self, directory: DirInfo) -> None:
        descendants = list(directory.iter_tree())[1:]
        if not descendants:
            return
        for node in descendants:
            self._notify("on_deleting_child", node)
        self._clear_selection_within(directory, include_self=False)
        for child in directory.clear_children():
            child.release()
        self._notify("on_children_deleted")

    # -------------------------------------------------------------------------
    # Job queue callbacks (called with the lock held)
    # -------------------------------------------------------------------------

    def _job_starting(self, job: ScanJob) -> None:
        directory = job.directory
        directory.read_state = ReadState.READING
        self._notify("on_directory_starting", directory)
        self._notify("on_progress", f"Reading {directory.path}")

    def _apply_result(self, job: ScanJob, result: JobResult) -> None:
        directory = job.directory
        if result.outcome is JobOutcome.FATAL_ERROR:
            directory.read_state = ReadState.ERROR
        else:
            for child in result.children:
                target = directory if child.is_dir_info else directory.ensure_dot_entry()
                target.attach_child(child)
                self._notify("on_child_added", child)
            directory.read_state = ReadState.FINISHED

        directory.finalize_local()
        self._dirs_read += 1
        self._notify("on_directory_finished", directory)
        self._notify("on_progress", f"Read {directory.path}")

    def _job_discarded(self, job: ScanJob) -> None:
        directory = job.directory
        if directory.read_state in (ReadState.PENDING, ReadState.READING):
            directory.read_state = ReadState.ABORTED

    def _queue_finished(self) -> None:
        elapsed = time.monotonic() - self._started_at
        logger.info("Scan finished: %d directories in %.2fs", self._dirs_read, elapsed)
        self._notify("on_progress", f"Finished. {self._dirs_read} directories in {elapsed:.1f}s")
        self._notify("on_scan_finished")

    def _queue_aborted(self) -> None:
        logger.info("Scan aborted after %d directories", self._dirs_read)
        self._notify("on_progress", "Aborted.")
        self._notify("on_scan_aborted")

    # -------------------------------------------------------------------------
    # Editing
    # -------------------------------------------------------------------------

    def clear(self) -> None:
        """Delete all toplevel nodes and reset the selection."""
        with self._lock:
            toplevels = list(self._root.children)
            if not toplevels:
                return
            for node in toplevels:
                self._queue.kill_subtree(node)
                self._notify("on_deleting_child", node)
            if self._selection is not None:
                self.select_item(None)
            for node in self._root.clear_children():
                node.release()
            self._notify("on_children_deleted")

    def delete_subtree(self, node: FileInfo) -> None:
        """Remove ``node`` and everything below it from the tree.

        Queued reads inside the subtree are dropped. If the selection
        was ``node`` or inside it, nothing is selected afterwards.

        Raises:
            InvalidSubtreeError: If ``node`` is the pseudo root or not part
                of this tree.
        """
        with self._lock:
            if node is self._root:
                raise InvalidSubtreeError("The pseudo root cannot be deleted")
            self._check_member(node)
            parent = node.parent
            assert parent is not None

            self._queue.kill_subtree(node)
            self._notify("on_deleting_child", node)
            self._clear_selection_within(node, include_self=True)
            parent.detach_child(node)
            node.release()

            if parent.is_aggregate and not parent.children and parent.parent is not None:
                parent.parent.detach_child(parent)
            if parent is self._root:
                self._toplevel_paths = [top.name for top in self._root.children]

            self._notify("on_children_deleted")

    def _clear_selection_within(self, node: FileInfo, *, include_self: bool) -> None:
        selection = self._selection
        if selection is None:
            return
        if node.is_ancestor_of(selection) or (include_self and selection is node):
            self.select_item(None)

    def select_item(self, node: FileInfo | None) -> None:
        """Select ``node`` (or nothing, if None).

        Listeners are notified on every call, even if the selection did
        not change.

        Raises:
            InvalidSubtreeError: If ``node`` is not part of this tree.
        """
        with self._lock:
            if node is not None:
                self._check_member(node)
            self._selection = node
            self._notify("on_selection_changed", node)

    # -------------------------------------------------------------------------
    # Cache files
    # -------------------------------------------------------------------------

    def write_cache(self, filename: str | Path) -> int:
        """Write the whole tree to a cache file.

        Returns:
            Number of nodes written.

        Raises:
            OSError: If the file cannot be written.
        """
        with self._lock:
            return cache.write_cache(self._root, Path(filename))

    def read_cache(self, filename: str | Path) -> None:
        """Replace the tree with the contents of a cache file.

        The current tree is kept unchanged if the file cannot be read.

        Raises:
            AlreadyBusyError: If a scan is in progress.
            CacheFormatError: If the file is not a valid cache file.
            OSError: If the file cannot be read.
        """
        with self._lock:
            self._check_idle()
        new_root = cache.read_cache(Path(filename))
        self.set_root(new_root)
