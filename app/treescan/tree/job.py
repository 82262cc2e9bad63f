"""Scan jobs: reading one directory level.

A ScanJob reads the immediate entries of one directory and turns them
into detached child nodes plus follow-up jobs for the subdirectories
found. It never touches the tree itself; the job queue's owner attaches
the produced nodes, so only one writer ever mutates the tree.
"""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

from treescan.tree.fs import FileSystem, LocalFileSystem
from treescan.tree.models import DirInfo, FileInfo, NodeKind, ReadState

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ScanPolicy:
    """Tree-wide scan settings, snapshotted by each job at creation.

    Attributes:
        cross_filesystems: Descend into directories on other devices.
    """

    cross_filesystems: bool = False


class JobOutcome(str, Enum):
    """Result classification of a scan job.

    Attributes:
        SUCCESS: All entries were read.
        PARTIAL_ERROR: Some entries could not be read; they are error nodes.
        FATAL_ERROR: The directory itself could not be listed.
    """

    SUCCESS = "success"
    PARTIAL_ERROR = "partial_error"
    FATAL_ERROR = "fatal_error"


@dataclass(slots=True)
class JobResult:
    """Everything a scan job produced.

    Attributes:
        children: New, not yet attached nodes in discovery order.
        sub_jobs: Jobs for the subdirectories among ``children``.
        outcome: Overall outcome of the job.
        errors: Names of entries (or the directory itself) that failed.
    """

    children: list[FileInfo] = field(default_factory=list)
    sub_jobs: list["ScanJob"] = field(default_factory=list)
    outcome: JobOutcome = JobOutcome.SUCCESS
    errors: list[str] = field(default_factory=list)


class ScanJob:
    """Unit of work reading one directory's immediate entries.

    Args:
        directory: Directory node to read.
        policy: Scan policy in effect when the job was created.
        filesystem: Source of listings and metadata. Defaults to the
            local filesystem.
    """

    def __init__(
        self,
        directory: DirInfo,
        policy: ScanPolicy,
        filesystem: FileSystem | None = None,
    ) -> None:
        self.directory = directory
        self.policy = policy
        self.filesystem = filesystem if filesystem is not None else LocalFileSystem()
        # Set when the directory's subtree is deleted while the job is queued or running
        self.killed = False

    def __repr__(self) -> str:
        return f"<ScanJob {self.directory.path!r}>"

    def execute(self) -> JobResult:
        """Read the directory and build its child nodes.

        Errors for single entries are recorded as ``error`` nodes; a
        directory that cannot be listed at all yields no children and
        the ``fatal_error`` outcome. Neither propagates.

        Returns:
            JobResult with detached children and follow-up jobs.
        """
        dir_path = self.directory.path
        result = JobResult()

        try:
            names = self.filesystem.list_dir(dir_path)
        except OSError as e:
            logger.warning("Cannot read directory %s: %s", dir_path, e)
            result.outcome = JobOutcome.FATAL_ERROR
            result.errors.append(dir_path)
            return result

        for name in names:
            child = self._read_entry(dir_path, name, result)
            result.children.append(child)

        if result.errors:
            result.outcome = JobOutcome.PARTIAL_ERROR
        return result

    def _read_entry(self, dir_path: str, name: str, result: JobResult) -> FileInfo:
        entry_path = os.path.join(dir_path, name)
        try:
            st = self.filesystem.stat(entry_path)
        except OSError as e:
            logger.debug("Cannot stat %s: %s", entry_path, e)
            result.errors.append(name)
            return FileInfo(name, NodeKind.ERROR)

        if not st.is_dir:
            return FileInfo(
                name,
                NodeKind.FILE,
                size=st.size,
                mtime=st.mtime,
                device=st.device,
                links=st.links,
            )

        if not self.policy.cross_filesystems and st.device != self.directory.device:
            logger.debug("Not crossing filesystem boundary at %s", entry_path)
            return DirInfo(
                name,
                NodeKind.EXCLUDED,
                mtime=st.mtime,
                device=st.device,
                links=st.links,
                read_state=ReadState.FINISHED,
            )

        subdir = DirInfo(
            name,
            NodeKind.DIRECTORY,
            size=st.size,
            mtime=st.mtime,
            device=st.device,
            links=st.links,
        )
        result.sub_jobs.append(ScanJob(subdir, self.policy, self.filesystem))
        return subdir
