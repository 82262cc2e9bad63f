"""Directory tree model and scanning machinery.

This module exports the node model, the coordinator and the listener
interface used throughout the application.
"""

from treescan.tree.coordinator import DirTree
from treescan.tree.errors import (
    AlreadyBusyError,
    CacheFormatError,
    InvalidSubtreeError,
    TreeError,
)
from treescan.tree.fs import EntryType, FileSystem, LocalFileSystem, StatResult
from treescan.tree.job import JobOutcome, JobResult, ScanJob, ScanPolicy
from treescan.tree.listener import QueuedListener, TreeListener
from treescan.tree.models import (
    DOT_ENTRY_NAME,
    DirInfo,
    FileInfo,
    NodeKind,
    ReadState,
    Totals,
)
from treescan.tree.queue import JobQueue, QueueState

__all__ = [
    "DOT_ENTRY_NAME",
    "AlreadyBusyError",
    "CacheFormatError",
    "DirInfo",
    "DirTree",
    "EntryType",
    "FileInfo",
    "FileSystem",
    "InvalidSubtreeError",
    "JobOutcome",
    "JobQueue",
    "JobResult",
    "LocalFileSystem",
    "NodeKind",
    "QueueState",
    "QueuedListener",
    "ReadState",
    "ScanJob",
    "ScanPolicy",
    "StatResult",
    "Totals",
    "TreeError",
    "TreeListener",
]
