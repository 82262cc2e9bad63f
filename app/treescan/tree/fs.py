"""Filesystem primitives used by scan jobs.

Scan jobs need exactly two operations from the filesystem: listing a
directory's entry names and reading one entry's metadata. Both are
behind the FileSystem interface so that scans can run against other
sources than the local disk.
"""

import os
import stat
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum


class EntryType(str, Enum):
    """Type of a filesystem entry as reported by stat.

    Attributes:
        FILE: Regular file.
        DIRECTORY: Directory.
        SYMLINK: Symbolic link (never followed).
        OTHER: Device, FIFO, socket or anything else.
    """

    FILE = "file"
    DIRECTORY = "directory"
    SYMLINK = "symlink"
    OTHER = "other"


@dataclass(frozen=True, slots=True)
class StatResult:
    """Metadata of a single filesystem entry.

    Attributes:
        entry_type: Kind of entry.
        size: Size in bytes.
        mtime: Last modification time (seconds since the epoch).
        device: Id of the device the entry resides on.
        links: Hard link count.
    """

    entry_type: EntryType
    size: int
    mtime: float
    device: int
    links: int = 1

    @property
    def is_dir(self) -> bool:
        """Check if the entry is a directory."""
        return self.entry_type is EntryType.DIRECTORY


class FileSystem(ABC):
    """Abstract source of directory listings and entry metadata.

    Both methods raise ``FileNotFoundError``, ``PermissionError`` or
    another ``OSError`` when the path cannot be read.
    """

    @abstractmethod
    def list_dir(self, path: str) -> list[str]:
        """Return the names of the entries in directory ``path``.

        The special entries ``.`` and ``..`` are never included.
        """

    @abstractmethod
    def stat(self, path: str) -> StatResult:
        """Return the metadata of ``path`` without following symlinks."""


class LocalFileSystem(FileSystem):
    """FileSystem backed by the local operating system."""

    def list_dir(self, path: str) -> list[str]:
        with os.scandir(path) as entries:
            return [entry.name for entry in entries]

    def stat(self, path: str) -> StatResult:
        st = os.lstat(path)
        return StatResult(
            entry_type=_entry_type(st.st_mode),
            size=st.st_size,
            mtime=st.st_mtime,
            device=st.st_dev,
            links=st.st_nlink,
        )


def _entry_type(mode: int) -> EntryType:
    if stat.S_ISDIR(mode):
        return EntryType.DIRECTORY
    if stat.S_ISLNK(mode):
        return EntryType.SYMLINK
    if stat.S_ISREG(mode):
        return EntryType.FILE
    return EntryType.OTHER
