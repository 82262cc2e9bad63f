"""Node model for scanned directory trees.

This module defines the in-memory tree built by directory scans: plain
file nodes, directory nodes with lazily recomputed aggregate totals,
the pseudo root holding the toplevel scanned paths, and the aggregate
("dot entry") pseudo-child that groups a directory's non-directory
entries.

Ownership flows strictly from parent to child through the child
collections. Parent back-references are weak, so a detached subtree
never keeps its former parent alive.
"""

from __future__ import annotations

import os
import weakref
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum

# Conventional name of the aggregate pseudo-child
DOT_ENTRY_NAME = "<Files>"


def printable_name(name: str) -> str:
    """Return ``name`` with filename bytes that are not UTF-8 replaced by U+FFFD.

    Names read from disk keep undecodable bytes as lone surrogates, which
    cannot be written to UTF-8 text streams.
    """
    return os.fsencode(name).decode("utf-8", "replace")


class NodeKind(str, Enum):
    """Kind of a tree node.

    Attributes:
        FILE: Plain non-directory entry (regular file, symlink, device, ...).
        DIRECTORY: Directory that is (or will be) read by a scan job.
        PSEUDO_ROOT: Synthetic top-of-tree node without filesystem counterpart.
        AGGREGATE: Synthetic child grouping a directory's non-directory entries.
        EXCLUDED: Directory on another filesystem that was not descended into.
        ERROR: Entry whose metadata could not be read.
    """

    FILE = "file"
    DIRECTORY = "directory"
    PSEUDO_ROOT = "pseudo_root"
    AGGREGATE = "aggregate"
    EXCLUDED = "excluded"
    ERROR = "error"


class ReadState(str, Enum):
    """Read progress of a directory node.

    Transitions are monotonic: PENDING -> READING -> FINISHED, ABORTED or
    ERROR. Only an explicit refresh resets a node to PENDING.
    """

    PENDING = "pending"
    READING = "reading"
    FINISHED = "finished"
    ABORTED = "aborted"
    ERROR = "error"


# Kinds that are backed by a DirInfo
DIRECTORY_KINDS: frozenset[NodeKind] = frozenset(
    {NodeKind.DIRECTORY, NodeKind.PSEUDO_ROOT, NodeKind.AGGREGATE, NodeKind.EXCLUDED}
)


@dataclass(frozen=True, slots=True)
class Totals:
    """Aggregate totals of a subtree.

    Attributes:
        size: Sum of the sizes of all descendant plain files in bytes.
        items: Number of descendant nodes (aggregate nodes not counted).
        subdirs: Number of descendant directories (aggregate nodes not counted).
    """

    size: int = 0
    items: int = 0
    subdirs: int = 0


EMPTY_TOTALS = Totals()


class FileInfo:
    """A node in the scanned tree.

    Args:
        name: Entry name. For toplevel nodes this is the full scanned path.
        kind: Node kind.
        size: Size in bytes as reported by the filesystem.
        mtime: Last modification time (seconds since the epoch).
        device: Device id the entry resides on.
        links: Hard link count.
    """

    __slots__ = ("name", "kind", "size", "mtime", "device", "links", "_parent_ref", "__weakref__")

    def __init__(
        self,
        name: str,
        kind: NodeKind = NodeKind.FILE,
        *,
        size: int = 0,
        mtime: float = 0.0,
        device: int = 0,
        links: int = 1,
    ) -> None:
        self.name = name
        self.kind = kind
        self.size = size
        self.mtime = mtime
        self.device = device
        self.links = links
        self._parent_ref: weakref.ReferenceType[DirInfo] | None = None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.kind.value} {self.path!r}>"

    @property
    def parent(self) -> DirInfo | None:
        """Return the parent node, or None for the root and detached nodes."""
        if self._parent_ref is None:
            return None
        return self._parent_ref()

    def _set_parent(self, parent: DirInfo | None) -> None:
        self._parent_ref = weakref.ref(parent) if parent is not None else None

    @property
    def is_dir_info(self) -> bool:
        """Check if this node can hold children."""
        return False

    @property
    def is_aggregate(self) -> bool:
        """Check if this node is an aggregate (dot entry) node."""
        return self.kind is NodeKind.AGGREGATE

    @property
    def is_pseudo_root(self) -> bool:
        """Check if this node is the pseudo root."""
        return self.kind is NodeKind.PSEUDO_ROOT

    @property
    def is_directory(self) -> bool:
        """Check if this node stands for a real filesystem directory."""
        return self.kind in (NodeKind.DIRECTORY, NodeKind.EXCLUDED)

    @property
    def totals(self) -> Totals:
        """Aggregate totals of this node's descendants.

        A leaf has no descendants; its own size counts only towards its
        parent, and only when it is a plain file.
        """
        return EMPTY_TOTALS

    @property
    def own_size(self) -> int:
        """Size this node contributes to its ancestors' totals."""
        return self.size if self.kind is NodeKind.FILE else 0

    @property
    def path(self) -> str:
        """Full path of this node.

        Built from the toplevel node's name (the scanned path) and the
        names below it. Aggregate nodes are transparent: files grouped
        under a dot entry report their directory's path as prefix.
        """
        parent = self.parent
        if parent is not None and parent.is_aggregate:
            parent = parent.parent
        if parent is None or parent.is_pseudo_root:
            return self.name
        return f"{parent.path.rstrip('/')}/{self.name}"

    @property
    def depth(self) -> int:
        """Number of ancestors between this node and the pseudo root."""
        depth = 0
        node = self.parent
        while node is not None and not node.is_pseudo_root:
            depth += 1
            node = node.parent
        return depth

    def is_ancestor_of(self, other: FileInfo | None) -> bool:
        """Check if this node is a strict ancestor of ``other``."""
        node = other.parent if other is not None else None
        while node is not None:
            if node is self:
                return True
            node = node.parent
        return False

    def iter_tree(self) -> Iterator[FileInfo]:
        """Yield this node and all descendants in pre-order."""
        yield self

    def release(self) -> None:
        """Drop the parent reference of this node."""
        self._parent_ref = None


class DirInfo(FileInfo):
    """A node that owns child nodes.

    Used for real directories, the pseudo root and aggregate nodes.
    Totals are cached and recomputed lazily: every mutation marks this
    node and its ancestors dirty, and the next read of ``totals``
    recomputes only the dirty part of the subtree.

    Invariant: a dirty node's ancestors are dirty as well, so
    invalidation stops at the first ancestor that is already dirty.
    """

    __slots__ = ("children", "dot_entry", "read_state", "_totals", "_dirty")

    def __init__(
        self,
        name: str,
        kind: NodeKind = NodeKind.DIRECTORY,
        *,
        size: int = 0,
        mtime: float = 0.0,
        device: int = 0,
        links: int = 1,
        read_state: ReadState = ReadState.PENDING,
    ) -> None:
        super().__init__(name, kind, size=size, mtime=mtime, device=device, links=links)
        self.children: list[FileInfo] = []
        self.dot_entry: DirInfo | None = None
        self.read_state = read_state
        self._totals: Totals = EMPTY_TOTALS
        self._dirty = True

    @classmethod
    def pseudo_root(cls) -> DirInfo:
        """Create an empty pseudo root."""
        return cls("", NodeKind.PSEUDO_ROOT, read_state=ReadState.FINISHED)

    @classmethod
    def aggregate(cls) -> DirInfo:
        """Create an empty aggregate (dot entry) node."""
        return cls(DOT_ENTRY_NAME, NodeKind.AGGREGATE, read_state=ReadState.FINISHED)

    @property
    def is_dir_info(self) -> bool:
        return True

    @property
    def is_dirty(self) -> bool:
        """Check if the cached totals need recomputation."""
        return self._dirty

    @property
    def has_subdirectories(self) -> bool:
        """Check if any direct child is a directory node."""
        return any(child.is_dir_info for child in self.children)

    def invalidate(self) -> None:
        """Mark the cached totals of this node and its ancestors stale."""
        node: DirInfo | None = self
        while node is not None and not node._dirty:
            node._dirty = True
            node = node.parent

    @property
    def totals(self) -> Totals:
        if self._dirty:
            self._totals = self._recalc()
            self._dirty = False
        return self._totals

    def _recalc(self) -> Totals:
        size = items = subdirs = 0
        for child in self.children:
            sub = child.totals
            size += child.own_size + sub.size
            items += 1 + sub.items
            subdirs += sub.subdirs + (1 if child.is_directory else 0)
        if self.dot_entry is not None:
            sub = self.dot_entry.totals
            size += sub.size
            items += sub.items
            subdirs += sub.subdirs
        return Totals(size=size, items=items, subdirs=subdirs)

    def attach_child(self, child: FileInfo) -> None:
        """Append ``child`` to this node and take ownership of it.

        An aggregate node becomes this node's dot entry instead of a
        regular child. Duplicate names are not checked.

        Raises:
            ValueError: If ``child`` already has a parent, or an aggregate
                node is attached where a dot entry already exists.
        """
        if child.parent is not None:
            msg = f"{child.name!r} is already attached to {child.parent.path!r}"
            raise ValueError(msg)
        if isinstance(child, DirInfo) and child.is_aggregate:
            if self.dot_entry is not None:
                msg = f"{self.path!r} already has an aggregate node"
                raise ValueError(msg)
            self.dot_entry = child
        else:
            self.children.append(child)
        child._set_parent(self)
        self.invalidate()

    def detach_child(self, child: FileInfo) -> bool:
        """Remove ``child`` from this node.

        Returns:
            True if the child was removed, False if it is not a child of
            this node (nothing is changed in that case).
        """
        if child is self.dot_entry:
            self.dot_entry = None
        else:
            for index, candidate in enumerate(self.children):
                if candidate is child:
                    del self.children[index]
                    break
            else:
                return False
        child._set_parent(None)
        self.invalidate()
        return True

    def ensure_dot_entry(self) -> DirInfo:
        """Return the dot entry, creating it if necessary."""
        if self.dot_entry is None:
            self.attach_child(DirInfo.aggregate())
        assert self.dot_entry is not None
        return self.dot_entry

    def finalize_local(self) -> None:
        """Clean up the dot entry after this directory level was read.

        A directory without subdirectories does not need a separate
        group for its files: they are moved up into the directory
        itself. An empty dot entry is always dropped.
        """
        dot = self.dot_entry
        if dot is None:
            return
        if not self.has_subdirectories:
            for child in list(dot.children):
                dot.detach_child(child)
                self.attach_child(child)
        if not dot.children:
            self.detach_child(dot)

    def locate(self, path: str, include_aggregate: bool = False) -> FileInfo | None:
        """Find a descendant by its ``/``-separated path.

        On the pseudo root, a toplevel node whose name is a full path
        matches by prefix; otherwise the path is resolved relative to
        this node, one name per segment.

        Args:
            path: Path to resolve.
            include_aggregate: Whether the dot entry may be matched by its
                conventional name ``<Files>``.

        Returns:
            The matching node, or None if any segment is unmatched.
        """
        if self.is_pseudo_root:
            for toplevel in self.children:
                if path == toplevel.name:
                    return toplevel
                prefix = toplevel.name.rstrip("/") + "/"
                if toplevel.name and path.startswith(prefix):
                    rest = path[len(prefix) :]
                    if isinstance(toplevel, DirInfo):
                        found = toplevel.locate(rest, include_aggregate)
                        if found is not None:
                            return found

        node: FileInfo = self
        for segment in path.split("/"):
            if not segment:
                continue
            if not isinstance(node, DirInfo):
                return None
            match = node._find_child(segment, include_aggregate)
            if match is None:
                return None
            node = match
        return node if node is not self else None

    def _find_child(self, name: str, include_aggregate: bool) -> FileInfo | None:
        for child in self.children:
            if child.name == name:
                return child
        dot = self.dot_entry
        if dot is None:
            return None
        if name == DOT_ENTRY_NAME:
            return dot if include_aggregate else None
        return dot._find_child(name, include_aggregate)

    def iter_tree(self) -> Iterator[FileInfo]:
        yield self
        for child in self.children:
            yield from child.iter_tree()
        if self.dot_entry is not None:
            yield from self.dot_entry.iter_tree()

    def clear_children(self) -> list[FileInfo]:
        """Detach all children and the dot entry.

        Returns:
            The detached nodes, in the order they were held.
        """
        removed: list[FileInfo] = list(self.children)
        if self.dot_entry is not None:
            removed.append(self.dot_entry)
        for child in removed:
            self.detach_child(child)
        return removed

    def release(self) -> None:
        """Release this subtree, walking down from this node."""
        for child in self.clear_children():
            child.release()
        super().release()
