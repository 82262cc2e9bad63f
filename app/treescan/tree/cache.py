"""Tree cache file reading and writing.

A cache file is a JSON Lines snapshot of a whole tree. The first line
is a header naming the format and the toplevel paths; every following
line is one node in pre-order (a directory's children in order, then
its dot entry). Nesting is given by each record's depth, with depth 0
for toplevel nodes. Files whose name ends in ``.gz`` are gzip-compressed.
"""

import base64
import binascii
import gzip
import logging
import os
from collections.abc import Iterator
from datetime import UTC, datetime
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import IO, Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from treescan.tree.errors import CacheFormatError
from treescan.tree.models import (
    DIRECTORY_KINDS,
    DirInfo,
    FileInfo,
    NodeKind,
    ReadState,
    printable_name,
)

logger = logging.getLogger(__name__)

CACHE_FORMAT = "treescan-cache"
CACHE_VERSION = 1


class CacheHeader(BaseModel):
    """First line of a cache file.

    Attributes:
        format: Format marker, always ``treescan-cache``.
        version: Format version.
        created: ISO 8601 timestamp of when the file was written.
        toplevels: Full paths of the toplevel nodes.
    """

    model_config = ConfigDict(extra="forbid")

    format: Literal["treescan-cache"]
    version: Annotated[int, Field(ge=1, le=CACHE_VERSION)]
    created: str
    toplevels: list[str] = Field(default_factory=list)


class CacheRecord(BaseModel):
    """One node in a cache file.

    Attributes:
        depth: Nesting level; 0 for toplevel nodes.
        kind: Node kind (never ``pseudo_root``).
        name: Node name. Bytes that are not valid UTF-8 are replaced.
        raw_name: Base64 of the original name bytes, present only when
            the name is not valid UTF-8.
        size: Size in bytes.
        mtime: Modification time in seconds since the epoch.
        device: Device id.
        links: Hard link count.
        state: Read state, for directory nodes only.
    """

    model_config = ConfigDict(extra="forbid")

    depth: Annotated[int, Field(ge=0)]
    kind: NodeKind
    name: str
    raw_name: str | None = None
    size: Annotated[int, Field(ge=0)] = 0
    mtime: float = 0.0
    device: int = 0
    links: Annotated[int, Field(ge=0)] = 1
    state: ReadState | None = None

    @field_validator("raw_name")
    @classmethod
    def _check_raw_name(cls, value: str | None) -> str | None:
        if value is not None:
            try:
                base64.b64decode(value, validate=True)
            except binascii.Error as e:
                raise ValueError(f"raw_name is not base64: {e}") from e
        return value

    @classmethod
    def from_node(cls, node: FileInfo, depth: int) -> "CacheRecord":
        """Build the record for ``node`` at nesting level ``depth``."""
        name = node.name
        raw_name = None
        try:
            name.encode("utf-8")
        except UnicodeEncodeError:
            raw = os.fsencode(name)
            raw_name = base64.b64encode(raw).decode("ascii")
            name = raw.decode("utf-8", "replace")
        return cls(
            depth=depth,
            kind=node.kind,
            name=name,
            raw_name=raw_name,
            size=node.size,
            mtime=node.mtime,
            device=node.device,
            links=node.links,
            state=node.read_state if isinstance(node, DirInfo) else None,
        )

    def to_node(self) -> FileInfo:
        """Create a detached node from this record."""
        name = self.name
        if self.raw_name is not None:
            name = os.fsdecode(base64.b64decode(self.raw_name))
        if self.kind in DIRECTORY_KINDS:
            return DirInfo(
                name,
                self.kind,
                size=self.size,
                mtime=self.mtime,
                device=self.device,
                links=self.links,
                read_state=self.state or ReadState.FINISHED,
            )
        return FileInfo(
            name,
            self.kind,
            size=self.size,
            mtime=self.mtime,
            device=self.device,
            links=self.links,
        )


def _open(path: Path, mode: str) -> IO[str]:
    if path.suffix == ".gz":
        return gzip.open(path, mode + "t", encoding="utf-8")
    return open(path, mode, encoding="utf-8")


def _iter_records(node: FileInfo, depth: int) -> Iterator[CacheRecord]:
    yield CacheRecord.from_node(node, depth)
    if isinstance(node, DirInfo):
        for child in node.children:
            yield from _iter_records(child, depth + 1)
        if node.dot_entry is not None:
            yield from _iter_records(node.dot_entry, depth + 1)


def write_cache(root: DirInfo, path: Path) -> int:
    """Write the tree below ``root`` to a cache file.

    The file is written to a temporary file in the same directory first
    and then renamed over ``path``. The temporary file is removed if
    anything goes wrong.

    Args:
        root: Pseudo root of the tree.
        path: Destination file; gzip-compressed if it ends in ``.gz``.

    Returns:
        Number of node records written.

    Raises:
        OSError: If the file cannot be written.
    """
    header = CacheHeader(
        format=CACHE_FORMAT,
        version=CACHE_VERSION,
        created=datetime.now(UTC).isoformat(),
        toplevels=[printable_name(toplevel.name) for toplevel in root.children],
    )

    path.parent.mkdir(parents=True, exist_ok=True)
    count = 0
    tmp_path: Path | None = None
    try:
        with NamedTemporaryFile(
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp" + "".join(path.suffixes[-1:]),
            delete=False,
        ) as tmp:
            tmp_path = Path(tmp.name)
        with _open(tmp_path, "w") as f:
            f.write(header.model_dump_json() + "\n")
            for toplevel in root.children:
                for record in _iter_records(toplevel, 0):
                    f.write(record.model_dump_json(exclude_none=True) + "\n")
                    count += 1
        os.replace(str(tmp_path), str(path))
    except BaseException:
        if tmp_path is not None and tmp_path.exists():
            tmp_path.unlink()
        raise

    logger.info("Wrote %d nodes to cache file %s", count, path)
    return count


def read_cache(path: Path) -> DirInfo:
    """Read a cache file into a new tree.

    Args:
        path: Cache file to read.

    Returns:
        New pseudo root holding the cached toplevel nodes.

    Raises:
        CacheFormatError: If the file is not a valid cache file.
        OSError: If the file cannot be opened or read.
    """
    root = DirInfo.pseudo_root()
    # stack[d] is the node that receives records of depth d
    stack: list[FileInfo] = [root]
    header: CacheHeader | None = None
    line_num = 0

    try:
        with _open(path, "r") as f:
            for line_num, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                if header is None:
                    header = _parse_header(line, line_num)
                    continue
                record = _parse_record(line, line_num)
                _insert(stack, record, line_num)
    except gzip.BadGzipFile as e:
        raise CacheFormatError(f"Not a gzip file: {e}") from e
    except (EOFError, UnicodeDecodeError) as e:
        raise CacheFormatError(f"Truncated or undecodable data: {e}", line_num + 1) from e

    if header is None:
        raise CacheFormatError("Empty cache file")

    logger.info("Read %d toplevel nodes from cache file %s", len(root.children), path)
    return root


def _parse_header(line: str, line_num: int) -> CacheHeader:
    try:
        return CacheHeader.model_validate_json(line)
    except ValidationError as e:
        raise CacheFormatError(f"Invalid cache header: {e}", line_num) from e


def _parse_record(line: str, line_num: int) -> CacheRecord:
    try:
        record = CacheRecord.model_validate_json(line)
    except ValidationError as e:
        raise CacheFormatError(f"Invalid record: {e}", line_num) from e
    if record.kind is NodeKind.PSEUDO_ROOT:
        raise CacheFormatError("Unexpected pseudo root record", line_num)
    return record


def _insert(stack: list[FileInfo], record: CacheRecord, line_num: int) -> None:
    # stack holds the pseudo root plus the path to the previous record
    if record.depth >= len(stack):
        msg = f"Depth {record.depth} skips a level (previous depth {len(stack) - 2})"
        raise CacheFormatError(msg, line_num)

    parent = stack[record.depth]
    if not isinstance(parent, DirInfo):
        raise CacheFormatError(f"{parent.name!r} cannot hold children", line_num)

    node = record.to_node()
    try:
        parent.attach_child(node)
    except ValueError as e:
        raise CacheFormatError(str(e), line_num) from e

    del stack[record.depth + 1 :]
    stack.append(node)

