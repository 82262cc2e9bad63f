"""Exceptions raised by the tree coordinator and the cache codec.

Filesystem failures during a scan are not represented here: they are
the builtin ``FileNotFoundError``, ``PermissionError`` and ``OSError``,
and scan jobs recover from them locally by recording node state.
"""


class TreeError(Exception):
    """Base exception for directory tree errors."""


class AlreadyBusyError(TreeError):
    """Raised when a scan is requested while another one is in progress."""


class InvalidSubtreeError(TreeError):
    """Raised when an operation targets a node that is not part of this tree."""


class CacheFormatError(TreeError):
    """Raised when a cache file is corrupt or not a tree cache at all.

    Attributes:
        line: 1-based line number of the offending record, if known.
    """

    def __init__(self, message: str, line: int | None = None) -> None:
        if line is not None:
            message = f"line {line}: {message}"
        super().__init__(message)
        self.line = line
