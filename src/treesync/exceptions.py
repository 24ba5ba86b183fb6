"""Exceptions for treesync.

Every error carries a human-readable message and, where one is known, the
address of the location it concerns.  Callers up the stack add context with
:meth:`TreeSyncError.prefixed` instead of catching and re-raising a
different type, so the class of the original failure survives.
"""

from __future__ import annotations


class TreeSyncError(Exception):
    """Base class for all treesync failures.

    Attributes:
        message: Full human-readable message, including any context prefixes.
        uri: Address of the offending location, or ``None``.
    """

    def __init__(self, message: str, uri: str | None = None):
        super().__init__(message)
        self.message = message
        self.uri = uri

    def __str__(self) -> str:
        return self.message

    def prefixed(self, prefix: str) -> TreeSyncError:
        """Return a copy of this error with *prefix* prepended to the message."""
        return self.__class__(prefix + self.message, self.uri)


class InfoRetrievalError(TreeSyncError):
    """A required metadata attribute (name, display name) was not available."""


class DirectoryProtectionError(TreeSyncError):
    """Refused to replace a directory with a file without deletion mode."""


class LocationError(TreeSyncError):
    """An I/O operation on a location failed.

    Raised for failed metadata queries, enumeration, reads, writes,
    directory creation and timestamp updates.
    """

    @classmethod
    def from_os_error(cls, exc: OSError, uri: str) -> LocationError:
        """Build a location error from an :class:`OSError`."""
        reason = exc.strerror or str(exc)
        return cls(reason, uri)


class DeletionError(LocationError):
    """Removing a location from the filesystem failed."""
