"""Filesystem access layer.

A :class:`Location` addresses one object in some filesystem and exposes the
handful of blocking operations the snapshot builder and synchronizer need.
:class:`LocalLocation` implements it for the local disk; the read-only git
view lives in :mod:`treesync.gitlocation`.
"""

from __future__ import annotations

import io
import os
import stat
import tempfile
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Iterator, NamedTuple
from urllib.parse import unquote, urlsplit

from .exceptions import DeletionError, LocationError


# ---------------------------------------------------------------------------
# Metadata
# ---------------------------------------------------------------------------

class EntryKind(str, Enum):
    """Kind of a filesystem object.

    Members: ``FILE``, ``DIRECTORY``, ``OTHER``.
    """
    FILE = "file"
    DIRECTORY = "directory"
    OTHER = "other"

    def __str__(self) -> str:          # noqa: D105
        return self.value


class FileInfo(NamedTuple):
    """Metadata reported for a location.

    ``name`` and ``display_name`` may be ``None`` when a backend cannot
    provide them; the snapshot builder rejects such entries.
    """

    kind: EntryKind
    name: str | None
    display_name: str | None
    size: int
    modified_time: int


_COPY_CHUNK_SIZE = 2 * 1024 * 1024


# ---------------------------------------------------------------------------
# Interface
# ---------------------------------------------------------------------------

class Location(ABC):
    """An addressable filesystem object.

    All operations block until they complete and raise
    :class:`~treesync.exceptions.LocationError` (carrying :attr:`uri`) on
    failure.
    """

    @property
    @abstractmethod
    def uri(self) -> str:
        """Address of this location, used in messages."""

    @abstractmethod
    def child(self, name: str) -> Location:
        """Return the location of the child called *name*."""

    @abstractmethod
    def info(self) -> FileInfo:
        """Query metadata without following symlinks."""

    @abstractmethod
    def iter_children(self) -> Iterator[tuple[Location, FileInfo]]:
        """Yield ``(location, info)`` for each child, not following symlinks."""

    @abstractmethod
    def open_read(self) -> BinaryIO:
        """Open the content for reading."""

    @abstractmethod
    def write_from(self, stream: BinaryIO) -> None:
        """Atomically create or replace the content with *stream*'s bytes."""

    def create_empty(self) -> None:
        """Create an empty file, replacing any existing file."""
        self.write_from(io.BytesIO(b""))

    @abstractmethod
    def delete(self) -> None:
        """Delete this object.  Directories must already be empty."""

    @abstractmethod
    def make_directory(self) -> None:
        """Create a directory at this location."""

    @abstractmethod
    def set_modified_time(self, modified_time: int) -> None:
        """Set the last-modified time (seconds since the epoch)."""

    def close(self) -> None:
        """Release resources held for this location and its children."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __str__(self) -> str:
        return self.uri

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.uri!r})"


# ---------------------------------------------------------------------------
# Local disk
# ---------------------------------------------------------------------------

def _display_name(name: str) -> str:
    """Return a printable form of a raw (surrogate-escaped) file name."""
    return os.fsencode(name).decode("utf-8", errors="replace")


def _new_file_mode(path: Path) -> int:
    """Permission bits for a file written at *path*.

    Keeps the mode of a file being replaced; otherwise applies the umask.
    """
    try:
        return stat.S_IMODE(os.lstat(path).st_mode)
    except OSError:
        pass
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


def _kind_from_mode(mode: int) -> EntryKind:
    if stat.S_ISREG(mode):
        return EntryKind.FILE
    if stat.S_ISDIR(mode):
        return EntryKind.DIRECTORY
    return EntryKind.OTHER


def _info_from_stat(name: str, st: os.stat_result) -> FileInfo:
    kind = _kind_from_mode(st.st_mode)
    return FileInfo(
        kind=kind,
        name=name,
        display_name=_display_name(name),
        size=st.st_size if kind == EntryKind.FILE else 0,
        modified_time=int(st.st_mtime),
    )


class LocalLocation(Location):
    """A path on the local disk."""

    def __init__(self, path: str | os.PathLike[str]):
        self._path = Path(os.path.abspath(os.fspath(path)))

    @property
    def path(self) -> Path:
        return self._path

    @property
    def uri(self) -> str:
        return str(self._path)

    def child(self, name: str) -> LocalLocation:
        return self.__class__(self._path / name)

    def _name(self) -> str:
        # Filesystem root has no basename
        return self._path.name or str(self._path)

    def info(self) -> FileInfo:
        try:
            st = os.lstat(self._path)
        except OSError as exc:
            raise LocationError.from_os_error(exc, self.uri) from exc
        return _info_from_stat(self._name(), st)

    def iter_children(self) -> Iterator[tuple[LocalLocation, FileInfo]]:
        try:
            with os.scandir(self._path) as it:
                for dent in it:
                    child = self.child(dent.name)
                    try:
                        st = dent.stat(follow_symlinks=False)
                    except OSError as exc:
                        raise LocationError.from_os_error(exc, child.uri) from exc
                    yield child, _info_from_stat(dent.name, st)
        except OSError as exc:
            raise LocationError.from_os_error(exc, self.uri) from exc

    def open_read(self) -> BinaryIO:
        try:
            return open(self._path, "rb")
        except OSError as exc:
            raise LocationError.from_os_error(exc, self.uri) from exc

    def write_from(self, stream: BinaryIO) -> None:
        parent = self._path.parent
        try:
            fd, tmp = tempfile.mkstemp(prefix=".treesync-", dir=parent)
        except OSError as exc:
            raise LocationError.from_os_error(exc, self.uri) from exc
        try:
            with os.fdopen(fd, "wb") as out:
                while True:
                    chunk = stream.read(_COPY_CHUNK_SIZE)
                    if not chunk:
                        break
                    out.write(chunk)
            os.chmod(tmp, _new_file_mode(self._path))
            os.replace(tmp, self._path)
        except OSError as exc:
            raise LocationError.from_os_error(exc, self.uri) from exc
        finally:
            # Gone after a successful replace
            if os.path.lexists(tmp):
                os.unlink(tmp)

    def delete(self) -> None:
        try:
            if self._path.is_dir() and not self._path.is_symlink():
                os.rmdir(self._path)
            else:
                os.unlink(self._path)
        except OSError as exc:
            raise DeletionError.from_os_error(exc, self.uri) from exc

    def make_directory(self) -> None:
        try:
            os.mkdir(self._path)
        except OSError as exc:
            raise LocationError.from_os_error(exc, self.uri) from exc

    def set_modified_time(self, modified_time: int) -> None:
        try:
            st = os.lstat(self._path)
            os.utime(self._path, (st.st_atime, modified_time))
        except OSError as exc:
            raise LocationError.from_os_error(exc, self.uri) from exc


def local_location(path_or_uri: str | os.PathLike[str]) -> LocalLocation:
    """Return a :class:`LocalLocation` for a path or a ``file://`` URI."""
    raw = os.fspath(path_or_uri)
    if raw.startswith("file://"):
        parts = urlsplit(raw)
        if parts.netloc not in ("", "localhost"):
            raise LocationError(f"Remote file URIs are not supported: {raw}", raw)
        raw = unquote(parts.path)
    return LocalLocation(raw)
