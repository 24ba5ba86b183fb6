"""In-memory snapshots of filesystem subtrees.

:func:`build` walks a location once, top-down, and returns a tree of
:class:`Entry` objects describing each object's kind, metadata and (for
files) size and optional content checksum.  Each parent exclusively owns its
children; lookups are by name, never by position.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator

from .checksum import Checksum, file_checksum
from .exceptions import InfoRetrievalError, LocationError, TreeSyncError
from .location import EntryKind, FileInfo, Location


@dataclass(eq=False)
class Entry:
    """One node of a snapshot tree.

    Attributes:
        kind: :class:`~treesync.location.EntryKind` of the object.
        name: Raw, filesystem-exact name.
        display_name: Human-readable name (may differ from *name*).
        modified_time: Last-modified time in seconds since the epoch.
        location: Backing location; ``None`` once the entry is released.
        size: Size in bytes (files only).
        checksum: Content digest (files only, when requested at build time).
        children: Child entries keyed by raw name (directories only).
    """
    kind: EntryKind
    name: str
    display_name: str
    modified_time: int
    location: Location | None
    size: int = 0
    checksum: Checksum | None = None
    children: dict[str, Entry] = field(default_factory=dict)

    @property
    def is_file(self) -> bool:
        return self.kind == EntryKind.FILE

    @property
    def is_dir(self) -> bool:
        return self.kind == EntryKind.DIRECTORY

    @property
    def uri(self) -> str:
        return self.location.uri if self.location is not None else self.name

    def add_child(self, entry: Entry) -> None:
        """Insert *entry*, replacing any child with the same name."""
        self.children[entry.name] = entry

    def release(self) -> None:
        """Drop the backing location and the whole subtree."""
        for child in self.children.values():
            child.release()
        self.children.clear()
        self.location = None

    def to_dict(self) -> dict:
        """Describe the subtree as plain data (locations excluded)."""
        d: dict = {
            "kind": str(self.kind),
            "name": self.name,
            "modified_time": self.modified_time,
        }
        if self.is_file:
            d["size"] = self.size
            if self.checksum is not None:
                d["checksum"] = self.checksum.hex
        elif self.is_dir:
            d["children"] = {
                name: child.to_dict()
                for name, child in sorted(self.children.items())
            }
        return d


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------

def build(location: Location, want_checksum: bool = False) -> Entry:
    """Build a snapshot of the subtree rooted at *location*.

    Directories are enumerated without following symlinks, so a symlinked
    directory shows up as an ``OTHER`` entry and is never descended into.
    When *want_checksum* is true every file's content is digested.

    Raises:
        InfoRetrievalError: A required name attribute was missing.
        LocationError: Metadata retrieval, enumeration or checksumming
            failed; the message names the offending location.
    """
    try:
        info = location.info()
    except LocationError as exc:
        raise exc.prefixed(
            f"Failed to retrieve information about the file `{location.uri}': "
        ) from exc
    return _build_from_info(location, info, want_checksum)


def _iter_children(location: Location) -> Iterator[tuple[Location, FileInfo]]:
    try:
        yield from location.iter_children()
    except LocationError as exc:
        raise exc.prefixed(
            "Failed to retrieve information about the children of the "
            f"directory `{location.uri}': "
        ) from exc


def _build_from_info(location: Location, info: FileInfo, want_checksum: bool) -> Entry:
    uri = location.uri
    if info.name is None:
        raise InfoRetrievalError(
            f"Failed to retrieve information about the file `{uri}': "
            "Filename information missing",
            uri,
        )
    if info.display_name is None:
        raise InfoRetrievalError(
            f"Failed to retrieve information about the file `{uri}': "
            "Displayable filename information missing",
            uri,
        )

    entry = Entry(
        kind=info.kind,
        name=info.name,
        display_name=info.display_name,
        modified_time=info.modified_time,
        location=location,
    )

    if entry.kind == EntryKind.FILE:
        entry.size = info.size
        if want_checksum:
            try:
                entry.checksum = file_checksum(location)
            except LocationError as exc:
                raise exc.prefixed(
                    f"Failed to produce a checksum for the file `{uri}': "
                ) from exc

    elif entry.kind == EntryKind.DIRECTORY:
        for child_location, child_info in _iter_children(location):
            try:
                child = _build_from_info(child_location, child_info, want_checksum)
            except TreeSyncError as exc:
                raise exc.prefixed(
                    "Failed to retrieve information about a child of the "
                    f"directory `{uri}': "
                ) from exc
            entry.add_child(child)

    return entry


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------

def iter_tree_lines(entry: Entry, prefix: str | None = None) -> Iterator[str]:
    """Yield one descriptive line per entry of the subtree, depth first."""
    printed = f"{prefix}/{entry.display_name}" if prefix is not None else entry.display_name
    if entry.kind == EntryKind.FILE:
        line = f"{printed} (file, size: {entry.size}, modified: {entry.modified_time}"
        if entry.checksum is not None:
            line += f", {entry.checksum}"
        yield line + ")"
    elif entry.kind == EntryKind.DIRECTORY:
        yield f"{printed}/ (directory, modified: {entry.modified_time})"
        for name in sorted(entry.children):
            yield from iter_tree_lines(entry.children[name], printed)
    else:
        yield f"{printed} (other)"


def format_tree(entry: Entry) -> str:
    """Render the subtree as text, children sorted by name."""
    return "\n".join(iter_tree_lines(entry))
