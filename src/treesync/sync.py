"""Tree reconciliation: make a destination snapshot match a source snapshot.

:func:`synchronize` walks both snapshot trees depth first and applies the
filesystem mutations (create, replace content, delete) needed to make the
destination equivalent to the source under a :class:`SyncOptions` policy.
The destination tree is mutated in place alongside the filesystem; the
source tree is never modified.

The first unrecoverable error aborts the enclosing subtree and propagates.
Completed mutations are not rolled back, but each file write is an atomic
replace, so no destination file is left half-written.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Callable

from .checksum import checksums_differ
from .exceptions import (
    DeletionError,
    DirectoryProtectionError,
    LocationError,
)
from .location import EntryKind
from .snapshot import Entry, build

if TYPE_CHECKING:
    from .location import Location


logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------

class CompareMode(str, Enum):
    """How two files are judged different.

    Members: ``SIZE_ONLY``, ``SIZE_AND_TIME``, ``CHECKSUM_ONLY``.
    """
    SIZE_ONLY = "size-only"
    SIZE_AND_TIME = "size-and-time"
    CHECKSUM_ONLY = "checksum"

    def __str__(self) -> str:          # noqa: D105
        return self.value


@dataclass(frozen=True)
class SyncOptions:
    """Read-only policy threaded through a synchronization run.

    Attributes:
        compare: :class:`CompareMode` used for the file difference test.
        delete: Remove destination entries absent from the source, and
            allow a file to replace a directory.
    """
    compare: CompareMode = CompareMode.SIZE_AND_TIME
    delete: bool = False

    @property
    def want_checksum(self) -> bool:
        """``True`` if snapshots must carry content digests."""
        return self.compare == CompareMode.CHECKSUM_ONLY

    @property
    def check_timestamp(self) -> bool:
        return self.compare == CompareMode.SIZE_AND_TIME


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------

class SyncActionKind(str, Enum):
    """Kind of action recorded in a :class:`SyncReport`."""
    UPDATE = "update"
    DIRECTORY = "directory"
    DELETE = "delete"
    SKIP = "skip"

    def __str__(self) -> str:          # noqa: D105
        return self.value


@dataclass
class SyncAction:
    """A single action, in the order it happened.

    Attributes:
        path: Display path (``UPDATE``, ``DIRECTORY``) or location URI
            (``DELETE``, ``SKIP``).
        action: :class:`SyncActionKind` value.
    """
    path: str
    action: SyncActionKind


@dataclass
class SyncWarning:
    """A best-effort step that failed without aborting the run.

    Attributes:
        path: URI of the location concerned.
        error: Human-readable error message.
    """
    path: str
    error: str


@dataclass
class SyncReport:
    """What a synchronization run did.

    Pass an instance to :func:`synchronize` to keep the partial record of
    a run that raised.

    Attributes:
        actions: Every recorded action, in order.
        warnings: Non-fatal failures (timestamp propagation).
    """
    actions: list[SyncAction] = field(default_factory=list)
    warnings: list[SyncWarning] = field(default_factory=list)

    def _paths(self, kind: SyncActionKind) -> list[str]:
        return [a.path for a in self.actions if a.action == kind]

    @property
    def updated(self) -> list[str]:
        """Display paths of files whose content was transferred."""
        return self._paths(SyncActionKind.UPDATE)

    @property
    def directories(self) -> list[str]:
        """Display paths (with trailing ``/``) of created or changed directories."""
        return self._paths(SyncActionKind.DIRECTORY)

    @property
    def deleted(self) -> list[str]:
        """URIs of deleted locations."""
        return self._paths(SyncActionKind.DELETE)

    @property
    def skipped(self) -> list[str]:
        """URIs of non-regular source entries that were skipped."""
        return self._paths(SyncActionKind.SKIP)

    @property
    def in_sync(self) -> bool:
        """``True`` if nothing was transferred, created or deleted."""
        return not any(a.action != SyncActionKind.SKIP for a in self.actions)

    @property
    def total(self) -> int:
        """Number of updates, directory changes and deletions."""
        return sum(1 for a in self.actions if a.action != SyncActionKind.SKIP)

    def record(self, action: SyncActionKind, path: str) -> None:
        self.actions.append(SyncAction(path=path, action=action))


# ---------------------------------------------------------------------------
# Deletion
# ---------------------------------------------------------------------------

def delete_entry(entry: Entry, report: SyncReport | None = None) -> None:
    """Delete *entry* and its subtree from the filesystem, depth first.

    The entry is released whatever the outcome.  On failure the remaining
    siblings are left alone, children already removed stay removed, and a
    :class:`~treesync.exceptions.DeletionError` naming the failed location
    is raised.
    """
    location = entry.location
    uri = entry.uri
    try:
        for child in list(entry.children.values()):
            delete_entry(child, report)
        try:
            location.delete()
        except LocationError as exc:
            raise DeletionError(f"Failed to delete `{uri}': {exc.message}", uri) from exc
    finally:
        entry.release()
    logger.debug("Deleted %s", uri)
    if report is not None:
        report.record(SyncActionKind.DELETE, uri)


def _delete_unwanted(dest: Entry, src: Entry, report: SyncReport) -> None:
    """Delete children of *dest* that have no same-named child in *src*."""
    unwanted = [name for name in dest.children if name not in src.children]
    for name in unwanted:
        delete_entry(dest.children.pop(name), report)


# ---------------------------------------------------------------------------
# Creation helpers
# ---------------------------------------------------------------------------

def _create_empty_file(location: Location, options: SyncOptions) -> Entry:
    try:
        location.create_empty()
    except LocationError as exc:
        raise exc.prefixed(f"Failed to create the file `{location.uri}': ") from exc
    return build(location, options.want_checksum)


def _create_directory(location: Location, options: SyncOptions) -> Entry:
    try:
        location.make_directory()
    except LocationError as exc:
        raise exc.prefixed(f"Failed to create the directory `{location.uri}': ") from exc
    logger.debug("Created directory %s", location.uri)
    return build(location, options.want_checksum)


def _replace_entry(
    dest: Entry,
    parent: Entry | None,
    create: Callable[[Location], Entry],
    report: SyncReport,
) -> Entry:
    """Delete *dest* and create a fresh entry of another kind in its place.

    *parent*'s children are kept consistent with the filesystem at every
    step, including when deletion or creation fails.
    """
    location = dest.location
    if parent is not None:
        del parent.children[dest.name]
    delete_entry(dest, report)
    new = create(location)
    if parent is not None:
        parent.add_child(new)
    return new


def _propagate_modified_time(dest: Entry, src: Entry, report: SyncReport) -> None:
    """Copy *src*'s modified time onto *dest*; failures become report warnings."""
    try:
        dest.location.set_modified_time(src.modified_time)
    except LocationError as exc:
        logger.debug("Could not set modified time of %s: %s", dest.uri, exc.message)
        report.warnings.append(SyncWarning(path=dest.uri, error=exc.message))
        return
    dest.modified_time = src.modified_time


def _join(prefix: str | None, name: str) -> str:
    return f"{prefix}/{name}" if prefix is not None else name


def _skip(src: Entry, report: SyncReport) -> None:
    logger.debug("Skipping non-regular file %s", src.uri)
    report.record(SyncActionKind.SKIP, src.uri)


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------

def files_differ(dest: Entry, src: Entry, compare: CompareMode) -> bool:
    """Return ``True`` if two file entries differ under *compare*."""
    if compare == CompareMode.CHECKSUM_ONLY:
        return checksums_differ(dest.checksum, src.checksum)
    if dest.size != src.size:
        return True
    return compare == CompareMode.SIZE_AND_TIME and dest.modified_time != src.modified_time


def _sync_file(
    dest: Entry,
    src: Entry,
    prefix: str | None,
    forced: bool,
    options: SyncOptions,
    report: SyncReport,
) -> None:
    if not forced and not files_differ(dest, src, options.compare):
        return

    try:
        with src.location.open_read() as stream:
            dest.location.write_from(stream)
    except LocationError as exc:
        raise exc.prefixed(f"Failed to update `{dest.uri}' with `{src.uri}': ") from exc
    except OSError as exc:
        raise LocationError(
            f"Failed to update `{dest.uri}' with `{src.uri}': {exc}", dest.uri
        ) from exc

    logger.debug("Copied %s -> %s", src.uri, dest.uri)
    report.record(SyncActionKind.UPDATE, _join(prefix, dest.display_name))
    dest.size = src.size
    dest.checksum = src.checksum
    _propagate_modified_time(dest, src, report)


# ---------------------------------------------------------------------------
# Directories
# ---------------------------------------------------------------------------

def _sync_directory(
    dest: Entry,
    src: Entry,
    prefix: str | None,
    forced: bool,
    options: SyncOptions,
    report: SyncReport,
) -> None:
    dest_prefix = _join(prefix, dest.display_name)

    if forced or (options.check_timestamp and dest.modified_time != src.modified_time):
        report.record(SyncActionKind.DIRECTORY, dest_prefix + "/")

    for name, src_child in src.children.items():
        dest_child = dest.children.get(name)
        if dest_child is not None:
            _reconcile(dest_child, src_child, dest_prefix, dest, options, report)
            continue

        if src_child.kind == EntryKind.FILE:
            new = _create_empty_file(dest.location.child(name), options)
            dest.add_child(new)
            _sync_file(new, src_child, dest_prefix, True, options, report)
        elif src_child.kind == EntryKind.DIRECTORY:
            new = _create_directory(dest.location.child(name), options)
            dest.add_child(new)
            _sync_directory(new, src_child, dest_prefix, True, options, report)
        else:
            _skip(src_child, report)

    _propagate_modified_time(dest, src, report)


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

def _reconcile(
    dest: Entry,
    src: Entry,
    prefix: str | None,
    parent: Entry | None,
    options: SyncOptions,
    report: SyncReport,
) -> Entry:
    """Make *dest* match *src*; return the entry now standing for *dest*.

    *parent* is *dest*'s parent in the destination tree (``None`` at the
    root) and is updated when *dest* has to be replaced.
    """
    if src.kind == EntryKind.OTHER:
        _skip(src, report)
        return dest

    forced = False

    if src.kind == EntryKind.FILE:
        if dest.kind == EntryKind.DIRECTORY and not options.delete:
            raise DirectoryProtectionError(
                f"Refusing to replace the directory `{dest.uri}' with the file "
                f"`{src.uri}': Could cause major data loss if the request was "
                "not intentional, enable deletion mode (--delete) to override "
                "this behavior",
                dest.uri,
            )
        if dest.kind != EntryKind.FILE:
            dest = _replace_entry(
                dest, parent, lambda loc: _create_empty_file(loc, options), report,
            )
            forced = True
        _sync_file(dest, src, prefix, forced, options, report)
        return dest

    if dest.kind != EntryKind.DIRECTORY:
        dest = _replace_entry(
            dest, parent, lambda loc: _create_directory(loc, options), report,
        )
        forced = True
    if options.delete:
        _delete_unwanted(dest, src, report)
    _sync_directory(dest, src, prefix, forced, options, report)
    return dest


def synchronize(
    dest_root: Entry,
    src_root: Entry,
    options: SyncOptions | None = None,
    report: SyncReport | None = None,
) -> Entry:
    """Make the destination tree equivalent to the source tree.

    Both roots come from :func:`~treesync.snapshot.build`.  The destination
    tree is mutated in place; the returned entry is the destination root,
    which differs from *dest_root* only when the root itself had to be
    replaced by an entry of another kind.

    If *src_root* is a file and *dest_root* a directory, the file is
    synchronized *into* the directory under its own name rather than
    replacing it.

    Raises:
        DirectoryProtectionError: A file would replace a directory and
            ``options.delete`` is false.  Nothing was changed for that entry.
        LocationError: A filesystem operation failed.
    """
    if options is None:
        options = SyncOptions()
    if report is None:
        report = SyncReport()

    if src_root.kind == EntryKind.FILE and dest_root.kind == EntryKind.DIRECTORY:
        target = dest_root.children.get(src_root.name)
        if target is None:
            target = _create_empty_file(dest_root.location.child(src_root.name), options)
            dest_root.add_child(target)
        _reconcile(target, src_root, dest_root.display_name, dest_root, options, report)
        return dest_root

    return _reconcile(dest_root, src_root, None, None, options, report)
