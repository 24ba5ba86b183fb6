from .checksum import Checksum, file_checksum
from .exceptions import (
    DeletionError,
    DirectoryProtectionError,
    InfoRetrievalError,
    LocationError,
    TreeSyncError,
)
from .gitlocation import GitLocation, open_git_location
from .location import EntryKind, FileInfo, LocalLocation, Location, local_location
from .snapshot import Entry, build, format_tree
from .sync import (
    CompareMode,
    SyncAction,
    SyncActionKind,
    SyncOptions,
    SyncReport,
    SyncWarning,
    delete_entry,
    synchronize,
)

__all__ = [
    "Checksum", "file_checksum",
    "TreeSyncError", "InfoRetrievalError", "DirectoryProtectionError",
    "LocationError", "DeletionError",
    "Location", "LocalLocation", "local_location", "EntryKind", "FileInfo",
    "GitLocation", "open_git_location",
    "Entry", "build", "format_tree",
    "CompareMode", "SyncOptions", "SyncReport", "SyncAction", "SyncActionKind",
    "SyncWarning", "synchronize", "delete_entry",
]
