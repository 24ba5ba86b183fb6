"""Read-only locations inside a git repository tree.

A :class:`GitLocation` addresses a path in the tree of one commit of a
(usually bare) repository, so a committed tree can be used as the source of
a synchronization.  Git keeps no per-file timestamps; every entry reports
the commit time as its modified time.  All mutating operations raise
:class:`~treesync.exceptions.LocationError`.
"""

from __future__ import annotations

import io
import os
from typing import BinaryIO, Iterator

from dulwich.errors import NotGitRepository
from dulwich.objects import Commit, Tag, Tree
from dulwich.repo import Repo

from .exceptions import LocationError
from .location import EntryKind, FileInfo, Location, _kind_from_mode


GIT_FILEMODE_TREE = 0o040000


def _normalize_path(path: str) -> str:
    """Strip leading/trailing slashes and reject ``.``/``..`` segments.

    The empty string addresses the root tree.
    """
    path = path.strip("/")
    if not path:
        return ""
    segments = path.split("/")
    for seg in segments:
        if not seg:
            raise ValueError(f"Empty segment in path: {path!r}")
        if seg in (".", ".."):
            raise ValueError(f"Invalid path segment: {seg!r}")
    return "/".join(segments)


class GitLocation(Location):
    """A path in the tree of a single commit.

    Use :func:`open_git_location` to resolve a ref and build the root.
    """

    def __init__(self, repo: Repo, tree_id: bytes, commit_time: int,
                 label: str, path: str = ""):
        self._repo = repo
        self._tree_id = tree_id
        self._commit_time = commit_time
        self._label = label
        self._path = path

    @property
    def uri(self) -> str:
        return f"{self._label}:{self._path}"

    @property
    def path(self) -> str:
        return self._path

    def child(self, name: str) -> GitLocation:
        path = f"{self._path}/{name}" if self._path else name
        return GitLocation(self._repo, self._tree_id, self._commit_time, self._label, path)

    def _lookup(self) -> tuple[int, bytes]:
        """Return ``(filemode, sha)`` of this path's tree entry."""
        if not self._path:
            return GIT_FILEMODE_TREE, self._tree_id
        mode, sha = GIT_FILEMODE_TREE, self._tree_id
        for seg in self._path.split("/"):
            tree = self._object(sha)
            if not isinstance(tree, Tree):
                raise LocationError("Not a directory", self.uri)
            try:
                mode, sha = tree[os.fsencode(seg)]
            except KeyError:
                raise LocationError("No such file or directory", self.uri) from None
        return mode, sha

    def _object(self, sha: bytes):
        try:
            return self._repo.object_store[sha]
        except KeyError:
            raise LocationError(f"Missing object {sha.decode()}", self.uri) from None

    def _info(self, name: str, mode: int, sha: bytes) -> FileInfo:
        kind = _kind_from_mode(mode)
        size = self._object(sha).raw_length() if kind == EntryKind.FILE else 0
        return FileInfo(
            kind=kind,
            name=name,
            display_name=os.fsencode(name).decode("utf-8", errors="replace"),
            size=size,
            modified_time=self._commit_time,
        )

    def info(self) -> FileInfo:
        mode, sha = self._lookup()
        name = self._path.rsplit("/", 1)[-1] if self._path else self._label
        return self._info(name, mode, sha)

    def iter_children(self) -> Iterator[tuple[GitLocation, FileInfo]]:
        mode, sha = self._lookup()
        tree = self._object(sha)
        if not isinstance(tree, Tree):
            raise LocationError("Not a directory", self.uri)
        for item in tree.iteritems():
            name = os.fsdecode(item.path)
            child = self.child(name)
            yield child, child._info(name, item.mode, item.sha)

    def open_read(self) -> BinaryIO:
        mode, sha = self._lookup()
        if _kind_from_mode(mode) != EntryKind.FILE:
            raise LocationError("Not a regular file", self.uri)
        return io.BytesIO(self._object(sha).as_raw_string())

    def close(self) -> None:
        """Close the underlying repository.

        The repository is shared with every child location, so close only
        the root once the synchronization is done.
        """
        self._repo.close()

    def _read_only(self, *args) -> None:
        raise LocationError("Git locations are read-only", self.uri)

    write_from = _read_only
    create_empty = _read_only
    delete = _read_only
    make_directory = _read_only
    set_modified_time = _read_only


def _resolve_commit(repo: Repo, ref: str | None) -> tuple[Commit, str]:
    """Resolve *ref* (branch, tag, or full commit hash) to a commit.

    ``None`` means the repository HEAD.  Returns ``(commit, label)``.
    """
    if ref is None:
        try:
            sha = repo.refs[b"HEAD"]
        except KeyError:
            raise LocationError("Repository has no HEAD commit", repo.path) from None
        target = repo.refs.read_ref(b"HEAD") or b""
        if target.startswith(b"ref: refs/heads/"):
            label = target[len(b"ref: refs/heads/"):].decode()
        else:
            label = sha.decode()[:7]
    else:
        sha = None
        ref_bytes = ref.encode()
        for candidate in (b"refs/heads/" + ref_bytes, b"refs/tags/" + ref_bytes):
            if candidate in repo.refs:
                sha = repo.refs[candidate]
                break
        if sha is None and len(ref_bytes) == 40 and ref_bytes in repo.object_store:
            sha = ref_bytes
        if sha is None:
            raise LocationError(f"Unknown ref: {ref}", repo.path)
        label = ref

    obj = repo.object_store[sha]
    while isinstance(obj, Tag):
        obj = repo.object_store[obj.object[1]]
    if not isinstance(obj, Commit):
        raise LocationError(f"Object {ref or 'HEAD'} is not a commit", repo.path)
    return obj, label


def open_git_location(repo_path: str, ref: str | None = None, path: str = "") -> GitLocation:
    """Return a :class:`GitLocation` for *path* at *ref* in *repo_path*.

    The returned location owns the open repository; close it, or use it as
    a context manager, once done.

    Raises:
        LocationError: The repository, ref or path could not be resolved.
    """
    try:
        repo = Repo(repo_path)
    except NotGitRepository as exc:
        raise LocationError(f"Not a git repository: {repo_path}", repo_path) from exc
    try:
        path = _normalize_path(path)
        commit, label = _resolve_commit(repo, ref)
    except ValueError as exc:
        repo.close()
        raise LocationError(f"Invalid repo path: {exc}", repo_path) from exc
    except LocationError:
        repo.close()
        raise
    return GitLocation(repo, commit.tree, commit.commit_time, label, path)
