"""Shared fixtures for treesync tests."""

import os

import pytest
from click.testing import CliRunner
from dulwich.objects import Blob, Commit, Tree
from dulwich.repo import Repo

from treesync import LocalLocation, build


T0 = 1_600_000_000
COMMIT_TIME = 1_700_000_000


def _make_tree(root, layout, mtime=T0):
    """Create *layout* under *root*.

    *layout* maps names to ``str``/``bytes`` (files) or nested dicts
    (directories).  Every created object gets modified time *mtime*.
    """
    root.mkdir(parents=True, exist_ok=True)
    for name, value in layout.items():
        p = root / name
        if isinstance(value, dict):
            _make_tree(p, value, mtime)
        else:
            p.write_bytes(value if isinstance(value, bytes) else value.encode())
            os.utime(p, (mtime, mtime))
    os.utime(root, (mtime, mtime))
    return root


def _read_tree(root):
    """Inverse of ``_make_tree``: symlinks come back as ``("link", target)``."""
    result = {}
    for p in sorted(root.iterdir()):
        if p.is_symlink():
            result[p.name] = ("link", os.readlink(p))
        elif p.is_dir():
            result[p.name] = _read_tree(p)
        else:
            result[p.name] = p.read_bytes()
    return result


@pytest.fixture
def make_tree():
    return _make_tree


@pytest.fixture
def read_tree():
    return _read_tree


@pytest.fixture
def snap():
    """Build a snapshot of a local path."""
    def _snap(path, checksum=False):
        return build(LocalLocation(path), checksum)
    return _snap


@pytest.fixture
def runner():
    return CliRunner()


# ---------------------------------------------------------------------------
# Git fixtures
# ---------------------------------------------------------------------------

def _add_tree(repo, layout):
    """Store *layout* (same shape as ``_make_tree``) as git objects; return tree id.

    ``("link", target)`` values become symlinks.
    """
    tree = Tree()
    for name, value in layout.items():
        if isinstance(value, dict):
            tree.add(name.encode(), 0o040000, _add_tree(repo, value))
            continue
        if isinstance(value, tuple):
            blob, mode = Blob.from_string(value[1].encode()), 0o120000
        else:
            data = value if isinstance(value, bytes) else value.encode()
            blob, mode = Blob.from_string(data), 0o100644
        repo.object_store.add_object(blob)
        tree.add(name.encode(), mode, blob.id)
    repo.object_store.add_object(tree)
    return tree.id


def _commit(repo, layout, branch="main", commit_time=COMMIT_TIME):
    c = Commit()
    c.tree = _add_tree(repo, layout)
    c.author = c.committer = b"Test <test@example.com>"
    c.author_time = c.commit_time = commit_time
    c.author_timezone = c.commit_timezone = 0
    c.message = b"snapshot\n"
    repo.object_store.add_object(c)
    repo.refs[b"refs/heads/" + branch.encode()] = c.id
    return c.id


@pytest.fixture
def git_repo(tmp_path):
    """Bare repo whose 'main' branch (HEAD) holds a small tree."""
    path = str(tmp_path / "src.git")
    repo = Repo.init_bare(path, mkdir=True)
    _commit(repo, {
        "readme.txt": "read me\n",
        "docs": {"guide.md": "# Guide\n", "api": {"index.md": "api"}},
        "link": ("link", "readme.txt"),
    })
    repo.refs.set_symbolic_ref(b"HEAD", b"refs/heads/main")
    repo.close()
    return path


@pytest.fixture
def commit():
    """Add a commit of a layout tree to a repo on a branch."""
    return _commit
