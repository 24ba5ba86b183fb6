"""Tests for read-only git tree locations."""

import io
import os

import pytest
from dulwich.objects import Commit, Tag
from dulwich.repo import Repo

from treesync import (
    EntryKind,
    GitLocation,
    LocalLocation,
    LocationError,
    SyncOptions,
    SyncReport,
    build,
    open_git_location,
    synchronize,
)
from treesync.sync import CompareMode


COMMIT_TIME = 1_700_000_000


def _sync(location, dest_path, options=None):
    options = options or SyncOptions()
    report = SyncReport()
    with location:
        src = build(location, options.want_checksum)
        dest = build(LocalLocation(dest_path), options.want_checksum)
        synchronize(dest, src, options, report)
    return report


# ---------------------------------------------------------------------------
# Opening
# ---------------------------------------------------------------------------

class TestOpen:
    def test_head_label(self, git_repo):
        loc = open_git_location(git_repo)
        assert isinstance(loc, GitLocation)
        assert loc.uri == "main:"
        assert loc.info().name == "main"

    def test_branch_and_path(self, git_repo):
        loc = open_git_location(git_repo, "main", "/docs/")
        assert loc.path == "docs"
        assert loc.uri == "main:docs"

    def test_other_branch(self, git_repo, commit):
        commit(Repo(git_repo), {"dev.txt": "dev"}, branch="dev")
        loc = open_git_location(git_repo, "dev")
        names = sorted(info.name for _, info in loc.iter_children())
        assert names == ["dev.txt"]

    def test_lightweight_tag(self, git_repo):
        repo = Repo(git_repo)
        repo.refs[b"refs/tags/v1"] = repo.refs[b"refs/heads/main"]
        loc = open_git_location(git_repo, "v1", "readme.txt")
        assert loc.info().size == len("read me\n")

    def test_annotated_tag_peeled(self, git_repo):
        repo = Repo(git_repo)
        tag = Tag()
        tag.name = b"v2"
        tag.object = (Commit, repo.refs[b"refs/heads/main"])
        tag.tagger = b"Test <test@example.com>"
        tag.tag_time = COMMIT_TIME
        tag.tag_timezone = 0
        tag.message = b"release\n"
        repo.object_store.add_object(tag)
        repo.refs[b"refs/tags/v2"] = tag.id
        loc = open_git_location(git_repo, "v2")
        assert loc.info().modified_time == COMMIT_TIME

    def test_full_commit_hash(self, git_repo):
        sha = Repo(git_repo).refs[b"refs/heads/main"].decode()
        loc = open_git_location(git_repo, sha, "docs")
        assert loc.info().kind == EntryKind.DIRECTORY

    def test_context_manager_closes_repo(self, git_repo, monkeypatch):
        closed = []
        monkeypatch.setattr(Repo, "close", lambda self: closed.append(self.path))
        with open_git_location(git_repo, None, "docs") as loc:
            build(loc)
        assert len(closed) == 1

    def test_failed_resolution_closes_repo(self, git_repo, monkeypatch):
        closed = []
        monkeypatch.setattr(Repo, "close", lambda self: closed.append(self.path))
        with pytest.raises(LocationError):
            open_git_location(git_repo, "nope")
        assert len(closed) == 1

    def test_unknown_ref(self, git_repo):
        with pytest.raises(LocationError, match="Unknown ref: nope"):
            open_git_location(git_repo, "nope")

    def test_not_a_repository(self, tmp_path):
        with pytest.raises(LocationError, match="Not a git repository"):
            open_git_location(str(tmp_path))

    def test_invalid_path(self, git_repo):
        with pytest.raises(LocationError, match="Invalid repo path"):
            open_git_location(git_repo, None, "docs/../secret")


# ---------------------------------------------------------------------------
# Reading
# ---------------------------------------------------------------------------

class TestRead:
    def test_kinds(self, git_repo):
        loc = open_git_location(git_repo)
        kinds = {info.name: info.kind for _, info in loc.iter_children()}
        assert kinds == {
            "readme.txt": EntryKind.FILE,
            "docs": EntryKind.DIRECTORY,
            "link": EntryKind.OTHER,
        }

    def test_times_are_commit_time(self, git_repo):
        loc = open_git_location(git_repo)
        assert all(info.modified_time == COMMIT_TIME for _, info in loc.iter_children())

    def test_open_read(self, git_repo):
        loc = open_git_location(git_repo, None, "docs/guide.md")
        with loc.open_read() as f:
            assert f.read() == b"# Guide\n"

    def test_open_read_directory(self, git_repo):
        loc = open_git_location(git_repo, None, "docs")
        with pytest.raises(LocationError, match="Not a regular file"):
            loc.open_read()

    def test_missing_path(self, git_repo):
        loc = open_git_location(git_repo, None, "missing")
        with pytest.raises(LocationError) as exc_info:
            build(loc)
        assert str(exc_info.value) == (
            "Failed to retrieve information about the file `main:missing': "
            "No such file or directory"
        )

    def test_child_of_file(self, git_repo):
        loc = open_git_location(git_repo, None, "readme.txt").child("x")
        with pytest.raises(LocationError, match="Not a directory"):
            loc.info()

    def test_snapshot_checksums(self, git_repo, tmp_path, snap):
        (tmp_path / "guide.md").write_bytes(b"# Guide\n")
        git = build(open_git_location(git_repo, None, "docs/guide.md"), True)
        local = snap(tmp_path / "guide.md", checksum=True)
        assert git.checksum == local.checksum


class TestReadOnly:
    @pytest.mark.parametrize("call", [
        lambda loc: loc.write_from(io.BytesIO(b"x")),
        lambda loc: loc.create_empty(),
        lambda loc: loc.delete(),
        lambda loc: loc.make_directory(),
        lambda loc: loc.set_modified_time(0),
    ])
    def test_mutations_refused(self, git_repo, call):
        loc = open_git_location(git_repo, None, "readme.txt")
        with pytest.raises(LocationError, match="read-only"):
            call(loc)


# ---------------------------------------------------------------------------
# Synchronizing from a repository
# ---------------------------------------------------------------------------

class TestSyncFromRepo:
    def test_export_tree(self, git_repo, tmp_path, read_tree):
        dest = tmp_path / "out"
        dest.mkdir()
        report = _sync(open_git_location(git_repo), dest)
        assert read_tree(dest) == {
            "readme.txt": b"read me\n",
            "docs": {"guide.md": b"# Guide\n", "api": {"index.md": b"api"}},
        }
        assert report.skipped == ["main:link"]
        assert int(os.stat(dest / "docs" / "guide.md").st_mtime) == COMMIT_TIME
        assert int(os.stat(dest).st_mtime) == COMMIT_TIME

    def test_second_export_in_sync(self, git_repo, tmp_path):
        dest = tmp_path / "out"
        dest.mkdir()
        _sync(open_git_location(git_repo), dest)
        report = _sync(open_git_location(git_repo), dest)
        assert report.in_sync

    def test_export_subtree_with_delete(self, git_repo, tmp_path, make_tree, read_tree):
        dest = make_tree(tmp_path / "out", {"stale.md": "old"})
        _sync(open_git_location(git_repo, "main", "docs"), dest, SyncOptions(delete=True))
        assert read_tree(dest) == {"guide.md": b"# Guide\n", "api": {"index.md": b"api"}}

    def test_checksum_mode(self, git_repo, tmp_path, make_tree, read_tree):
        # Same size, commit timestamp, different content.
        dest = make_tree(tmp_path / "out", {"guide.md": "# Gxxxx\n"}, mtime=COMMIT_TIME)
        opts = SyncOptions(compare=CompareMode.CHECKSUM_ONLY)
        report = _sync(open_git_location(git_repo, None, "docs"), dest, opts)
        assert (dest / "guide.md").read_bytes() == b"# Guide\n"
        assert "out/guide.md" in report.updated

    def test_single_file_into_directory(self, git_repo, tmp_path, read_tree):
        dest = tmp_path / "out"
        dest.mkdir()
        report = _sync(open_git_location(git_repo, None, "readme.txt"), dest)
        assert read_tree(dest) == {"readme.txt": b"read me\n"}
        assert report.updated == ["out/readme.txt"]
