"""Contract tests run against every VersionBackend implementation.

The ``backend`` fixture is parametrized over the in-process backend and
the git backend (skipped when git is not installed).
"""

from __future__ import annotations

import pytest

from solspace.backends.git import GitBackend
from solspace.backends.protocols import VersionBackend
from solspace.exceptions import BackendError, EmptySnapshotError
from tests.conftest import requires_git


def _write(backend, rel: str, text: str) -> None:
    path = backend.root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)


# ---------------------------------------------------------------------------
# Lineages
# ---------------------------------------------------------------------------


class TestLineages:

    def test_satisfies_protocol(self, backend):
        assert isinstance(backend, VersionBackend)

    def test_initial_state(self, backend):
        assert backend.current_lineage() == "main"
        assert backend.list_lineages() == ["main"]
        assert len(backend.history()) == 1

    def test_create_lineage_switches(self, backend):
        backend.create_lineage("idea")
        assert backend.current_lineage() == "idea"
        assert backend.has_lineage("idea")
        assert backend.list_lineages() == ["idea", "main"]

    def test_create_existing_fails(self, backend):
        backend.create_lineage("idea")
        with pytest.raises(BackendError):
            backend.create_lineage("idea")

    def test_switch_restores_files(self, backend):
        _write(backend, "a.txt", "main version\n")
        backend.snapshot("main file")
        backend.create_lineage("idea")
        _write(backend, "a.txt", "idea version\n")
        _write(backend, "b.txt", "only on idea\n")
        backend.snapshot("idea edit")

        backend.switch_active("main")
        assert (backend.root / "a.txt").read_text() == "main version\n"
        assert not (backend.root / "b.txt").exists()

        backend.switch_active("idea")
        assert (backend.root / "a.txt").read_text() == "idea version\n"
        assert (backend.root / "b.txt").read_text() == "only on idea\n"

    def test_switch_with_conflicting_changes_fails(self, backend):
        _write(backend, "a.txt", "one\n")
        backend.snapshot("one")
        backend.create_lineage("idea")
        _write(backend, "a.txt", "two\n")
        backend.snapshot("two")
        _write(backend, "a.txt", "uncommitted\n")
        with pytest.raises(BackendError):
            backend.switch_active("main")
        assert backend.current_lineage() == "idea"
        assert (backend.root / "a.txt").read_text() == "uncommitted\n"

    def test_switch_unknown_fails(self, backend):
        with pytest.raises(BackendError):
            backend.switch_active("nope")

    def test_delete_lineage(self, backend):
        backend.create_lineage("idea")
        backend.switch_active("main")
        backend.delete_lineage("idea")
        assert not backend.has_lineage("idea")

    def test_delete_missing_is_noop(self, backend):
        backend.delete_lineage("never-existed")
        assert backend.list_lineages() == ["main"]


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------


class TestSnapshots:

    def test_snapshot_returns_hash(self, backend):
        _write(backend, "a.txt", "x\n")
        h = backend.snapshot("first")
        assert backend.get_snapshot(h).hash == h
        assert backend.get_snapshot(h).message == "first"

    def test_nothing_changed_fails(self, backend):
        with pytest.raises(EmptySnapshotError):
            backend.snapshot("nothing")

    def test_allow_empty(self, backend):
        h = backend.snapshot("marker", allow_empty=True)
        assert backend.history()[0].hash == h

    def test_history_newest_first(self, backend):
        hashes = []
        for i in range(3):
            _write(backend, "a.txt", f"v{i}\n")
            hashes.append(backend.snapshot(f"v{i}"))
        history = backend.history()
        assert [r.hash for r in history[:3]] == list(reversed(hashes))
        assert history[-1].message == "Initial snapshot"

    def test_history_of_other_lineage(self, backend):
        backend.create_lineage("idea")
        _write(backend, "a.txt", "idea\n")
        h = backend.snapshot("on idea")
        backend.switch_active("main")
        assert backend.history("idea")[0].hash == h
        assert backend.current_lineage() == "main"

    def test_multiline_message_preserved(self, backend):
        _write(backend, "a.txt", "x\n")
        message = '{\n  "description": "multi",\n  "metadata": {}\n}'
        h = backend.snapshot(message)
        assert backend.get_snapshot(h).message == message

    def test_get_snapshot_by_prefix(self, backend):
        _write(backend, "a.txt", "x\n")
        h = backend.snapshot("first")
        assert backend.get_snapshot(h[:10]).hash == h

    def test_get_unknown_snapshot_fails(self, backend):
        with pytest.raises(BackendError):
            backend.get_snapshot("0" * 40)

    def test_diff_and_show(self, backend):
        _write(backend, "a.txt", "old line\n")
        h1 = backend.snapshot("one")
        _write(backend, "a.txt", "new line\n")
        h2 = backend.snapshot("two")

        diff = backend.diff(h1, h2)
        assert "-old line" in diff
        assert "+new line" in diff
        shown = backend.show(h2)
        assert "two" in shown
        assert "+new line" in shown


# ---------------------------------------------------------------------------
# Patches and working state
# ---------------------------------------------------------------------------


class TestPatches:

    def test_extract_apply_revert(self, backend):
        _write(backend, "a.txt", "base\n")
        base = backend.snapshot("base")
        backend.create_lineage("idea")
        _write(backend, "a.txt", "changed\n")
        _write(backend, "new.txt", "added\n")
        patch = backend.extract_patch(backend.snapshot("idea"))
        backend.switch_active("main")
        assert backend.history()[0].hash == base

        backend.apply_patch(patch)
        assert (backend.root / "a.txt").read_text() == "changed\n"
        assert (backend.root / "new.txt").read_text() == "added\n"

        backend.apply_patch(patch, reverse=True)
        assert (backend.root / "a.txt").read_text() == "base\n"
        assert not (backend.root / "new.txt").exists()
        assert not backend.is_dirty()

    def test_conflicting_patch_writes_nothing(self, backend):
        _write(backend, "a.txt", "base\n")
        _write(backend, "b.txt", "base\n")
        backend.snapshot("base")
        backend.create_lineage("idea")
        _write(backend, "a.txt", "idea\n")
        _write(backend, "b.txt", "idea\n")
        patch = backend.extract_patch(backend.snapshot("idea"))
        backend.switch_active("main")
        _write(backend, "b.txt", "diverged\n")
        backend.snapshot("diverge")

        with pytest.raises(BackendError):
            backend.apply_patch(patch)
        assert (backend.root / "a.txt").read_text() == "base\n"
        assert (backend.root / "b.txt").read_text() == "diverged\n"

    def test_dirty_and_discard(self, backend):
        _write(backend, "a.txt", "base\n")
        backend.snapshot("base")
        assert not backend.is_dirty()
        _write(backend, "a.txt", "edited\n")
        _write(backend, "stray.txt", "untracked\n")
        assert backend.is_dirty()
        backend.discard_changes()
        assert not backend.is_dirty()
        assert (backend.root / "a.txt").read_text() == "base\n"
        assert not (backend.root / "stray.txt").exists()

    def test_patch_dir_is_not_tracked(self, backend):
        _write(backend, ".patches/memo.patch", "patch text\n")
        assert not backend.is_dirty()
        with pytest.raises(EmptySnapshotError):
            backend.snapshot("nothing tracked changed")

    def test_added_exclude_is_not_tracked(self, backend):
        backend.add_exclude("kept/patches")
        _write(backend, "kept/patches/memo.patch", "patch text\n")
        assert not backend.is_dirty()
        _write(backend, "kept/notes.txt", "tracked\n")
        assert backend.is_dirty()

    @pytest.mark.parametrize("path", ["", "/abs", "../outside"])
    def test_exclude_outside_root_rejected(self, backend, path):
        with pytest.raises(BackendError):
            backend.add_exclude(path)

    @requires_git
    def test_git_exclude_anchored_at_subdirectory_root(self, tmp_path):
        GitBackend.init(tmp_path / "repo")
        (tmp_path / "repo" / "pkg").mkdir()
        nested = GitBackend.open(tmp_path / "repo" / "pkg")
        _write(nested, ".patches/memo.patch", "patch text\n")
        assert not nested.is_dirty()


# ---------------------------------------------------------------------------
# Worktrees
# ---------------------------------------------------------------------------


class TestWorktrees:

    def test_worktree_commits_visible_to_primary(self, backend, tmp_path):
        backend.create_lineage("idea")
        backend.switch_active("main")

        handle = backend.open_worktree(tmp_path / "wt", "idea")
        try:
            assert handle.current_lineage() == "idea"
            _write(handle, "w.txt", "from worktree\n")
            h = handle.snapshot("worktree attempt")
            assert not (backend.root / "w.txt").exists()
            assert backend.history("idea")[0].hash == h
            assert backend.current_lineage() == "main"
        finally:
            handle.close()
        assert not (tmp_path / "wt").exists()

    def test_lineage_checked_out_elsewhere_fails(self, backend, tmp_path):
        backend.create_lineage("idea")
        with pytest.raises(BackendError):
            backend.open_worktree(tmp_path / "wt", "idea")

    def test_switch_onto_worktree_lineage_fails(self, backend, tmp_path):
        backend.create_lineage("idea")
        backend.switch_active("main")
        handle = backend.open_worktree(tmp_path / "wt", "idea")
        try:
            with pytest.raises(BackendError):
                backend.switch_active("idea")
            assert backend.current_lineage() == "main"
        finally:
            handle.close()
        backend.switch_active("idea")
        assert backend.current_lineage() == "idea"
