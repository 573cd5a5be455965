"""Tests for SpaceStore: solution spaces and attempt history.

Runs against both backends via the parametrized ``store`` fixture.
"""

from __future__ import annotations

import json

import pytest

from solspace import SpaceStore, StoreConfig
from solspace.exceptions import (
    AttemptNotFoundError,
    InvalidSpaceNameError,
    NothingToSnapshotError,
    SpaceExistsError,
    SpaceNotFoundError,
    StoreError,
)
from tests.conftest import read, write


# ---------------------------------------------------------------------------
# Spaces
# ---------------------------------------------------------------------------


class TestInitSolutionSpace:

    def test_creates_and_activates(self, store):
        info = store.init_solution_space("Recursive Approach", "fib via recursion")
        assert info.name == "Recursive Approach"
        assert info.sanitized_name == "recursive-approach"
        assert info.created_from == "main"
        assert info.head is not None
        assert store.current_space == "recursive-approach"

    def test_seed_attempt(self, store):
        info = store.init_solution_space("idea", "first seed")
        history = store.get_attempt_history()
        assert history[0].hash == info.head
        assert history[0].description == "first seed"
        assert history[0].metadata["created_from"] == "main"

    def test_duplicate_rejected(self, store):
        store.init_solution_space("idea", "one")
        store.switch_solution_space("main")
        with pytest.raises(SpaceExistsError):
            store.init_solution_space("IDEA", "two")
        assert store.current_space == "main"

    def test_invalid_name(self, store):
        with pytest.raises(InvalidSpaceNameError):
            store.init_solution_space("!!!", "nothing left")
        assert store.current_space == "main"

    def test_branches_from_current_state(self, store):
        write(store, "base.txt", "shared\n")
        store.save_attempt("base")
        store.init_solution_space("child", "from main")
        assert read(store, "base.txt") == "shared\n"


class TestListSolutionSpaces:

    def test_excludes_protected(self, store):
        assert store.list_solution_spaces() == []

    def test_sorted(self, store):
        for name in ["zeta", "alpha", "mid"]:
            store.switch_solution_space("main")
            store.init_solution_space(name, name)
        assert store.list_solution_spaces() == ["alpha", "mid", "zeta"]

    def test_configurable_protection(self, backend):
        store = SpaceStore(backend, config=StoreConfig(protected_spaces=("main", "baseline")))
        store.init_solution_space("baseline", "kept out")
        store.init_solution_space("visible", "listed")
        assert store.list_solution_spaces() == ["visible"]


class TestSwitchAndDelete:

    def test_switch(self, store):
        store.init_solution_space("idea", "idea")
        store.switch_solution_space("main")
        assert store.current_space == "main"
        store.switch_solution_space("Idea")
        assert store.current_space == "idea"

    def test_switch_missing(self, store):
        with pytest.raises(SpaceNotFoundError):
            store.switch_solution_space("nope")

    def test_switch_conflict_is_store_error(self, store):
        write(store, "a.txt", "main\n")
        store.save_attempt("main")
        store.init_solution_space("idea", "idea")
        write(store, "a.txt", "idea\n")
        store.save_attempt("idea")
        write(store, "a.txt", "dirty\n")
        with pytest.raises(StoreError):
            store.switch_solution_space("main")
        assert store.current_space == "idea"

    def test_delete(self, store):
        store.init_solution_space("idea", "idea")
        store.switch_solution_space("main")
        store.delete_solution_space("idea")
        assert store.list_solution_spaces() == []

    def test_delete_missing_is_noop(self, store):
        store.delete_solution_space("never-created")

    def test_delete_active_fails(self, store):
        store.init_solution_space("idea", "idea")
        with pytest.raises(StoreError):
            store.delete_solution_space("idea")


class TestOnSpace:

    def test_restores_previous(self, store):
        store.init_solution_space("idea", "idea")
        store.switch_solution_space("main")
        with store.on_space("idea") as s:
            assert s.current_space == "idea"
        assert store.current_space == "main"

    def test_restores_on_error(self, store):
        store.init_solution_space("idea", "idea")
        store.switch_solution_space("main")
        with pytest.raises(RuntimeError):
            with store.on_space("idea"):
                raise RuntimeError("boom")
        assert store.current_space == "main"


# ---------------------------------------------------------------------------
# Attempts
# ---------------------------------------------------------------------------


class TestSaveAttempt:

    def test_history_newest_first(self, store):
        store.init_solution_space("idea", "seed")
        hashes = []
        for i in range(1, 4):
            write(store, "solution.py", f"version = {i}\n")
            hashes.append(store.save_attempt(f"A{i}", {"n": i}))

        history = store.get_attempt_history()
        assert [a.description for a in history[:3]] == ["A3", "A2", "A1"]
        assert [a.hash for a in history[:3]] == list(reversed(hashes))
        assert history[0].metadata == {"n": 3}

    def test_nothing_to_snapshot(self, store):
        store.init_solution_space("idea", "seed")
        with pytest.raises(NothingToSnapshotError):
            store.save_attempt("no changes")

    def test_unserializable_metadata(self, store):
        write(store, "a.txt", "x\n")
        with pytest.raises(StoreError, match="serializable"):
            store.save_attempt("bad", {"obj": object()})

    def test_history_of_other_space_does_not_switch(self, store):
        store.init_solution_space("idea", "seed")
        write(store, "a.txt", "x\n")
        h = store.save_attempt("on idea")
        store.switch_solution_space("main")
        assert store.get_attempt_history("idea")[0].hash == h
        assert store.current_space == "main"

    def test_history_of_missing_space(self, store):
        with pytest.raises(SpaceNotFoundError):
            store.get_attempt_history("nope")

    def test_plain_messages_fall_back(self, store):
        history = store.get_attempt_history()
        assert history[-1].description == "Initial snapshot"
        assert history[-1].metadata == {}

    def test_message_is_tagged_json(self, store):
        write(store, "a.txt", "x\n")
        h = store.save_attempt("tagged", {"k": "v"})
        raw = store.backend.get_snapshot(h).message
        assert json.loads(raw)["format"] == "solspace/attempt"


class TestRetrieveAndCompare:

    def test_retrieve_has_diff(self, store):
        write(store, "a.txt", "one\n")
        store.save_attempt("one")
        write(store, "a.txt", "two\n")
        h = store.save_attempt("two", {"score": 2})
        attempt = store.retrieve_attempt(h)
        assert attempt.hash == h
        assert attempt.description == "two"
        assert attempt.metadata == {"score": 2}
        assert "+two" in attempt.diff

    def test_retrieve_missing(self, store):
        with pytest.raises(AttemptNotFoundError):
            store.retrieve_attempt("f" * 40)

    def test_compare_across_spaces(self, store):
        write(store, "a.txt", "base\n")
        store.save_attempt("base")
        store.init_solution_space("left", "left")
        write(store, "a.txt", "left\n")
        h1 = store.save_attempt("left")
        store.switch_solution_space("main")
        store.init_solution_space("right", "right")
        write(store, "a.txt", "right\n")
        h2 = store.save_attempt("right")

        diff = store.compare_attempts(h1, h2)
        assert "-left" in diff
        assert "+right" in diff


# ---------------------------------------------------------------------------
# Worktrees and lifecycle
# ---------------------------------------------------------------------------


class TestWorktreeHandles:

    def test_open_worktree(self, store, tmp_path):
        store.init_solution_space("idea", "seed")
        store.switch_solution_space("main")
        with store.open_worktree(tmp_path / "wt", "idea") as handle:
            assert handle.current_space == "idea"
            write(handle, "a.txt", "parallel\n")
            h = handle.save_attempt("from worktree")
        assert store.get_attempt_history("idea")[0].hash == h
        assert store.current_space == "main"

    def test_space_held_by_worktree_cannot_be_switched_to(self, store, tmp_path):
        store.init_solution_space("idea", "seed")
        store.switch_solution_space("main")
        with store.open_worktree(tmp_path / "wt", "idea"):
            with pytest.raises(StoreError):
                store.switch_solution_space("idea")
            assert store.current_space == "main"
        store.switch_solution_space("idea")
        assert store.current_space == "idea"

    def test_open_worktree_missing_space(self, store, tmp_path):
        with pytest.raises(SpaceNotFoundError):
            store.open_worktree(tmp_path / "wt", "nope")


class TestOpen:

    def test_open_local(self, tmp_path):
        with SpaceStore.open(tmp_path / "proj") as store:
            assert store.current_space == "main"
            assert (tmp_path / "proj" / ".solspace" / "store.db").exists()
            store.init_solution_space("idea", "seed")

        with SpaceStore.open(tmp_path / "proj") as reopened:
            assert reopened.list_solution_spaces() == ["idea"]
            assert reopened.current_space == "idea"

    def test_open_unknown_backend(self, tmp_path):
        with pytest.raises(ValueError):
            SpaceStore.open(tmp_path, backend="svn")  # type: ignore[arg-type]
