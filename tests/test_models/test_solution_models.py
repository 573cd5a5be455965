"""Tests for solspace domain and configuration models."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from solspace.models.attempt import Attempt
from solspace.models.config import StoreConfig
from solspace.models.solution import BestSolution, ExplorationReport
from solspace.models.space import SolutionSpace


class TestSolutionSpace:

    def test_str_is_sanitized_name(self):
        space = SolutionSpace(name="Recursive Approach", sanitized_name="recursive-approach")
        assert str(space) == "recursive-approach"
        assert space.created_from is None


class TestAttempt:

    def test_defaults(self):
        attempt = Attempt(hash="a" * 40, timestamp=datetime.now(timezone.utc), description="d")
        assert attempt.metadata == {}
        assert attempt.diff is None
        assert attempt.solution is None
        assert attempt.evaluation == 0.0

    def test_metadata_not_shared(self):
        now = datetime.now(timezone.utc)
        first = Attempt(hash="a", timestamp=now, description="a")
        second = Attempt(hash="b", timestamp=now, description="b")
        first.metadata["k"] = 1
        assert second.metadata == {}

    def test_repr(self):
        attempt = Attempt(hash="abcdef123456", timestamp=datetime.now(timezone.utc), description="memo")
        assert repr(attempt) == "Attempt(abcdef12 'memo')"


class TestBestSolution:

    def test_source_entry(self):
        best = BestSolution(space="exploration-path-1", solution="a", score=0.3, hash="h1")
        assert best.source_entry() == {"space": "exploration-path-1", "hash": "h1", "score": 0.3}


class TestExplorationReport:

    def test_defaults(self):
        report = ExplorationReport(task="t")
        assert report.spaces == []
        assert report.iterations == {}
        assert not report.converged


class TestStoreConfig:

    def test_defaults(self):
        config = StoreConfig()
        assert config.protected_spaces == ("main", "master")
        assert config.patch_dir == ".patches"
        assert config.timeout == 60.0

    def test_timeout_must_be_positive(self):
        with pytest.raises(ValidationError):
            StoreConfig(timeout=0)

    def test_timeout_can_be_disabled(self):
        assert StoreConfig(timeout=None).timeout is None
