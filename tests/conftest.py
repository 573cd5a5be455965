"""Shared test fixtures for Solspace.

Provides in-memory SQLite engine, session and repository fixtures, plus
store, patch library and engine fixtures on both backends.
"""

import shutil

import pytest
from sqlalchemy.orm import Session, sessionmaker

from solspace.backends.git import GitBackend
from solspace.backends.local import LocalBackend
from solspace.explorer import ExplorationEngine
from solspace.models.config import ExplorerConfig
from solspace.patches import PatchLibrary
from solspace.storage.engine import create_store_engine, init_db
from solspace.storage.sqlite import (
    SqliteBlobRepository,
    SqliteHeadRepository,
    SqliteRefRepository,
    SqliteSnapshotRepository,
)
from solspace.store import SpaceStore

HAS_GIT = shutil.which("git") is not None

requires_git = pytest.mark.skipif(not HAS_GIT, reason="git executable not available")


@pytest.fixture
def engine():
    """In-memory SQLite engine with all tables created."""
    eng = create_store_engine(":memory:")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine):
    """Session with automatic rollback after each test."""
    SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)
    sess = SessionLocal()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def blob_repo(session: Session) -> SqliteBlobRepository:
    return SqliteBlobRepository(session)


@pytest.fixture
def snapshot_repo(session: Session) -> SqliteSnapshotRepository:
    return SqliteSnapshotRepository(session)


@pytest.fixture
def ref_repo(session: Session) -> SqliteRefRepository:
    return SqliteRefRepository(session)


@pytest.fixture
def head_repo(session: Session) -> SqliteHeadRepository:
    return SqliteHeadRepository(session)


# ------------------------------------------------------------------
# Backends and stores
# ------------------------------------------------------------------


@pytest.fixture
def workdir(tmp_path):
    path = tmp_path / "work"
    path.mkdir()
    return path


@pytest.fixture
def local_backend(workdir):
    """LocalBackend on an empty working copy with an in-memory store."""
    backend = LocalBackend.open(workdir, db_path=":memory:")
    yield backend
    backend.close()


@pytest.fixture
def git_backend(workdir):
    """GitBackend on a freshly initialized repository."""
    if not HAS_GIT:
        pytest.skip("git executable not available")
    backend = GitBackend.init(workdir)
    yield backend
    backend.close()


@pytest.fixture(params=["local", "git"])
def backend(request, workdir):
    """Each backend in turn, on an empty working copy."""
    if request.param == "git":
        if not HAS_GIT:
            pytest.skip("git executable not available")
        handle = GitBackend.init(workdir)
    else:
        handle = LocalBackend.open(workdir, db_path=":memory:")
    yield handle
    handle.close()


@pytest.fixture
def store(backend) -> SpaceStore:
    return SpaceStore(backend)


@pytest.fixture
def local_store(local_backend) -> SpaceStore:
    return SpaceStore(local_backend)


@pytest.fixture
def library(store) -> PatchLibrary:
    return PatchLibrary(store)


# ------------------------------------------------------------------
# Shared test helpers
# ------------------------------------------------------------------


def write(store: SpaceStore, rel: str, text: str) -> None:
    """Write a text file under the store's working copy."""
    path = store.root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)


def read(store: SpaceStore, rel: str) -> str:
    return (store.root / rel).read_text()


def tracked_files(store: SpaceStore) -> dict[str, bytes]:
    """Every tracked file under the working copy, as bytes."""
    skip = {".git", ".solspace", store.config.patch_dir}
    files = {}
    for path in sorted(store.root.rglob("*")):
        rel = path.relative_to(store.root)
        if rel.parts[0] in skip or not path.is_file():
            continue
        files[rel.as_posix()] = path.read_bytes()
    return files


def make_engine(store: SpaceStore, **kwargs) -> ExplorationEngine:
    """ExplorationEngine over ``store`` with config overrides."""
    return ExplorationEngine(store, ExplorerConfig(**kwargs))
