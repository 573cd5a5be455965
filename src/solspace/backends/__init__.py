"""Version-control backends behind the VersionBackend contract.

Provides GitBackend (shells out to git) and LocalBackend (in-process
content-addressable snapshot log on SQLAlchemy).
"""

from solspace.backends.git import GitBackend
from solspace.backends.local import LocalBackend
from solspace.backends.protocols import SnapshotRecord, VersionBackend

__all__ = [
    "GitBackend",
    "LocalBackend",
    "SnapshotRecord",
    "VersionBackend",
]
