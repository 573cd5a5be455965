"""Git backend: lineages are branches, snapshots are commits.

Shells out to the ``git`` executable. Every invocation runs with a
timeout and local identity settings so it works in fresh environments.
Patches are ``git format-patch`` output applied with ``git apply``.
"""

from __future__ import annotations

import logging
import subprocess
from datetime import datetime
from pathlib import Path
from typing import Sequence

from solspace.backends.protocols import SnapshotRecord
from solspace.exceptions import BackendError, BackendTimeoutError, EmptySnapshotError

logger = logging.getLogger(__name__)

_FIELD_SEP = "\x1f"
_RECORD_SEP = "\x1e"
_LOG_FORMAT = f"--format=%H{_FIELD_SEP}%cI{_FIELD_SEP}%B{_RECORD_SEP}"


class GitBackend:
    """VersionBackend over a git working copy.

    Create via :meth:`GitBackend.open` for an existing repository or
    :meth:`GitBackend.init` for a new one. Worktree handles returned by
    :meth:`open_worktree` share the repository but have their own
    checked-out branch, so they can be used from separate threads.
    """

    def __init__(
        self,
        root: str | Path,
        *,
        timeout: float | None = 60.0,
        author_name: str = "solspace",
        author_email: str = "solspace@localhost",
        exclude: Sequence[str] = (".patches",),
        executable: str = "git",
        owner: GitBackend | None = None,
    ) -> None:
        self._root = Path(root).resolve()
        self._timeout = timeout
        self._author_name = author_name
        self._author_email = author_email
        self._exclude = tuple(exclude)
        self._executable = executable
        self._owner = owner
        self._closed = False

    @classmethod
    def open(cls, root: str | Path, **kwargs: object) -> GitBackend:
        """Open an existing git working copy.

        Raises:
            BackendError: If ``root`` is not inside a git repository.
        """
        backend = cls(root, **kwargs)  # type: ignore[arg-type]
        backend._run(["rev-parse", "--show-toplevel"])
        backend._write_excludes()
        return backend

    @classmethod
    def init(
        cls,
        root: str | Path,
        *,
        initial_lineage: str = "main",
        **kwargs: object,
    ) -> GitBackend:
        """Create a repository at ``root`` with one initial snapshot.

        Files already present under ``root`` are included in the initial
        snapshot.
        """
        path = Path(root)
        path.mkdir(parents=True, exist_ok=True)
        backend = cls(path, **kwargs)  # type: ignore[arg-type]
        backend._run(["init", "-q"])
        backend._run(["symbolic-ref", "HEAD", f"refs/heads/{initial_lineage}"])
        backend._write_excludes()
        backend.snapshot("Initial snapshot", allow_empty=True)
        return backend

    # ------------------------------------------------------------------
    # Process plumbing
    # ------------------------------------------------------------------

    @property
    def root(self) -> Path:
        return self._root

    def _run(
        self,
        args: list[str],
        *,
        input: str | bytes | None = None,
        binary: bool = False,
        check: bool = True,
        cwd: Path | None = None,
    ) -> subprocess.CompletedProcess:
        command = "git " + " ".join(args)
        argv = [
            self._executable,
            "-c", f"user.name={self._author_name}",
            "-c", f"user.email={self._author_email}",
            "-c", "commit.gpgsign=false",
            *args,
        ]
        logger.debug("Running %s in %s", command, cwd or self._root)
        try:
            cp = subprocess.run(
                argv,
                cwd=str(cwd or self._root),
                input=input,
                capture_output=True,
                text=not binary,
                timeout=self._timeout,
                check=False,
            )
        except subprocess.TimeoutExpired:
            raise BackendTimeoutError(command, self._timeout or 0.0) from None
        except OSError as exc:
            raise BackendError(command, str(exc)) from exc

        if check and cp.returncode != 0:
            stderr = cp.stderr.decode("utf-8", "replace") if binary else cp.stderr
            stdout = cp.stdout.decode("utf-8", "replace") if binary else cp.stdout
            raise BackendError(command, (stderr or stdout or "").strip())
        return cp

    def _git(self, args: list[str], **kwargs: object) -> str:
        return (self._run(args, **kwargs).stdout or "").strip()  # type: ignore[arg-type]

    def _write_excludes(self) -> None:
        """Keep excluded paths out of tracked state, anchored at ``root``."""
        if not self._exclude:
            return
        exclude_path = Path(self._git(["rev-parse", "--git-path", "info/exclude"]))
        if not exclude_path.is_absolute():
            exclude_path = self._root / exclude_path
        prefix = self._git(["rev-parse", "--show-prefix"])
        exclude_path.parent.mkdir(parents=True, exist_ok=True)
        existing = exclude_path.read_text() if exclude_path.exists() else ""
        lines = existing.splitlines()
        patterns = [f"/{prefix}{name.strip('/')}/" for name in self._exclude]
        missing = [p for p in dict.fromkeys(patterns) if p not in lines]
        if missing:
            lead = "" if not existing or existing.endswith("\n") else "\n"
            with exclude_path.open("a") as fh:
                fh.write(lead + "\n".join(missing) + "\n")

    @staticmethod
    def _parse_log(output: str) -> list[SnapshotRecord]:
        records: list[SnapshotRecord] = []
        for chunk in output.split(_RECORD_SEP):
            chunk = chunk.lstrip("\n")
            if not chunk.strip():
                continue
            commit, timestamp, message = chunk.split(_FIELD_SEP, 2)
            records.append(
                SnapshotRecord(
                    hash=commit,
                    message=message.rstrip("\n"),
                    timestamp=datetime.fromisoformat(timestamp),
                )
            )
        return records

    # ------------------------------------------------------------------
    # Lineages
    # ------------------------------------------------------------------

    def current_lineage(self) -> str:
        return self._git(["rev-parse", "--abbrev-ref", "HEAD"])

    def create_lineage(self, name: str) -> None:
        self._run(["checkout", "-q", "-b", name])

    def list_lineages(self) -> list[str]:
        output = self._git(["for-each-ref", "--format=%(refname:short)", "refs/heads/"])
        return sorted(line for line in output.splitlines() if line)

    def has_lineage(self, name: str) -> bool:
        cp = self._run(["show-ref", "--verify", "--quiet", f"refs/heads/{name}"], check=False)
        return cp.returncode == 0

    def switch_active(self, name: str) -> None:
        self._run(["checkout", "-q", name])

    def delete_lineage(self, name: str, *, force: bool = True) -> None:
        flag = "-D" if force else "-d"
        cp = self._run(["branch", flag, name], check=False)
        if cp.returncode == 0:
            return
        msg = (cp.stderr or cp.stdout or "").strip()
        if "not found" in msg.lower():
            return
        raise BackendError(f"git branch {flag} {name}", msg)

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def snapshot(self, message: str, *, allow_empty: bool = False) -> str:
        self._run(["add", "-A"])
        if not allow_empty:
            staged = self._run(["diff", "--cached", "--quiet"], check=False)
            if staged.returncode == 0:
                raise EmptySnapshotError("git commit")
        args = ["commit", "-q", "--no-verify", "--cleanup=verbatim", "-F", "-"]
        if allow_empty:
            args.append("--allow-empty")
        self._run(args, input=message)
        return self._git(["rev-parse", "HEAD"])

    def history(self, lineage: str | None = None) -> list[SnapshotRecord]:
        output = self._run(["log", _LOG_FORMAT, lineage or "HEAD", "--"]).stdout
        return self._parse_log(output)

    def get_snapshot(self, ref: str) -> SnapshotRecord:
        output = self._run(["log", "-1", _LOG_FORMAT, ref, "--"]).stdout
        records = self._parse_log(output)
        if not records:
            raise BackendError(f"git log -1 {ref}", "unknown revision")
        return records[0]

    def diff(self, ref_a: str, ref_b: str) -> str:
        return self._run(["diff", "--no-color", "--no-ext-diff", ref_a, ref_b, "--"]).stdout

    def show(self, ref: str) -> str:
        return self._run(["show", "--no-color", "--no-ext-diff", ref, "--"]).stdout

    # ------------------------------------------------------------------
    # Patches and working state
    # ------------------------------------------------------------------

    def extract_patch(self, ref: str) -> bytes:
        return self._run(["format-patch", "-1", "--stdout", ref], binary=True).stdout

    def apply_patch(self, data: bytes, *, reverse: bool = False) -> None:
        args = ["apply"]
        if reverse:
            args.append("--reverse")
        args.append("-")
        self._run(args, input=data, binary=True)

    def add_exclude(self, path: str) -> None:
        name = path.strip("/")
        if not name or ".." in Path(name).parts or Path(path).is_absolute():
            raise BackendError(f"exclude {path}", "path must be relative to the working root")
        if name not in self._exclude:
            self._exclude = (*self._exclude, name)
        self._write_excludes()

    def is_dirty(self) -> bool:
        return bool(self._git(["status", "--porcelain"]))

    def discard_changes(self) -> None:
        self._run(["reset", "-q", "--hard", "HEAD"])
        self._run(["clean", "-q", "-fd"])

    # ------------------------------------------------------------------
    # Worktrees
    # ------------------------------------------------------------------

    def open_worktree(self, path: Path, lineage: str) -> GitBackend:
        path = Path(path)
        if path.exists():
            raise BackendError(f"git worktree add {path}", "path already exists")
        path.parent.mkdir(parents=True, exist_ok=True)
        self._run(["worktree", "add", "-q", str(path), lineage])
        return GitBackend(
            path,
            timeout=self._timeout,
            author_name=self._author_name,
            author_email=self._author_email,
            exclude=self._exclude,
            executable=self._executable,
            owner=self,
        )

    def close(self) -> None:
        """Remove this handle's worktree; a no-op for the main working copy."""
        if self._closed:
            return
        self._closed = True
        if self._owner is not None:
            self._owner._run(["worktree", "remove", "--force", str(self._root)])

    def __repr__(self) -> str:
        return f"GitBackend({str(self._root)!r})"
