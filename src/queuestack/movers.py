"""File move/remove capability with a git-aware and a plain implementation.

The storage engine only ever talks to a :class:`Mover`; which backend serves
the call is decided once by :func:`select_mover`.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path
from typing import Protocol, runtime_checkable

from queuestack.errors import AlreadyExistsError, IoFailureError, NotFoundError

logger = logging.getLogger(__name__)


@runtime_checkable
class Mover(Protocol):
    """Common interface shared by all move backends."""

    def move(self, src: Path, dst: Path) -> None:
        """Rename *src* to *dst* (file or directory), creating parents of *dst*."""
        ...

    def remove(self, path: Path) -> None:
        """Delete *path* (file or directory); a missing path is a no-op."""
        ...

    def current_user_name(self) -> str | None:
        """Name of the current user as known to the backend, if any."""
        ...


def _check_move(src: Path, dst: Path) -> None:
    if not src.exists():
        raise NotFoundError(str(src), "file")
    if dst.exists():
        raise AlreadyExistsError(dst)
    try:
        dst.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise IoFailureError(dst.parent, exc, "create directory") from exc


class PlainMover:
    """Plain filesystem backend."""

    def move(self, src: Path, dst: Path) -> None:
        _check_move(src, dst)
        self._rename(src, dst)

    def remove(self, path: Path) -> None:
        if not path.exists():
            logger.debug("remove: %s already gone", path)
            return
        try:
            if path.is_dir():
                shutil.rmtree(path)
            else:
                path.unlink()
        except OSError as exc:
            raise IoFailureError(path, exc, "remove") from exc
        logger.debug("removed %s", path)

    def current_user_name(self) -> str | None:
        return None

    @staticmethod
    def _rename(src: Path, dst: Path) -> None:
        try:
            # A same-filesystem rename is atomic: readers see src or dst, never neither
            src.rename(dst)
        except OSError as exc:
            raise IoFailureError(src, exc, f"move to {dst}") from exc
        logger.debug("moved %s -> %s", src, dst)


class GitMover(PlainMover):
    """``git mv`` / ``git rm`` backend, falling back to plain operations.

    Untracked files make git refuse; those are then handled like
    :class:`PlainMover` would.
    """

    def __init__(self, repo_root: Path) -> None:
        self.repo_root = Path(repo_root)

    def _git(self, *args: str) -> subprocess.CompletedProcess[str] | None:
        try:
            return subprocess.run(
                ["git", *args],
                cwd=self.repo_root,
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as exc:
            logger.debug("git unavailable: %s", exc)
            return None

    def move(self, src: Path, dst: Path) -> None:
        _check_move(src, dst)
        result = self._git("mv", str(src), str(dst))
        if result is not None and result.returncode == 0:
            logger.debug("git mv %s -> %s", src, dst)
            return
        logger.debug("git mv failed for %s, using rename", src)
        self._rename(src, dst)

    def remove(self, path: Path) -> None:
        if not path.exists():
            return
        result = self._git("rm", "-r", "-f", "--quiet", str(path))
        if result is not None and result.returncode == 0 and not path.exists():
            logger.debug("git rm %s", path)
            return
        super().remove(path)

    def current_user_name(self) -> str | None:
        result = self._git("config", "user.name")
        if result is None or result.returncode != 0:
            return None
        return result.stdout.strip() or None


def is_git_repo(path: Path) -> bool:
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--is-inside-work-tree"],
            cwd=path,
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError:
        return False
    return result.returncode == 0 and result.stdout.strip() == "true"


def select_mover(project_root: Path) -> Mover:
    """Pick the git backend inside a work tree, the plain one otherwise."""
    if is_git_repo(project_root):
        logger.debug("using git mover for %s", project_root)
        return GitMover(project_root)
    return PlainMover()
