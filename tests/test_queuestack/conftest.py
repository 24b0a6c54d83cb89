"""Shared fixtures: a throw-away project with a deterministic clock."""

from __future__ import annotations

import random
import textwrap
from datetime import datetime, timezone
from pathlib import Path

import pytest

from queuestack.config import Config, init_project
from queuestack.errors import IoFailureError
from queuestack.movers import PlainMover
from queuestack.naming import item_filename
from queuestack.storage import Storage

FIXED_NOW = datetime(2026, 1, 9, 10, 30, 0, tzinfo=timezone.utc)


def write_item_file(
    directory: Path,
    item_id: str,
    title: str,
    *,
    status: str = "open",
    labels: list[str] | None = None,
    attachments: list[str] | None = None,
    body: str = "Body.\n",
) -> Path:
    """Write a hand-made item file the way a user or editor would."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / item_filename(item_id, title)
    label_lines = "".join(f"  - {label}\n" for label in labels or [])
    attachment_lines = "".join(f"  - {a}\n" for a in attachments or [])
    path.write_text(
        textwrap.dedent(f"""\
            ---
            id: {item_id}
            title: {title}
            author: Tester
            created_at: 2026-01-09T10:00:00Z
            status: {status}
            """)
        + ("labels:\n" + label_lines if label_lines else "")
        + ("attachments:\n" + attachment_lines if attachment_lines else "")
        + "---\n\n"
        + body,
        encoding="utf-8",
    )
    return path


class RecordingMover(PlainMover):
    """Plain mover that records calls and can be told to fail on some sources."""

    def __init__(self, user: str | None = None) -> None:
        self.user = user
        self.moves: list[tuple[Path, Path]] = []
        self.removed: list[Path] = []
        self.fail_on: set[str] = set()

    def _should_fail(self, path: Path) -> bool:
        return any(marker in path.name for marker in self.fail_on)

    def move(self, src: Path, dst: Path) -> None:
        if self._should_fail(src):
            raise IoFailureError(src, PermissionError("denied"), "move")
        super().move(src, dst)
        self.moves.append((src, dst))

    def remove(self, path: Path) -> None:
        if self._should_fail(path):
            raise IoFailureError(path, PermissionError("denied"), "remove")
        super().remove(path)
        self.removed.append(path)

    def current_user_name(self) -> str | None:
        return self.user


@pytest.fixture()
def config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Config:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    for key in ("QUEUESTACK_USER_NAME", "QUEUESTACK_ID_PATTERN", "QUEUESTACK_LOG_LEVEL"):
        monkeypatch.delenv(key, raising=False)
    project = tmp_path / "project"
    project.mkdir()
    return init_project(project, user_name="Tester")


@pytest.fixture()
def mover() -> RecordingMover:
    return RecordingMover()


@pytest.fixture()
def storage(config: Config, mover: RecordingMover) -> Storage:
    return Storage(config, mover, clock=lambda: FIXED_NOW, rng=random.Random(7))


@pytest.fixture()
def write_item():
    return write_item_file


@pytest.fixture()
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture()
def make_mover():
    return RecordingMover
