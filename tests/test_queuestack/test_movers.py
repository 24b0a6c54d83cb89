"""Unit tests for queuestack.movers."""

from pathlib import Path

import pytest

from queuestack.errors import AlreadyExistsError, NotFoundError
from queuestack.movers import GitMover, Mover, PlainMover, select_mover


class TestPlainMover:
    def test_move_file_creates_parents(self, tmp_path: Path):
        src = tmp_path / "a.md"
        src.write_text("x", encoding="utf-8")
        dst = tmp_path / "deep" / "er" / "a.md"
        PlainMover().move(src, dst)
        assert not src.exists()
        assert dst.read_text(encoding="utf-8") == "x"

    def test_move_directory(self, tmp_path: Path):
        src = tmp_path / "a.attachments"
        src.mkdir()
        (src / "1-x.txt").write_text("x", encoding="utf-8")
        dst = tmp_path / "archive" / "a.attachments"
        PlainMover().move(src, dst)
        assert (dst / "1-x.txt").is_file()

    def test_move_missing_source(self, tmp_path: Path):
        with pytest.raises(NotFoundError):
            PlainMover().move(tmp_path / "nope", tmp_path / "dst")

    def test_move_onto_existing(self, tmp_path: Path):
        src = tmp_path / "a.md"
        dst = tmp_path / "b.md"
        src.write_text("a", encoding="utf-8")
        dst.write_text("b", encoding="utf-8")
        with pytest.raises(AlreadyExistsError):
            PlainMover().move(src, dst)
        assert dst.read_text(encoding="utf-8") == "b"

    def test_remove_file_and_directory(self, tmp_path: Path):
        f = tmp_path / "a.md"
        f.write_text("a", encoding="utf-8")
        d = tmp_path / "a.attachments"
        d.mkdir()
        (d / "1-x.txt").write_text("x", encoding="utf-8")
        mover = PlainMover()
        mover.remove(f)
        mover.remove(d)
        assert not f.exists()
        assert not d.exists()

    def test_remove_missing_is_noop(self, tmp_path: Path):
        PlainMover().remove(tmp_path / "gone")

    def test_no_user_name(self):
        assert PlainMover().current_user_name() is None


class TestSelectMover:
    def test_plain_outside_a_work_tree(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setattr("queuestack.movers.is_git_repo", lambda path: False)
        assert type(select_mover(tmp_path)) is PlainMover

    def test_git_inside_a_work_tree(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setattr("queuestack.movers.is_git_repo", lambda path: True)
        mover = select_mover(tmp_path)
        assert isinstance(mover, GitMover)
        assert mover.repo_root == tmp_path

    def test_backends_satisfy_protocol(self, tmp_path: Path):
        assert isinstance(PlainMover(), Mover)
        assert isinstance(GitMover(tmp_path), Mover)


class TestGitMoverFallback:
    def test_untracked_file_is_moved_plainly(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setattr(GitMover, "_git", lambda self, *args: None)
        src = tmp_path / "a.md"
        src.write_text("x", encoding="utf-8")
        GitMover(tmp_path).move(src, tmp_path / "b" / "a.md")
        assert (tmp_path / "b" / "a.md").is_file()

    def test_remove_falls_back(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setattr(GitMover, "_git", lambda self, *args: None)
        f = tmp_path / "a.md"
        f.write_text("x", encoding="utf-8")
        GitMover(tmp_path).remove(f)
        assert not f.exists()

    def test_user_name_unavailable(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setattr(GitMover, "_git", lambda self, *args: None)
        assert GitMover(tmp_path).current_user_name() is None
