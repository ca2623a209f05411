"""Tests for undo functionality."""

from __future__ import annotations

import shlex
from pathlib import Path

import pytest

from hostfix.core.config import StatePaths, get_state_dir
from hostfix.core.errors import BackupError, UnknownChangeError
from hostfix.fix.atomic import write_atomic
from hostfix.fix.backup import BackupStore
from hostfix.fix.journal import ChangeJournal
from hostfix.fix.undo import UndoExecutor


@pytest.fixture
def paths(tmp_path: Path) -> StatePaths:
    return StatePaths(get_state_dir(tmp_path / "state"))


@pytest.fixture
def journal(paths: StatePaths) -> ChangeJournal:
    return ChangeJournal(paths)


@pytest.fixture
def backups(paths: StatePaths) -> BackupStore:
    return BackupStore(paths)


@pytest.fixture
def executor(journal: ChangeJournal, backups: BackupStore) -> UndoExecutor:
    return UndoExecutor(journal, backups, command_timeout=10)


def _mutate(journal: ChangeJournal, backups: BackupStore, target: Path, new: str, label: str = "test") -> str:
    """Helper: back up, rewrite, record. Returns the change id."""
    backup = backups.create_backup(target, label)
    write_atomic(target, new)
    return journal.record_change(label, f"Rewrite {target.name}", backups=[backup] if backup else [])


class TestUndoChange:
    def test_restores_backup_byte_identical(self, journal, backups, executor, tmp_path: Path):
        target = tmp_path / ".zshrc"
        target.write_bytes(b"# Initial zshrc\n\xe2\x9c\x93 unicode\n")
        change_id = _mutate(journal, backups, target, "rewritten\n")

        result = executor.undo_change(change_id, restore_backup=True, run_undo_command=False)

        assert result.success is True
        assert target.read_bytes() == b"# Initial zshrc\n\xe2\x9c\x93 unicode\n"
        assert result.restored == [str(target)]

    def test_runs_undo_command(self, journal, executor, tmp_path: Path):
        marker = tmp_path / "marker"
        marker.touch()
        change_id = journal.record_change(
            "test", "Test change", undo_command=f"rm -f {shlex.quote(str(marker))}"
        )

        result = executor.undo_change(change_id, restore_backup=True, run_undo_command=True)

        assert result.success is True
        assert result.command_exit == 0
        assert not marker.exists()

    def test_command_skipped_when_not_requested(self, journal, executor, tmp_path: Path):
        marker = tmp_path / "marker"
        marker.touch()
        change_id = journal.record_change("test", "Test", undo_command=f"rm -f {shlex.quote(str(marker))}")

        executor.undo_change(change_id, restore_backup=True, run_undo_command=False)
        assert marker.exists()

    def test_restore_skipped_when_not_requested(self, journal, backups, executor, tmp_path: Path):
        target = tmp_path / "config"
        target.write_text("before\n")
        change_id = _mutate(journal, backups, target, "after\n")

        executor.undo_change(change_id, restore_backup=False, run_undo_command=True)
        assert target.read_text() == "after\n"

    def test_unknown_id_raises(self, executor):
        with pytest.raises(UnknownChangeError):
            executor.undo_change("chg_0999")

    def test_failing_command_reported(self, journal, executor):
        change_id = journal.record_change("test", "Test", undo_command="exit 3")
        result = executor.undo_change(change_id)
        assert result.success is False
        assert result.command_exit == 3
        assert "exited 3" in result.message

    def test_command_timeout_reported(self, journal, backups):
        executor = UndoExecutor(journal, backups, command_timeout=0.2)
        change_id = journal.record_change("test", "Test", undo_command="sleep 5")
        result = executor.undo_change(change_id)
        assert result.success is False
        assert "timed out" in result.message

    def test_undo_twice_same_end_state(self, journal, backups, executor, tmp_path: Path):
        target = tmp_path / "config"
        target.write_text("before\n")
        change_id = _mutate(journal, backups, target, "after\n")

        executor.undo_change(change_id, run_undo_command=False)
        first = target.read_bytes()
        executor.undo_change(change_id, run_undo_command=False)
        assert target.read_bytes() == first == b"before\n"

    def test_corrupt_backup_prevents_partial_restore(self, journal, backups, executor, tmp_path: Path):
        a = tmp_path / "a"
        b = tmp_path / "b"
        a.write_text("a before\n")
        b.write_text("b before\n")
        backup_a = backups.create_backup(a, "multi")
        backup_b = backups.create_backup(b, "multi")
        a.write_text("a after\n")
        b.write_text("b after\n")
        change_id = journal.record_change("multi", "Two files", backups=[backup_a, backup_b])
        Path(backup_b.backup_path).write_text("corrupted")

        with pytest.raises(BackupError):
            executor.undo_change(change_id)

        assert a.read_text() == "a after\n"
        assert b.read_text() == "b after\n"

    def test_undo_is_logged(self, journal, executor):
        change_id = journal.record_change("test", "Test", undo_command="true")
        executor.undo_change(change_id)
        assert change_id in journal.undone_ids()


class TestUndoMany:
    def _ordered_changes(self, journal: ChangeJournal, tmp_path: Path) -> Path:
        log = tmp_path / "order.log"
        for n in (1, 2, 3):
            journal.record_change(
                "test", f"Change {n}", undo_command=f"echo {n} >> {shlex.quote(str(log))}"
            )
        return log

    def test_undo_all_reverse_order(self, journal, executor, tmp_path: Path):
        log = self._ordered_changes(journal, tmp_path)

        results = executor.undo_all()

        assert [r.change_id for r in results] == ["chg_0003", "chg_0002", "chg_0001"]
        assert log.read_text().split() == ["3", "2", "1"]

    def test_undo_all_skips_already_undone(self, journal, executor, tmp_path: Path):
        log = self._ordered_changes(journal, tmp_path)
        executor.undo_change("chg_0002")

        results = executor.undo_all()

        assert [r.change_id for r in results] == ["chg_0003", "chg_0001"]
        assert log.read_text().split() == ["2", "3", "1"]

    def test_undo_range(self, journal, executor, tmp_path: Path):
        log = self._ordered_changes(journal, tmp_path)
        journal.record_change("test", "Change 4", undo_command=f"echo 4 >> {shlex.quote(str(log))}")

        results = executor.undo_range("chg_0002", "chg_0003")

        assert [r.change_id for r in results] == ["chg_0003", "chg_0002"]

    def test_stops_at_first_failure(self, journal, executor, tmp_path: Path):
        log = tmp_path / "order.log"
        journal.record_change("test", "ok", undo_command=f"echo 1 >> {shlex.quote(str(log))}")
        journal.record_change("test", "broken", undo_command="false")
        journal.record_change("test", "ok", undo_command=f"echo 3 >> {shlex.quote(str(log))}")

        results = executor.undo_all()

        assert [r.success for r in results] == [True, False]
        assert log.read_text().split() == ["3"]

    def test_undo_last_session(self, journal, executor, paths: StatePaths, tmp_path: Path):
        from hostfix.fix.models import Session

        log = tmp_path / "order.log"
        journal.bind(Session("sess_a", "t", paths.lock_file))
        journal.record_change("test", "old", undo_command=f"echo a >> {shlex.quote(str(log))}")
        journal.bind(Session("sess_b", "t", paths.lock_file))
        journal.record_change("test", "new 1", undo_command=f"echo b1 >> {shlex.quote(str(log))}")
        journal.record_change("test", "new 2", undo_command=f"echo b2 >> {shlex.quote(str(log))}")
        journal.unbind()

        results = executor.undo_last_session()

        assert [r.change_id for r in results] == ["chg_0003", "chg_0002"]
        assert log.read_text().split() == ["b2", "b1"]

    def test_list_undoable(self, journal, executor):
        journal.record_change("test", "one", undo_command="true")
        journal.record_change("test", "two", undo_command="true")
        executor.undo_change("chg_0001")
        assert [r.id for r in executor.list_undoable()] == ["chg_0002"]
