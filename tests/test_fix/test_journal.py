"""Tests for the change journal."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from hostfix.core.config import StatePaths, get_state_dir
from hostfix.core.errors import JournalError
from hostfix.fix.journal import ChangeJournal
from hostfix.fix.models import ChangeRecord, Session, UndoResult


@pytest.fixture
def paths(tmp_path: Path) -> StatePaths:
    return StatePaths(get_state_dir(tmp_path / "state"))


@pytest.fixture
def journal(paths: StatePaths) -> ChangeJournal:
    return ChangeJournal(paths)


def _lines(journal: ChangeJournal) -> list[str]:
    return journal.path.read_text(encoding="utf-8").rstrip("\n").split("\n")


class TestRecordChange:
    def test_returns_prefixed_id_and_persists(self, journal: ChangeJournal):
        change_id = journal.record_change("test", "Test change", "echo undo")

        assert change_id.startswith("chg_")
        persisted = json.loads(_lines(journal)[-1])
        assert persisted["id"] == change_id
        assert persisted["undo_command"] == "echo undo"

    def test_sequential_ids_in_file_order(self, journal: ChangeJournal):
        ids = [
            journal.record_change("cat1", "First", "echo 1"),
            journal.record_change("cat2", "Second", "echo 2"),
            journal.record_change("cat3", "Third", "echo 3"),
        ]

        assert ids == ["chg_0001", "chg_0002", "chg_0003"]
        assert [json.loads(line)["id"] for line in _lines(journal)] == ids

    def test_next_id_read_from_disk(self, paths: StatePaths):
        """Separate journal instances (separate processes) must not reuse ids."""
        first = ChangeJournal(paths).record_change("a", "one")
        second = ChangeJournal(paths).record_change("b", "two")
        assert (first, second) == ("chg_0001", "chg_0002")

    def test_ids_continue_past_corrupted_lines(self, journal: ChangeJournal):
        journal.record_change("a", "one")
        journal.record_change("b", "two")
        lines = _lines(journal)
        data = json.loads(lines[1])
        data["description"] = "tampered"
        journal.path.write_text(lines[0] + "\n" + json.dumps(data) + "\n")

        assert journal.record_change("c", "three") == "chg_0003"

    def test_records_carry_valid_checksums(self, journal: ChangeJournal):
        journal.record_change("test", "Test", pre_state=["before"], post_state=["after"])
        record = journal.load()[0]
        assert record.is_valid()
        assert record.pre_state == ["before"]

    def test_rejects_unknown_severity(self, journal: ChangeJournal):
        with pytest.raises(ValueError):
            journal.record_change("test", "Test", severity="catastrophic")
        assert not journal.path.exists()

    def test_mirrors_into_bound_session(self, journal: ChangeJournal, paths: StatePaths):
        session = Session("sess_x", "now", paths.lock_file)
        journal.bind(session)
        change_id = journal.record_change("test", "Test")

        assert change_id in session.records
        assert session.records[change_id].session_id == "sess_x"

    def test_bind_seeds_mirror_from_disk(self, journal: ChangeJournal, paths: StatePaths):
        journal.record_change("a", "one")
        session = Session("sess_y", "now", paths.lock_file)
        journal.bind(session)
        assert list(session.records) == ["chg_0001"]

    def test_write_failure_raises_journal_error(self, journal: ChangeJournal, monkeypatch):
        import hostfix.fix.journal as journal_module

        def broken_append(path, line):
            raise OSError("read-only file system")

        monkeypatch.setattr(journal_module, "append_atomic", broken_append)
        with pytest.raises(JournalError):
            journal.record_change("test", "Test")

    def test_state_values_stored_as_json(self, journal: ChangeJournal, tmp_path: Path):
        change_id = journal.record_change(
            "test", "Paths in state", pre_state=[tmp_path / "rc"], post_state=[{"path": tmp_path}]
        )

        record = journal.get_change(change_id)
        assert record.pre_state == [str(tmp_path / "rc")]
        assert record.post_state == [{"path": str(tmp_path)}]
        assert journal.verify_integrity(use_cache=False) is True

    def test_unserializable_state_rejected_before_write(self, journal: ChangeJournal):
        state: list = []
        state.append(state)
        with pytest.raises(ValueError):
            journal.record_change("test", "Circular", pre_state=state)
        assert not journal.path.exists()


class TestVerifyIntegrity:
    def test_empty_journal_passes(self, journal: ChangeJournal):
        assert journal.verify_integrity() is True

    def test_valid_journal_passes(self, journal: ChangeJournal):
        journal.record_change("a", "one")
        journal.record_change("b", "two")
        assert journal.verify_integrity(use_cache=False) is True

    def test_invalid_json_fails(self, journal: ChangeJournal):
        journal.record_change("a", "one")
        with open(journal.path, "a") as f:
            f.write("not valid json\n")
        assert journal.verify_integrity() is False
        assert journal.find_invalid_lines() == [2]

    def test_checksum_mismatch_fails(self, journal: ChangeJournal):
        journal.record_change("a", "one")
        data = json.loads(_lines(journal)[0])
        data["undo_command"] = "rm -rf ~"
        journal.path.write_text(json.dumps(data) + "\n")
        assert journal.verify_integrity() is False

    def test_record_without_checksum_fails(self, journal: ChangeJournal):
        journal.path.write_text('{"id":"chg_001","description":"test1"}\n')
        assert journal.verify_integrity() is False

    def test_duplicate_id_fails(self, journal: ChangeJournal):
        journal.record_change("a", "one")
        line = _lines(journal)[0]
        journal.path.write_text(line + "\n" + line + "\n")
        assert journal.find_invalid_lines() == [2]

    def test_does_not_mutate(self, journal: ChangeJournal, paths: StatePaths):
        journal.record_change("a", "one")
        with open(journal.path, "a") as f:
            f.write("garbage\n")
        before = journal.path.read_bytes()
        integrity_before = paths.integrity_file.read_bytes()

        journal.verify_integrity()
        assert journal.path.read_bytes() == before
        assert paths.integrity_file.read_bytes() == integrity_before

    def test_integrity_file_tracks_appends(self, journal: ChangeJournal):
        journal.record_change("a", "one")
        journal.record_change("b", "two")
        summary = journal.read_integrity_file()
        assert summary is not None
        assert summary["record_count"] == 2

    def test_append_after_corruption_does_not_vouch_for_it(self, journal: ChangeJournal):
        """A corrupted journal must stay unverified after new records are appended."""
        journal.record_change("a", "one")
        with open(journal.path, "a") as f:
            f.write("garbage\n")
        journal.record_change("b", "two")
        assert journal.verify_integrity() is False


class TestRepair:
    def _corrupt_middle(self, journal: ChangeJournal) -> None:
        journal.record_change("a", "first")
        journal.record_change("b", "second")
        journal.record_change("c", "third")
        lines = _lines(journal)
        lines[1] = lines[1][:40]
        journal.path.write_text("\n".join(lines) + "\n")

    def test_corrupted_middle_line(self, journal: ChangeJournal):
        self._corrupt_middle(journal)
        assert journal.verify_integrity() is False

        result = journal.repair()

        assert journal.verify_integrity(use_cache=False) is True
        assert (result.kept, result.dropped, result.dropped_lines) == (2, 1, [2])
        assert [r.id for r in journal.load()] == ["chg_0001", "chg_0003"]

    def test_n_valid_m_invalid(self, journal: ChangeJournal):
        for i in range(4):
            journal.record_change("cat", f"change {i}")
        with open(journal.path, "a") as f:
            f.write("bad 1\n{\"id\": \"chg_0009\"}\n[]\n")

        result = journal.repair()

        assert result.kept == 4
        assert result.dropped == 3
        assert len(_lines(journal)) == 4
        assert all(ChangeRecord.from_line(line).is_valid() for line in _lines(journal))

    def test_repair_is_idempotent(self, journal: ChangeJournal):
        journal.record_change("a", "one")
        journal.record_change("b", "two")
        before = journal.path.read_bytes()

        result = journal.repair()
        assert result.dropped == 0
        assert journal.path.read_bytes() == before

        journal.repair()
        assert journal.path.read_bytes() == before

    def test_repair_logs_dropped_lines(self, journal: ChangeJournal, caplog):
        self._corrupt_middle(journal)
        with caplog.at_level("WARNING"):
            journal.repair()
        assert "line 2" in caplog.text

    def test_ids_not_renumbered(self, journal: ChangeJournal):
        self._corrupt_middle(journal)
        journal.repair()
        assert journal.record_change("d", "fourth") == "chg_0004"

    def test_repair_of_missing_journal(self, journal: ChangeJournal):
        result = journal.repair()
        assert result.kept == 0 and result.dropped == 0

    @pytest.mark.parametrize("separator", ["\u2028", "\u2029", "\x85"])
    def test_unicode_line_separators_are_not_line_breaks(self, journal: ChangeJournal, separator):
        """Descriptions may hold characters that str.splitlines treats as breaks."""
        journal.record_change("a", "first")
        journal.record_change("b", f"line{separator}sep", pre_state=[f"/tmp/odd{separator}name"])
        journal.record_change("c", "third")

        assert journal.verify_integrity(use_cache=False) is True
        result = journal.repair()

        assert (result.kept, result.dropped) == (3, 0)
        assert journal.get_change("chg_0002").description == f"line{separator}sep"
        assert journal.record_change("d", "fourth") == "chg_0004"


class TestReading:
    def test_load_skips_damaged_lines(self, journal: ChangeJournal):
        journal.record_change("a", "one")
        with open(journal.path, "a") as f:
            f.write("{broken\n")
        journal.record_change("b", "two")

        assert [r.id for r in journal.load()] == ["chg_0001", "chg_0002"]

    def test_get_change(self, journal: ChangeJournal):
        journal.record_change("a", "one")
        assert journal.get_change("chg_0001").description == "one"
        assert journal.get_change("chg_0099") is None


class TestUndoLog:
    def test_records_successful_undos(self, journal: ChangeJournal):
        journal.record_undo(UndoResult(change_id="chg_0001", success=True, message="ok"))
        journal.record_undo(UndoResult(change_id="chg_0002", success=False, message="failed"))
        assert journal.undone_ids() == {"chg_0001"}

    def test_no_undo_log(self, journal: ChangeJournal):
        assert journal.undone_ids() == set()
