"""Undo/rollback support for recorded changes."""

from __future__ import annotations

import logging
import subprocess

from hostfix.core.errors import BackupError, UnknownChangeError
from hostfix.fix.backup import BackupStore
from hostfix.fix.journal import ChangeJournal
from hostfix.fix.models import ChangeRecord, UndoResult, parse_change_id

logger = logging.getLogger(__name__)


class UndoExecutor:
    """Reverses changes by restoring their backups and running undo commands.

    Backup restoration is idempotent. Undo commands are run as recorded; a
    command that is not naturally idempotent must not be run twice, and
    avoiding that is up to the caller (see :meth:`list_undoable`).
    """

    def __init__(self, journal: ChangeJournal, backups: BackupStore, command_timeout: float = 30.0):
        self.journal = journal
        self.backups = backups
        self.command_timeout = command_timeout

    def undo_change(
        self,
        change_id: str,
        restore_backup: bool = True,
        run_undo_command: bool = True,
    ) -> UndoResult:
        """Undo one change.

        Raises :class:`UnknownChangeError` for an unknown id and
        :class:`BackupError` when any backup fails verification; in both
        cases nothing has been restored.
        """
        record = self.journal.get_change(change_id)
        if record is None:
            raise UnknownChangeError(change_id)

        restored: list[str] = []
        if restore_backup and record.backups:
            corrupt = [b for b in record.backups if not self.backups.verify_backup_integrity(b)]
            if corrupt:
                raise BackupError(
                    f"Cannot undo {change_id}: backup {corrupt[0].backup_path} failed verification"
                )
            for backup in record.backups:
                restored.append(str(self.backups.restore(backup)))

        success = True
        exit_code: int | None = None
        messages = []
        if restored:
            messages.append(f"restored {', '.join(restored)}")

        if run_undo_command and record.undo_command.strip():
            exit_code, detail = self._run_command(record)
            if exit_code == 0:
                messages.append(f"ran `{record.undo_command}`")
            else:
                success = False
                messages.append(detail)

        if not messages:
            messages.append("nothing to undo")

        prefix = f"Reverted {change_id}" if success else f"Undo of {change_id} failed"
        result = UndoResult(
            change_id=change_id,
            success=success,
            message=f"{prefix}: {'; '.join(messages)}",
            restored=restored,
            command_exit=exit_code,
        )
        self.journal.record_undo(result)
        log = logger.info if success else logger.warning
        log(result.message)
        return result

    def undo_all(
        self,
        skip_undone: bool = True,
        restore_backup: bool = True,
        run_undo_command: bool = True,
    ) -> list[UndoResult]:
        """Undo every recorded change, newest first."""
        records = self.journal.load()
        if skip_undone:
            undone = self.journal.undone_ids()
            records = [r for r in records if r.id not in undone]
        return self._undo_many(records, restore_backup, run_undo_command)

    def undo_range(
        self,
        first_id: str,
        last_id: str,
        restore_backup: bool = True,
        run_undo_command: bool = True,
    ) -> list[UndoResult]:
        """Undo changes ``first_id..last_id`` inclusive, newest first."""
        low, high = sorted((parse_change_id(first_id), parse_change_id(last_id)))
        records = [r for r in self.journal.load() if low <= r.number <= high]
        return self._undo_many(records, restore_backup, run_undo_command)

    def undo_session(
        self,
        session_id: str,
        restore_backup: bool = True,
        run_undo_command: bool = True,
    ) -> list[UndoResult]:
        records = [r for r in self.journal.load() if r.session_id == session_id]
        return self._undo_many(records, restore_backup, run_undo_command)

    def undo_last_session(
        self, restore_backup: bool = True, run_undo_command: bool = True
    ) -> list[UndoResult]:
        """Undo all changes from the most recent session that recorded any."""
        sessions = [r.session_id for r in self.journal.load() if r.session_id]
        if not sessions:
            return []
        return self.undo_session(sessions[-1], restore_backup, run_undo_command)

    def list_undoable(self) -> list[ChangeRecord]:
        undone = self.journal.undone_ids()
        return [r for r in self.journal.load() if r.id not in undone]

    def _undo_many(
        self,
        records: list[ChangeRecord],
        restore_backup: bool,
        run_undo_command: bool,
    ) -> list[UndoResult]:
        """Undo in strictly descending id order, stopping at the first failure.

        Earlier changes may depend on state left by later ones being
        reverted first, so nothing older is touched after a failure.
        """
        results = []
        for record in sorted(records, key=lambda r: r.number, reverse=True):
            try:
                result = self.undo_change(record.id, restore_backup, run_undo_command)
            except BackupError as e:
                result = UndoResult(change_id=record.id, success=False, message=str(e))
                self.journal.record_undo(result)
            results.append(result)
            if not result.success:
                logger.warning("Stopping undo after failure of %s", record.id)
                break
        return results

    def _run_command(self, record: ChangeRecord) -> tuple[int, str]:
        try:
            proc = subprocess.run(
                record.undo_command,
                shell=True,
                capture_output=True,
                text=True,
                timeout=self.command_timeout,
            )
        except subprocess.TimeoutExpired:
            return -1, f"undo command timed out after {self.command_timeout:g}s"
        except OSError as e:
            return -1, f"undo command could not start: {e}"

        if proc.returncode != 0:
            stderr = proc.stderr.strip().splitlines()
            tail = f": {stderr[-1]}" if stderr else ""
            return proc.returncode, f"undo command exited {proc.returncode}{tail}"
        return 0, ""
