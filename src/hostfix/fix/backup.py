"""Backup store: verified file snapshots taken before every mutation."""

from __future__ import annotations

import json
import logging
import re
import shutil
from datetime import datetime, timezone
from pathlib import Path

from hostfix.core.config import StatePaths
from hostfix.core.errors import BackupError
from hostfix.fix.atomic import append_atomic, sha256_file, write_atomic
from hostfix.fix.models import BackupRecord, utc_now

logger = logging.getLogger(__name__)

_INDEX_FILENAME = "index.jsonl"
_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


class BackupStore:
    """Creates, verifies and restores file backups.

    Backups live in ``<state>/backups`` as ``<label>_<timestamp>_<name>.bak``
    and are never overwritten. Each one is also appended to
    ``backups/index.jsonl`` so the source path can be recovered without the
    journal.
    """

    def __init__(self, paths: StatePaths):
        self.paths = paths
        self.backup_dir = paths.backups_dir

    @property
    def index_file(self) -> Path:
        return self.backup_dir / _INDEX_FILENAME

    def create_backup(self, source_path: Path, label: str) -> BackupRecord | None:
        """Copy *source_path* into the store.

        Returns ``None`` when the source does not exist: backing up nothing
        is valid. Raises :class:`BackupError` if an existing file could not
        be copied and verified.
        """
        source_path = Path(source_path)
        if not source_path.is_file():
            logger.debug("No backup needed, %s does not exist", source_path)
            return None

        try:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
            source_checksum = sha256_file(source_path)
            backup_file = self._allocate(source_path, label)
            shutil.copy2(source_path, backup_file)
            copied_checksum = sha256_file(backup_file)
        except OSError as e:
            raise BackupError(f"Could not back up {source_path}: {e}") from e

        if copied_checksum != source_checksum:
            raise BackupError(
                f"Backup of {source_path} does not match the source "
                f"({copied_checksum} != {source_checksum})"
            )

        record = BackupRecord(
            source_path=str(source_path),
            backup_path=str(backup_file),
            content_checksum=source_checksum,
            created_at=utc_now(),
        )
        try:
            append_atomic(self.index_file, json.dumps(record.to_dict(), sort_keys=True))
        except OSError as e:
            raise BackupError(f"Could not update backup index: {e}") from e

        logger.info("Backed up %s -> %s", source_path, backup_file)
        return record

    def verify_backup_integrity(self, record: BackupRecord) -> bool:
        """Recompute the backup's checksum and compare with the recorded one."""
        backup_file = Path(record.backup_path)
        if not backup_file.is_file():
            logger.warning("Backup file missing: %s", backup_file)
            return False

        actual = sha256_file(backup_file)
        if actual != record.content_checksum:
            logger.warning(
                "Backup %s is corrupted: expected %s, found %s",
                backup_file, record.content_checksum, actual,
            )
            return False
        return True

    def restore(self, record: BackupRecord) -> Path:
        """Overwrite the original file with the backup's content.

        Restoring the same backup twice leaves the same end state.
        """
        if not self.verify_backup_integrity(record):
            raise BackupError(f"Refusing to restore corrupted backup {record.backup_path}")

        target = Path(record.source_path)
        backup_file = Path(record.backup_path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            mode = backup_file.stat().st_mode & 0o7777
            write_atomic(target, backup_file.read_bytes(), mode=mode)
        except OSError as e:
            raise BackupError(f"Could not restore {target}: {e}") from e

        logger.info("Restored %s from %s", target, backup_file)
        return target

    def list_backups(self) -> list[BackupRecord]:
        """All known backups, oldest first."""
        if self.index_file.exists():
            records = []
            for n, line in enumerate(self.index_file.read_text(encoding="utf-8").split("\n"), start=1):
                if not line.strip():
                    continue
                try:
                    records.append(BackupRecord.from_dict(json.loads(line)))
                except (ValueError, KeyError, TypeError):
                    logger.warning("Skipping unreadable backup index line %d", n)
            return records

        # Index lost: rebuild what we can from the directory itself.
        records = []
        if not self.backup_dir.exists():
            return records
        for backup_file in sorted(self.backup_dir.glob("*.bak")):
            records.append(BackupRecord(
                source_path="",
                backup_path=str(backup_file),
                content_checksum=sha256_file(backup_file),
                created_at=datetime.fromtimestamp(
                    backup_file.stat().st_mtime, timezone.utc
                ).isoformat(),
            ))
        return records

    def _allocate(self, source_path: Path, label: str) -> Path:
        """Pick a backup file name that is not already taken."""
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        stem = f"{_UNSAFE.sub('_', label) or 'backup'}_{timestamp}_{source_path.name}"
        backup_file = self.backup_dir / f"{stem}.bak"
        counter = 1
        while backup_file.exists():
            backup_file = self.backup_dir / f"{stem}.{counter}.bak"
            counter += 1
        return backup_file
