"""Append-only change journal.

Location: ``<state>/changes.jsonl``

Format: one JSON object per line, each a :class:`ChangeRecord` carrying a
SHA-256 checksum over its own canonical content. Lines are independent, so a
damaged line never prevents reading the ones after it.

An integrity summary (``.integrity``) stores the hash of the last journal
content known to be valid; verification is skipped while the journal still
hashes to that value.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from hostfix.core.config import StatePaths
from hostfix.core.errors import JournalError
from hostfix.core.models import Severity
from hostfix.fix.atomic import append_atomic, sha256_bytes, write_atomic
from hostfix.fix.models import (
    BackupRecord,
    ChangeRecord,
    RepairResult,
    Session,
    UndoResult,
    format_change_id,
    parse_change_id,
    utc_now,
)

logger = logging.getLogger(__name__)

_PARSE_ERRORS = (ValueError, KeyError, TypeError)


class ChangeJournal:
    """Records, verifies and repairs the on-disk journal."""

    def __init__(self, paths: StatePaths):
        self.paths = paths
        self.path = paths.changes_file
        self.session: Session | None = None

    # ------------------------------------------------------------------
    # Session mirror
    # ------------------------------------------------------------------

    def bind(self, session: Session) -> None:
        """Mirror records into *session* and seed it from disk."""
        self.session = session
        session.records.clear()
        for record in self.load():
            session.remember(record)

    def unbind(self) -> None:
        self.session = None

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record_change(
        self,
        category: str,
        description: str,
        undo_command: str = "",
        destructive: bool = False,
        severity: str | Severity = Severity.INFO,
        pre_state: list[Any] | None = None,
        post_state: list[Any] | None = None,
        backups: list[BackupRecord] | None = None,
    ) -> str:
        """Append a new change and return its id.

        The next id is derived from the file on every call, never from the
        in-memory mirror, so separate short-lived processes agree on it.
        """
        if isinstance(severity, Severity):
            severity = severity.value
        if severity not in {s.value for s in Severity}:
            raise ValueError(f"Unknown severity {severity!r}")

        try:
            before = self._read_bytes()
            record = ChangeRecord(
                id=format_change_id(self._max_number(before) + 1),
                category=category,
                description=description,
                undo_command=undo_command,
                destructive=destructive,
                severity=severity,
                pre_state=_plain_state(pre_state),
                post_state=_plain_state(post_state),
                backups=list(backups or []),
                session_id=self.session.session_id if self.session else "",
            ).seal()
            integrity_current = self._integrity_matches(before)
            append_atomic(self.path, record.to_line())
            if integrity_current:
                self.update_integrity_file()
        except OSError as e:
            raise JournalError(f"Could not append to journal {self.path}: {e}") from e

        if self.session is not None:
            self.session.remember(record)

        logger.info("Recorded %s [%s] %s", record.id, category, description)
        return record.id

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def load(self) -> list[ChangeRecord]:
        """Valid records in file order; invalid lines are skipped with a warning."""
        records = []
        for n, record in self._scan():
            if record is None:
                logger.warning("Ignoring invalid journal line %d", n)
            else:
                records.append(record)
        return records

    def get_change(self, change_id: str) -> ChangeRecord | None:
        for record in self.load():
            if record.id == change_id:
                return record
        return None

    # ------------------------------------------------------------------
    # Integrity
    # ------------------------------------------------------------------

    def verify_integrity(self, use_cache: bool = True) -> bool:
        """Return ``True`` when every journal line is a valid, checksummed record.

        Read-only: neither the journal nor the integrity file is touched.
        """
        data = self._read_bytes()
        if use_cache and data and self._integrity_matches(data):
            return True
        invalid = self.find_invalid_lines()
        if invalid:
            logger.warning("Journal %s has %d invalid line(s): %s", self.path, len(invalid), invalid)
        return not invalid

    def find_invalid_lines(self) -> list[int]:
        """1-based numbers of lines that fail to parse or verify."""
        return [n for n, record in self._scan() if record is None]

    def repair(self) -> RepairResult:
        """Drop every invalid line and rewrite the journal atomically.

        Surviving lines keep their order, text and ids. Each dropped line is
        logged. Repairing a valid journal rewrites identical content.
        """
        kept_lines: list[str] = []
        dropped: list[int] = []
        lines = self._read_lines()
        for n, record in self._scan(lines):
            if record is None:
                logger.warning("Dropping corrupted journal line %d: %.80s", n, lines[n - 1])
                dropped.append(n)
            else:
                kept_lines.append(lines[n - 1])

        try:
            if self.path.exists() or kept_lines:
                write_atomic(self.path, "".join(line + "\n" for line in kept_lines))
            self.update_integrity_file()
        except OSError as e:
            raise JournalError(f"Could not rewrite journal {self.path}: {e}") from e

        if dropped:
            logger.warning("Journal repair dropped %d record(s), kept %d", len(dropped), len(kept_lines))
        return RepairResult(kept=len(kept_lines), dropped=len(dropped), dropped_lines=dropped)

    def update_integrity_file(self) -> None:
        """Record the current journal hash as verified."""
        data = self._read_bytes()
        summary = {
            "journal_sha256": sha256_bytes(data),
            "record_count": sum(1 for line in data.split(b"\n") if line.strip()),
            "verified_at": utc_now(),
        }
        write_atomic(self.paths.integrity_file, json.dumps(summary, indent=2) + "\n")

    def read_integrity_file(self) -> dict[str, Any] | None:
        try:
            data = json.loads(self.paths.integrity_file.read_text())
        except FileNotFoundError:
            return None
        except ValueError:
            logger.warning("Integrity file %s is unreadable", self.paths.integrity_file)
            return None
        return data if isinstance(data, dict) else None

    # ------------------------------------------------------------------
    # Undo log
    # ------------------------------------------------------------------

    def record_undo(self, result: UndoResult) -> None:
        try:
            append_atomic(self.paths.undos_file, json.dumps(result.to_dict(), sort_keys=True))
        except OSError as e:
            raise JournalError(f"Could not append to undo log: {e}") from e

    def undone_ids(self) -> set[str]:
        """Ids of changes that have been undone successfully."""
        undone: set[str] = set()
        try:
            text = self.paths.undos_file.read_text(encoding="utf-8")
        except FileNotFoundError:
            return undone
        for line in text.split("\n"):
            if not line.strip():
                continue
            try:
                entry = json.loads(line)
            except ValueError:
                continue
            if isinstance(entry, dict) and entry.get("success"):
                undone.add(entry.get("change_id", ""))
        return undone

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _read_bytes(self) -> bytes:
        try:
            return self.path.read_bytes()
        except FileNotFoundError:
            return b""

    def _read_lines(self) -> list[str]:
        return _split_lines(self._read_bytes())

    def _scan(self, lines: list[str] | None = None):
        """Yield ``(line_number, record_or_None)`` for every non-blank line.

        A record is rejected when it fails to parse, its checksum does not
        match, or its id does not increase over the previous valid record.
        """
        if lines is None:
            lines = self._read_lines()
        last_number = 0
        for n, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            try:
                record = ChangeRecord.from_line(line)
            except _PARSE_ERRORS:
                yield n, None
                continue
            if not record.is_valid() or record.number <= last_number:
                yield n, None
                continue
            last_number = record.number
            yield n, record

    def _max_number(self, data: bytes) -> int:
        """Highest id number on any line whose id can be read, valid or not."""
        highest = 0
        for line in _split_lines(data):
            try:
                number = parse_change_id(json.loads(line)["id"])
            except _PARSE_ERRORS:
                continue
            highest = max(highest, number)
        return highest

    def _integrity_matches(self, data: bytes) -> bool:
        summary = self.read_integrity_file()
        if summary is None:
            return not data
        return summary.get("journal_sha256") == sha256_bytes(data)


def _split_lines(data: bytes) -> list[str]:
    """Split journal content on ``\\n`` only.

    Records are written with ``ensure_ascii=False``, so U+2028, U+2029 and
    U+0085 may appear inside a line; ``str.splitlines`` would break on them.
    """
    lines = data.decode("utf-8", errors="replace").split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return lines


def _plain_state(values: list[Any] | None) -> list[Any]:
    """JSON-native copy of a state list; paths and other objects become strings."""
    try:
        return json.loads(json.dumps(list(values or []), default=str))
    except ValueError as e:
        raise ValueError(f"Change state is not serializable: {e}") from e
