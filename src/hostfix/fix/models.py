"""Remediation engine data models."""

from __future__ import annotations

import hashlib
import json
import re
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from hostfix.core.models import Severity

CHANGE_ID_RE = re.compile(r"^chg_(\d+)$")

_SEVERITIES = {s.value for s in Severity}


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def format_change_id(number: int) -> str:
    return f"chg_{number:04d}"


def parse_change_id(change_id: str) -> int:
    """Return the sequence number of *change_id* or raise ``ValueError``."""
    match = CHANGE_ID_RE.match(change_id)
    if not match:
        raise ValueError(f"Malformed change id: {change_id!r}")
    return int(match.group(1))


def canonical_json(data: dict[str, Any]) -> str:
    """Deterministic JSON encoding: sorted keys, compact separators."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


@dataclass(frozen=True)
class BackupRecord:
    """Snapshot of one file taken before it was mutated."""

    source_path: str
    backup_path: str
    content_checksum: str
    created_at: str

    def to_dict(self) -> dict[str, str]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BackupRecord:
        values = {}
        for key in ("source_path", "backup_path", "content_checksum", "created_at"):
            value = data[key]
            if not isinstance(value, str):
                raise TypeError(f"Backup field {key} must be a string")
            values[key] = value
        return cls(**values)


@dataclass
class ChangeRecord:
    """One remediation action, persisted as a single journal line."""

    id: str
    category: str
    description: str
    undo_command: str = ""
    destructive: bool = False
    severity: str = Severity.INFO.value
    pre_state: list[Any] = field(default_factory=list)
    post_state: list[Any] = field(default_factory=list)
    backups: list[BackupRecord] = field(default_factory=list)
    timestamp: str = field(default_factory=utc_now)
    session_id: str = ""
    checksum: str = ""

    @property
    def number(self) -> int:
        return parse_change_id(self.id)

    def content_dict(self) -> dict[str, Any]:
        """Every field except the checksum, in JSON-ready form."""
        return {
            "id": self.id,
            "category": self.category,
            "description": self.description,
            "undo_command": self.undo_command,
            "destructive": self.destructive,
            "severity": self.severity,
            "pre_state": list(self.pre_state),
            "post_state": list(self.post_state),
            "backups": [b.to_dict() for b in self.backups],
            "timestamp": self.timestamp,
            "session_id": self.session_id,
        }

    def compute_checksum(self) -> str:
        return hashlib.sha256(canonical_json(self.content_dict()).encode("utf-8")).hexdigest()

    def seal(self) -> ChangeRecord:
        self.checksum = self.compute_checksum()
        return self

    def is_valid(self) -> bool:
        return bool(self.checksum) and self.checksum == self.compute_checksum()

    def to_dict(self) -> dict[str, Any]:
        data = self.content_dict()
        data["checksum"] = self.checksum
        return data

    def to_line(self) -> str:
        return canonical_json(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChangeRecord:
        """Build a record from parsed JSON, rejecting anything malformed."""
        if not isinstance(data, dict):
            raise TypeError("Change record must be a JSON object")

        parse_change_id(data["id"])
        for key in ("category", "description", "undo_command", "timestamp", "checksum"):
            if not isinstance(data[key], str):
                raise TypeError(f"Field {key} must be a string")
        if not isinstance(data["destructive"], bool):
            raise TypeError("Field destructive must be a boolean")
        if data["severity"] not in _SEVERITIES:
            raise ValueError(f"Unknown severity {data['severity']!r}")
        for key in ("pre_state", "post_state", "backups"):
            if not isinstance(data[key], list):
                raise TypeError(f"Field {key} must be a list")

        return cls(
            id=data["id"],
            category=data["category"],
            description=data["description"],
            undo_command=data["undo_command"],
            destructive=data["destructive"],
            severity=data["severity"],
            pre_state=data["pre_state"],
            post_state=data["post_state"],
            backups=[BackupRecord.from_dict(b) for b in data["backups"]],
            timestamp=data["timestamp"],
            session_id=data.get("session_id", ""),
            checksum=data["checksum"],
        )

    @classmethod
    def from_line(cls, line: str) -> ChangeRecord:
        return cls.from_dict(json.loads(line))


@dataclass
class Session:
    """One lock-protected remediation run and its in-memory journal mirror."""

    session_id: str
    started_at: str
    lock_path: Path
    records: dict[str, ChangeRecord] = field(default_factory=dict)

    def remember(self, record: ChangeRecord) -> None:
        self.records[record.id] = record


@dataclass
class RepairResult:
    """Outcome of a journal repair."""

    kept: int
    dropped: int
    dropped_lines: list[int] = field(default_factory=list)


@dataclass
class UndoResult:
    """Result of reversing one change."""

    change_id: str
    success: bool
    message: str
    restored: list[str] = field(default_factory=list)
    command_exit: int | None = None
    undone_at: str = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
