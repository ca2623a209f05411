"""Shared data models used across hostfix modules."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path


class Severity(enum.Enum):
    INFO = "info"
    WARN = "warn"
    CRITICAL = "critical"


class CheckStatus(enum.Enum):
    PASS = "pass"
    FAIL = "fail"
    SKIP = "skip"


class FixMode(enum.Enum):
    APPLY = "apply"
    DRY_RUN = "dry-run"
    PROMPT = "prompt"


class FixOutcome(enum.Enum):
    PASS = "pass"
    SKIP = "skip"
    NO_OP = "no-op"
    APPLIED = "applied"
    DRY_RUN_PREVIEW = "dry-run-preview"
    DECLINED = "declined"
    MANUAL_REQUIRED = "manual-required"
    ERROR = "error"


@dataclass
class CheckResult:
    """A single result from the external diagnostic runner."""

    check_id: str
    status: CheckStatus
    hint: str = ""


@dataclass
class FixPlan:
    """What a fixer would do, shown in dry-run and prompt modes."""

    check_id: str
    action: str
    target: Path | None = None
    command: str = ""


@dataclass
class DispatchResult:
    """Terminal state of one dispatched check."""

    check_id: str
    outcome: FixOutcome
    message: str = ""
    change_id: str | None = None
    plan: FixPlan | None = None
    hint: str = ""


@dataclass
class FixReport:
    """Operator-facing summary of a dispatch run."""

    mode: FixMode = FixMode.APPLY
    results: list[DispatchResult] = field(default_factory=list)
    dropped_records: int = 0
    started_at: datetime = field(default_factory=datetime.now)

    def add(self, result: DispatchResult) -> None:
        self.results.append(result)

    def _with(self, *outcomes: FixOutcome) -> list[DispatchResult]:
        return [r for r in self.results if r.outcome in outcomes]

    @property
    def applied(self) -> list[DispatchResult]:
        return self._with(FixOutcome.APPLIED)

    @property
    def previews(self) -> list[DispatchResult]:
        return self._with(FixOutcome.DRY_RUN_PREVIEW)

    @property
    def manual(self) -> list[DispatchResult]:
        return self._with(FixOutcome.MANUAL_REQUIRED)

    @property
    def errors(self) -> list[DispatchResult]:
        return self._with(FixOutcome.ERROR)

    @property
    def applied_count(self) -> int:
        return len(self.applied)

    @property
    def skipped_count(self) -> int:
        return len(self._with(FixOutcome.DECLINED))

    @property
    def failed_count(self) -> int:
        return len(self.errors)

    @property
    def manual_count(self) -> int:
        return len(self.manual)

    @property
    def no_op_count(self) -> int:
        return len(self._with(FixOutcome.NO_OP))

    @property
    def change_ids(self) -> list[str]:
        return [r.change_id for r in self.applied if r.change_id]
