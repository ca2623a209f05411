"""Routes diagnostic check results to fixers."""

from __future__ import annotations

import fnmatch
import logging
from typing import Callable, Iterable

from hostfix.core.errors import CoreStateError, FixerError, PreconditionError
from hostfix.core.models import (
    CheckResult,
    CheckStatus,
    DispatchResult,
    FixMode,
    FixOutcome,
    FixPlan,
    FixReport,
)
from hostfix.fix.fixers import FixContext, Fixer

logger = logging.getLogger(__name__)

ConfirmCallback = Callable[[FixPlan], bool]

_GLOB_CHARS = "*?["


class FixerRegistry:
    """Ordered ``(pattern, fixer)`` pairs.

    Pattern forms:
      - ``path.ordering``  exact check id
      - ``path.`` or ``path.*``  every id in the ``path`` namespace
      - any other pattern with ``*``, ``?`` or ``[`` is an fnmatch glob

    :meth:`resolve` picks the most specific match: an exact id beats every
    pattern, otherwise the pattern with the longest literal prefix wins and
    ties go to the earliest registration.
    """

    def __init__(self) -> None:
        self._entries: list[tuple[str, Fixer]] = []

    def register(self, pattern: str, fixer: Fixer) -> None:
        if not pattern:
            raise ValueError("Fixer pattern must not be empty")
        self._entries = [(p, f) for p, f in self._entries if p != pattern]
        self._entries.append((pattern, fixer))

    def patterns(self) -> list[str]:
        return [p for p, _ in self._entries]

    def resolve(self, check_id: str) -> Fixer | None:
        best: Fixer | None = None
        best_rank = -1
        for pattern, fixer in self._entries:
            rank = _match_rank(pattern, check_id)
            if rank > best_rank:
                best, best_rank = fixer, rank
        return best

    def __len__(self) -> int:
        return len(self._entries)


def _match_rank(pattern: str, check_id: str) -> int:
    """Specificity of *pattern* for *check_id*, or -1 if it does not match."""
    if pattern == check_id:
        return len(check_id) + 1
    if pattern.endswith(".*") and not any(c in pattern[:-2] for c in _GLOB_CHARS):
        pattern = pattern[:-1]
    if pattern.endswith(".") and not any(c in pattern for c in _GLOB_CHARS):
        return len(pattern) if check_id.startswith(pattern) else -1
    if any(c in pattern for c in _GLOB_CHARS):
        if not fnmatch.fnmatchcase(check_id, pattern):
            return -1
        literal = min(pattern.find(c) for c in _GLOB_CHARS if c in pattern)
        return literal
    return -1


class FixDispatcher:
    """Drives one check at a time through the fixer state machine.

    Fixer-local failures (``FixerError``, ``OSError`` and ``ValueError``,
    which covers undecodable input) become ``error`` results so one bad
    check never aborts the batch. Journal and backup failures
    (:class:`CoreStateError`) propagate, since nothing that follows could be
    recorded safely.
    """

    def __init__(self, registry: FixerRegistry, ctx: FixContext):
        self.registry = registry
        self.ctx = ctx

    def dispatch(
        self,
        check_id: str,
        status: CheckStatus | str,
        hint: str = "",
        mode: FixMode = FixMode.APPLY,
        confirm: ConfirmCallback | None = None,
    ) -> DispatchResult:
        status = CheckStatus(status)
        if mode is FixMode.PROMPT and confirm is None:
            raise ValueError("Prompt mode needs a confirm callback")

        if status is CheckStatus.PASS:
            return DispatchResult(check_id, FixOutcome.PASS)
        if status is CheckStatus.SKIP:
            return DispatchResult(check_id, FixOutcome.SKIP)

        fixer = self.registry.resolve(check_id)
        if fixer is None:
            logger.info("No fixer for %s; manual fix required", check_id)
            return DispatchResult(
                check_id,
                FixOutcome.MANUAL_REQUIRED,
                message="No automatic fix available",
                hint=hint,
            )

        try:
            problem = fixer.preconditions()
            if problem:
                raise PreconditionError(problem)

            if fixer.is_satisfied():
                logger.info("%s: already fixed", check_id)
                return DispatchResult(check_id, FixOutcome.NO_OP, message="Already in desired state")

            plan = fixer.plan(check_id)
            if mode is FixMode.DRY_RUN:
                logger.info("%s: would %s", check_id, plan.action)
                return DispatchResult(
                    check_id, FixOutcome.DRY_RUN_PREVIEW, message=plan.action, plan=plan
                )

            if mode is FixMode.PROMPT and not confirm(plan):
                logger.info("%s: declined by operator", check_id)
                return DispatchResult(check_id, FixOutcome.DECLINED, message="Declined", plan=plan)

            change_id = fixer.apply(self.ctx, check_id)
        except CoreStateError:
            raise
        except (FixerError, OSError, ValueError) as e:
            logger.error("%s: fix failed: %s", check_id, e)
            return DispatchResult(check_id, FixOutcome.ERROR, message=str(e))

        return DispatchResult(
            check_id, FixOutcome.APPLIED, message=plan.action, change_id=change_id, plan=plan
        )

    def dispatch_all(
        self,
        checks: Iterable[CheckResult],
        mode: FixMode = FixMode.APPLY,
        confirm: ConfirmCallback | None = None,
        report: FixReport | None = None,
    ) -> FixReport:
        report = report or FixReport(mode=mode)
        for check in checks:
            report.add(self.dispatch(check.check_id, check.status, check.hint, mode, confirm))
        return report
