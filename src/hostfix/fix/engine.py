"""Remediation engine wiring the journal, backups, sessions, undo and dispatch."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

from hostfix.core.config import HostfixConfig, StatePaths, get_state_dir, load_config
from hostfix.core.models import CheckResult, DispatchResult, FixMode, FixOutcome, FixReport
from hostfix.fix.backup import BackupStore
from hostfix.fix.diagnostics import DiagnosticRunner
from hostfix.fix.dispatch import ConfirmCallback, FixDispatcher, FixerRegistry
from hostfix.fix.fixers import (
    ConfigCopyFixer,
    FixContext,
    PathOrderingFixer,
    ShellSourcingFixer,
    SymlinkFixer,
)
from hostfix.fix.journal import ChangeJournal
from hostfix.fix.models import ChangeRecord, RepairResult, UndoResult
from hostfix.fix.session import SessionManager
from hostfix.fix.undo import UndoExecutor

logger = logging.getLogger(__name__)


def build_default_registry(config: HostfixConfig) -> FixerRegistry:
    """Register the built-in fixers plus those declared in hostfix.toml."""
    registry = FixerRegistry()
    registry.register("path.", PathOrderingFixer(config.shell_rc_path, config.fix.path_dirs))
    registry.register(
        "shell.sourced",
        ShellSourcingFixer(config.shell_rc_path, config.shell_init_path, config.general.home),
    )
    for spec in config.fix.config_copies:
        registry.register(spec.check_id, ConfigCopyFixer(spec.source, spec.dest))
    for spec in config.fix.symlinks:
        registry.register(spec.check_id, SymlinkFixer(spec.target, spec.link))
    return registry


class RemediationEngine:
    """Core engine that applies and reverts fixes for one state directory."""

    def __init__(
        self,
        state_dir: Path | None = None,
        config: HostfixConfig | None = None,
        registry: FixerRegistry | None = None,
    ):
        self.state_dir = get_state_dir(state_dir)
        self.config = config or load_config(self.state_dir)
        self.paths = StatePaths(self.state_dir)
        self.journal = ChangeJournal(self.paths)
        self.backups = BackupStore(self.paths)
        self.sessions = SessionManager(self.paths, self.journal)
        self.undo_executor = UndoExecutor(
            self.journal, self.backups, command_timeout=self.config.undo.command_timeout
        )
        self.registry = registry if registry is not None else build_default_registry(self.config)
        self.dispatcher = FixDispatcher(self.registry, FixContext(self.journal, self.backups))

    def run(
        self,
        checks: Iterable[CheckResult],
        mode: FixMode = FixMode.APPLY,
        confirm: ConfirmCallback | None = None,
    ) -> FixReport:
        """Dispatch every check inside one locked session."""
        report = FixReport(mode=mode)
        with self.sessions:
            if mode is not FixMode.DRY_RUN:
                report.dropped_records = self.ensure_journal_integrity()
            self.dispatcher.dispatch_all(checks, mode, confirm, report)
        return report

    def run_diagnostics(
        self,
        command: list[str] | str,
        mode: FixMode = FixMode.APPLY,
        confirm: ConfirmCallback | None = None,
    ) -> FixReport:
        """Run an external doctor command and dispatch its results."""
        diagnostics = DiagnosticRunner(command, timeout=self.config.fix.diagnostic_timeout).run()
        report = self.run(diagnostics.results, mode, confirm)
        if diagnostics.error:
            report.add(DispatchResult("diagnostics", FixOutcome.ERROR, message=diagnostics.error))
        return report

    def ensure_journal_integrity(self) -> int:
        """Repair the journal if needed; returns the number of dropped records."""
        if self.journal.verify_integrity():
            self.journal.update_integrity_file()
            return 0
        result = self.journal.repair()
        logger.warning("Journal repaired: %d record(s) dropped", result.dropped)
        return result.dropped

    def verify(self) -> bool:
        return self.journal.verify_integrity(use_cache=False)

    def repair(self) -> RepairResult:
        return self.journal.repair()

    def history(self) -> list[ChangeRecord]:
        return self.journal.load()

    def undo_change(
        self,
        change_id: str,
        restore_backup: bool = True,
        run_undo_command: bool = True,
    ) -> UndoResult:
        with self.sessions:
            return self.undo_executor.undo_change(change_id, restore_backup, run_undo_command)

    def undo_all(self, restore_backup: bool = True, run_undo_command: bool = True) -> list[UndoResult]:
        with self.sessions:
            return self.undo_executor.undo_all(
                restore_backup=restore_backup, run_undo_command=run_undo_command
            )

    def undo_last_session(
        self, restore_backup: bool = True, run_undo_command: bool = True
    ) -> list[UndoResult]:
        with self.sessions:
            return self.undo_executor.undo_last_session(restore_backup, run_undo_command)

    def list_undoable(self) -> list[ChangeRecord]:
        return self.undo_executor.list_undoable()
