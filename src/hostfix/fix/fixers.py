"""Fixers: small strategies that remediate one failing check.

Each concrete fixer defines:
  - category    : journal category for the changes it records
  - description : short human-readable summary of the remediation
  - severity    : reporting classification of the recorded change

and implements :meth:`Fixer.is_satisfied`, :meth:`Fixer.plan` and
:meth:`Fixer.apply`. ``apply`` always runs backup, then mutation, then
journal record, in that order. A crash between the mutation and the record
leaves an unrecorded change; this is a known gap, not something fixers try
to paper over.
"""

from __future__ import annotations

import os
import shlex
import stat
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from hostfix.core.errors import FixerError
from hostfix.core.models import FixPlan, Severity
from hostfix.fix.atomic import fsync_directory, sha256_file, write_atomic
from hostfix.fix.backup import BackupStore
from hostfix.fix.journal import ChangeJournal

PATH_MARKER = "# hostfix PATH ordering (added by hostfix fix)"
SOURCING_MARKER = "# hostfix configuration (added by hostfix fix)"


@dataclass
class FixContext:
    """Core services a fixer needs to act."""

    journal: ChangeJournal
    backups: BackupStore


def file_contains_line(path: Path, text: str) -> bool:
    """Return True if any line of *path* contains *text*. Missing files never match."""
    try:
        content = Path(path).read_text(errors="replace")
    except OSError:
        return False
    return any(text in line for line in content.splitlines())


def _describe(path: Path) -> str:
    if path.is_symlink():
        return f"{path} -> {os.readlink(path)}"
    if path.is_file():
        return f"{path} sha256={sha256_file(path)}"
    if path.exists():
        return f"{path} exists"
    return f"{path} absent"


class Fixer(ABC):
    """Abstract base class for all fixers."""

    category: str = ""
    description: str = ""
    severity: Severity = Severity.INFO

    def preconditions(self) -> str | None:
        """Return an error message when the fixer cannot run, else None."""
        return None

    @abstractmethod
    def is_satisfied(self) -> bool:
        """True when the host already has the state this fixer would create."""
        ...

    @abstractmethod
    def plan(self, check_id: str) -> FixPlan:
        ...

    @abstractmethod
    def apply(self, ctx: FixContext, check_id: str) -> str:
        """Back up, mutate, record. Returns the new change id."""
        ...


class _AppendBlockFixer(Fixer):
    """Appends a marker comment and one line to a shell startup file."""

    marker: str = ""

    def __init__(self, rc_path: Path):
        self.rc_path = Path(rc_path)

    @abstractmethod
    def block_line(self) -> str:
        ...

    @property
    def target(self) -> Path:
        # Write through symlinked dotfiles instead of replacing the link.
        if self.rc_path.is_symlink():
            return self.rc_path.resolve()
        return self.rc_path

    def plan(self, check_id: str) -> FixPlan:
        return FixPlan(
            check_id=check_id,
            action=f"{self.description} in {self.rc_path}",
            target=self.rc_path,
            command=f"append: {self.marker} / {self.block_line()}",
        )

    def apply(self, ctx: FixContext, check_id: str) -> str:
        target = self.target
        pre_state = [_describe(target)]
        backup = ctx.backups.create_backup(target, check_id)

        try:
            # Existing bytes are kept verbatim, whatever their encoding.
            content = target.read_bytes() if target.exists() else b""
            if content and not content.endswith(b"\n"):
                content += b"\n"
            content += f"{self.marker}\n{self.block_line()}\n".encode("utf-8")
            target.parent.mkdir(parents=True, exist_ok=True)
            write_atomic(target, content)
        except OSError as e:
            raise FixerError(f"Could not update {target}: {e}") from e

        if backup is None:
            undo_command = f"rm -f {shlex.quote(str(target))}"
        else:
            undo_command = ""
        return ctx.journal.record_change(
            category=self.category,
            description=f"{self.description} in {target}",
            undo_command=undo_command,
            destructive=backup is None,
            severity=self.severity,
            pre_state=pre_state,
            post_state=[_describe(target)],
            backups=[backup] if backup else [],
        )


class PathOrderingFixer(_AppendBlockFixer):
    category = "path_ordering"
    description = "Prepend tool directories to PATH"
    severity = Severity.WARN
    marker = PATH_MARKER

    def __init__(self, rc_path: Path, path_dirs: list[str]):
        super().__init__(rc_path)
        self.path_dirs = list(path_dirs)

    def block_line(self) -> str:
        return f'export PATH="{":".join(self.path_dirs)}:$PATH"'

    def is_satisfied(self) -> bool:
        return file_contains_line(self.rc_path, self.marker)


class ShellSourcingFixer(_AppendBlockFixer):
    category = "shell_sourcing"
    description = "Source the hostfix shell configuration"
    marker = SOURCING_MARKER

    def __init__(self, rc_path: Path, init_script: Path, home: Path | None = None):
        super().__init__(rc_path)
        self.init_script = Path(init_script)
        self.home = Path(home) if home else Path.home()

    def block_line(self) -> str:
        try:
            shown = "~/" + str(self.init_script.relative_to(self.home))
        except ValueError:
            shown = shlex.quote(str(self.init_script))
        return f"source {shown}"

    def preconditions(self) -> str | None:
        if not self.init_script.is_file():
            return f"Shell configuration {self.init_script} not found; reinstall it first"
        return None

    def is_satisfied(self) -> bool:
        return file_contains_line(self.rc_path, self.block_line())


class ConfigCopyFixer(Fixer):
    """Installs a default config file. Never overwrites an existing destination."""

    category = "config_copy"
    description = "Install default configuration"

    def __init__(self, source: Path, dest: Path):
        self.source = Path(source)
        self.dest = Path(dest)

    def preconditions(self) -> str | None:
        if not self.source.is_file():
            return f"Source config {self.source} not found"
        return None

    def is_satisfied(self) -> bool:
        return self.dest.exists() or self.dest.is_symlink()

    def plan(self, check_id: str) -> FixPlan:
        return FixPlan(
            check_id=check_id,
            action=f"Copy {self.source} to {self.dest}",
            target=self.dest,
            command=f"cp {shlex.quote(str(self.source))} {shlex.quote(str(self.dest))}",
        )

    def apply(self, ctx: FixContext, check_id: str) -> str:
        pre_state = [_describe(self.dest)]
        backup = ctx.backups.create_backup(self.dest, check_id)

        try:
            self.dest.parent.mkdir(parents=True, exist_ok=True)
            mode = stat.S_IMODE(self.source.stat().st_mode)
            write_atomic(self.dest, self.source.read_bytes(), mode=mode)
        except OSError as e:
            raise FixerError(f"Could not copy {self.source} to {self.dest}: {e}") from e

        return ctx.journal.record_change(
            category=self.category,
            description=f"Copied {self.source} to {self.dest}",
            undo_command=f"rm -f {shlex.quote(str(self.dest))}",
            destructive=True,
            severity=self.severity,
            pre_state=pre_state,
            post_state=[_describe(self.dest)],
            backups=[backup] if backup else [],
        )


class SymlinkFixer(Fixer):
    """Points ``link`` at ``target``, replacing a stale symlink if present.

    A symlink has no content to snapshot; its previous destination is kept
    in the change's pre-state and undo command instead of a file backup.
    """

    category = "symlink"
    description = "Create tool symlink"

    def __init__(self, target: Path, link: Path):
        self.target = Path(target)
        self.link = Path(link)

    def preconditions(self) -> str | None:
        if not self.target.exists():
            return f"Link target {self.target} not found"
        if self.link.exists() and not self.link.is_symlink():
            return f"{self.link} exists and is not a symlink; refusing to replace it"
        return None

    def is_satisfied(self) -> bool:
        return self.link.is_symlink() and os.readlink(self.link) == str(self.target)

    def plan(self, check_id: str) -> FixPlan:
        return FixPlan(
            check_id=check_id,
            action=f"Link {self.link} -> {self.target}",
            target=self.link,
            command=f"ln -sfn {shlex.quote(str(self.target))} {shlex.quote(str(self.link))}",
        )

    def apply(self, ctx: FixContext, check_id: str) -> str:
        previous = os.readlink(self.link) if self.link.is_symlink() else None
        pre_state = [_describe(self.link)]

        tmp = self.link.with_name(f".{self.link.name}.{os.getpid()}.tmp")
        try:
            self.link.parent.mkdir(parents=True, exist_ok=True)
            tmp.unlink(missing_ok=True)
            os.symlink(self.target, tmp)
            os.replace(tmp, self.link)
            fsync_directory(self.link.parent)
        except OSError as e:
            tmp.unlink(missing_ok=True)
            raise FixerError(f"Could not link {self.link} -> {self.target}: {e}") from e

        if previous is None:
            undo_command = f"rm -f {shlex.quote(str(self.link))}"
        else:
            undo_command = f"ln -sfn {shlex.quote(previous)} {shlex.quote(str(self.link))}"
        return ctx.journal.record_change(
            category=self.category,
            description=f"Linked {self.link} -> {self.target}",
            undo_command=undo_command,
            destructive=False,
            severity=self.severity,
            pre_state=pre_state,
            post_state=[_describe(self.link)],
        )
