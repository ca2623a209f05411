"""Error taxonomy for the remediation engine.

Errors under :class:`CoreStateError` mean the journal or backup store could
not be written or trusted; they propagate out of the dispatch loop. Fixer
level errors are turned into ``error`` outcomes for the single check.
"""

from __future__ import annotations


class HostfixError(Exception):
    """Base class for all hostfix errors."""


class CoreStateError(HostfixError):
    """The journal or backup store could not be written or read safely."""


class JournalError(CoreStateError):
    pass


class BackupError(CoreStateError):
    pass


class SessionActiveError(HostfixError):
    """Another remediation session holds the state directory lock."""

    def __init__(self, lock_path, holder: str = ""):
        self.lock_path = lock_path
        self.holder = holder
        detail = f" (held by {holder})" if holder else ""
        super().__init__(f"A remediation session is already active for {lock_path}{detail}")


class UnknownChangeError(HostfixError):
    def __init__(self, change_id: str):
        self.change_id = change_id
        super().__init__(f"No change recorded with id {change_id}")


class FixerError(HostfixError):
    """A fixer could not complete its mutation."""


class PreconditionError(FixerError):
    """A fixer's required inputs are missing."""
