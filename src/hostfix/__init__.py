"""hostfix: journaled, reversible host remediation."""

from hostfix._version import __version__
from hostfix.fix.engine import RemediationEngine
from hostfix.fix.models import BackupRecord, ChangeRecord

__all__ = [
    "__version__",
    "RemediationEngine",
    "ChangeRecord",
    "BackupRecord",
]
