"""Reading check results from an external diagnostic runner.

Accepted line formats::

    {"id": "path.ordering", "status": "fail", "hint": "..."}
    path.ordering|fail|hint text

Blank lines and ``#`` comments are ignored.
"""

from __future__ import annotations

import json
import logging
import subprocess
from dataclasses import dataclass, field

from hostfix.core.models import CheckResult, CheckStatus

logger = logging.getLogger(__name__)


def parse_check_line(line: str) -> CheckResult:
    """Parse one result line; raises ``ValueError`` when it is malformed."""
    line = line.strip()
    if line.startswith("{"):
        data = json.loads(line)
        if not isinstance(data, dict):
            raise ValueError("Check result must be a JSON object")
        check_id = data.get("id") or data.get("check_id")
        status = data.get("status")
        hint = data.get("hint") or ""
    else:
        parts = line.split("|", 2)
        if len(parts) < 2:
            raise ValueError(f"Expected id|status|hint, got {line!r}")
        check_id, status = parts[0].strip(), parts[1].strip()
        hint = parts[2].strip() if len(parts) > 2 else ""

    if not isinstance(check_id, str) or not check_id:
        raise ValueError("Check result has no id")
    return CheckResult(check_id=check_id, status=CheckStatus(str(status).lower()), hint=str(hint))


def parse_check_lines(text: str) -> list[CheckResult]:
    """Parse every result in *text*, logging and skipping malformed lines."""
    results = []
    for n, line in enumerate(text.splitlines(), start=1):
        if not line.strip() or line.lstrip().startswith("#"):
            continue
        try:
            results.append(parse_check_line(line))
        except ValueError as e:
            logger.warning("Skipping unparsable check result on line %d: %s", n, e)
    return results


@dataclass
class DiagnosticRun:
    """Results from one runner invocation; ``error`` is set on timeout or launch failure."""

    results: list[CheckResult] = field(default_factory=list)
    error: str = ""
    returncode: int | None = None


class DiagnosticRunner:
    """Runs an external doctor command with a bounded timeout.

    A hung or failing command never raises: whatever it printed before the
    timeout is still parsed, and the failure is reported in ``error``.
    """

    def __init__(self, command: list[str] | str, timeout: float = 60.0):
        self.command = command
        self.timeout = timeout

    def run(self) -> DiagnosticRun:
        try:
            proc = subprocess.run(
                self.command,
                shell=isinstance(self.command, str),
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            partial = e.stdout or ""
            if isinstance(partial, bytes):
                partial = partial.decode("utf-8", errors="replace")
            logger.error("Diagnostics timed out after %gs", self.timeout)
            return DiagnosticRun(
                results=parse_check_lines(partial),
                error=f"Diagnostics timed out after {self.timeout:g}s",
            )
        except OSError as e:
            logger.error("Could not run diagnostics: %s", e)
            return DiagnosticRun(error=f"Could not run diagnostics: {e}")

        # Doctor commands exit non-zero when checks fail; that is not an error.
        return DiagnosticRun(results=parse_check_lines(proc.stdout), returncode=proc.returncode)
