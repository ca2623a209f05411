"""Session lifecycle: one lock-protected remediation run per state directory."""

from __future__ import annotations

import fcntl
import json
import logging
import os
import secrets
from datetime import datetime, timezone
from typing import TextIO

from hostfix.core.config import StatePaths
from hostfix.core.errors import SessionActiveError
from hostfix.fix.atomic import write_atomic
from hostfix.fix.journal import ChangeJournal
from hostfix.fix.models import Session, utc_now

logger = logging.getLogger(__name__)


class SessionManager:
    """Acquires the state directory lock and owns the active :class:`Session`.

    The lock is a non-blocking ``fcntl`` exclusive lock on ``.lock``; a
    second run fails immediately with :class:`SessionActiveError` instead of
    waiting. While the session is active the journal mirrors every record
    into ``session.records``.
    """

    def __init__(self, paths: StatePaths, journal: ChangeJournal):
        self.paths = paths
        self.journal = journal
        self.session: Session | None = None
        self._lock_fd: TextIO | None = None

    @property
    def active(self) -> bool:
        return self.session is not None

    def start_session(self) -> Session:
        if self.session is not None:
            raise SessionActiveError(self.paths.lock_file, self.session.session_id)

        self.paths.state_dir.mkdir(parents=True, exist_ok=True)
        fd = open(self.paths.lock_file, "a+", encoding="utf-8")
        try:
            fcntl.flock(fd.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError:
            fd.close()
            raise SessionActiveError(self.paths.lock_file, self._marker_holder()) from None

        try:
            if self.paths.session_file.exists():
                logger.warning(
                    "Replacing stale session marker %s (%s)",
                    self.paths.session_file, self._marker_holder() or "unreadable",
                )

            session = Session(
                session_id=_new_session_id(),
                started_at=utc_now(),
                lock_path=self.paths.lock_file,
            )
            marker = {
                "session_id": session.session_id,
                "started_at": session.started_at,
                "pid": os.getpid(),
            }
            write_atomic(self.paths.session_file, json.dumps(marker, indent=2) + "\n")
            self.journal.bind(session)
        except BaseException:
            _release(fd)
            raise

        self._lock_fd = fd
        self.session = session
        logger.info("Started remediation session %s", session.session_id)
        return session

    def end_session(self) -> None:
        """Remove the marker and release the lock. No-op without a session."""
        if self.session is None:
            return

        session_id = self.session.session_id
        try:
            self.paths.session_file.unlink(missing_ok=True)
        finally:
            self.journal.unbind()
            if self._lock_fd is not None:
                _release(self._lock_fd)
            self._lock_fd = None
            self.session = None
        logger.info("Ended remediation session %s", session_id)

    def __enter__(self) -> Session:
        return self.start_session()

    def __exit__(self, *exc_info) -> None:
        self.end_session()

    def _marker_holder(self) -> str:
        try:
            marker = json.loads(self.paths.session_file.read_text())
        except (OSError, ValueError):
            return ""
        if not isinstance(marker, dict):
            return ""
        return f"{marker.get('session_id', '?')}, pid {marker.get('pid', '?')}"


def _new_session_id() -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    return f"sess_{stamp}_{secrets.token_hex(3)}"


def _release(fd: TextIO) -> None:
    try:
        fcntl.flock(fd.fileno(), fcntl.LOCK_UN)
    finally:
        fd.close()
