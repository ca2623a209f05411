"""Crash-safe file writes.

Every write goes to a temporary file in the target's directory, is flushed
and fsynced, then renamed over the target with :func:`os.replace`. The rename
is the atomicity boundary: readers see either the old or the new complete
file. The directory is fsynced afterwards so the rename itself survives a
crash.
"""

from __future__ import annotations

import hashlib
import os
import stat
import tempfile
from pathlib import Path


def sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def sha256_file(path: Path) -> str:
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            h.update(chunk)
    return h.hexdigest()


def fsync_file(path: Path) -> None:
    """Force a file's contents to durable storage."""
    fd = os.open(path, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def fsync_directory(path: Path) -> None:
    """Force a directory entry table to durable storage."""
    fd = os.open(path, os.O_RDONLY | getattr(os, "O_DIRECTORY", 0))
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def write_atomic(path: Path, content: str | bytes, mode: int | None = None) -> None:
    """Replace *path* with *content* atomically.

    The previous file mode is kept when *path* already exists and *mode* is
    not given. Errors propagate; the temporary file is removed on failure and
    is never renamed into place.
    """
    path = Path(path)
    data = content.encode("utf-8") if isinstance(content, str) else content

    if mode is None:
        try:
            mode = stat.S_IMODE(path.stat().st_mode)
        except FileNotFoundError:
            mode = None

    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        if mode is not None:
            os.chmod(tmp, mode)
        else:
            os.chmod(tmp, 0o644)
        os.replace(tmp, path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise

    fsync_directory(path.parent)


def append_atomic(path: Path, line: str) -> None:
    """Append one line to *path* by rewriting the whole file atomically.

    A missing trailing newline on the existing content is repaired first so
    the appended line always starts on its own line.
    """
    path = Path(path)
    try:
        existing = path.read_bytes()
    except FileNotFoundError:
        existing = b""

    if existing and not existing.endswith(b"\n"):
        existing += b"\n"
    write_atomic(path, existing + line.rstrip("\n").encode("utf-8") + b"\n")
