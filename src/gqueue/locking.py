"""locking.py — exclusive advisory locks on the shared queue files.

The queue file and the id counter are written by the daemon and by any number
of unrelated ``gqueue submit`` / ``gqueue remove`` processes.  Every access
goes through :func:`locked_file`, which takes a non-blocking ``flock`` and
retries a fixed number of times before giving up with
:class:`QueueBusyError`.

Typical usage::

    with locked_file(path, retries=10, delay=0.1) as fh:
        fh.seek(0)
        text = fh.read()
"""
from __future__ import annotations

__all__ = ["QueueBusyError", "locked_file"]

import fcntl
import logging
import os
import time
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Iterator

logger = logging.getLogger(__name__)


class QueueBusyError(OSError):
    """The lock on a shared file could not be taken within the retry budget."""


@contextmanager
def locked_file(path: Path, retries: int = 10, delay: float = 0.1) -> Iterator[IO[str]]:
    """Open *path* for reading and writing under an exclusive lock.

    The file (and its parent directory) is created if missing.  The handle is
    positioned at the start of the file; the lock is released when the
    ``with`` block exits.

    Raises
    ------
    QueueBusyError
        If the lock is still held by another process after *retries*
        attempts spaced *delay* seconds apart.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o664)
    fh = os.fdopen(fd, "r+", encoding="utf-8")
    try:
        _acquire(fh, path, retries, delay)
        try:
            yield fh
        finally:
            fh.flush()
            os.fsync(fh.fileno())
            fcntl.flock(fh.fileno(), fcntl.LOCK_UN)
    finally:
        fh.close()


def _acquire(fh: IO[str], path: Path, retries: int, delay: float) -> None:
    """Take ``LOCK_EX`` on *fh*, sleeping *delay* between failed attempts."""
    for attempt in range(1, retries + 1):
        try:
            fcntl.flock(fh.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
            return
        except BlockingIOError:
            logger.debug("%s is locked (attempt %d/%d)", path, attempt, retries)
            if attempt < retries:
                time.sleep(delay)
    raise QueueBusyError(f"{path} is locked by another process after {retries} attempts")
