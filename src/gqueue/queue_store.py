"""queue_store.py — the shared, line-oriented job queue file.

Submitters append one line per job; the daemon drains the whole file every
tick.  All three mutations hold an exclusive lock for their full duration
(see :mod:`gqueue.locking`), so a reader never sees half a line and a
concurrent append is never lost to a drain's truncate.

Typical usage::

    from gqueue.queue_store import QueueStore

    store = QueueStore.from_config(config)
    store.append(job)
    jobs = store.drain_all()
"""
from __future__ import annotations

__all__ = ["QueueStore"]

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from gqueue.job import Job
from gqueue.locking import locked_file

if TYPE_CHECKING:
    from gqueue.config import QueueConfig

logger = logging.getLogger(__name__)


@dataclass
class QueueStore:
    """File-backed append/drain/remove log of queued jobs."""

    path: Path
    lock_retries: int = 10
    lock_delay: float = 0.1

    @classmethod
    def from_config(cls, config: QueueConfig) -> "QueueStore":
        return cls(config.queue_file, config.lock_retries, config.lock_delay)

    def _lock(self):
        return locked_file(self.path, retries=self.lock_retries, delay=self.lock_delay)

    def append(self, job: Job) -> None:
        """Durably add *job* as a single line at the end of the queue file.

        Raises
        ------
        QueueBusyError
            If the queue file stays locked past the retry budget.
        """
        line = job.to_line() + "\n"
        with self._lock() as fh:
            text = fh.read()
            # A foreign writer may have left the last line unterminated.
            if text and not text.endswith("\n"):
                line = "\n" + line
            fh.write(line)
        logger.debug("appended job #%d to %s", job.id, self.path)

    def drain_all(self) -> list[Job]:
        """Read every queued job and empty the file in one locked step.

        Malformed lines are skipped with a warning; they are dropped from the
        file along with the well-formed ones.
        """
        with self._lock() as fh:
            text = fh.read()
            if not text:
                return []
            fh.seek(0)
            fh.truncate()
        jobs = _parse_lines(text, self.path)
        if jobs:
            logger.info("drained %d job(s) from %s", len(jobs), self.path)
        return jobs

    def remove_by_id(self, job_id: int) -> bool:
        """Delete the first line whose id is *job_id*.

        Returns
        -------
        bool
            ``True`` if a line was removed, ``False`` if no queued job has
            that id (the file is left untouched).
        """
        tag = f"#{job_id}"
        with self._lock() as fh:
            lines = fh.read().splitlines(keepends=True)
            for idx, line in enumerate(lines):
                fields = line.split()
                if fields and fields[0] == tag:
                    del lines[idx]
                    break
            else:
                return False
            fh.seek(0)
            fh.truncate()
            fh.write("".join(lines))
        logger.info("removed job %s from %s", tag, self.path)
        return True

    def peek(self) -> list[Job]:
        """Return the queued jobs without removing them."""
        with self._lock() as fh:
            text = fh.read()
        return _parse_lines(text, self.path)


def _parse_lines(text: str, source: Path) -> list[Job]:
    """Parse queue-file *text*, skipping blank and malformed lines."""
    jobs = []
    for lineno, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            jobs.append(Job.from_line(line))
        except ValueError as exc:
            logger.warning("skipping malformed line %d of %s: %s", lineno, source, exc)
    return jobs
