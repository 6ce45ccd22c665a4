"""job.py — the job record and its queue-file line format.

A queued job occupies one space-separated line of the queue file::

    #48 /home/user/g16/jobs/test_job_1.gjf 10 10/12/2023 17:58 2 4

i.e. ``#<id> <path> <priority> <dd/mm/yyyy HH:MM> <cores> <memory GB>``.
"""
from __future__ import annotations

__all__ = ["Job", "JobState", "TIME_FORMAT", "MIN_PRIORITY", "MAX_PRIORITY"]

import enum
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

#: ``strftime`` format of the submission timestamp (two fields on the line).
TIME_FORMAT = "%d/%m/%Y %H:%M"

MIN_PRIORITY = 1
MAX_PRIORITY = 10

# id, path, priority, date, time, cores, memory
_LINE_FIELDS = 7


class JobState(str, enum.Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"


@dataclass
class Job:
    """A unit of scheduling.

    ``id``, ``path``, ``priority``, ``submitted_at``, ``cores`` and
    ``memory_gb`` are fixed at submission.  ``session_name`` and ``pid`` are
    filled in by the launcher; ``pid`` is kept for diagnostics only.
    """

    id: int
    path: str
    priority: int
    submitted_at: datetime
    cores: int
    memory_gb: int
    session_name: str | None = None
    pid: int | None = None
    state: JobState = JobState.QUEUED

    def to_line(self) -> str:
        """Return the queue-file line for this job (no trailing newline)."""
        return (
            f"#{self.id} {self.path} {self.priority} "
            f"{self.submitted_at.strftime(TIME_FORMAT)} {self.cores} {self.memory_gb}"
        )

    @classmethod
    def from_line(cls, line: str) -> "Job":
        """Parse a queue-file line.

        Raises
        ------
        ValueError
            If the line has fewer than seven fields or any field fails to
            parse.  Callers draining the queue skip such lines.
        """
        parts = line.split()
        if len(parts) < _LINE_FIELDS:
            raise ValueError(
                f"expected {_LINE_FIELDS} fields, got {len(parts)}: {line!r}"
            )
        if not parts[0].startswith("#"):
            raise ValueError(f"job id must start with '#': {parts[0]!r}")
        job = cls(
            id=int(parts[0][1:]),
            path=parts[1],
            priority=int(parts[2]),
            submitted_at=datetime.strptime(f"{parts[3]} {parts[4]}", TIME_FORMAT),
            cores=int(parts[5]),
            memory_gb=int(parts[6]),
        )
        if job.id < 1 or job.cores < 1 or job.memory_gb < 1:
            raise ValueError(f"id, cores and memory must be positive: {line!r}")
        if not MIN_PRIORITY <= job.priority <= MAX_PRIORITY:
            raise ValueError(f"priority {job.priority} outside {MIN_PRIORITY}..{MAX_PRIORITY}")
        return job

    def sentinel_path(self, suffix: str = ".done") -> Path:
        """Return the completion marker the run script creates for this job.

        The job file's extension is replaced by *suffix*:
        ``/jobs/h2o.gjf`` → ``/jobs/h2o.done``.
        """
        return Path(self.path).with_suffix(suffix)
