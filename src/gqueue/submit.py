from __future__ import annotations

__all__ = ["submit_job", "remove_job"]

import logging
from datetime import datetime
from pathlib import Path

from gqueue.config import QueueConfig
from gqueue.ids import IdAllocator
from gqueue.job import MAX_PRIORITY, MIN_PRIORITY, Job
from gqueue.parser import parse_resources
from gqueue.queue_store import QueueStore

logger = logging.getLogger(__name__)


def submit_job(
    job_path: str | Path,
    priority: int,
    config: QueueConfig,
    now: datetime | None = None,
) -> Job:
    """Queue a job file for the daemon.

    The file is validated and its resource directives parsed before an id is
    allocated, so a rejected submission never consumes an id.  The path is
    stored as an absolute path because the daemon runs from its own
    working directory.

    Parameters
    ----------
    job_path:
        Input file of the job.
    priority:
        1 (lowest) to 10 (highest).
    config:
        Supplies the queue and id counter locations.
    now:
        Submission time; defaults to the current local time.

    Returns
    -------
    Job
        The queued job record.

    Raises
    ------
    FileNotFoundError
        If *job_path* does not exist.
    ValueError
        If *priority* is outside 1..10, or the file's ``%cpu=`` directive is
        unparsable.
    IdAllocationError
        If no id could be allocated.
    QueueBusyError
        If the queue file stayed locked; the allocated id is then unused.
    """
    path = Path(job_path).expanduser().resolve()
    if not path.is_file():
        raise FileNotFoundError(f"Job file does not exist: {job_path}")
    if not MIN_PRIORITY <= priority <= MAX_PRIORITY:
        raise ValueError(
            f"Priority must be an integer between {MIN_PRIORITY} and {MAX_PRIORITY}."
        )
    if any(ch.isspace() for ch in str(path)):
        raise ValueError(f"Job path must not contain whitespace: {path}")

    cores, memory_gb = parse_resources(path)
    job_id = IdAllocator.from_config(config).next_id()
    job = Job(
        id=job_id,
        path=str(path),
        priority=priority,
        submitted_at=(now or datetime.now()).replace(second=0, microsecond=0),
        cores=cores,
        memory_gb=memory_gb,
    )
    QueueStore.from_config(config).append(job)
    logger.info("queued job #%d %s (priority %d)", job.id, job.path, job.priority)
    return job


def remove_job(job_id: int, config: QueueConfig) -> bool:
    """Remove a still-queued job; return whether it was found."""
    return QueueStore.from_config(config).remove_by_id(job_id)
