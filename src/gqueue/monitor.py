"""monitor.py — completion detection via sentinel files.

The run script drops ``<job path with .done extension>`` when the
computation finishes.  :func:`reconcile_running` looks for that marker for
every running job and, on finding it, releases the job's reservation, quits
its screen session, writes a ``completed`` audit line and removes the marker.

Typical usage::

    from gqueue.monitor import reconcile_running

    finished = reconcile_running(running, tracker, backend, audit=audit)
"""
from __future__ import annotations

__all__ = ["reconcile_running"]

import logging
from typing import TYPE_CHECKING

from gqueue.job import Job, JobState
from gqueue.launcher import LaunchError

if TYPE_CHECKING:
    from gqueue.audit import AuditLogger
    from gqueue.launcher import ExecutionBackend
    from gqueue.resources import ResourceTracker

logger = logging.getLogger(__name__)


def reconcile_running(
    running: dict[int, Job],
    tracker: ResourceTracker,
    backend: ExecutionBackend,
    audit: AuditLogger | None = None,
    sentinel_suffix: str = ".done",
    capacity: tuple[int, int] | None = None,
) -> list[Job]:
    """Retire every running job whose sentinel file exists.

    The job leaves *running* before anything else happens, so its
    reservation is released exactly once even if the sentinel cannot be
    deleted and is seen again on a later tick.

    Parameters
    ----------
    running:
        Mapping ``{job_id: Job}`` of running jobs; finished jobs are removed
        in place.
    tracker:
        Resource tracker the reservations are returned to.
    backend:
        Execution backend used to check sentinels and quit sessions.
    audit:
        Optional :class:`~gqueue.audit.AuditLogger` for ``completed`` lines
        and errors.
    sentinel_suffix:
        Extension that replaces the job file's extension to form the marker.
    capacity:
        ``(cores, memory_gb)`` host capacity, used only for the
        remaining-resources snapshot in the audit line.

    Returns
    -------
    list[Job]
        The jobs retired on this call, marked ``completed``.
    """
    finished: list[Job] = []
    for job_id, job in list(running.items()):
        sentinel = job.sentinel_path(sentinel_suffix)
        if not backend.exists(sentinel):
            continue

        logger.info("found %s for job #%d, releasing resources", sentinel, job_id)
        del running[job_id]
        tracker.release(job.cores, job.memory_gb)
        job.state = JobState.COMPLETED
        finished.append(job)

        if job.session_name:
            try:
                backend.terminate(job.session_name)
            except LaunchError as exc:
                logger.warning("could not quit session %s: %s", job.session_name, exc)
                if audit is not None:
                    audit.error(exc)

        if audit is not None:
            snapshot = {}
            if capacity is not None:
                snapshot = {
                    "remaining_cores": tracker.available_cores(capacity[0]),
                    "remaining_memory_gb": tracker.available_memory_gb(capacity[1]),
                }
            audit.log("completed", job, **snapshot)

        try:
            sentinel.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("could not delete %s: %s", sentinel, exc)
            if audit is not None:
                audit.error(exc)

    return finished
