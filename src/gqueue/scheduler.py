"""scheduler.py — the admission loop.

Each tick drains the shared queue into the pending set, admits whatever fits
the free cores and memory in priority order, launches the admitted jobs, and
lets the completion monitor reclaim finished ones.

Admission is greedy and myopic: jobs are walked strictly in
(priority desc, submission time asc) order and each one is admitted if it
still fits after the jobs before it.  There is no bin-packing and no aging, so
a large low-priority job can wait forever behind a steady stream of small
high-priority ones.  That is the intended policy.

Typical usage::

    from gqueue.config import QueueConfig
    from gqueue.scheduler import Scheduler

    scheduler = Scheduler.from_config(QueueConfig())
    scheduler.run(stop_event)
"""
from __future__ import annotations

__all__ = ["Scheduler", "admission_order", "select_admissible"]

import logging
import threading
from typing import Callable, Iterable

from gqueue.audit import AuditLogger, get_logger
from gqueue.config import QueueConfig
from gqueue.job import Job, JobState
from gqueue.launcher import ExecutionBackend, LaunchError, ScreenBackend, launch_job
from gqueue.locking import QueueBusyError
from gqueue.monitor import reconcile_running
from gqueue.queue_store import QueueStore
from gqueue.resources import ResourceTracker, host_capacity
from gqueue.state import load_state, save_state

logger = logging.getLogger(__name__)


def admission_order(jobs: Iterable[Job]) -> list[Job]:
    """Sort by priority (highest first), then submission time (earliest first).

    The sort is stable, so equal keys keep their queue order.
    """
    return sorted(jobs, key=lambda j: (-j.priority, j.submitted_at))


def select_admissible(jobs: Iterable[Job], cores: int, memory_gb: int) -> list[Job]:
    """Return the jobs the greedy policy would admit, in admission order.

    Each candidate is checked against the capacity left after the
    candidates admitted before it; a job that no longer fits is skipped and
    later (smaller) jobs are still considered.
    """
    admitted = []
    for job in admission_order(jobs):
        if job.cores > cores or job.memory_gb > memory_gb:
            continue
        admitted.append(job)
        cores -= job.cores
        memory_gb -= job.memory_gb
    return admitted


class Scheduler:
    """Owns the pending set, the running set and the resource tracker.

    Everything here runs on one thread; the only cross-process state is the
    queue file behind *store*.

    Parameters
    ----------
    store:
        Shared queue the pending set is fed from.
    backend:
        Execution backend that launches jobs and detects sentinels.
    capacity:
        Callable returning ``(cores, memory_gb)`` of the machine, queried
        once per tick.
    audit:
        Optional completion/error log.
    config:
        Scheduler settings.  When given, state is restored from and saved to
        ``config.state_file``.
    """

    def __init__(
        self,
        store: QueueStore,
        backend: ExecutionBackend,
        capacity: Callable[[], tuple[int, int]],
        audit: AuditLogger | None = None,
        config: QueueConfig | None = None,
    ) -> None:
        self.store = store
        self.backend = backend
        self.capacity = capacity
        self.audit = audit
        self.config = config
        self.session_prefix = config.session_prefix if config else "job_"
        self.sentinel_suffix = config.sentinel_suffix if config else ".done"
        self.tracker = ResourceTracker()
        self.pending: dict[int, Job] = {}
        self.running: dict[int, Job] = {}
        if config is not None:
            self._restore()

    @classmethod
    def from_config(cls, config: QueueConfig) -> "Scheduler":
        """Build a scheduler wired to screen, psutil and the configured files."""
        return cls(
            store=QueueStore.from_config(config),
            backend=ScreenBackend(config.run_script),
            capacity=lambda: host_capacity(config),
            audit=get_logger(config),
            config=config,
        )

    def _restore(self) -> None:
        """Reload jobs the previous daemon held and re-reserve running ones."""
        pending, running = load_state(self.config)
        for job in pending:
            self.pending[job.id] = job
        for job in running:
            self.running[job.id] = job
            self.tracker.reserve(job.cores, job.memory_gb)
        for job in [*pending, *running]:
            if self.audit is not None:
                self.audit.log("recovered", job)
        if pending or running:
            logger.info(
                "restored %d pending and %d running job(s) from %s",
                len(pending), len(running), self.config.state_file,
            )

    def merge(self, jobs: Iterable[Job]) -> int:
        """Add drained *jobs* to the pending set, ignoring ids already known.

        Returns the number of jobs actually added.
        """
        added = 0
        for job in jobs:
            if job.id in self.pending or job.id in self.running:
                logger.warning("ignoring duplicate job #%d from the queue", job.id)
                continue
            job.state = JobState.QUEUED
            self.pending[job.id] = job
            added += 1
        return added

    def available(self, total: tuple[int, int]) -> tuple[int, int]:
        cores, memory_gb = total
        return (
            self.tracker.available_cores(cores),
            self.tracker.available_memory_gb(memory_gb),
        )

    def admit(self, total: tuple[int, int]) -> list[Job]:
        """Launch every pending job the greedy policy lets in.

        A job whose launch fails has its reservation rolled back and stays
        pending; the remaining jobs are then re-selected, so capacity it
        would have used goes to the next candidates.
        """
        started: list[Job] = []
        failed: set[int] = set()
        selection = select_admissible(self.pending.values(), *self.available(total))
        while selection:
            job = selection.pop(0)
            self.tracker.reserve(job.cores, job.memory_gb)
            try:
                launch_job(job, self.backend, self.session_prefix, self.sentinel_suffix)
            except LaunchError as exc:
                self.tracker.release(job.cores, job.memory_gb)
                logger.error("job #%d failed to launch: %s", job.id, exc)
                if self.audit is not None:
                    self.audit.error(exc)
                    self.audit.log("launch_failed", job, detail=str(exc))
                failed.add(job.id)
                selection = select_admissible(
                    (j for j in self.pending.values() if j.id not in failed),
                    *self.available(total),
                )
                continue
            del self.pending[job.id]
            self.running[job.id] = job
            started.append(job)

            cores, memory_gb = self.available(total)
            logger.info(
                "started job #%d (%s) in %s, pid %s; %d cores / %d GB left",
                job.id, job.path, job.session_name, job.pid, cores, memory_gb,
            )
            if self.audit is not None:
                self.audit.log(
                    "started", job, remaining_cores=cores, remaining_memory_gb=memory_gb
                )
        return started

    def tick(self) -> list[Job]:
        """Run one drain → admit → reconcile pass and return the jobs started.

        A busy queue file only postpones the drain; jobs already pending are
        still admitted and running jobs still reconciled.  Drained jobs are
        saved before anything is launched, since the queue file no longer
        holds them.
        """
        try:
            if self.merge(self.store.drain_all()):
                self.save()
        except QueueBusyError as exc:
            logger.warning("queue drain skipped this tick: %s", exc)
            if self.audit is not None:
                self.audit.error(exc)
        try:
            total = self.capacity()
            started = self.admit(total)
            reconcile_running(
                self.running,
                self.tracker,
                self.backend,
                audit=self.audit,
                sentinel_suffix=self.sentinel_suffix,
                capacity=total,
            )
        finally:
            self.save()
        return started

    def save(self) -> None:
        if self.config is not None:
            save_state(self.pending.values(), self.running.values(), self.config)

    def run(self, stop: threading.Event | None = None, interval: float | None = None) -> None:
        """Tick until *stop* is set, waiting *interval* seconds between ticks.

        An exception raised by a tick is logged and written to the error log;
        the loop carries on with the next tick.
        """
        if stop is None:
            stop = threading.Event()
        if interval is None:
            interval = self.config.poll_interval if self.config else 10.0

        logger.info("scheduler started, polling every %ss", interval)
        while not stop.is_set():
            try:
                self.tick()
            except Exception as exc:
                logger.exception("tick failed: %s", exc)
                if self.audit is not None:
                    self.audit.error(exc)
            stop.wait(interval)
        logger.info("scheduler stopped")
