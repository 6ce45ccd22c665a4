"""audit.py — human-readable completion log and error log for gqueue.

Admission and completion events are appended to the completion log as one
timestamped sentence per line; exceptions from any component go to a separate
error log.  Both files (and their parent directories) are created on the
first write.  A failure to write either file is reported through
:mod:`logging` and otherwise ignored, so bookkeeping trouble never stops the
daemon.

Typical usage::

    from gqueue.audit import get_logger

    audit = get_logger(config)
    audit.log("started", job, remaining_cores=6, remaining_memory_gb=20)
    audit.error(exc)
"""
from __future__ import annotations

__all__ = ["AuditLogger", "get_logger", "AUDIT_EVENTS"]

import logging
import traceback
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from gqueue.config import QueueConfig
    from gqueue.job import Job

logger = logging.getLogger(__name__)

#: Valid event names for the completion log.
AUDIT_EVENTS = frozenset({"started", "completed", "launch_failed", "recovered"})

_TIMESTAMP_FORMAT = "%d/%m/%Y %H:%M:%S"


class AuditLogger:
    """Appends completion events and errors to their log files.

    Parameters
    ----------
    log_file:
        Path to the completion log (``jobs_processed.que``).
    error_file:
        Path to the error log (``errors.log``).
    """

    def __init__(self, log_file: Path, error_file: Path) -> None:
        self.log_file = log_file
        self.error_file = error_file

    def log(
        self,
        event: str,
        job: Job,
        *,
        remaining_cores: int | None = None,
        remaining_memory_gb: int | None = None,
        detail: str = "",
    ) -> None:
        """Append one completion-log line describing *event* for *job*.

        Parameters
        ----------
        event:
            One of ``started``, ``completed``, ``launch_failed``, ``recovered``.
        job:
            The job the event concerns.
        remaining_cores / remaining_memory_gb:
            Free capacity right after the event, when known.
        detail:
            Free-text suffix (e.g. the launch error).

        Raises
        ------
        ValueError
            If *event* is not a known audit event.
        """
        if event not in AUDIT_EVENTS:
            raise ValueError(f"Unknown audit event {event!r}; expected one of {sorted(AUDIT_EVENTS)}")

        session = job.session_name or "-"
        pid = job.pid if job.pid is not None else "-"
        if event == "started":
            message = (
                f"Job #{job.id} {job.path} started in screen session {session} with PID {pid}, "
                f"using {job.cores} CPU cores and {job.memory_gb} GB of RAM."
            )
        elif event == "completed":
            message = (
                f"Job #{job.id} {job.path} corresponding to PID {pid} completed; "
                f"screen session {session} was terminated."
            )
        elif event == "recovered":
            message = (
                f"Job #{job.id} {job.path} ({job.state.value}) recovered from saved state, "
                f"screen session {session}, PID {pid}."
            )
        else:
            message = f"Job #{job.id} {job.path} could not be started and stays queued."

        if remaining_cores is not None and remaining_memory_gb is not None:
            message += (
                f" Remaining {remaining_cores} CPU cores and {remaining_memory_gb} GB of RAM."
            )
        if detail:
            message += f" {detail}"

        self._append(self.log_file, message)
        logger.debug("audit %s: job #%d session=%s pid=%s", event, job.id, session, pid)

    def error(self, error: BaseException | str) -> None:
        """Append an exception (with traceback) or a message to the error log."""
        if isinstance(error, BaseException):
            formatted = "".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            ).rstrip()
            message = f"Exception: {formatted}"
        else:
            message = f"Error message: {error}"
        self._append(self.error_file, message)

    def _append(self, path: Path, message: str) -> None:
        entry = f"{datetime.now().strftime(_TIMESTAMP_FORMAT)}: {message}\n"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("a", encoding="utf-8") as fh:
                fh.write(entry)
        except OSError as exc:
            logger.warning("could not write to %s: %s", path, exc)


def get_logger(config: QueueConfig) -> AuditLogger:
    """Return an :class:`AuditLogger` writing to the files named in *config*."""
    return AuditLogger(config.log_file, config.error_file)
