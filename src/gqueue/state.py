from __future__ import annotations

__all__ = ["load_state", "save_state", "state_frame"]

import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Iterable

import pandas as pd

from gqueue.job import Job, JobState

if TYPE_CHECKING:
    from gqueue.config import QueueConfig

logger = logging.getLogger(__name__)

# Columns and dtypes for the daemon's state parquet file
_STATE_COLUMNS = {
    "id": "int64",
    "path": "object",
    "priority": "int64",
    "submitted_at": "datetime64[ns]",
    "cores": "int64",
    "memory_gb": "int64",
    "session_name": "object",
    "pid": "Int64",
    "state": "object",
}


def state_frame(jobs: Iterable[Job]) -> pd.DataFrame:
    """Return a state DataFrame with one row per job."""
    rows = [
        {
            "id": job.id,
            "path": job.path,
            "priority": job.priority,
            "submitted_at": pd.Timestamp(job.submitted_at),
            "cores": job.cores,
            "memory_gb": job.memory_gb,
            "session_name": job.session_name,
            "pid": job.pid,
            "state": job.state.value,
        }
        for job in jobs
    ]
    if not rows:
        return _empty_state()
    return pd.DataFrame(rows).astype(_STATE_COLUMNS)


def save_state(pending: Iterable[Job], running: Iterable[Job], config: QueueConfig) -> None:
    """Persist the daemon's pending and running jobs to the state file.

    The frame is written next to the target and moved into place, so a crash
    mid-write leaves the previous state intact.
    """
    state = state_frame([*pending, *running])
    target = Path(config.state_file)
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp = target.with_name(target.name + ".tmp")
    state.to_parquet(tmp, index=False)
    os.replace(tmp, target)


def load_state(config: QueueConfig) -> tuple[list[Job], list[Job]]:
    """Load ``(pending, running)`` jobs from the state file.

    Returns two empty lists if the file does not exist.  Rows with an
    unknown state are skipped with a warning.
    """
    if not Path(config.state_file).exists():
        return [], []
    frame = pd.read_parquet(config.state_file)

    pending: list[Job] = []
    running: list[Job] = []
    for row in frame.itertuples(index=False):
        try:
            state = JobState(row.state)
        except ValueError:
            logger.warning("skipping job #%s with unknown state %r", row.id, row.state)
            continue
        job = Job(
            id=int(row.id),
            path=str(row.path),
            priority=int(row.priority),
            submitted_at=pd.Timestamp(row.submitted_at).to_pydatetime(),
            cores=int(row.cores),
            memory_gb=int(row.memory_gb),
            session_name=None if pd.isna(row.session_name) else str(row.session_name),
            pid=None if pd.isna(row.pid) else int(row.pid),
            state=state,
        )
        if state is JobState.RUNNING:
            running.append(job)
        elif state is JobState.QUEUED:
            pending.append(job)
    return pending, running


def _empty_state() -> pd.DataFrame:
    """Return an empty DataFrame with the correct state schema and dtypes."""
    return pd.DataFrame(
        {col: pd.Series(dtype=dtype) for col, dtype in _STATE_COLUMNS.items()}
    )
