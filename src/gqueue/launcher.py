from __future__ import annotations

__all__ = [
    "ExecutionBackend",
    "LaunchError",
    "ScreenBackend",
    "launch_job",
    "session_name",
]

import logging
import re
import shlex
import subprocess
from pathlib import Path
from typing import Protocol

from gqueue.job import Job, JobState

logger = logging.getLogger(__name__)


class LaunchError(RuntimeError):
    """The execution session for a job could not be started."""


class ExecutionBackend(Protocol):
    """What the scheduler needs from the thing that actually runs jobs."""

    def launch(self, session: str, job_path: str) -> int | None:
        """Start *job_path* in a detached session named *session*; return its pid."""

    def terminate(self, session: str) -> None:
        """Tear down the session named *session*."""

    def exists(self, sentinel: Path) -> bool:
        """Return True if the completion marker *sentinel* is present."""


def session_name(job_id: int, prefix: str = "job_") -> str:
    """Return the session name for *job_id*; unique as long as ids are."""
    return f"{prefix}{job_id}"


class ScreenBackend:
    """Runs each job in its own detached GNU ``screen`` session.

    The session keeps an interactive shell open after the run script exits,
    so it outlives both the job and the daemon until :meth:`terminate` quits it.
    """

    def __init__(self, run_script: Path) -> None:
        self.run_script = Path(run_script)

    def build_command(self, session: str, job_path: str) -> list[str]:
        inner = f"{shlex.quote(str(self.run_script))} {shlex.quote(job_path)} ; exec bash"
        return ["screen", "-dmS", session, "bash", "-c", inner]

    def launch(self, session: str, job_path: str) -> int | None:
        """Start the run script for *job_path* in screen session *session*.

        Returns
        -------
        int or None
            The pid of the screen session, or *None* if ``screen -ls`` does
            not list it (the pid is informational only).

        Raises
        ------
        LaunchError
            If ``screen`` is not installed or exits with a non-zero status.
        """
        cmd = self.build_command(session, job_path)
        logger.info("Launching: %s", " ".join(cmd))
        try:
            subprocess.run(cmd, capture_output=True, text=True, check=True)
        except (subprocess.CalledProcessError, FileNotFoundError) as exc:
            raise LaunchError(f"Could not start screen session {session!r}: {exc}") from exc
        return self.session_pid(session)

    def session_pid(self, session: str) -> int | None:
        """Look up the pid of *session* in ``screen -ls`` output.

        ``screen -ls`` prints lines like
        ``"\\t1077430.job_48\\t(Detached)"`` and exits non-zero even when
        sessions exist, so the exit status is ignored.
        """
        try:
            result = subprocess.run(
                ["screen", "-ls", session], capture_output=True, text=True, check=False
            )
        except FileNotFoundError:
            return None
        pattern = re.compile(rf"^\s*(\d+)\.{re.escape(session)}\s")
        for line in result.stdout.splitlines():
            match = pattern.match(line)
            if match:
                return int(match.group(1))
        return None

    def terminate(self, session: str) -> None:
        """Quit screen session *session*.

        Raises
        ------
        LaunchError
            If ``screen`` is not installed.  A session that is already gone
            is not an error.
        """
        try:
            result = subprocess.run(
                ["screen", "-S", session, "-X", "quit"],
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as exc:
            raise LaunchError(f"Could not terminate screen session {session!r}: {exc}") from exc
        if result.returncode != 0:
            logger.debug("screen session %s was already gone", session)

    def exists(self, sentinel: Path) -> bool:
        return sentinel.exists()


def launch_job(
    job: Job,
    backend: ExecutionBackend,
    prefix: str = "job_",
    sentinel_suffix: str = ".done",
) -> Job:
    """Start *job* through *backend* and record its session and pid.

    A completion marker left over from an earlier run of the same input
    file is deleted first, otherwise the new run would be retired in the
    tick that starts it.  The job is marked running only after the backend
    reports success; on :class:`LaunchError` it is left untouched.

    Raises
    ------
    LaunchError
        If the backend fails, or a stale marker exists and cannot be deleted.
    """
    sentinel = job.sentinel_path(sentinel_suffix)
    try:
        sentinel.unlink(missing_ok=True)
    except OSError as exc:
        raise LaunchError(f"Could not clear stale marker {sentinel}: {exc}") from exc

    name = session_name(job.id, prefix)
    pid = backend.launch(name, job.path)
    job.session_name = name
    job.pid = pid
    job.state = JobState.RUNNING
    return job
