from pathlib import Path

import pytest

from gqueue.config import QueueConfig


# ---------------------------------------------------------------------------
# Fake execution backend
# ---------------------------------------------------------------------------

class FakeBackend:
    """In-memory stand-in for ScreenBackend.

    Records launches and terminations; sentinels are real files so the
    monitor's delete step is exercised too.
    """

    def __init__(self, fail_for: set[int] | None = None):
        self.launched: list[tuple[str, str]] = []
        self.terminated: list[str] = []
        self.fail_for = fail_for or set()
        self._next_pid = 1000

    def launch(self, session: str, job_path: str) -> int:
        from gqueue.launcher import LaunchError

        job_id = int(session.rsplit("_", 1)[-1])
        if job_id in self.fail_for:
            raise LaunchError(f"screen refused {session}")
        self.launched.append((session, job_path))
        self._next_pid += 1
        return self._next_pid

    def terminate(self, session: str) -> None:
        self.terminated.append(session)

    def exists(self, sentinel: Path) -> bool:
        return sentinel.exists()


@pytest.fixture
def backend():
    return FakeBackend()


# ---------------------------------------------------------------------------
# Config and job helpers
# ---------------------------------------------------------------------------

@pytest.fixture
def cfg(tmp_path):
    """QueueConfig with every file under tmp_path and pinned capacity."""
    return QueueConfig(
        base_dir=tmp_path / "gqueue",
        total_cores=8,
        total_memory_gb=16,
        poll_interval=0.01,
        lock_retries=50,
        lock_delay=0.01,
    )


@pytest.fixture
def job_file(tmp_path):
    """A Gaussian input file requesting 2 cores and 4 GB."""
    path = tmp_path / "jobs" / "water.gjf"
    path.parent.mkdir(parents=True)
    path.write_text("%nprocshared=2\n%mem=4GB\n# opt b3lyp/6-31g(d)\n\nwater\n\n0 1\nO\n")
    return path
