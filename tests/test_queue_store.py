"""Tests for queue_store.py and locking.py."""
import fcntl
import threading
import time
from datetime import datetime

import pytest

from gqueue.job import Job
from gqueue.locking import QueueBusyError, locked_file
from gqueue.queue_store import QueueStore


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _job(job_id, priority=5, cores=1, memory_gb=1):
    return Job(
        id=job_id,
        path=f"/jobs/job_{job_id}.gjf",
        priority=priority,
        submitted_at=datetime(2023, 12, 10, 17, 58),
        cores=cores,
        memory_gb=memory_gb,
    )


@pytest.fixture
def store(tmp_path):
    return QueueStore(tmp_path / "jobs_queued.que", lock_retries=500, lock_delay=0.005)


@pytest.fixture
def held_lock(store):
    """Hold LOCK_EX on the queue file through a separate open file description."""
    store.path.parent.mkdir(parents=True, exist_ok=True)
    fh = open(store.path, "a+")
    fcntl.flock(fh.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
    yield fh
    fcntl.flock(fh.fileno(), fcntl.LOCK_UN)
    fh.close()


# ---------------------------------------------------------------------------
# append
# ---------------------------------------------------------------------------


def test_append_creates_file(store):
    store.append(_job(1))
    assert store.path.read_text() == "#1 /jobs/job_1.gjf 5 10/12/2023 17:58 1 1\n"


def test_append_adds_lines_in_order(store):
    store.append(_job(1))
    store.append(_job(2))
    lines = store.path.read_text().splitlines()
    assert [l.split()[0] for l in lines] == ["#1", "#2"]


def test_append_terminates_foreign_partial_line(store):
    store.path.write_text("#7 /jobs/x.gjf 5 10/12/2023 17:58 1 1")
    store.append(_job(8))
    lines = store.path.read_text().splitlines()
    assert len(lines) == 2
    assert lines[1].startswith("#8 ")


def test_concurrent_appends_are_not_lost_or_torn(store):
    n = 40
    errors = []

    def worker(i):
        try:
            store.append(_job(i))
        except Exception as exc:  # pragma: no cover - surfaced below
            errors.append(exc)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(1, n + 1)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    lines = store.path.read_text().splitlines()
    assert len(lines) == n
    assert sorted(Job.from_line(l).id for l in lines) == list(range(1, n + 1))


# ---------------------------------------------------------------------------
# drain_all
# ---------------------------------------------------------------------------


def test_drain_missing_file_returns_empty(store):
    assert store.drain_all() == []


def test_drain_returns_jobs_and_empties_file(store):
    store.append(_job(1, priority=3))
    store.append(_job(2, priority=9))
    jobs = store.drain_all()
    assert [j.id for j in jobs] == [1, 2]
    assert [j.priority for j in jobs] == [3, 9]
    assert store.path.read_text() == ""


def test_drain_twice_second_is_empty(store):
    store.append(_job(1))
    store.drain_all()
    assert store.drain_all() == []


def test_drain_skips_malformed_lines(store):
    store.path.write_text(
        "#1 /jobs/a.gjf 5 10/12/2023 17:58 2 4\n"
        "garbage\n"
        "#2 /jobs/b.gjf 5 10/12/2023 17:58 2\n"
        "\n"
        "#3 /jobs/c.gjf 7 10/12/2023 18:00 1 1\n"
    )
    jobs = store.drain_all()
    assert [j.id for j in jobs] == [1, 3]
    assert store.path.read_text() == ""


def test_append_after_drain(store):
    store.append(_job(1))
    store.drain_all()
    store.append(_job(2))
    assert [j.id for j in store.drain_all()] == [2]


def test_concurrent_append_and_drain_lose_nothing(store):
    n = 30
    drained = []
    done = threading.Event()

    def drainer():
        while not done.is_set():
            drained.extend(store.drain_all())
            time.sleep(0.001)
        drained.extend(store.drain_all())

    t = threading.Thread(target=drainer)
    t.start()
    writers = [threading.Thread(target=store.append, args=(_job(i),)) for i in range(1, n + 1)]
    for w in writers:
        w.start()
    for w in writers:
        w.join()
    done.set()
    t.join()

    assert sorted(j.id for j in drained) == list(range(1, n + 1))


# ---------------------------------------------------------------------------
# remove_by_id
# ---------------------------------------------------------------------------


def test_remove_present_id(store):
    for i in (1, 2, 3):
        store.append(_job(i))
    assert store.remove_by_id(2) is True
    assert [j.id for j in store.peek()] == [1, 3]


def test_remove_absent_id_leaves_file_unchanged(store):
    store.append(_job(1))
    store.append(_job(2))
    before = store.path.read_bytes()
    assert store.remove_by_id(99) is False
    assert store.path.read_bytes() == before


def test_remove_does_not_match_id_prefix(store):
    store.append(_job(12))
    assert store.remove_by_id(1) is False
    assert [j.id for j in store.peek()] == [12]


def test_remove_only_first_match(store):
    store.path.write_text(
        "#5 /jobs/a.gjf 5 10/12/2023 17:58 1 1\n"
        "#5 /jobs/b.gjf 5 10/12/2023 17:58 1 1\n"
    )
    assert store.remove_by_id(5) is True
    assert store.path.read_text() == "#5 /jobs/b.gjf 5 10/12/2023 17:58 1 1\n"


def test_remove_from_missing_file(store):
    assert store.remove_by_id(1) is False


# ---------------------------------------------------------------------------
# peek
# ---------------------------------------------------------------------------


def test_peek_does_not_remove(store):
    store.append(_job(1))
    assert [j.id for j in store.peek()] == [1]
    assert [j.id for j in store.drain_all()] == [1]


# ---------------------------------------------------------------------------
# Lock contention
# ---------------------------------------------------------------------------


def test_append_fails_when_lock_held(tmp_path, held_lock):
    store = QueueStore(tmp_path / "jobs_queued.que", lock_retries=3, lock_delay=0)
    with pytest.raises(QueueBusyError):
        store.append(_job(1))
    assert store.path.read_text() == ""


def test_drain_fails_when_lock_held(tmp_path, held_lock):
    store = QueueStore(tmp_path / "jobs_queued.que", lock_retries=2, lock_delay=0)
    with pytest.raises(QueueBusyError):
        store.drain_all()


def test_remove_fails_when_lock_held(tmp_path, held_lock):
    store = QueueStore(tmp_path / "jobs_queued.que", lock_retries=2, lock_delay=0)
    with pytest.raises(QueueBusyError):
        store.remove_by_id(1)


def test_lock_retries_until_released(tmp_path, held_lock):
    store = QueueStore(tmp_path / "jobs_queued.que", lock_retries=100, lock_delay=0.01)
    timer = threading.Timer(0.05, lambda: fcntl.flock(held_lock.fileno(), fcntl.LOCK_UN))
    timer.start()
    store.append(_job(1))
    timer.join()
    assert [j.id for j in store.peek()] == [1]


def test_queue_busy_error_is_oserror():
    assert issubclass(QueueBusyError, OSError)


def test_locked_file_creates_parent_dirs(tmp_path):
    target = tmp_path / "a" / "b" / "file.txt"
    with locked_file(target) as fh:
        fh.write("x")
    assert target.read_text() == "x"
