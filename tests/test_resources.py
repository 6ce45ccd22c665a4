"""Tests for resources.py — reservation accounting and host capacity."""
from types import SimpleNamespace
from unittest.mock import patch

import pytest

from gqueue.config import QueueConfig
from gqueue.resources import ResourceTracker, host_capacity

GB = 1024 ** 3


def test_tracker_starts_empty():
    tracker = ResourceTracker()
    assert tracker.used_cores == 0
    assert tracker.used_memory_gb == 0


def test_reserve_accumulates():
    tracker = ResourceTracker()
    tracker.reserve(2, 4)
    tracker.reserve(3, 1)
    assert (tracker.used_cores, tracker.used_memory_gb) == (5, 5)


def test_release_returns_capacity():
    tracker = ResourceTracker()
    tracker.reserve(4, 8)
    tracker.release(1, 2)
    assert (tracker.used_cores, tracker.used_memory_gb) == (3, 6)


def test_release_clamps_at_zero():
    tracker = ResourceTracker()
    tracker.reserve(2, 2)
    tracker.release(2, 2)
    tracker.release(2, 2)
    assert (tracker.used_cores, tracker.used_memory_gb) == (0, 0)


def test_release_clamps_each_counter_independently():
    tracker = ResourceTracker(used_cores=1, used_memory_gb=10)
    tracker.release(4, 3)
    assert (tracker.used_cores, tracker.used_memory_gb) == (0, 7)


def test_counters_never_negative_over_mixed_sequence():
    tracker = ResourceTracker()
    ops = [("r", 2, 2), ("r", 1, 4), ("x", 2, 2), ("x", 1, 4), ("x", 1, 4), ("r", 3, 1), ("x", 5, 5)]
    for op, cores, mem in ops:
        if op == "r":
            tracker.reserve(cores, mem)
        else:
            tracker.release(cores, mem)
        assert tracker.used_cores >= 0
        assert tracker.used_memory_gb >= 0


def test_available_subtracts_committed():
    tracker = ResourceTracker(used_cores=3, used_memory_gb=5)
    assert tracker.available_cores(8) == 5
    assert tracker.available_memory_gb(16) == 11


def test_available_never_negative_after_capacity_loss():
    tracker = ResourceTracker(used_cores=6, used_memory_gb=12)
    assert tracker.available_cores(4) == 0
    assert tracker.available_memory_gb(8) == 0


# ---------------------------------------------------------------------------
# host_capacity
# ---------------------------------------------------------------------------


def test_host_capacity_pinned_values_skip_psutil(tmp_path):
    cfg = QueueConfig(base_dir=tmp_path, total_cores=12, total_memory_gb=64)
    with patch("psutil.cpu_count") as cpu, patch("psutil.virtual_memory") as vm:
        assert host_capacity(cfg) == (12, 64)
    cpu.assert_not_called()
    vm.assert_not_called()


def test_host_capacity_total_memory(tmp_path):
    cfg = QueueConfig(base_dir=tmp_path)
    mem = SimpleNamespace(total=32 * GB + 123, available=5 * GB)
    with patch("psutil.cpu_count", return_value=16), patch("psutil.virtual_memory", return_value=mem):
        assert host_capacity(cfg) == (16, 32)


def test_host_capacity_available_memory(tmp_path):
    cfg = QueueConfig(base_dir=tmp_path, memory_metric="available")
    mem = SimpleNamespace(total=32 * GB, available=5 * GB + GB // 2)
    with patch("psutil.cpu_count", return_value=16), patch("psutil.virtual_memory", return_value=mem):
        assert host_capacity(cfg) == (16, 5)


def test_host_capacity_unknown_cpu_count_defaults_to_one(tmp_path):
    cfg = QueueConfig(base_dir=tmp_path, total_memory_gb=4)
    with patch("psutil.cpu_count", return_value=None):
        assert host_capacity(cfg) == (1, 4)
