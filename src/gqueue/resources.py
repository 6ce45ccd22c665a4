from __future__ import annotations

__all__ = ["ResourceTracker", "host_capacity"]

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

import psutil

if TYPE_CHECKING:
    from gqueue.config import QueueConfig

logger = logging.getLogger(__name__)

_BYTES_PER_GB = 1024 ** 3


@dataclass
class ResourceTracker:
    """Cores and memory committed to running jobs.

    Owned by the scheduler loop; nothing else mutates it.  This is advisory
    accounting, not enforcement.
    """

    used_cores: int = 0
    used_memory_gb: int = 0

    def reserve(self, cores: int, memory_gb: int) -> None:
        self.used_cores += cores
        self.used_memory_gb += memory_gb

    def release(self, cores: int, memory_gb: int) -> None:
        """Return a reservation to the pool, clamping the counters at zero."""
        cores_left = self.used_cores - cores
        memory_left = self.used_memory_gb - memory_gb
        if cores_left < 0 or memory_left < 0:
            logger.debug(
                "release of %d cores / %d GB exceeds committed %d / %d; clamping",
                cores, memory_gb, self.used_cores, self.used_memory_gb,
            )
        self.used_cores = max(0, cores_left)
        self.used_memory_gb = max(0, memory_left)

    def available_cores(self, total_cores: int) -> int:
        return max(0, total_cores - self.used_cores)

    def available_memory_gb(self, total_memory_gb: int) -> int:
        return max(0, total_memory_gb - self.used_memory_gb)


def host_capacity(config: QueueConfig) -> tuple[int, int]:
    """Return ``(cores, memory_gb)`` the scheduler may hand out.

    Values pinned in *config* win; otherwise the host is queried through
    psutil.  Memory is rounded down to whole GB, so a host with less than
    1 GB free reports 0 and admits nothing.
    """
    cores = config.total_cores
    if cores is None:
        cores = psutil.cpu_count(logical=True) or 1

    memory_gb = config.total_memory_gb
    if memory_gb is None:
        vm = psutil.virtual_memory()
        raw = vm.available if config.memory_metric == "available" else vm.total
        memory_gb = raw // _BYTES_PER_GB

    return cores, memory_gb
