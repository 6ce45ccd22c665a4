"""ids.py — durable, strictly increasing job id counter.

The counter file holds the last id handed out as plain text.  Allocation is a
read-increment-write under the same exclusive lock as the queue file, and the
new value is on disk before the caller sees it, so ids survive restarts and
are never shared between concurrent submitters.
"""
from __future__ import annotations

__all__ = ["IdAllocator", "IdAllocationError"]

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from gqueue.locking import QueueBusyError, locked_file

if TYPE_CHECKING:
    from gqueue.config import QueueConfig

logger = logging.getLogger(__name__)


class IdAllocationError(RuntimeError):
    """A fresh job id could not be allocated."""


@dataclass
class IdAllocator:
    path: Path
    lock_retries: int = 10
    lock_delay: float = 0.1

    @classmethod
    def from_config(cls, config: QueueConfig) -> "IdAllocator":
        return cls(config.id_file, config.lock_retries, config.lock_delay)

    def next_id(self) -> int:
        """Persist and return the next job id.

        An empty or missing counter file means no id has been issued yet, so
        the first id is 1.

        Raises
        ------
        IdAllocationError
            If the counter file stays locked past the retry budget, or holds
            something other than an integer (restarting at 1 would reuse ids).
        """
        try:
            with locked_file(self.path, retries=self.lock_retries, delay=self.lock_delay) as fh:
                text = fh.read().strip()
                try:
                    last = int(text) if text else 0
                except ValueError:
                    raise IdAllocationError(
                        f"Counter file {self.path} is corrupt: {text!r}"
                    ) from None
                next_id = last + 1
                fh.seek(0)
                fh.truncate()
                fh.write(str(next_id))
        except QueueBusyError as exc:
            raise IdAllocationError(f"Failed to allocate a job id: {exc}") from exc
        logger.debug("allocated job id %d", next_id)
        return next_id
