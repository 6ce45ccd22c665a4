from __future__ import annotations

__all__ = ["QueueConfig", "MEMORY_METRICS"]

from dataclasses import dataclass, field
from pathlib import Path

import yaml

#: How host memory capacity is measured each tick.
#:   "total"     → physical RAM, independent of what other processes use
#:   "available" → memory the kernel reports as available right now
MEMORY_METRICS = ("total", "available")


@dataclass
class QueueConfig:
    """All file locations and scheduler settings in one place."""

    # Directory holding the shared files. Any file path left as None below
    # is placed inside it by __post_init__.
    base_dir: Path = field(default_factory=lambda: Path.home() / ".gqueue")

    # Shared files (queue + id counter are written by submitters too)
    queue_file: Path | None = None   # jobs_queued.que
    id_file: Path | None = None      # jobs_ids.log
    state_file: Path | None = None   # running_state.parquet, daemon-owned

    # Audit trail and error log
    log_file: Path | None = None     # jobs_processed.que
    error_file: Path | None = None   # errors.log

    # Execution
    run_script: Path | None = None   # receives the job path as its only argument
    session_prefix: str = "job_"
    sentinel_suffix: str = ".done"

    # Loop timing and lock discipline
    poll_interval: float = 10.0
    lock_retries: int = 10
    lock_delay: float = 0.1

    # Capacity. None means "ask the host every tick".
    total_cores: int | None = None
    total_memory_gb: int | None = None
    memory_metric: str = "total"

    def __post_init__(self) -> None:
        """Fill in default file locations and validate numeric settings.

        Raises
        ------
        ValueError
            If ``poll_interval`` or ``lock_retries`` is not positive,
            ``lock_delay`` is negative, a pinned capacity is not positive,
            or ``memory_metric`` is unknown.
        """
        self.base_dir = Path(self.base_dir)
        defaults = {
            "queue_file": "jobs_queued.que",
            "id_file": "jobs_ids.log",
            "state_file": "running_state.parquet",
            "log_file": "jobs_processed.que",
            "error_file": "errors.log",
            "run_script": "run_gaussian.sh",
        }
        for name, filename in defaults.items():
            value = getattr(self, name)
            setattr(self, name, self.base_dir / filename if value is None else Path(value))

        if self.poll_interval <= 0:
            raise ValueError(f"poll_interval must be positive, got {self.poll_interval!r}")
        if self.lock_retries < 1:
            raise ValueError(f"lock_retries must be at least 1, got {self.lock_retries!r}")
        if self.lock_delay < 0:
            raise ValueError(f"lock_delay must not be negative, got {self.lock_delay!r}")
        for name in ("total_cores", "total_memory_gb"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ValueError(f"{name} must be positive when set, got {value!r}")
        if self.memory_metric not in MEMORY_METRICS:
            raise ValueError(
                f"memory_metric must be one of {list(MEMORY_METRICS)}, "
                f"got {self.memory_metric!r}"
            )

    @classmethod
    def from_yaml(cls, path: str | Path, **overrides) -> "QueueConfig":
        """Load config from a YAML file, overriding defaults.

        Keyword *overrides* (e.g. from command-line flags) win over the file.

        Raises
        ------
        ValueError
            If the file contains invalid YAML syntax or unknown keys.
        FileNotFoundError
            If *path* does not exist.
        """
        with open(path) as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as exc:
                raise ValueError(f"Invalid YAML in {path}: {exc}") from exc

        known = set(cls.__dataclass_fields__)
        unknown = set(data) - known
        if unknown:
            raise ValueError(
                f"Unknown config key(s) in {path}: {sorted(unknown)}. "
                f"Known keys: {sorted(known)}"
            )

        path_fields = {
            "base_dir", "queue_file", "id_file", "state_file",
            "log_file", "error_file", "run_script",
        }
        for key in path_fields:
            if data.get(key) is not None:
                data[key] = Path(data[key]).expanduser()

        data.update(overrides)
        return cls(**data)
