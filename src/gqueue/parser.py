from __future__ import annotations

__all__ = ["parse_resources", "count_cpus"]

import logging
import re
from pathlib import Path

logger = logging.getLogger(__name__)

# Gaussian Link 0 directives
_NPROCS_RE = re.compile(r"%nproc(?:shared|s)?=(\d+)", re.IGNORECASE)
_CPU_RE = re.compile(r"%cpu=(\S+)", re.IGNORECASE)
_MEM_RE = re.compile(r"%mem=(\d+)GB", re.IGNORECASE)


def count_cpus(value: str) -> int:
    """Count the processors in a ``%cpu=`` value.

    Accepts a contiguous range (``0-7``), a strided range (``0-10/2``), a
    comma-separated list of processors or ranges (``0,2,4`` or ``0-3,8-11``)
    or a bare count (``4``).

    Raises
    ------
    ValueError
        If *value* matches none of those forms.
    """
    if "," in value:
        total = 0
        for item in value.split(","):
            if "-" in item:
                total += _count_item(item)
            else:
                int(item)
                total += 1
        return total
    if "-" in value:
        return _count_item(value)
    return int(value)


def _count_item(item: str) -> int:
    """Count the processors in one ``a-b`` or ``a-b/step`` range."""
    step = 1
    if "/" in item:
        item, step_text = item.split("/", 1)
        step = int(step_text)
        if step < 1:
            raise ValueError(f"CPU range step must be positive: {step_text!r}")
    start, end = item.split("-", 1)
    return (int(end) - int(start)) // step + 1


def parse_resources(path: str | Path) -> tuple[int, int]:
    """Return ``(cores, memory_gb)`` requested by a Gaussian input file.

    ``%nprocshared=`` / ``%nproc=`` take precedence over ``%cpu=``; memory is
    read from ``%mem=<N>GB``.  Anything not found defaults to 1.

    Raises
    ------
    FileNotFoundError
        If *path* does not exist.
    ValueError
        If a ``%cpu=`` directive is present but unparsable.
    """
    content = Path(path).read_text(errors="replace")

    cores = 1
    nprocs = _NPROCS_RE.search(content)
    if nprocs:
        cores = int(nprocs.group(1))
    else:
        cpu = _CPU_RE.search(content)
        if cpu:
            cores = count_cpus(cpu.group(1))

    memory_gb = 1
    mem = _MEM_RE.search(content)
    if mem:
        memory_gb = int(mem.group(1))

    logger.debug("parsed %s: %d cores, %d GB", path, cores, memory_gb)
    return max(1, cores), max(1, memory_gb)
