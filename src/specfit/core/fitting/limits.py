"""Wall-clock and memory budgets of a single optimization.

A process-wide default ``ResourceLimits`` applies whenever a fit does not
pass explicit limits. The default is replaced (never mutated) under a lock,
and every fit takes a snapshot at start, so reconfiguration never affects a
fit that is already running.
"""

from __future__ import annotations

import logging
import threading
import time

import psutil
from pydantic import BaseModel, ConfigDict, Field

from specfit.core.constants import DEFAULT_MEMORY_LIMIT, DEFAULT_TIME_LIMIT
from specfit.core.shared.exceptions import ResourceBudgetExceeded

logger = logging.getLogger(__name__)

_BYTES_PER_GB = 2**30


class ResourceLimits(BaseModel):
    """Budget of one optimization.

    Attributes
    ----------
        time_limit: Wall-clock seconds, including setup
        mem_limit: Allowed growth of the process resident memory, in GB
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    time_limit: float = Field(default=DEFAULT_TIME_LIMIT, ge=0.0)
    mem_limit: float = Field(default=DEFAULT_MEMORY_LIMIT, ge=0.0)


_lock = threading.Lock()
_default_limits = ResourceLimits()


def get_default_limits() -> ResourceLimits:
    """Snapshot of the process-wide default budget."""
    with _lock:
        return _default_limits


def set_default_limits(limits: ResourceLimits) -> None:
    global _default_limits  # noqa: PLW0603
    with _lock:
        _default_limits = limits


def set_timelimit(seconds: float) -> None:
    """Set the default wall-clock budget of one optimization."""
    global _default_limits  # noqa: PLW0603
    logger.info("Setting optimization time limit to %s seconds", seconds)
    with _lock:
        _default_limits = _default_limits.model_copy(update={"time_limit": float(seconds)})


def set_memlimit(gigabytes: float) -> None:
    """Set the default memory-growth budget (GB) of one optimization."""
    global _default_limits  # noqa: PLW0603
    logger.info("Setting optimization memory limit to %s GB", gigabytes)
    with _lock:
        _default_limits = _default_limits.model_copy(update={"mem_limit": float(gigabytes)})


def resident_memory_gb() -> float:
    return psutil.Process().memory_info().rss / _BYTES_PER_GB


class TimeAndMemoryControl:
    """Optimizer callback enforcing a ``ResourceLimits`` budget.

    The first call records the setup time (compilation, first evaluation)
    and only aborts if setup alone used up the budget. Each later call extrapolates the time of the next
    iteration from the average iteration time and raises
    ``ResourceBudgetExceeded`` when it would overrun the budget, or when the
    resident memory grew by more than the memory budget.

    Args:
        limits: Budget (defaults to the process-wide default at construction)
        start_time: Reference for elapsed time (defaults to now)
        start_mem: Reference resident memory in GB (defaults to current)
    """

    def __init__(
        self,
        limits: ResourceLimits | None = None,
        start_time: float | None = None,
        start_mem: float | None = None,
    ) -> None:
        self.limits = limits if limits is not None else get_default_limits()
        self.start_time = time.perf_counter() if start_time is None else start_time
        self.start_mem = resident_memory_gb() if start_mem is None else start_mem
        self.iteration = 0
        self.setup_time = 0.0
        self.reason: str | None = None

    @property
    def aborted(self) -> bool:
        return self.reason is not None

    def check(self) -> None:
        """Raise ``ResourceBudgetExceeded`` if the budget would be exceeded."""
        elapsed = time.perf_counter() - self.start_time
        iteration = self.iteration
        self.iteration += 1
        if iteration == 0:
            self.setup_time = elapsed
            if elapsed > self.limits.time_limit:
                self._abort(f"time limit of {self.limits.time_limit} s reached during setup")
            return

        if resident_memory_gb() - self.start_mem > self.limits.mem_limit:
            self._abort(f"memory limit of {self.limits.mem_limit} GB reached")

        expected_next = elapsed + (elapsed - self.setup_time) / iteration
        if expected_next > self.limits.time_limit:
            self._abort(f"time limit of {self.limits.time_limit} s reached")

    def _abort(self, reason: str) -> None:
        self.reason = reason
        logger.warning("Optimization aborted: %s after %d iterations", reason, self.iteration)
        raise ResourceBudgetExceeded(reason)

    def __call__(self, *args: object, **kwargs: object) -> None:
        self.check()


__all__ = [
    "ResourceLimits",
    "TimeAndMemoryControl",
    "get_default_limits",
    "resident_memory_gb",
    "set_default_limits",
    "set_memlimit",
    "set_timelimit",
]
