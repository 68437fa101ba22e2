"""
Bounded-parallelism gates for provider and parsing work
Tracks in-flight usage per limiter and enforces per-call timeouts
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from .logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class LimiterStats:
    """Usage counters for a single limiter"""
    name: str
    limit: int
    in_flight: int = 0
    peak_in_flight: int = 0
    completed: int = 0
    failed: int = 0
    timed_out: int = 0
    last_call: float = field(default_factory=time.time)

    @property
    def utilization(self) -> float:
        """Current share of slots in use"""
        if self.limit == 0:
            return 0.0
        return self.in_flight / self.limit

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'limit': self.limit,
            'in_flight': self.in_flight,
            'peak_in_flight': self.peak_in_flight,
            'completed': self.completed,
            'failed': self.failed,
            'timed_out': self.timed_out,
        }


class CallTimeout(Exception):
    """Raised when a limited call exceeds its timeout"""
    def __init__(self, limiter: str, timeout: float):
        self.limiter = limiter
        self.timeout = timeout
        super().__init__(f"{limiter} call exceeded {timeout:.1f}s")


class ConcurrencyLimiter:
    """
    Restricts simultaneous in-flight operations of one class.

    Each limiter owns its own semaphore so CPU-bound parsing and
    rate-limited provider calls never compete for the same slots.
    """

    def __init__(self, name: str, limit: int, timeout: Optional[float] = None):
        if limit < 1:
            raise ValueError(f"Limiter {name} needs at least one slot, got {limit}")
        self.name = name
        self.limit = limit
        self.timeout = timeout
        self._semaphore = asyncio.Semaphore(limit)
        self.stats = LimiterStats(name=name, limit=limit)

    async def run(
        self,
        func: Callable[..., Awaitable[T]],
        *args,
        timeout: Optional[float] = None,
        **kwargs
    ) -> T:
        """
        Run func(*args, **kwargs) once a slot is free

        Args:
            func: Coroutine function to call
            timeout: Per-call timeout in seconds (default: limiter timeout)

        Raises:
            CallTimeout: if the call exceeds the timeout
        """
        timeout = timeout if timeout is not None else self.timeout

        async with self._semaphore:
            self.stats.in_flight += 1
            self.stats.peak_in_flight = max(self.stats.peak_in_flight, self.stats.in_flight)
            self.stats.last_call = time.time()
            try:
                if timeout is None:
                    result = await func(*args, **kwargs)
                else:
                    result = await asyncio.wait_for(func(*args, **kwargs), timeout=timeout)
            except asyncio.TimeoutError as e:
                self.stats.timed_out += 1
                self.stats.failed += 1
                logger.warning(f"{self.name} call timed out after {timeout}s")
                raise CallTimeout(self.name, timeout) from e
            except Exception:
                self.stats.failed += 1
                raise
            finally:
                self.stats.in_flight -= 1

            self.stats.completed += 1
            return result

    def get_status(self) -> Dict[str, Any]:
        return self.stats.to_dict()
