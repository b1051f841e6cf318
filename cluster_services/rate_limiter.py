# In-memory fixed window rate limiter for tool calls and the HTTP shim

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from cluster_services.config import (
    RATE_LIMIT_ENABLED,
    RATE_LIMIT_MAX_REQUESTS,
    RATE_LIMIT_SWEEP_SECONDS,
    RATE_LIMIT_WINDOW_MS,
)
from cluster_services.errors import RateLimitError

logger = logging.getLogger(__name__)


@dataclass
class RateLimitEntry:
    count: int
    reset_time: float  # monotonic milliseconds


class RateLimiter:
    """Fixed-window counter per key.

    Approximate by nature: a caller can burst up to twice the limit across
    a window boundary.  Expired windows are dropped by :meth:`cleanup`,
    which the background sweep started by :meth:`start` runs periodically.
    """

    def __init__(
        self,
        window_ms: int = RATE_LIMIT_WINDOW_MS,
        max_requests: int = RATE_LIMIT_MAX_REQUESTS,
        enabled: bool = RATE_LIMIT_ENABLED,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.window_ms = window_ms
        self.max_requests = max_requests
        self.enabled = enabled
        self._clock = clock
        self._requests: Dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()
        self._sweep_task: Optional[asyncio.Task] = None

    def _now_ms(self) -> float:
        return self._clock() * 1000.0

    def check(self, key: str) -> None:
        """Count one request for *key*; raise ``RateLimitError`` over quota."""
        if not self.enabled:
            return

        now = self._now_ms()
        with self._lock:
            entry = self._requests.get(key)
            if entry is None or now > entry.reset_time:
                self._requests[key] = RateLimitEntry(count=1, reset_time=now + self.window_ms)
                return

            if entry.count >= self.max_requests:
                logger.warning(
                    "[RateLimiter] %s exceeded %d requests per %gs",
                    key,
                    self.max_requests,
                    self.window_ms / 1000,
                )
                raise RateLimitError(
                    f"Rate limit exceeded: {self.max_requests} requests "
                    f"per {self.window_ms / 1000:g} seconds"
                )

            entry.count += 1

    def cleanup(self) -> int:
        """Drop entries whose window has expired.  Returns how many were removed."""
        now = self._now_ms()
        with self._lock:
            expired = [key for key, entry in self._requests.items() if now > entry.reset_time]
            for key in expired:
                del self._requests[key]
        if expired:
            logger.debug("[RateLimiter] swept %d expired entries", len(expired))
        return len(expired)

    def __len__(self) -> int:
        return len(self._requests)

    # -- background sweep -----------------------------------------------------

    async def _sweep(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self.cleanup()

    def start(self, interval: float = RATE_LIMIT_SWEEP_SECONDS) -> None:
        """Start the periodic sweep on the running event loop (idempotent)."""
        if self._sweep_task is not None and not self._sweep_task.done():
            return
        self._sweep_task = asyncio.get_running_loop().create_task(self._sweep(interval))

    async def stop(self) -> None:
        """Cancel the sweep task and wait for it to finish."""
        task, self._sweep_task = self._sweep_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
