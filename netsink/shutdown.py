"""
Shutdown token shared between signal handlers and the servers
"""

import asyncio
import time
from typing import Optional

from .constants import SHUTDOWN_GRACE_PERIOD


class ShutdownToken:
    """
    Explicit cancellation token with a grace-period deadline.

    Signal handlers (or tests) call trigger(); servers wait() on it and use
    remaining()/expired() to bound how long pending work may continue.
    Must be created inside a running event loop's thread.
    """

    def __init__(self, grace_period: float = SHUTDOWN_GRACE_PERIOD):
        self.grace_period = grace_period
        self.reason: Optional[str] = None
        self.deadline: Optional[float] = None
        self._event = asyncio.Event()

    @property
    def triggered(self) -> bool:
        return self._event.is_set()

    def trigger(self, reason: str = "shutdown requested") -> None:
        """Request shutdown; the deadline starts at the first call"""
        if self._event.is_set():
            return
        self.reason = reason
        self.deadline = time.monotonic() + self.grace_period
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    def remaining(self) -> float:
        """Seconds left before pending work is abandoned"""
        if self.deadline is None:
            return self.grace_period
        return max(0.0, self.deadline - time.monotonic())

    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline
