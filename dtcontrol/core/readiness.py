"""Readiness gate for requests to the backend.

The backend is not health-probed; it is assumed ready a fixed grace period
after spawn. Requests arriving earlier are held back until then.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from dtcontrol.core.exceptions import NotReadyError

logger = logging.getLogger(__name__)


class ReadinessGate:
    """Holds the single monotonic deadline after which the backend is usable."""

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._clock = clock
        self._sleep = sleep
        self._deadline: Optional[float] = None

    @property
    def deadline(self) -> Optional[float]:
        """Deadline on the gate's clock, or None if the backend was never started."""
        return self._deadline

    @property
    def is_set(self) -> bool:
        return self._deadline is not None

    def remaining(self) -> float:
        """Seconds left until the deadline (0 once it has passed)."""
        if self._deadline is None:
            raise NotReadyError()
        return max(0.0, self._deadline - self._clock())

    def set_deadline(self, delay: float) -> None:
        self._deadline = self._clock() + delay

    def open_now(self) -> None:
        self._deadline = self._clock()

    async def wait_until_ready(self) -> float:
        """Suspend until the deadline. Returns the number of seconds waited.

        Raises:
            NotReadyError: If no deadline was ever set.
        """
        remaining = self.remaining()
        if remaining > 0:
            await self._sleep(remaining)
        return remaining
