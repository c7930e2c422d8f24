"""
Rate limit backoff for the polling system.

GitHub reports the instant at which a rate-limited client may resume; the
backoff policy simply sleeps until then. Clock and sleep are injectable so
tests can observe the waits without blocking.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

import structlog

logger = structlog.get_logger(__name__)


class RateLimitBackoff:
    """Wait-until-reset policy for rate-limited requests."""

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._clock = clock
        self._sleep = sleep

    async def wait_until(self, reset_time: float, **context: str) -> float:
        """
        Sleep until the rate limit resets.

        Args:
            reset_time: Epoch seconds at which requests may resume
            **context: Extra fields for the log line

        Returns:
            Seconds waited (0 if the reset instant already passed)
        """
        delay = max(0.0, reset_time - self._clock())
        logger.warning(
            "Rate limited, pausing until reset",
            reset_at=datetime.fromtimestamp(reset_time, tz=timezone.utc).isoformat(),
            sleep_seconds=round(delay, 1),
            **context,
        )
        await self._sleep(delay)
        return delay
