"""
Base poller loop.

A poller fetches every target, then publishes one snapshot per owned gauge,
then sleeps for the poll interval, forever. The reset of each gauge happens
after the fetch completes, together with the writes, so the gauges move from
the previous full snapshot straight to the new one.
"""

import asyncio
from collections.abc import Awaitable, Callable

import structlog

from .sink import Snapshot, SnapshotGauge, publish_snapshot

logger = structlog.get_logger(__name__)


class Poller:
    """Base class for a background loop owning one or more gauges."""

    name = "poller"

    def __init__(
        self,
        sinks: dict[str, SnapshotGauge],
        interval_seconds: float,
        ready: asyncio.Event | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Initialize the poller.

        Args:
            sinks: Owned gauges keyed by the snapshot key ``collect`` returns
            interval_seconds: Pause between cycles
            ready: Event awaited once before the first cycle
            sleep: Sleep function (tests inject a fake)
        """
        self.sinks = sinks
        self.interval_seconds = interval_seconds
        self.ready = ready
        self._sleep = sleep
        self.cycles_completed = 0

    async def collect(self) -> dict[str, Snapshot]:
        """Fetch all targets and build the snapshots of this cycle."""
        raise NotImplementedError

    def publish(self, snapshots: dict[str, Snapshot]) -> None:
        """Replace every owned gauge; gauges without a snapshot become empty."""
        for key, sink in self.sinks.items():
            publish_snapshot(sink, snapshots.get(key, {}))

    async def poll_once(self) -> None:
        """Run a single collect-and-publish cycle."""
        snapshots = await self.collect()
        self.publish(snapshots)
        self.cycles_completed += 1
        logger.info(
            "Polling cycle completed",
            poller=self.name,
            series={key: len(snapshot) for key, snapshot in snapshots.items()},
        )

    async def run_forever(self) -> None:
        """Poll until cancelled."""
        if self.ready is not None and not self.ready.is_set():
            logger.info("Waiting for prerequisite data", poller=self.name)
            await self.ready.wait()

        logger.info(
            "Starting poller", poller=self.name, interval_seconds=self.interval_seconds
        )
        while True:
            try:
                await self.poll_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # Keep the previous snapshot; the next cycle replaces it.
                logger.error("Error in polling cycle", poller=self.name, error=str(e))
            await self._sleep(self.interval_seconds)
