"""
Snapshot gauge sinks.

A sink holds the series of one gauge. Pollers replace a sink's content
wholesale every cycle: ``reset_all()`` followed by ``set()`` for every label
tuple of the new snapshot, written in one synchronous burst so a scrape
served on the event loop never observes a half-written gauge.
"""

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from prometheus_client import CollectorRegistry, Gauge

LabelTuple = tuple[str, ...]
Snapshot = dict[LabelTuple, float]


@runtime_checkable
class SnapshotGauge(Protocol):
    """Protocol for a label-keyed gauge with clear-then-repopulate semantics."""

    name: str
    labelnames: tuple[str, ...]

    def set(self, labels: Sequence[str], value: float) -> None:
        """Upsert the value of one series."""
        ...

    def reset_all(self) -> None:
        """Remove every series of this gauge."""
        ...


class PrometheusSnapshotGauge(SnapshotGauge):
    """Prometheus-backed snapshot gauge."""

    def __init__(
        self,
        name: str,
        documentation: str,
        labelnames: Sequence[str],
        registry: CollectorRegistry | None = None,
    ) -> None:
        self.name = name
        self.labelnames = tuple(labelnames)
        self._gauge = Gauge(
            name,
            documentation,
            labelnames=self.labelnames,
            registry=registry,
        )

    def set(self, labels: Sequence[str], value: float) -> None:
        self._gauge.labels(*labels).set(value)

    def reset_all(self) -> None:
        self._gauge.clear()


def publish_snapshot(sink: SnapshotGauge, snapshot: Snapshot) -> None:
    """Replace everything in ``sink`` with ``snapshot``."""
    sink.reset_all()
    for labels, value in snapshot.items():
        sink.set(labels, value)
