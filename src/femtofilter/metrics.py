"""Diagnostic metrics sinks.

The filter reports every quantity it would histogram through
`record(name, *values)`; what happens to the values is up to the sink.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import defaultdict


class MetricsSink(ABC):
    """Destination for the quantities the filter would histogram."""

    @abstractmethod
    def record(self, name: str, *values: float) -> None:
        pass


class NullMetrics(MetricsSink):
    """Sink that drops everything."""

    def record(self, name: str, *values: float) -> None:
        return None


class RecordingMetrics(MetricsSink):
    """Sink that keeps every recorded entry in memory, grouped by name."""

    def __init__(self) -> None:
        self.entries: dict[str, list[tuple[float, ...]]] = defaultdict(list)

    def record(self, name: str, *values: float) -> None:
        self.entries[name].append(tuple(float(v) for v in values))

    def count(self, name: str) -> int:
        return len(self.entries.get(name, ()))

    def rows(self) -> list[dict[str, float | str | None]]:
        """Flatten entries into `name, x, y` rows for table export."""
        out: list[dict[str, float | str | None]] = []
        for name, values in self.entries.items():
            for entry in values:
                out.append(
                    {
                        "name": name,
                        "x": entry[0] if entry else None,
                        "y": entry[1] if len(entry) > 1 else None,
                    }
                )
        return out
