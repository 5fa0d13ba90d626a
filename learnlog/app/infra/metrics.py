"""Counter facade for entry and reorder activity."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Protocol

from .logging import get_logger

logger = get_logger(__name__)


class MetricsClient(Protocol):  # pragma: no cover - interface only
    def increment(self, metric: str, value: int = 1) -> None: ...

    def snapshot(self) -> Dict[str, int]: ...


@dataclass
class InMemoryMetricsClient:
    """Process-local counters; the only sink this service ships with."""

    counters: Counter = field(default_factory=Counter)

    def increment(self, metric: str, value: int = 1) -> None:
        self.counters[metric] += value
        logger.debug("metrics_increment", extra={"metric": metric, "value": value})

    def snapshot(self) -> Dict[str, int]:
        return dict(self.counters)

    def reset(self) -> None:
        self.counters.clear()


_metrics_singleton: InMemoryMetricsClient | None = None


def get_metrics_client() -> InMemoryMetricsClient:
    """Return the shared metrics client."""

    global _metrics_singleton
    if _metrics_singleton is None:
        _metrics_singleton = InMemoryMetricsClient()
    return _metrics_singleton
