"""Serialized aggregation of request outcomes into a ``RunResult``.

The ``StatsAggregator`` is the single owner of the run's ``RunResult``.
The scheduler delivers completions to it one at a time, so concurrent
requests never interleave their updates.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

import numpy as np

from loadburst._internal.errors import EngineError
from loadburst._internal.logging import get_logger
from loadburst.metrics.models import RunResult

if TYPE_CHECKING:
    from collections.abc import Sequence

    from loadburst._internal.types import ProgressCallback
    from loadburst.metrics.models import RequestOutcome
    from loadburst.metrics.persister import ResultPersister

logger = get_logger("metrics.aggregator")

_MIN_ELAPSED = 0.001


def quantile(sorted_latencies: Sequence[float] | np.ndarray, q: float) -> float:
    """Select the ``q`` quantile from ascending latencies.

    The element at index ``floor(len * q)`` is returned, clamped to the
    last index. With ten samples p50 is index 5 and both p90 and p95 are
    index 9 (the maximum). An empty input yields 0.0.

    Args:
        sorted_latencies: Latencies sorted ascending.
        q: Quantile as a fraction (0.5 for p50).

    Returns:
        The selected latency.
    """
    count = len(sorted_latencies)
    if count == 0:
        return 0.0
    index = min(int(count * q), count - 1)
    return float(sorted_latencies[index])


class StatsAggregator:
    """Folds request outcomes into running and final statistics.

    After every completion the aggregator updates the counters, hands the
    outcome to the persister (when configured) and then calls the progress
    callback with the current ``RunResult``. The callback runs inline:
    a slow callback slows the whole run down.

    Attributes:
        total_requests: Configured number of requests (N).
    """

    def __init__(
        self,
        total_requests: int,
        *,
        persister: ResultPersister | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        """Initialize the aggregator.

        Args:
            total_requests: Configured number of requests.
            persister: Optional writer for per-request records.
            on_progress: Callback invoked with the result after each
                completion. It must treat the result as read-only.
        """
        self.total_requests = total_requests
        self._persister = persister
        self._on_progress = on_progress
        self._result = RunResult(total_requests=total_requests)
        self._start_time: float | None = None

    @property
    def result(self) -> RunResult:
        """Return the result being accumulated."""
        return self._result

    def start(self) -> None:
        """Mark the start of the run for requests-per-second computation."""
        self._start_time = time.monotonic()

    def _elapsed(self) -> float:
        if self._start_time is None:
            self.start()
            return 0.0
        return time.monotonic() - self._start_time

    async def on_completion(self, outcome: RequestOutcome) -> None:
        """Record one completed request.

        Args:
            outcome: The completed request.

        Raises:
            EngineError: If more outcomes arrive than requests configured.
            PersistenceError: If the outcome cannot be written.
        """
        result = self._result
        if result.completed >= self.total_requests:
            msg = (
                f"Received more completions than the {self.total_requests} "
                "requests configured"
            )
            raise EngineError(msg)

        result.completed += 1
        if outcome.success:
            latency = outcome.latency_ms
            result.success += 1
            result.total_latency += latency
            result.latencies.append(latency)
            if result.success == 1:
                result.latency_min = latency
                result.latency_max = latency
            else:
                result.latency_min = min(result.latency_min, latency)
                result.latency_max = max(result.latency_max, latency)
        else:
            result.failures += 1
            logger.debug("Request %d failed: %s", outcome.index, outcome.error)

        result.latency_avg = result.total_latency / result.completed
        result.elapsed_seconds = self._elapsed()
        result.requests_per_second = result.success / max(
            result.elapsed_seconds, _MIN_ELAPSED
        )

        if self._persister is not None:
            await self._persister.persist(outcome)

        if self._on_progress is not None:
            self._on_progress(result)

    def finalize(self) -> RunResult:
        """Compute the final statistics and return the result.

        Percentiles, min and max come from the sorted successful latencies;
        the average is divided by the configured request count.

        Returns:
            The finished RunResult.
        """
        result = self._result
        ordered = np.sort(np.asarray(result.latencies, dtype=np.float64))

        result.latency_p50 = quantile(ordered, 0.50)
        result.latency_p90 = quantile(ordered, 0.90)
        result.latency_p95 = quantile(ordered, 0.95)
        if ordered.size:
            result.latency_min = float(ordered[0])
            result.latency_max = float(ordered[-1])
        else:
            result.latency_min = 0.0
            result.latency_max = 0.0

        result.latency_avg = (
            result.total_latency / self.total_requests if self.total_requests > 0 else 0.0
        )
        result.elapsed_seconds = self._elapsed()
        result.requests_per_second = result.success / max(
            result.elapsed_seconds, _MIN_ELAPSED
        )
        result.finished = True
        return result
