"""Per-request outcome and run result dataclasses."""

from __future__ import annotations

from dataclasses import dataclass, field

# NOTE: CapturedResponse lives in transport/http_client.py. Re-exported here
# so consumers of outcomes can import everything from one place.
from loadburst.transport.http_client import CapturedResponse

__all__ = [
    "CapturedResponse",
    "RequestOutcome",
    "RunResult",
]


@dataclass(frozen=True)
class RequestOutcome:
    """The result of one completed request.

    Produced by the executor and consumed right away by the aggregator and
    the persister; only ``latency_ms`` outlives it (in ``RunResult``).

    Attributes:
        index: 0-based submission index, independent of completion order.
        latency_ms: Duration of the request/response exchange in
            milliseconds. Zero when the body could not be resolved.
        response: The captured response of a successful request.
        error: Error description of a failed request.
        label: Base name of the body file used, if any.
    """

    index: int
    latency_ms: float
    response: CapturedResponse | None = None
    error: str | None = None
    label: str | None = None

    @property
    def success(self) -> bool:
        """True when the request produced a non-error response."""
        return self.error is None


@dataclass
class RunResult:
    """Aggregated statistics of a load test run.

    All latencies are in milliseconds. While the run streams, ``latency_avg``
    is the cumulative successful latency divided by ``completed``; once the
    run is finished it is divided by the configured ``total_requests``
    instead, so failures (and requests never sent) dilute the final value.
    Percentiles are only computed when the run is finished.

    Attributes:
        total_requests: Configured number of requests (N).
        success: Number of successful requests.
        failures: Number of failed requests.
        completed: success + failures.
        total_latency: Sum of successful latencies.
        latencies: Latency of every successful request, in completion order.
        latency_avg: Average latency (see above).
        latency_min: Fastest successful request.
        latency_max: Slowest successful request.
        latency_p50: 50th percentile of successful latencies.
        latency_p90: 90th percentile of successful latencies.
        latency_p95: 95th percentile of successful latencies.
        requests_per_second: Successes divided by elapsed wall-clock time.
        elapsed_seconds: Seconds since the run started.
        finished: True once the completion stream is exhausted.
    """

    total_requests: int
    success: int = 0
    failures: int = 0
    completed: int = 0
    total_latency: float = 0.0
    latencies: list[float] = field(default_factory=list)
    latency_avg: float = 0.0
    latency_min: float = 0.0
    latency_max: float = 0.0
    latency_p50: float = 0.0
    latency_p90: float = 0.0
    latency_p95: float = 0.0
    requests_per_second: float = 0.0
    elapsed_seconds: float = 0.0
    finished: bool = False

    @property
    def failure_rate(self) -> float:
        """Fraction of completed requests that failed (0.0 to 1.0)."""
        return self.failures / self.completed if self.completed else 0.0
