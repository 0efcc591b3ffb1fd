"""loadburst: fire N HTTP requests at C concurrency and measure the latency."""

from __future__ import annotations

__version__ = "0.1.0"

from loadburst.engine.config import (  # noqa: E402
    DirectoryBody,
    FileBody,
    HttpMethod,
    LiteralBody,
    ManifestBody,
    Order,
    RunConfig,
    TlsConfig,
    parse_headers,
)
from loadburst.engine.runner import LoadTestRunner, run_debug_request, run_load_test  # noqa: E402
from loadburst.metrics.models import CapturedResponse, RequestOutcome, RunResult  # noqa: E402

__all__ = [
    "CapturedResponse",
    "DirectoryBody",
    "FileBody",
    "HttpMethod",
    "LiteralBody",
    "LoadTestRunner",
    "ManifestBody",
    "Order",
    "RequestOutcome",
    "RunConfig",
    "RunResult",
    "TlsConfig",
    "parse_headers",
    "run_debug_request",
    "run_load_test",
]
