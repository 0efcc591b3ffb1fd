"""Shared type aliases for loadburst."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from loadburst.metrics.models import RunResult

# HTTP headers as a plain mapping (case handling is done by multidict).
Headers = dict[str, str]

# Callback invoked after every completed request.
ProgressCallback = Callable[["RunResult"], None]
