"""One JSON record per completed request, written to an output directory."""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING, Any

from loadburst._internal.errors import PersistenceError
from loadburst._internal.logging import get_logger

if TYPE_CHECKING:
    from pathlib import Path

    from loadburst.metrics.models import RequestOutcome

logger = get_logger("metrics.persister")


def output_filename(
    index: int,
    total_requests: int,
    *,
    success: bool,
    label: str | None = None,
) -> str:
    """Return the record file name for request ``index``.

    The sequence number is ``index + 1`` zero-padded to the number of digits
    of ``total_requests``, e.g. index 2 of 100 gives ``success-003.json``
    and, with label ``"request"``, ``success-003-request.json``.

    Args:
        index: 0-based submission index.
        total_requests: Configured number of requests of the run.
        success: Whether the request succeeded.
        label: Body file label to append, if any.

    Returns:
        The file name (no directory).
    """
    width = len(str(total_requests))
    kind = "success" if success else "failure"
    name = f"{kind}-{index + 1:0{width}d}"
    if label:
        name = f"{name}-{label}"
    return f"{name}.json"


def build_record(outcome: RequestOutcome) -> dict[str, Any]:
    """Build the JSON document stored for an outcome.

    Successful requests store protocol version, status, headers, body text
    and latency; failed requests store only the error description.

    Raises:
        DecodeError: If a successful response body is not valid text.
    """
    if not outcome.success or outcome.response is None:
        return {"error": str(outcome.error)}

    response = outcome.response
    return {
        "version": response.version,
        "status": response.status,
        "headers": response.headers,
        "body": response.text(),
        "duration_ms": outcome.latency_ms,
    }


class ResultPersister:
    """Writes one record file per completed request.

    Attributes:
        output_dir: Directory receiving the record files.
        total_requests: Configured number of requests, used for padding.
    """

    def __init__(self, output_dir: Path, total_requests: int) -> None:
        self.output_dir = output_dir
        self.total_requests = total_requests

    def prepare(self) -> None:
        """Create the output directory (and parents) before the run starts.

        Raises:
            PersistenceError: If the directory cannot be created.
        """
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            msg = f"Cannot create output directory {self.output_dir}: {exc}"
            raise PersistenceError(msg) from exc

    def path_for(self, outcome: RequestOutcome) -> Path:
        """Return the record path for an outcome."""
        return self.output_dir / output_filename(
            outcome.index,
            self.total_requests,
            success=outcome.success,
            label=outcome.label,
        )

    async def persist(self, outcome: RequestOutcome) -> Path:
        """Write the record for one outcome.

        Args:
            outcome: The completed request.

        Returns:
            Path of the written file.

        Raises:
            DecodeError: If the response body is not valid text.
            PersistenceError: If the file cannot be written.
        """
        record = build_record(outcome)
        path = self.path_for(outcome)
        content = json.dumps(record, indent=2, ensure_ascii=False)
        try:
            await asyncio.to_thread(path.write_text, content, encoding="utf-8")
        except OSError as exc:
            msg = f"Cannot write response record {path}: {exc}"
            raise PersistenceError(msg) from exc
        logger.debug("Wrote %s", path.name)
        return path
