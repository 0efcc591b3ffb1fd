"""Issues single requests and turns them into ``RequestOutcome`` records."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from loadburst._internal.errors import RequestError
from loadburst._internal.logging import get_logger
from loadburst.engine.body import BodyReadError
from loadburst.metrics.models import RequestOutcome

if TYPE_CHECKING:
    import random
    from collections.abc import Mapping

    from loadburst.engine.body import BodySource, ResolvedBody
    from loadburst.engine.config import HttpMethod
    from loadburst.transport.http_client import HttpClient

logger = get_logger("engine.executor")


class RequestExecutor:
    """Sends one request per call against the shared ``HttpClient``.

    Transport errors and 4xx/5xx responses both become failed outcomes;
    nothing a single request does can abort the run.
    """

    def __init__(
        self,
        client: HttpClient,
        *,
        method: HttpMethod,
        url: str,
        headers: Mapping[str, str],
        body_source: BodySource,
    ) -> None:
        self._client = client
        self._method = method
        self._url = url
        self._headers = headers
        self._body_source = body_source

    async def execute(self, index: int, body: ResolvedBody) -> RequestOutcome:
        """Send request ``index`` with an already resolved body.

        The measured latency covers only the request/response exchange.

        Args:
            index: 0-based submission index.
            body: The body to send.

        Returns:
            A successful or failed RequestOutcome.
        """
        start = time.monotonic()
        try:
            response = await self._client.send(
                self._method.value,
                self._url,
                headers=self._headers,
                body=body.data,
            )
        except RequestError as exc:
            latency_ms = (time.monotonic() - start) * 1000
            return RequestOutcome(
                index=index,
                latency_ms=latency_ms,
                error=str(exc),
                label=body.label,
            )
        latency_ms = (time.monotonic() - start) * 1000
        return RequestOutcome(
            index=index,
            latency_ms=latency_ms,
            response=response,
            label=body.label,
        )

    async def run_request(self, index: int, rng: random.Random) -> RequestOutcome:
        """Resolve the body of request ``index`` and send it.

        This is the unit of work handed to the scheduler. A body file that
        cannot be read yields a failed outcome with zero latency.

        Args:
            index: 0-based submission index.
            rng: The calling worker's random source.

        Returns:
            The request's outcome.
        """
        try:
            body = await self._body_source.resolve(index, rng)
        except BodyReadError as exc:
            return RequestOutcome(index=index, latency_ms=0.0, error=str(exc), label=exc.label)
        return await self.execute(index, body)
