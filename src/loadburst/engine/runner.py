"""Top-level load test orchestration."""

from __future__ import annotations

import asyncio
import random
import signal
import sys
from contextlib import aclosing
from typing import TYPE_CHECKING

from loadburst._internal.config import load_config
from loadburst._internal.logging import get_logger, setup_logging
from loadburst.engine.body import build_body_source
from loadburst.engine.executor import RequestExecutor
from loadburst.engine.scheduler import ConcurrencyScheduler
from loadburst.metrics.aggregator import StatsAggregator
from loadburst.metrics.persister import ResultPersister
from loadburst.transport.http_client import HttpClient
from loadburst.transport.tls import build_ssl_context

if TYPE_CHECKING:
    from loadburst._internal.config import LoadBurstSettings
    from loadburst._internal.types import ProgressCallback
    from loadburst.engine.config import RunConfig
    from loadburst.metrics.models import RunResult
    from loadburst.transport.http_client import CapturedResponse

logger = get_logger("engine.runner")


def _install_uvloop() -> None:
    """Install uvloop as the default event loop policy if available.

    Falls back silently to the default asyncio event loop on Windows
    or if uvloop is not installed.
    """
    if sys.platform == "win32":
        return

    try:
        import uvloop

        uvloop.install()
        logger.debug("uvloop installed as event loop policy")
    except ImportError:
        logger.debug("uvloop not available, using default asyncio event loop")


class LoadTestRunner:
    """Runs one configured load test.

    Construction resolves everything that can fail before the first
    request: the SSL context is built, single data files are read,
    directories listed and manifests parsed. Any problem raises
    ``ConfigError`` here.

    Attributes:
        config: The run configuration.
        settings: Tool-wide settings (timeout, random seed, User-Agent).
    """

    def __init__(
        self,
        config: RunConfig,
        *,
        settings: LoadBurstSettings | None = None,
    ) -> None:
        """Initialize the runner.

        Args:
            config: Validated run configuration.
            settings: Tool-wide settings. Defaults to ``load_config()``.

        Raises:
            ConfigError: If TLS material or the body source is invalid.
        """
        self.config = config
        self.settings = settings if settings is not None else load_config()
        self._ssl_context = build_ssl_context(config.tls)
        self._body_source = build_body_source(config.body)
        self._stop_event: asyncio.Event | None = None

    def _client(self) -> HttpClient:
        default_headers: dict[str, str] = {}
        if self.settings.user_agent:
            default_headers["User-Agent"] = self.settings.user_agent
        return HttpClient(
            ssl_context=self._ssl_context,
            timeout=self.settings.request_timeout,
            connection_limit=self.config.concurrency,
            headers=default_headers,
        )

    def _executor(self, client: HttpClient) -> RequestExecutor:
        return RequestExecutor(
            client,
            method=self.config.method,
            url=self.config.url,
            headers=self.config.headers,
            body_source=self._body_source,
        )

    async def run(
        self,
        on_progress: ProgressCallback | None = None,
        *,
        stop_event: asyncio.Event | None = None,
        handle_signals: bool = False,
    ) -> RunResult:
        """Send all requests and return the aggregated result.

        Args:
            on_progress: Callback invoked with the running result after
                every completed request.
            stop_event: Optional event; once set, no new request is
                dispatched and in-flight requests are allowed to finish.
            handle_signals: Install SIGINT/SIGTERM handlers that set the
                stop event. Only valid on the main thread.

        Returns:
            The final RunResult.

        Raises:
            PersistenceError: If the output directory or a record file
                cannot be written.
            EngineError: If the dispatch engine fails.
        """
        config = self.config
        self._stop_event = stop_event if stop_event is not None else asyncio.Event()

        persister: ResultPersister | None = None
        if config.output_dir is not None:
            persister = ResultPersister(config.output_dir, config.requests)
            persister.prepare()

        aggregator = StatsAggregator(
            config.requests,
            persister=persister,
            on_progress=on_progress,
        )

        logger.info(
            "Starting load test: url=%s, method=%s, requests=%d, concurrency=%d",
            config.url,
            config.method.value,
            config.requests,
            config.concurrency,
        )

        if handle_signals:
            self._install_signal_handlers()
        try:
            async with self._client() as client:
                scheduler = ConcurrencyScheduler(
                    config.requests,
                    config.concurrency,
                    self._executor(client).run_request,
                    stop_event=self._stop_event,
                    seed=self.settings.random_seed,
                )
                aggregator.start()
                async with aclosing(scheduler.iter_completions()) as completions:
                    async for outcome in completions:
                        await aggregator.on_completion(outcome)
        finally:
            if handle_signals:
                self._remove_signal_handlers()

        result = aggregator.finalize()
        logger.info(
            "Load test completed: success=%d, failures=%d, avg=%.2fms, p95=%.2fms, rps=%.1f",
            result.success,
            result.failures,
            result.latency_avg,
            result.latency_p95,
            result.requests_per_second,
        )
        return result

    async def debug(self) -> CapturedResponse:
        """Send exactly one request and return the raw response.

        Uses the same body source as a batch run (index 0, or one random
        draw for random order). HTTP error statuses are returned, not
        raised.

        Returns:
            The captured response.

        Raises:
            RequestError: If the request fails at the transport level or the
                body file cannot be read.
        """
        config = self.config
        seed = self.settings.random_seed
        rng = random.Random(seed) if seed is not None else random.Random()  # noqa: S311
        body = await self._body_source.resolve(0, rng)

        logger.info("Sending debug request: %s %s", config.method.value, config.url)
        async with self._client() as client:
            return await client.send(
                config.method.value,
                config.url,
                headers=config.headers,
                body=body.data,
                raise_for_status=False,
            )

    def stop(self) -> None:
        """Stop dispatching new requests; in-flight requests finish."""
        if self._stop_event is not None and not self._stop_event.is_set():
            logger.info("Stop requested, no new requests will be dispatched")
            self._stop_event.set()

    def _install_signal_handlers(self) -> None:
        """Install SIGINT and SIGTERM handlers that stop dispatching."""
        loop = asyncio.get_running_loop()

        if sys.platform != "win32":
            loop.add_signal_handler(signal.SIGINT, self.stop)
            loop.add_signal_handler(signal.SIGTERM, self.stop)
        else:
            # Windows doesn't support add_signal_handler
            signal.signal(signal.SIGINT, lambda _s, _f: loop.call_soon_threadsafe(self.stop))
            signal.signal(signal.SIGTERM, lambda _s, _f: loop.call_soon_threadsafe(self.stop))

    def _remove_signal_handlers(self) -> None:
        """Remove custom signal handlers, restoring defaults."""
        if sys.platform != "win32":
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)
        else:
            signal.signal(signal.SIGINT, signal.default_int_handler)
            signal.signal(signal.SIGTERM, signal.SIG_DFL)


def run_load_test(
    config: RunConfig,
    on_progress: ProgressCallback | None = None,
    *,
    settings: LoadBurstSettings | None = None,
    log_level: int = 30,
    json_logs: bool = False,
) -> RunResult:
    """Execute a load test from synchronous code.

    Installs uvloop when available, sets up logging, and runs the test to
    completion with SIGINT/SIGTERM stopping further dispatch.

    Args:
        config: Validated run configuration.
        on_progress: Callback invoked after every completed request.
        settings: Tool-wide settings. Defaults to ``load_config()``.
        log_level: Logging level (default: logging.WARNING = 30).
        json_logs: Emit structured JSON logs.

    Returns:
        The final RunResult.

    Raises:
        ConfigError: If the configuration cannot be turned into a runner.
        PersistenceError: If response records cannot be written.
        EngineError: If the dispatch engine fails.
    """
    _install_uvloop()
    setup_logging(level=log_level, json_format=json_logs)
    runner = LoadTestRunner(config, settings=settings)
    return asyncio.run(runner.run(on_progress, handle_signals=True))


def run_debug_request(
    config: RunConfig,
    *,
    settings: LoadBurstSettings | None = None,
    log_level: int = 30,
    json_logs: bool = False,
) -> CapturedResponse:
    """Send one request from synchronous code and return the raw response.

    Args:
        config: Validated run configuration.
        settings: Tool-wide settings. Defaults to ``load_config()``.
        log_level: Logging level.
        json_logs: Emit structured JSON logs.

    Returns:
        The captured response.

    Raises:
        ConfigError: If the configuration cannot be turned into a runner.
        RequestError: If the request fails at the transport level.
    """
    _install_uvloop()
    setup_logging(level=log_level, json_format=json_logs)
    runner = LoadTestRunner(config, settings=settings)
    return asyncio.run(runner.debug())
