"""Shared fixtures: an in-process aiohttp echo server and body files."""

from __future__ import annotations

import asyncio
import ssl
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING

import pytest
import trustme
from aiohttp import web

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator
    from pathlib import Path

_MARKERS_BY_DIR = {"/unit/": "unit", "/integration/": "integration", "/e2e/": "e2e"}


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark each test after the directory it lives in."""
    for item in items:
        path = str(item.fspath)
        for fragment, marker in _MARKERS_BY_DIR.items():
            if fragment in path:
                item.add_marker(getattr(pytest.mark, marker))
                break


# =============================================================================
# Echo server
# =============================================================================

routes = web.RouteTableDef()


@routes.route("*", "/echo{tail:.*}")
async def echo(request: web.Request) -> web.Response:
    """Reflect method, path, query, headers and body as JSON."""
    payload = await request.read()
    return web.json_response(
        {
            "method": request.method,
            "path": request.path,
            "query": dict(request.query),
            "headers": dict(request.headers),
            "body": payload.decode("utf-8", errors="replace"),
        }
    )


@routes.route("*", "/error")
async def error(request: web.Request) -> web.Response:
    """Answer with ``?status=`` (default 500)."""
    return web.json_response({"error": True}, status=int(request.query.get("status", 500)))


@routes.get("/delay")
async def delay(request: web.Request) -> web.Response:
    """Sleep ``?delay=`` seconds (default 0.1) before answering."""
    seconds = float(request.query.get("delay", 0.1))
    await asyncio.sleep(seconds)
    return web.json_response({"delayed_by": seconds})


@routes.get("/health")
async def health(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok"})


@routes.route("*", "/binary")
async def binary(request: web.Request) -> web.Response:
    """A body that does not decode as UTF-8."""
    return web.Response(body=b"\xff\xfe\xfa\x00binary", content_type="application/octet-stream")


async def _start(
    port: int = 0, ssl_context: ssl.SSLContext | None = None
) -> tuple[web.AppRunner, str]:
    app = web.Application()
    app.add_routes(routes)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", port, ssl_context=ssl_context)
    await site.start()
    host, bound_port = runner.addresses[0][:2]
    scheme = "https" if ssl_context is not None else "http"
    return runner, f"{scheme}://{host}:{bound_port}"


class _ThreadedServer:
    """Runs the echo server on its own loop in a daemon thread."""

    def __init__(self) -> None:
        self.url = ""
        self._loop = asyncio.new_event_loop()
        self._ready = threading.Event()
        self._thread = threading.Thread(target=self._serve, daemon=True)

    def _serve(self) -> None:
        asyncio.set_event_loop(self._loop)
        runner, self.url = self._loop.run_until_complete(_start())
        self._ready.set()
        try:
            self._loop.run_forever()
        finally:
            self._loop.run_until_complete(runner.cleanup())
            self._loop.close()

    def start(self) -> str:
        self._thread.start()
        if not self._ready.wait(timeout=5.0):
            msg = "echo server did not start"
            raise RuntimeError(msg)
        return self.url

    def stop(self) -> None:
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=5.0)


@pytest.fixture
async def echo_server() -> AsyncIterator[str]:
    """Base URL of an echo server on the test's own event loop."""
    runner, url = await _start()
    yield url
    await runner.cleanup()


@pytest.fixture
def sync_echo_server() -> Iterator[str]:
    """Base URL of an echo server in a background thread.

    For CLI tests: the command under test owns the main thread's loop.
    """
    server = _ThreadedServer()
    yield server.start()
    server.stop()


@dataclass(frozen=True)
class TlsFiles:
    """PEM files for a private CA and a client identity it issued."""

    ca_cert: Path
    client_cert: Path
    client_key: Path


@pytest.fixture
def tls_ca() -> trustme.CA:
    return trustme.CA()


@pytest.fixture
def tls_files(tls_ca: trustme.CA, tmp_path: Path) -> TlsFiles:
    client = tls_ca.issue_cert("client.loadburst.test")
    files = TlsFiles(
        ca_cert=tmp_path / "ca.pem",
        client_cert=tmp_path / "client.pem",
        client_key=tmp_path / "client.key",
    )
    tls_ca.cert_pem.write_to_path(str(files.ca_cert))
    client.cert_chain_pems[0].write_to_path(str(files.client_cert))
    client.private_key_pem.write_to_path(str(files.client_key))
    return files


@pytest.fixture
async def mtls_echo_server(tls_ca: trustme.CA) -> AsyncIterator[str]:
    """Base URL of an https echo server that requires a client certificate."""
    context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
    tls_ca.issue_cert("127.0.0.1", "localhost").configure_cert(context)
    tls_ca.configure_trust(context)
    context.verify_mode = ssl.CERT_REQUIRED
    runner, url = await _start(ssl_context=context)
    yield url
    await runner.cleanup()


# =============================================================================
# Body files and environment
# =============================================================================


@pytest.fixture
def body_dir(tmp_path: Path) -> Path:
    """``requests/`` with test1..test3 JSON bodies, created out of name order."""
    directory = tmp_path / "requests"
    directory.mkdir()
    for name in ("test3", "test1", "test2"):
        (directory / f"{name}.json").write_text(f'{{"name": "{name}"}}')
    return directory


@pytest.fixture
def manifest_file(tmp_path: Path, body_dir: Path) -> Path:
    """Manifest naming test2 (relative path) then test1 (absolute path)."""
    path = tmp_path / "bodies.txt"
    path.write_text(f"# body files\nrequests/test2.json\n\n{body_dir / 'test1.json'}\n")
    return path


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("LOADBURST_TIMEOUT", "LOADBURST_SEED", "LOADBURST_USER_AGENT"):
        monkeypatch.delenv(name, raising=False)
