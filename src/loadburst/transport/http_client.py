"""Shared async HTTP client that captures whole responses."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import aiohttp

from loadburst._internal.errors import DecodeError, RequestError

if TYPE_CHECKING:
    import ssl
    from collections.abc import Mapping

    from loadburst._internal.types import Headers


@dataclass(frozen=True)
class CapturedResponse:
    """A fully read HTTP response.

    Attributes:
        version: Protocol version string, e.g. ``"HTTP/1.1"``.
        status: Numeric status code.
        reason: Reason phrase sent by the server.
        headers: Response headers with their original casing. Repeated
            headers are joined with ``", "``.
        body: Raw response body.
        charset: Charset announced in Content-Type, if any.
    """

    version: str
    status: int
    reason: str = ""
    headers: Headers = field(default_factory=dict)
    body: bytes = b""
    charset: str | None = None

    def text(self) -> str:
        """Decode the body as text.

        Uses the announced charset, falling back to UTF-8.

        Raises:
            DecodeError: If the body is not valid text in that encoding.
        """
        encoding = self.charset or "utf-8"
        try:
            return self.body.decode(encoding)
        except (UnicodeDecodeError, LookupError) as exc:
            msg = f"Response body is not valid {encoding} text: {exc}"
            raise DecodeError(msg) from exc


def _collect_headers(raw: Mapping[str, str]) -> Headers:
    headers: Headers = {}
    for name, value in raw.items():
        key = str(name)
        headers[key] = f"{headers[key]}, {value}" if key in headers else value
    return headers


class HttpClient:
    """Async HTTP client wrapping one ``aiohttp.ClientSession``.

    A single instance is shared by every in-flight request of a run. The
    connector's connection limit is sized to the run's concurrency so the
    pool never becomes a hidden second bound.
    """

    def __init__(
        self,
        *,
        ssl_context: ssl.SSLContext | None = None,
        timeout: float = 30.0,
        connection_limit: int = 100,
        headers: Headers | None = None,
    ) -> None:
        """Initialize the HTTP client.

        Args:
            ssl_context: SSL context for https targets. None uses aiohttp's
                default verification.
            timeout: Total per-request timeout in seconds.
            connection_limit: Maximum simultaneous connections.
            headers: Default headers sent with every request. Per-request
                headers override them.
        """
        self._ssl_context = ssl_context
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._connection_limit = connection_limit
        self._headers: Headers = dict(headers or {})
        self._session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> HttpClient:
        """Open the underlying aiohttp session."""
        connector = aiohttp.TCPConnector(
            limit=self._connection_limit,
            ssl=self._ssl_context if self._ssl_context is not None else True,
        )
        self._session = aiohttp.ClientSession(
            connector=connector,
            timeout=self._timeout,
            headers=self._headers,
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object | None,
    ) -> None:
        """Close the underlying aiohttp session."""
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def send(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        body: bytes = b"",
        raise_for_status: bool = True,
    ) -> CapturedResponse:
        """Send one request and read the whole response.

        Args:
            method: HTTP method.
            url: Absolute target URL.
            headers: Request headers.
            body: Request payload; an empty payload sends no body.
            raise_for_status: Treat 4xx/5xx responses as failures.

        Returns:
            The captured response.

        Raises:
            RequestError: On transport failure, timeout, or (when
                ``raise_for_status``) an HTTP error status.
            RuntimeError: If the client is used outside of an async context
                manager.
        """
        if self._session is None:
            msg = "HttpClient must be used as an async context manager"
            raise RuntimeError(msg)

        try:
            async with self._session.request(
                method,
                url,
                headers=headers,
                data=body or None,
            ) as resp:
                payload = await resp.read()
                if raise_for_status and resp.status >= 400:
                    reason = f" {resp.reason}" if resp.reason else ""
                    msg = f"HTTP status {resp.status}{reason} for url {url}"
                    raise RequestError(msg)
                return CapturedResponse(
                    version=f"HTTP/{resp.version.major}.{resp.version.minor}",
                    status=resp.status,
                    reason=resp.reason or "",
                    headers=_collect_headers(resp.headers),
                    body=payload,
                    charset=resp.charset,
                )
        except (aiohttp.ClientError, TimeoutError, OSError) as exc:
            msg = f"{type(exc).__name__}: {exc}"
            raise RequestError(msg) from exc
