"""Run configuration: HTTP method, body specification, TLS material and headers."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from multidict import CIMultiDict, CIMultiDictProxy
from yarl import URL

from loadburst._internal.errors import ConfigError


class HttpMethod(str, Enum):
    """HTTP methods a run may use."""

    GET = "GET"
    HEAD = "HEAD"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"

    @classmethod
    def parse(cls, value: str | HttpMethod) -> HttpMethod:
        """Parse a method name case-insensitively.

        Args:
            value: Method name such as ``"get"`` or ``"POST"``.

        Returns:
            The matching HttpMethod.

        Raises:
            ConfigError: If the name is not a supported method.
        """
        if isinstance(value, HttpMethod):
            return value
        try:
            return cls(value.strip().upper())
        except ValueError:
            choices = ", ".join(m.value for m in cls)
            msg = f"'{value}' is not a valid HTTP method (choose from: {choices})"
            raise ConfigError(msg) from None

    @property
    def allows_body(self) -> bool:
        """Return False for methods that must not carry a request body."""
        return self not in (HttpMethod.GET, HttpMethod.HEAD)


class Order(str, Enum):
    """How a body file is picked when several candidates exist."""

    SEQUENTIAL = "sequential"
    RANDOM = "random"


# ---------------------------------------------------------------------------
# Body specification
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LiteralBody:
    """The same in-memory bytes for every request."""

    data: bytes

    @classmethod
    def from_text(cls, text: str) -> LiteralBody:
        return cls(text.encode("utf-8"))


@dataclass(frozen=True)
class FileBody:
    """The contents of a single file, read once, sent with every request."""

    path: Path


@dataclass(frozen=True)
class DirectoryBody:
    """One file per request, picked from the regular files in a directory."""

    path: Path
    order: Order = Order.SEQUENTIAL


@dataclass(frozen=True)
class ManifestBody:
    """One file per request, picked from the paths listed in a manifest file.

    The manifest holds one path per line. Blank lines and lines starting
    with ``#`` are ignored; relative paths are resolved against the
    manifest's own directory.
    """

    path: Path
    order: Order = Order.SEQUENTIAL


BodySpec = LiteralBody | FileBody | DirectoryBody | ManifestBody


def _is_empty_body(body: BodySpec | None) -> bool:
    return body is None or (isinstance(body, LiteralBody) and not body.data)


def _describe_body(body: BodySpec) -> str:
    if isinstance(body, LiteralBody):
        return f"literal data ({len(body.data)} bytes)"
    if isinstance(body, FileBody):
        return f"data file {body.path}"
    if isinstance(body, DirectoryBody):
        return f"input directory {body.path}"
    return f"manifest {body.path}"


def _validate_body(body: BodySpec) -> None:
    if isinstance(body, FileBody):
        if not body.path.is_file():
            msg = f"Data file not found or not a regular file: {body.path}"
            raise ConfigError(msg)
    elif isinstance(body, DirectoryBody):
        if not body.path.is_dir():
            msg = f"Input directory not found or not a directory: {body.path}"
            raise ConfigError(msg)
    elif isinstance(body, ManifestBody):
        if not body.path.is_file():
            msg = f"Manifest not found or not a regular file: {body.path}"
            raise ConfigError(msg)


# ---------------------------------------------------------------------------
# TLS
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TlsConfig:
    """TLS material for the shared HTTP client.

    Attributes:
        ca_cert: Extra CA certificate (PEM) trusted for server verification.
        cert: Client certificate (PEM) for mutual TLS.
        key: Client private key (PEM) for mutual TLS.
        insecure: Disable server certificate and hostname verification.
    """

    ca_cert: Path | None = None
    cert: Path | None = None
    key: Path | None = None
    insecure: bool = False

    def validate(self) -> None:
        """Check that the referenced files exist and cert/key come as a pair.

        Raises:
            ConfigError: If a file is missing or only one of cert/key is set.
        """
        if (self.cert is None) != (self.key is None):
            msg = "Client certificate and private key must be provided together"
            raise ConfigError(msg)
        for label, path in (
            ("CA certificate", self.ca_cert),
            ("Client certificate", self.cert),
            ("Private key", self.key),
        ):
            if path is not None and not path.is_file():
                msg = f"{label} file not found: {path}"
                raise ConfigError(msg)


# ---------------------------------------------------------------------------
# Headers
# ---------------------------------------------------------------------------


_FORBIDDEN_HEADER_CHARS = frozenset("\r\n\0")


def _check_header(name: str, value: str) -> None:
    """Reject header names and values that cannot go on the wire as given.

    Raises:
        ConfigError: If the name is empty or holds whitespace or control
            characters, or the value holds CR, LF or NUL.
    """
    if not name or any(c.isspace() or not c.isprintable() for c in name):
        msg = f"Invalid header name {name!r}"
        raise ConfigError(msg)
    if any(c in _FORBIDDEN_HEADER_CHARS for c in value):
        msg = f"Invalid header {name!r}: value contains CR, LF or NUL characters"
        raise ConfigError(msg)


def parse_headers(lines: Iterable[str]) -> CIMultiDict[str]:
    """Parse ``"Name: Value"`` strings into a case-insensitive header collection.

    Args:
        lines: Header lines as typed on the command line.

    Returns:
        A CIMultiDict; repeated names are kept as repeated headers.

    Raises:
        ConfigError: If a line has no colon, an empty or malformed name, or
            a value with line breaks or NUL characters.
    """
    headers: CIMultiDict[str] = CIMultiDict()
    for line in lines:
        name, sep, value = line.partition(":")
        name = name.strip()
        if not sep or not name:
            msg = f"Invalid header {line!r}: expected 'Name: Value'"
            raise ConfigError(msg)
        value = value.strip()
        _check_header(name, value)
        headers.add(name, value)
    return headers


# ---------------------------------------------------------------------------
# Run configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RunConfig:
    """Immutable description of one load test run.

    Validated once at construction; an invalid configuration raises
    ``ConfigError`` before any request is sent.

    Attributes:
        url: Target URL (http or https).
        requests: Total number of requests to send.
        concurrency: Maximum number of requests in flight at once.
        method: HTTP method used for every request.
        headers: Headers sent with every request (case-insensitive).
        body: Where request bodies come from. None sends no body.
        output_dir: Directory receiving one JSON record per request.
        tls: TLS material for the HTTP client.
    """

    url: str
    requests: int
    concurrency: int
    method: HttpMethod = HttpMethod.GET
    headers: Mapping[str, str] = field(default_factory=dict)
    body: BodySpec | None = None
    output_dir: Path | None = None
    tls: TlsConfig = field(default_factory=TlsConfig)

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", HttpMethod.parse(self.method))
        object.__setattr__(
            self, "headers", CIMultiDictProxy(CIMultiDict(self.headers))
        )
        for name, value in self.headers.items():
            _check_header(name, value)
        self._validate_url()

        if self.requests <= 0:
            msg = f"requests must be > 0, got: {self.requests}"
            raise ConfigError(msg)
        if self.concurrency <= 0:
            msg = f"concurrency must be > 0, got: {self.concurrency}"
            raise ConfigError(msg)
        if self.concurrency > self.requests:
            msg = (
                f"concurrency ({self.concurrency}) must not exceed "
                f"requests ({self.requests})"
            )
            raise ConfigError(msg)

        if (
            self.body is not None
            and not self.method.allows_body
            and not _is_empty_body(self.body)
        ):
            msg = (
                f"{self.method.value} requests cannot carry a body, "
                f"but {_describe_body(self.body)} was given"
            )
            raise ConfigError(msg)
        if self.body is not None:
            _validate_body(self.body)

        output_dir = self.output_dir
        if output_dir is not None and output_dir.exists() and not output_dir.is_dir():
            msg = f"Output path exists and is not a directory: {self.output_dir}"
            raise ConfigError(msg)

        self.tls.validate()

    def _validate_url(self) -> None:
        if not self.url or not self.url.strip():
            msg = "URL must not be empty"
            raise ConfigError(msg)
        try:
            parsed = URL(self.url)
        except (TypeError, ValueError) as exc:
            msg = f"Invalid URL {self.url!r}: {exc}"
            raise ConfigError(msg) from None
        if parsed.scheme not in ("http", "https") or not parsed.host:
            msg = f"URL must be an absolute http(s) URL, got: {self.url!r}"
            raise ConfigError(msg)
