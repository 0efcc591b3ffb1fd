"""Custom exception hierarchy for loadburst."""

from __future__ import annotations


class LoadBurstError(Exception):
    """Base exception for all loadburst errors.

    Every error raised by the engine, the transport wrappers and the
    persistence layer inherits from this class, so callers can catch any
    loadburst-specific failure with a single except clause.
    """


class ConfigError(LoadBurstError):
    """Raised when a run cannot start because its configuration is invalid.

    Examples:
        - The URL is empty or not an http(s) URL.
        - Concurrency is zero or larger than the request count.
        - A certificate, key or body source file is missing.
        - GET or HEAD is combined with a non-empty body.
    """


class RequestError(LoadBurstError):
    """Raised inside the executor when a single request fails.

    Covers transport failures and HTTP 4xx/5xx responses. The executor
    converts it into a failed ``RequestOutcome``; it never escapes a run.
    """


class PersistenceError(LoadBurstError):
    """Raised when a response record cannot be written to the output directory.

    Fatal to the run: a partially written output directory breaks the
    one-file-per-request contract.
    """


class DecodeError(PersistenceError):
    """Raised when a captured response body is not valid text."""


class EngineError(LoadBurstError):
    """Raised when the dispatch engine fails for a reason other than a request."""
