"""Environment-driven settings for loadburst."""

from __future__ import annotations

import os
from dataclasses import dataclass

from loadburst._internal.errors import ConfigError

DEFAULT_TIMEOUT = 30.0


def _default_user_agent() -> str:
    from loadburst import __version__

    return f"loadburst/{__version__}"


@dataclass(frozen=True)
class LoadBurstSettings:
    """Tool-wide settings that are not part of a single run's configuration.

    Attributes:
        request_timeout: Total per-request transport timeout in seconds.
        random_seed: Seed for random-order body selection. None means the
            per-worker random sources are seeded from system entropy.
        user_agent: User-Agent header sent when a run does not set one.
    """

    request_timeout: float = DEFAULT_TIMEOUT
    random_seed: int | None = None
    user_agent: str = ""


def load_config() -> LoadBurstSettings:
    """Load settings from environment variables with defaults.

    Environment variables:
        LOADBURST_TIMEOUT: Request timeout in seconds (default: 30.0).
        LOADBURST_SEED: Integer seed for random body selection.
        LOADBURST_USER_AGENT: Default User-Agent header value.

    Returns:
        Populated LoadBurstSettings instance.

    Raises:
        ConfigError: If an environment variable has an invalid value.
    """
    timeout_str = os.environ.get("LOADBURST_TIMEOUT", str(DEFAULT_TIMEOUT))
    seed_str = os.environ.get("LOADBURST_SEED")

    try:
        timeout = float(timeout_str)
    except ValueError:
        msg = f"LOADBURST_TIMEOUT must be a number, got: {timeout_str!r}"
        raise ConfigError(msg) from None

    if timeout <= 0:
        msg = f"LOADBURST_TIMEOUT must be positive, got: {timeout}"
        raise ConfigError(msg)

    seed: int | None = None
    if seed_str is not None and seed_str != "":
        try:
            seed = int(seed_str)
        except ValueError:
            msg = f"LOADBURST_SEED must be an integer, got: {seed_str!r}"
            raise ConfigError(msg) from None

    return LoadBurstSettings(
        request_timeout=timeout,
        random_seed=seed,
        user_agent=os.environ.get("LOADBURST_USER_AGENT") or _default_user_agent(),
    )
