"""SSL context construction for the shared HTTP client."""

from __future__ import annotations

import ssl
from typing import TYPE_CHECKING

from loadburst._internal.errors import ConfigError
from loadburst._internal.logging import get_logger

if TYPE_CHECKING:
    from loadburst.engine.config import TlsConfig

logger = get_logger("transport.tls")


def build_ssl_context(tls: TlsConfig) -> ssl.SSLContext | None:
    """Build the SSL context handed to the aiohttp connector.

    Args:
        tls: TLS material from the run configuration.

    Returns:
        A configured SSLContext, or None when no TLS option is set and the
        connector's default verification applies.

    Raises:
        ConfigError: If a certificate or key cannot be loaded.
    """
    if tls.ca_cert is None and tls.cert is None and not tls.insecure:
        return None

    tls.validate()

    # The extra CA is trusted alongside the system roots, not instead of them
    context = ssl.create_default_context()
    try:
        if tls.ca_cert is not None:
            context.load_verify_locations(cafile=str(tls.ca_cert))
    except (ssl.SSLError, OSError) as exc:
        msg = f"Invalid CA certificate {tls.ca_cert}: {exc}"
        raise ConfigError(msg) from exc

    if tls.cert is not None and tls.key is not None:
        try:
            context.load_cert_chain(certfile=str(tls.cert), keyfile=str(tls.key))
        except (ssl.SSLError, OSError) as exc:
            msg = f"Invalid client certificate or key ({tls.cert}, {tls.key}): {exc}"
            raise ConfigError(msg) from exc
        logger.debug("Loaded client identity from %s", tls.cert)

    if tls.insecure:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
        logger.warning("TLS certificate verification is disabled")

    return context
