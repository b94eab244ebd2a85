"""
Operator endpoint derivation

The operator lives on an ``admin.`` sibling of the site the agent is attached to.
"""

import logging
from urllib.parse import urlsplit, urlunsplit

logger = logging.getLogger("pagebridge.agent")

ADMIN_PREFIX = "admin."
BRIDGE_PATH = "/bridge"


def admin_host(hostname: str) -> str:
    """Prefix ``admin.`` to a hostname unless it is already there."""
    if hostname.startswith(ADMIN_PREFIX):
        return hostname
    return ADMIN_PREFIX + hostname


def operator_url_for(page_url: str, path: str = BRIDGE_PATH) -> str:
    """
    Derive the operator WebSocket URL for a page.

    Args:
        page_url: Current location of the page the agent is attached to
        path: Endpoint path on the admin host

    Returns:
        ``wss://admin.<host>[:port]<path>``
    """
    parts = urlsplit(page_url)
    hostname = parts.hostname
    if not hostname:
        raise ValueError(f"Cannot derive operator endpoint from {page_url!r}")

    netloc = admin_host(hostname)
    if parts.port:
        netloc = f"{netloc}:{parts.port}"

    url = urlunsplit(("wss", netloc, path, "", ""))
    logger.debug(f"Operator endpoint for {page_url}: {url}")
    return url
