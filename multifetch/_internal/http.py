"""Shared HTTP client configuration."""

from collections.abc import Mapping

import httpx

from multifetch._version import __version__

DEFAULT_TIMEOUT = 30.0
DEFAULT_USER_AGENT = f"multifetch/{__version__}"


def create_async_client(
    *,
    timeout: float = DEFAULT_TIMEOUT,
    headers: Mapping[str, str] | None = None,
    user_agent: str | None = None,
) -> httpx.AsyncClient:
    """Create configured async HTTP client.

    Args:
        timeout: Fallback timeout in seconds; requests normally pass their own.
        headers: Headers sent on every request. Request headers win on conflict.
        user_agent: User-Agent override.

    Returns:
        Configured httpx.AsyncClient instance.
    """
    client_headers = {"User-Agent": user_agent or DEFAULT_USER_AGENT}
    if headers:
        client_headers.update(headers)
    return httpx.AsyncClient(timeout=timeout, headers=client_headers)
