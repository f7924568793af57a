"""Redaction of sensitive request data in debug output."""

from collections.abc import Mapping
from urllib.parse import unquote, urlsplit, urlunsplit

REDACT_HEADERS: frozenset[str] = frozenset({
    "authorization",
    "proxy-authorization",
    "cookie",
    "set-cookie",
    "x-api-key",
    "api-key",
    "x-auth-token",
    "x-access-token",
    "x-csrf-token",
})

REDACT_QUERY_KEYS: frozenset[str] = frozenset({
    "api_key",
    "apikey",
    "key",
    "token",
    "access_token",
    "refresh_token",
    "auth",
    "secret",
    "password",
    "sig",
    "signature",
})

REDACTED_VALUE = "[REDACTED]"


def redact_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """Return a copy of ``headers`` with sensitive values replaced.

    Header names compare case-insensitively. The input is never mutated.

    Args:
        headers: Header names to values.

    Returns:
        A new dictionary with sensitive values replaced by "[REDACTED]".
    """
    return {
        name: REDACTED_VALUE if name.lower() in REDACT_HEADERS else value
        for name, value in headers.items()
    }


def format_headers(headers: Mapping[str, str]) -> str:
    """Render headers as a single log-friendly line, redacted."""
    redacted = redact_headers(headers)
    return ", ".join(f"{name}: {value}" for name, value in redacted.items())


def redact_url(url: str) -> str:
    """Return ``url`` with userinfo and sensitive query values replaced.

    Everything else keeps its original spelling and encoding.

    Args:
        url: An absolute URL.

    Returns:
        The URL with "user:pass@" and values of sensitive query keys
        replaced by "[REDACTED]".
    """
    parts = urlsplit(url)
    netloc = parts.netloc
    if "@" in netloc:
        netloc = f"{REDACTED_VALUE}@{netloc.rpartition('@')[2]}"

    query = parts.query
    if query:
        pairs = []
        for pair in query.split("&"):
            name, sep, _ = pair.partition("=")
            if sep and unquote(name).lower() in REDACT_QUERY_KEYS:
                pair = f"{name}={REDACTED_VALUE}"
            pairs.append(pair)
        query = "&".join(pairs)

    return urlunsplit((parts.scheme, netloc, parts.path, query, parts.fragment))
