"""Pydantic models for batch dispatch.

A RequestDescriptor is built once and never mutated; a PendingEntry pairs it
with the callback that receives its TransferResult.
"""

from collections.abc import Callable, Iterable, Mapping
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

# =============================================================================
# Constants
# =============================================================================

DEFAULT_REQUEST_TIMEOUT = 30.0
ALLOWED_METHODS: frozenset[str] = frozenset({
    "GET",
    "POST",
    "PUT",
    "PATCH",
    "DELETE",
    "HEAD",
    "OPTIONS",
})
ALLOWED_SCHEMES = ("http://", "https://")

# =============================================================================
# Request Descriptor
# =============================================================================


class RequestDescriptor(BaseModel):
    """Immutable configuration of a single HTTP request.

    Required fields:
        url: Absolute http:// or https:// URL

    Optional fields:
        method: HTTP method (default: "GET"), case-insensitive
        timeout: Total transfer budget in seconds (default: 30.0)
        capture_response: Keep the response body (default: True)
        headers: Mapping, or raw "Name: value" header lines
        body: Raw request content
        form: Form fields, sent url-encoded (not multipart)
        json_body: Value sent as JSON
        follow_redirects: Follow 3xx responses (default: False)

    At most one of body, form and json_body may be set.
    """

    url: str
    method: str = "GET"
    timeout: float = Field(default=DEFAULT_REQUEST_TIMEOUT, gt=0)
    capture_response: bool = True
    headers: Mapping[str, str] = Field(default_factory=dict, validate_default=True)
    body: bytes | str | None = None
    form: Mapping[str, str] | None = None
    json_body: Any | None = None
    follow_redirects: bool = False

    model_config = {"frozen": True}

    @field_validator("url")
    @classmethod
    def url_is_http(cls, v: str) -> str:
        if not v.lower().startswith(ALLOWED_SCHEMES):
            raise ValueError("url must start with http:// or https://")
        return v

    @field_validator("method")
    @classmethod
    def method_is_known(cls, v: str) -> str:
        method = v.upper()
        if method not in ALLOWED_METHODS:
            raise ValueError(f"unsupported method: {v}")
        return method

    @field_validator("headers", mode="before")
    @classmethod
    def parse_header_lines(cls, v: Any) -> Any:
        if v is None:
            return {}
        if isinstance(v, Mapping) or isinstance(v, (str, bytes)):
            return v
        if isinstance(v, Iterable):
            return _parse_header_lines(v)
        return v

    @field_validator("headers", "form")
    @classmethod
    def freeze_mapping(cls, v: Mapping[str, str] | None) -> Mapping[str, str] | None:
        if v is None:
            return None
        return MappingProxyType(dict(v))

    @model_validator(mode="after")
    def single_body_source(self) -> "RequestDescriptor":
        sources = [s for s in (self.body, self.form, self.json_body) if s is not None]
        if len(sources) > 1:
            raise ValueError("only one of body, form and json_body may be set")
        return self


def _parse_header_lines(lines: Iterable[Any]) -> dict[str, str]:
    """Parse curl-style header lines ("X-Foo: bar" or "X-Foo:bar")."""
    headers: dict[str, str] = {}
    for line in lines:
        if not isinstance(line, str) or ":" not in line:
            raise ValueError(f"header line must look like 'Name: value', got {line!r}")
        name, _, value = line.partition(":")
        name = name.strip()
        if not name:
            raise ValueError(f"header line has an empty name: {line!r}")
        headers[name] = value.strip()
    return headers


# =============================================================================
# Transfer Result
# =============================================================================


class TransferResult(BaseModel):
    """Outcome of one transfer, handed to the entry's callback.

    body is empty unless the response was 2xx and the descriptor captured it.
    status_code is None when no response arrived; error names the transport
    failure (timeout, connection error, invalid URL) in that case.
    """

    body: bytes = b""
    status_code: int | None = None
    error: str | None = None

    model_config = {"frozen": True}

    @property
    def ok(self) -> bool:
        return (
            self.error is None
            and self.status_code is not None
            and 200 <= self.status_code < 300
        )

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


# =============================================================================
# Batch Models
# =============================================================================


class PendingEntry(BaseModel):
    """A request plus the callback that receives its result exactly once."""

    descriptor: RequestDescriptor
    callback: Callable[[TransferResult], Any]

    model_config = {"frozen": True}


class BatchOutcome(BaseModel):
    """Diagnostics for one run_batch call.

    undelivered lists entries whose callback never fired because the
    multiplexer failed and the batch stopped early.
    """

    delivered: int = 0
    undelivered: tuple[PendingEntry, ...] = ()

    @property
    def complete(self) -> bool:
        return not self.undelivered
