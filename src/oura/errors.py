"""Error taxonomy for Oura API operations.

Every failure the fetch engine can produce is an ``OuraAPIError`` subclass
tagged with an ``ErrorKind``.  Only the rate-limited, server-error and
network kinds are retryable; everything else surfaces immediately.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Mapping

logger = logging.getLogger("ringpulse.oura.errors")


class ErrorKind(str, Enum):
    """Closed set of failure categories."""

    NOT_CONFIGURED = "not_configured"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    NETWORK = "network"
    DECODING = "decoding"
    HTTP = "http"
    CANCELLED = "cancelled"
    PAGINATION_LIMIT = "pagination_limit"


RETRYABLE_KINDS: frozenset[ErrorKind] = frozenset(
    {ErrorKind.RATE_LIMITED, ErrorKind.SERVER_ERROR, ErrorKind.NETWORK}
)


class OuraAPIError(Exception):
    """Base class for every fetch-engine failure.

    Attributes:
        kind:        Failure category.
        status_code: HTTP status for response-derived errors, else None.
        body:        Raw response text preserved for diagnostics.
        retry_after: Seconds from a numeric ``Retry-After`` header, if any.
    """

    kind: ErrorKind = ErrorKind.HTTP
    default_message: str = "Oura API request failed"

    def __init__(
        self,
        message: str | None = None,
        *,
        status_code: int | None = None,
        body: str | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message or self.default_message)
        self.status_code = status_code
        self.body = body
        self.retry_after = retry_after

    @property
    def message(self) -> str:
        return str(self)

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(kind={self.kind.value!r}, "
            f"status_code={self.status_code!r}, message={self.message!r})"
        )


class NotConfiguredError(OuraAPIError):
    """No credential is configured.  Expected on first run; never surfaced."""

    kind = ErrorKind.NOT_CONFIGURED
    default_message = "Oura API access token is not configured"


class UnauthorizedError(OuraAPIError):
    kind = ErrorKind.UNAUTHORIZED
    default_message = "Invalid or expired access token"


class NotFoundError(OuraAPIError):
    kind = ErrorKind.NOT_FOUND
    default_message = "The requested resource was not found"


class RateLimitedError(OuraAPIError):
    kind = ErrorKind.RATE_LIMITED
    default_message = "API rate limit exceeded. Please try again later"


class ServerError(OuraAPIError):
    kind = ErrorKind.SERVER_ERROR
    default_message = "Server error. Please try again later"


class NetworkError(OuraAPIError):
    """Transport-level failure: DNS, connect, read timeout, reset."""

    kind = ErrorKind.NETWORK
    default_message = "Network error"


class DecodingError(OuraAPIError):
    """The payload did not match the expected schema."""

    kind = ErrorKind.DECODING
    default_message = "Failed to decode API response"


class HTTPStatusError(OuraAPIError):
    """Any other non-2xx response."""

    kind = ErrorKind.HTTP


class FetchCancelledError(OuraAPIError):
    """A caller-supplied cancellation signal aborted the operation."""

    kind = ErrorKind.CANCELLED
    default_message = "Refresh was cancelled"


class PaginationLimitError(OuraAPIError):
    """The server kept returning continuation cursors past the page ceiling."""

    kind = ErrorKind.PAGINATION_LIMIT
    default_message = "Pagination did not terminate within the page limit"


def parse_retry_after(value: str | None) -> float | None:
    """Return the numeric seconds of a ``Retry-After`` header value.

    HTTP-date values and garbage are ignored (None), so the caller falls
    back to exponential backoff.
    """
    if value is None:
        return None
    try:
        seconds = float(value.strip())
    except (TypeError, ValueError):
        logger.debug("Ignoring non-numeric Retry-After header: %r", value)
        return None
    if seconds < 0:
        return None
    return seconds


def error_for_status(
    status_code: int,
    body: str | None = None,
    headers: Mapping[str, str] | None = None,
) -> OuraAPIError:
    """Map a non-2xx HTTP status to the matching exception instance.

    Args:
        status_code: HTTP status code of the response.
        body:        Response text (plain or JSON), kept for diagnostics.
        headers:     Response headers; ``Retry-After`` is honoured.

    Returns:
        An ``OuraAPIError`` subclass instance.  It is returned, not raised.
    """
    retry_after = parse_retry_after((headers or {}).get("Retry-After"))
    body = body or None

    if status_code == 401:
        return UnauthorizedError(status_code=status_code, body=body)
    if status_code == 404:
        return NotFoundError(status_code=status_code, body=body)
    if status_code == 429:
        return RateLimitedError(
            status_code=status_code, body=body, retry_after=retry_after
        )
    if 500 <= status_code < 600:
        return ServerError(
            f"Server error ({status_code}). Please try again later",
            status_code=status_code,
            body=body,
            retry_after=retry_after,
        )

    message = f"HTTP error {status_code}: {body}" if body else f"HTTP error {status_code}"
    return HTTPStatusError(message, status_code=status_code, body=body)
