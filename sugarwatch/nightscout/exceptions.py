"""Exception hierarchy for the Nightscout client.

Every failure of a fetch is normalised into one of these; all of them are
recoverable by retrying on the next poll tick.
"""

from __future__ import annotations

from enum import StrEnum


class FetchErrorKind(StrEnum):
    """Small taxonomy the scheduler reasons about."""

    NETWORK_UNAVAILABLE = "NETWORK_UNAVAILABLE"
    TIMEOUT = "TIMEOUT"
    HTTP_STATUS = "HTTP_STATUS"
    AUTHENTICATION_REJECTED = "AUTHENTICATION_REJECTED"
    MALFORMED_PAYLOAD = "MALFORMED_PAYLOAD"
    EMPTY_RESULT = "EMPTY_RESULT"


class FetchError(Exception):
    """Base exception for all Nightscout fetch errors."""

    kind: FetchErrorKind = FetchErrorKind.NETWORK_UNAVAILABLE


class NetworkUnavailableError(FetchError):
    """The request never produced an HTTP response."""

    kind = FetchErrorKind.NETWORK_UNAVAILABLE


class FetchTimeoutError(FetchError):
    """No response within the bounded wait."""

    kind = FetchErrorKind.TIMEOUT


class HttpStatusError(FetchError):
    """Server answered with a non-success status."""

    kind = FetchErrorKind.HTTP_STATUS

    def __init__(self, status_code: int, message: str = "") -> None:
        self.status_code = status_code
        super().__init__(message or f"Nightscout returned HTTP {status_code}")


class AuthenticationRejectedError(HttpStatusError):
    """HTTP 401 — the hashed API secret was not accepted."""

    kind = FetchErrorKind.AUTHENTICATION_REJECTED

    def __init__(self, message: str = "") -> None:
        super().__init__(401, message or "Nightscout rejected the API secret (401)")


class MalformedPayloadError(FetchError):
    """Body was not valid JSON or did not have the expected shape."""

    kind = FetchErrorKind.MALFORMED_PAYLOAD


class EmptyResultError(FetchError):
    """Request succeeded but returned no usable entries."""

    kind = FetchErrorKind.EMPTY_RESULT
