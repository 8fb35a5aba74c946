"""Exception types raised by the Justack SDK.

Every failure surfaces as one of these on the specific awaiting call:
- Connection lifecycle: NotConnectedError, ConnectionClosedError, ProtocolError
- Correlation: RequestTimeoutError, SessionExpiredError
- Contract: ValidationError
- REST collaborators: BadRequestError .. RateLimitedError, NetworkError
"""

from __future__ import annotations

from typing import Any


class JustackError(Exception):
    """Base exception for all SDK errors."""

    default_message = "Justack error"
    default_code = "JUSTACK_ERROR"

    def __init__(
        self,
        message: str | None = None,
        code: str | None = None,
        status: int | None = None,
    ) -> None:
        self.message = message or self.default_message
        self.code = code or self.default_code
        self.status = status
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


# =============================================================================
# Connection and correlation errors
# =============================================================================


class NotConnectedError(JustackError):
    """Raised when sending without an established connection."""

    default_message = "WebSocket is not connected"
    default_code = "NOT_CONNECTED"


class RequestTimeoutError(JustackError, TimeoutError):
    """Raised when a deadline elapses before an ack, response or HTTP reply."""

    default_message = "Request timed out"
    default_code = "TIMEOUT"


class SessionExpiredError(JustackError):
    """Raised when the server invalidates the whole session."""

    default_message = "Session has expired"
    default_code = "SESSION_EXPIRED"


class ConnectionClosedError(JustackError):
    """Raised when the session is closed with operations still pending."""

    default_message = "Session closed"
    default_code = "CONNECTION_CLOSED"


class ProtocolError(JustackError):
    """Raised on channel failures and connections lost before the handshake."""

    default_message = "WebSocket connection error"
    default_code = "WEBSOCKET_ERROR"


class ValidationError(JustackError):
    """Raised for malformed input descriptors or an ask nobody can answer."""

    default_message = "Invalid request"
    default_code = "VALIDATION_ERROR"


# =============================================================================
# REST errors
# =============================================================================


class BadRequestError(JustackError):
    default_message = "Bad request"
    default_code = "BAD_REQUEST"


class UnauthorizedError(JustackError):
    default_message = "Invalid or missing credentials"
    default_code = "UNAUTHORIZED"


class PaymentRequiredError(JustackError):
    default_message = "Insufficient credits"
    default_code = "PAYMENT_REQUIRED"


class ForbiddenError(JustackError):
    default_message = "Insufficient permissions"
    default_code = "FORBIDDEN"


class NotFoundError(JustackError):
    default_message = "Resource not found"
    default_code = "NOT_FOUND"


class RateLimitedError(JustackError):
    default_message = "Rate limit exceeded"
    default_code = "RATE_LIMITED"


class NetworkError(JustackError):
    """Raised when the HTTP request never produced a response."""

    default_message = "Network request failed"
    default_code = "NETWORK_ERROR"


_ERRORS_BY_CODE: dict[str, type[JustackError]] = {
    "BAD_REQUEST": BadRequestError,
    "UNAUTHORIZED": UnauthorizedError,
    "PAYMENT_REQUIRED": PaymentRequiredError,
    "FORBIDDEN": ForbiddenError,
    "NOT_FOUND": NotFoundError,
    "RATE_LIMITED": RateLimitedError,
    "SESSION_EXPIRED": SessionExpiredError,
}

_ERRORS_BY_STATUS: dict[int, type[JustackError]] = {
    400: BadRequestError,
    401: UnauthorizedError,
    402: PaymentRequiredError,
    403: ForbiddenError,
    404: NotFoundError,
    429: RateLimitedError,
}


def error_from_response(status: int, body: Any) -> JustackError:
    """Build the matching error from an API error response.

    Args:
        status: HTTP status code
        body: Decoded JSON body, normally {"error": {"code": ..., "message": ...}}

    Returns:
        The most specific JustackError subclass for the code (or status)
    """
    error = body.get("error") if isinstance(body, dict) else None
    if not isinstance(error, dict):
        error_cls = _ERRORS_BY_STATUS.get(status, JustackError)
        return error_cls(f"HTTP {status}", status=status)

    code = str(error.get("code") or "")
    message = str(error.get("message") or f"HTTP {status}")
    error_cls = _ERRORS_BY_CODE.get(code) or _ERRORS_BY_STATUS.get(status)
    if error_cls is None:
        return JustackError(message, code=code or None, status=status)
    return error_cls(message, status=status)
