"""
Custom exceptions for the Spotify gateway service.

Provides specific exception types for the failure modes of the call
gateway, the token lifecycle and the persistence layer, plus the
``ErrorResult`` value returned for expected, user-correctable conditions.
"""

from dataclasses import dataclass
from typing import Any

NO_OPTIONS_SELECTED = "No options selected."
NO_SONGS_FOUND = "No songs found."


class SpotifyGatewayError(Exception):
    """Base exception for all gateway errors."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Error message
            error_code: Optional error code for categorization
            details: Optional additional error details
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}


class UserNotAuthenticatedError(SpotifyGatewayError):
    """Raised when no credential is stored for an external user id."""

    def __init__(self, user_id: str) -> None:
        """Initialize the error.

        Args:
            user_id: External user id that has no stored credential
        """
        super().__init__(
            f"User {user_id} is not authenticated",
            "USER_NOT_AUTHENTICATED",
            {"user_id": user_id},
        )
        self.user_id = user_id


class AuthExchangeError(SpotifyGatewayError):
    """Raised when an OAuth exchange with the accounts service fails."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the error.

        Args:
            message: Error message
            status_code: HTTP status returned by the token endpoint, if any
            details: Additional error details
        """
        error_details = details or {}
        if status_code:
            error_details["status_code"] = status_code

        super().__init__(message, "AUTH_EXCHANGE_ERROR", error_details)
        self.status_code = status_code


class UpstreamCallFailedError(SpotifyGatewayError):
    """Raised when an upstream operation still fails after its auth retry."""

    def __init__(
        self,
        operation: str,
        cause: BaseException,
        attempts: int,
    ) -> None:
        """Initialize the error.

        Args:
            operation: Name of the upstream operation
            cause: The last failure raised by the operation
            attempts: Number of upstream invocations made
        """
        status_code = getattr(cause, "status_code", None)
        details: dict[str, Any] = {"operation": operation, "attempts": attempts}
        if status_code:
            details["status_code"] = status_code

        super().__init__(
            f"Upstream call '{operation}' failed: {cause}",
            "UPSTREAM_CALL_FAILED",
            details,
        )
        self.operation = operation
        self.cause = cause
        self.attempts = attempts
        self.status_code = status_code


class RateLimitedError(SpotifyGatewayError):
    """Signals an upstream rate limit. Handled inside the gateway."""

    def __init__(self, retry_after: float, operation: str | None = None) -> None:
        """Initialize rate limit error.

        Args:
            retry_after: Seconds to wait before retrying
            operation: Operation that triggered rate limiting
        """
        details: dict[str, Any] = {"retry_after": retry_after}
        if operation:
            details["operation"] = operation

        super().__init__("Rate limit exceeded", "RATE_LIMITED", details)
        self.retry_after = retry_after
        self.operation = operation


class PersistenceError(SpotifyGatewayError):
    """Raised when the credential store or cache backend fails."""

    def __init__(self, message: str, operation: str | None = None) -> None:
        """Initialize persistence error.

        Args:
            message: Error message
            operation: Storage operation that failed
        """
        details = {"operation": operation} if operation else {}
        super().__init__(message, "PERSISTENCE_ERROR", details)
        self.operation = operation


class InvalidRequestError(SpotifyGatewayError):
    """Raised when a domain operation receives invalid arguments."""

    def __init__(self, message: str, field: str | None = None) -> None:
        details = {"field": field} if field else {}
        super().__init__(message, "INVALID_REQUEST", details)
        self.field = field


@dataclass(frozen=True)
class ErrorResult:
    """Expected, user-correctable outcome returned instead of a playlist."""

    error: str

    def to_dict(self) -> dict[str, str]:
        return {"error": self.error}


def no_options_selected() -> ErrorResult:
    return ErrorResult(NO_OPTIONS_SELECTED)


def no_songs_found() -> ErrorResult:
    return ErrorResult(NO_SONGS_FOUND)


class SpotifyAPIError(SpotifyGatewayError):
    """Raised by the upstream client for any non-success Spotify response."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        retry_after: float | None = None,
        path: str | None = None,
    ) -> None:
        """Initialize the error.

        Args:
            message: Error message reported by Spotify
            status_code: HTTP status code, None for transport failures
            retry_after: Seconds from the Retry-After header of a 429
            path: Request path that failed
        """
        details: dict[str, Any] = {}
        if status_code:
            details["status_code"] = status_code
        if retry_after is not None:
            details["retry_after"] = retry_after
        if path:
            details["path"] = path

        super().__init__(message, "SPOTIFY_API_ERROR", details)
        self.status_code = status_code
        self.retry_after = retry_after
        self.path = path

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code == 429

    @property
    def is_unauthorized(self) -> bool:
        return self.status_code == 401
