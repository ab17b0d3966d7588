"""
Custom exception classes for the token manager.

Every error raised by the service layer carries the HTTP status it should be
reported with, so routers can stay thin and the application-level handlers
render the ``{"success": false, "error": ...}`` envelope.
"""

from enum import Enum
from typing import Any, Dict, Optional


class TokenManagerError(Exception):
    """
    Base exception for all token manager errors.

    Attributes:
        message: Human-readable error message
        details: Additional context about the error
    """

    status_code: int = 500

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ApiError(TokenManagerError):
    """Error with an explicit HTTP status code."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details)
        self.status_code = status_code


class BadRequestError(ApiError):
    """Raised when the request payload is invalid."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, 400, details)


class AuthenticationError(ApiError):
    """Raised when the caller is not authenticated."""

    def __init__(
        self, message: str = "Authentication required", details: Optional[Dict[str, Any]] = None
    ) -> None:
        super().__init__(message, 401, details)


class ForbiddenError(ApiError):
    """Raised when the caller may not touch a resource."""

    def __init__(
        self, message: str = "Access denied", details: Optional[Dict[str, Any]] = None
    ) -> None:
        super().__init__(message, 403, details)


class NotFoundError(ApiError):
    """Raised when a record does not exist."""

    def __init__(
        self, message: str = "Token not found", details: Optional[Dict[str, Any]] = None
    ) -> None:
        super().__init__(message, 404, details)


class UpstreamError(ApiError):
    """
    Raised when a partner service answers with an error.

    Attributes:
        upstream_status: HTTP status returned by the partner, if any
    """

    def __init__(
        self,
        message: str,
        upstream_status: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, 500, details)
        self.upstream_status = upstream_status


class TokenValidationError(TokenManagerError):
    """Raised when the tenant API cannot give a verdict on a token."""


class SessionImportFailure(str, Enum):
    """Reasons the session import flow can fail."""

    INVALID_SESSION = "INVALID_SESSION"
    TERMS_PAGE_ERROR = "TERMS_PAGE_ERROR"
    PARAMS_NOT_FOUND = "PARAMS_NOT_FOUND"
    TOKEN_EXCHANGE_FAILED = "TOKEN_EXCHANGE_FAILED"
    NO_ACCESS_TOKEN = "NO_ACCESS_TOKEN"
    NETWORK_ERROR = "NETWORK_ERROR"


EXTRACTION_FAILED_MESSAGE = (
    "Failed to extract token from session. Please check: "
    "1) Session cookie is valid and not expired, "
    "2) You are logged in to auth.augmentcode.com, "
    "3) Account is not banned. Check server logs for details."
)


class SessionImportError(ApiError):
    """
    Raised when a browser session cannot be turned into an access token.

    Attributes:
        code: Failure category
    """

    def __init__(
        self,
        code: SessionImportFailure,
        message: str = EXTRACTION_FAILED_MESSAGE,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, 400, details)
        self.code = code
