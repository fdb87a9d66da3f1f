"""Custom exception classes for the sanctuary access service."""

from typing import Optional

from fastapi import HTTPException, status


class SanctuaryError(Exception):
    """Base exception for the sanctuary service."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = "An error occurred"):
        self.message = message
        super().__init__(self.message)


class AuthenticationError(SanctuaryError):
    """Raised when authentication fails."""
    status_code = status.HTTP_401_UNAUTHORIZED


class AuthorizationError(SanctuaryError):
    """Raised when user lacks permission."""
    status_code = status.HTTP_403_FORBIDDEN


class ResourceNotFoundError(SanctuaryError):
    """Raised when a requested resource is not found."""
    status_code = status.HTTP_404_NOT_FOUND


class ResourceConflictError(SanctuaryError):
    """Raised when a resource already exists or cannot change state."""
    status_code = status.HTTP_409_CONFLICT


class ValidationError(SanctuaryError):
    """Raised when input validation fails."""
    pass


class RateLimitExceededError(SanctuaryError):
    """Raised when a caller exceeds its rate-limit window."""
    status_code = status.HTTP_429_TOO_MANY_REQUESTS

    def __init__(self, message: str = "Rate limit exceeded", retry_after: Optional[int] = None):
        super().__init__(message)
        self.retry_after = retry_after


class UpstreamServiceError(SanctuaryError):
    """Raised when a downstream provider (chat completion) fails."""
    status_code = status.HTTP_502_BAD_GATEWAY


# HTTP exception shortcuts
def not_found(detail: str = "Resource not found") -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


def forbidden(detail: str = "Insufficient permissions") -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)

