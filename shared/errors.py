"""
Shared error handling for the credential refresh service.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = {}


class CredentialServiceException(Exception):
    """Base exception for the credential service."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            details=self.details
        )


class ValidationError(CredentialServiceException):
    """Validation-related errors."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class StoreUnavailableError(CredentialServiceException):
    """Shared store operation failed (network, timeout, protocol)."""

    def __init__(self, message: str = "Shared store unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("STORE_UNAVAILABLE", message, details)


class LockContendedError(CredentialServiceException):
    """Another holder owns the refresh lock."""

    def __init__(self, lock_key: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("LOCK_CONTENDED", f"Lock is held by another process: {lock_key}", details)


class RefreshFailedError(CredentialServiceException):
    """Issuer call failed or returned an invalid value."""

    def __init__(self, message: str = "Credential refresh failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("REFRESH_FAILED", message, details)


class CredentialNotAvailableError(CredentialServiceException):
    """No credential cached yet and another process is refreshing it."""

    def __init__(self, key: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            "CREDENTIAL_NOT_AVAILABLE",
            f"Credential not yet available, retry later: {key}",
            details
        )


class ObserverFailedError(CredentialServiceException):
    """A change observer raised while handling an event."""

    def __init__(self, observer: str, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("OBSERVER_FAILED", f"{observer}: {message}", details)
