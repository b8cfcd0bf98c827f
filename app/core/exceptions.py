from typing import Optional

from app.core.enums import ErrorKind


class BaseServiceError(Exception):
    """Base exception for all service-related errors."""
    pass

class ValidationError(BaseServiceError):
    """Raised when a sync configuration is rejected before dispatch."""

    kind = ErrorKind.VALIDATION

class ProductNotFoundError(BaseServiceError):
    """Raised when product is not found."""

    kind = ErrorKind.VALIDATION

class DestinationNotFoundError(BaseServiceError):
    """Raised when a destination id is not registered."""

    kind = ErrorKind.VALIDATION

class ConflictError(BaseServiceError):
    """Raised when a record is already being synced by another run."""

    kind = ErrorKind.CONFLICT

class RemoteError(BaseServiceError):
    """Raised when a destination's capability call fails."""

    kind = ErrorKind.REMOTE

    def __init__(self, message: str, destination_id: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.destination_id = destination_id
        self.status_code = status_code

class RemoteTimeoutError(RemoteError):
    """Raised when a remote call exceeds its time bound."""

    kind = ErrorKind.TIMEOUT
