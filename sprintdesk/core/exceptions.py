"""Exception hierarchy for the remote data and text-generation services."""

from typing import Any, Dict, Optional

NOT_CONFIGURED_MESSAGE = "Supabase not configured"


class DataAccessError(Exception):
    """Generic failure of a call to the remote data service."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details or {}


class ServiceNotConfiguredError(DataAccessError):
    """The remote data service has no endpoint/credentials configured."""

    def __init__(self, message: str = NOT_CONFIGURED_MESSAGE):
        super().__init__(message)


class AuthenticationError(DataAccessError):
    """Invalid credentials, expired session or rejected token."""


class AuthorizationError(DataAccessError):
    """Row-level security or role denied the operation."""


class NotFoundError(DataAccessError):
    """Requested row or object does not exist."""


class ConflictError(DataAccessError):
    """Unique or foreign-key constraint violation."""


class RateLimitError(DataAccessError):
    """Too many requests."""


class MalformedRowError(DataAccessError):
    """A row returned by the service does not match the domain model."""


class GenerationError(Exception):
    """Failure of the hosted text-generation service."""
