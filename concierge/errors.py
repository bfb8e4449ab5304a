"""Error hierarchy for Concierge.

Tier failures (timeouts, provider errors) and budget exhaustion are not
errors from the caller's point of view; the router absorbs them. The
classes here cover tenant setup defects and storage backends.
"""


class ConciergeError(Exception):
    """Base exception for Concierge."""

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause


class ConfigurationError(ConciergeError):
    """Tenant configuration is missing or malformed.

    Fatal for the routing decision that hit it, never for the process.
    """

    def __init__(
        self,
        message: str,
        tenant_id: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, cause)
        self.tenant_id = tenant_id


class StoreError(ConciergeError):
    """Base exception for store operations."""


class ConnectionError(StoreError):
    """Failed to reach the storage backend."""


class NotFoundError(StoreError):
    """Entity not found."""


class ConflictError(StoreError):
    """Conflicting concurrent write."""
