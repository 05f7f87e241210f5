"""
Nimbus-specific exceptions.

Custom exception classes for configuration and transport errors.
Only these propagate out of cache load operations; malformed responses
and unknown ids degrade to empty results instead.
"""

from typing import Optional


class NimbusError(Exception):
    """Base exception for Nimbus-related errors."""
    pass


class NimbusConfigurationError(NimbusError):
    """
    Raised when the session or settings are missing or invalid.

    Examples:
        - Empty base URL on the session handle
    """
    pass


class NimbusConnectionError(NimbusError):
    """
    Raised when a request to the Nimbus OData API fails.

    Covers network errors and non-success HTTP status codes.
    """

    def __init__(
        self,
        message: str,
        entity_set: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        self.entity_set = entity_set
        self.status_code = status_code
        super().__init__(message)
