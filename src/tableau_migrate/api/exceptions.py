"""Tableau REST API exceptions."""

from typing import Optional


class TableauAPIError(Exception):
    """Base exception for Tableau REST API errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_data: Optional[dict] = None,
        error_code: Optional[str] = None,
    ):
        """Initialize Tableau API error.

        Args:
            message: Error message
            status_code: HTTP status code
            response_data: Response data from API
            error_code: REST API error code (e.g. ``404004``)
        """
        super().__init__(message)
        self.status_code = status_code
        self.response_data = response_data
        self.error_code = error_code


class TableauAuthenticationError(TableauAPIError):
    """Authentication error with the Tableau REST API."""

    pass


class TableauRateLimitError(TableauAPIError):
    """Rate limit exceeded error."""

    def __init__(self, message: str, retry_after: int = 60, **kwargs):
        """Initialize rate limit error.

        Args:
            message: Error message
            retry_after: Seconds to wait before retry
            **kwargs: Additional arguments for base class
        """
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class TableauTransportError(TableauAPIError):
    """Network level failure before a response was received."""

    pass


class TableauTimeoutError(TableauTransportError):
    """Request did not complete within the configured timeout."""

    pass


class TableauNotFoundError(TableauAPIError):
    """Resource not found error."""

    pass


class TableauPermissionError(TableauAPIError):
    """Permission denied error."""

    pass


class TableauConflictError(TableauAPIError):
    """Resource already exists error."""

    pass


class TableauValidationError(TableauAPIError):
    """Validation error for API requests, raised before any network call."""

    pass


class ContentTypeNotRegisteredError(LookupError):
    """Raised when no API client is registered for a content type."""

    pass
