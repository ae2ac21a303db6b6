"""Custom exceptions for the Flowline workflow engine."""


class FlowlineException(Exception):
    """Base exception for the workflow engine."""

    error_code = "internal_error"

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code.

        Args:
            message: Exception message
            status_code: HTTP status code
        """
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class BadRequestError(FlowlineException):
    """Malformed input, inactive workflow or invalid identifier."""

    error_code = "bad_request"

    def __init__(self, message: str = "Bad request"):
        """Initialize BadRequestError with 400 status code."""
        super().__init__(message, 400)


class NotFoundError(FlowlineException):
    """Resource not found (or not visible to the caller's tenant)."""

    error_code = "not_found"

    def __init__(self, message: str = "Resource not found"):
        """Initialize NotFoundError with 404 status code."""
        super().__init__(message, 404)


class UnauthorizedError(FlowlineException):
    """Unauthorized access exception."""

    error_code = "unauthorized"

    def __init__(self, message: str = "Unauthorized"):
        """Initialize UnauthorizedError with 401 status code."""
        super().__init__(message, 401)


class ForbiddenError(FlowlineException):
    """Forbidden access exception."""

    error_code = "forbidden"

    def __init__(self, message: str = "Forbidden"):
        """Initialize ForbiddenError with 403 status code."""
        super().__init__(message, 403)


class ValidationError(FlowlineException):
    """Validation error exception."""

    error_code = "validation_error"

    def __init__(self, message: str = "Validation failed"):
        """Initialize ValidationError with 422 status code."""
        super().__init__(message, 422)


class ConflictError(FlowlineException):
    """Resource conflict exception."""

    error_code = "conflict"

    def __init__(self, message: str = "Resource conflict"):
        """Initialize ConflictError with 409 status code."""
        super().__init__(message, 409)


class InternalError(FlowlineException):
    """Unexpected failure or downstream dependency error."""

    error_code = "internal_error"

    def __init__(self, message: str = "Internal server error"):
        """Initialize InternalError with 500 status code."""
        super().__init__(message, 500)


class StepConfigurationError(BadRequestError):
    """A workflow step is misconfigured (missing field, unknown action type)."""

    error_code = "step_configuration_error"


class ExternalServiceError(FlowlineException):
    """A third-party API (AI provider, Slack, mail relay) refused or failed."""

    error_code = "external_service_error"

    def __init__(self, message: str = "External service error", service: str = "external"):
        super().__init__(message, 502)
        self.service = service
