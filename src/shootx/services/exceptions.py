"""Service error hierarchy for the try-on relay.

This module defines the exception hierarchy for service-level errors:
- ServiceError: Base for all service errors
- Request errors (ValidationError, NotEnabledError, NotFoundError, CapacityError,
  InternalError): surfaced synchronously to the HTTP caller, carry a status code
- GenerationError: failures inside the detached generation task, recorded on the
  job instead of being returned to the submitter
"""


class ServiceError(Exception):
    """Base exception for all service errors."""

    status_code: int = 500
    public_message: str = "Internal server error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.public_message)


# Request-facing errors
class ValidationError(ServiceError):
    """Missing or invalid request input (400)."""

    status_code = 400
    public_message = "Missing required fields"


class NotEnabledError(ServiceError):
    """Unknown tenant or try-on feature disabled (403)."""

    status_code = 403
    public_message = "Try-on service not available"


class NotFoundError(ServiceError):
    """Unknown try-on job id (404)."""

    status_code = 404
    public_message = "Request not found"


class CapacityError(ServiceError):
    """Generation pool is saturated; the caller should retry later (503)."""

    status_code = 503
    public_message = "Try-on service is busy, please retry shortly"


class InternalError(ServiceError):
    """Unexpected failure (500)."""

    status_code = 500
    public_message = "Internal server error"


# Generation errors
class GenerationError(ServiceError):
    """Base exception for generation backend errors.

    ``prompt_id`` is the backend's token for the request when one was issued.
    """

    def __init__(self, message: str | None = None, prompt_id: str | None = None):
        super().__init__(message)
        self.prompt_id = prompt_id


class ExternalServiceError(GenerationError):
    """Generation backend rejected the request or returned a malformed payload.

    Examples:
    - Non-2xx response on workflow submission
    - Missing prompt_id in submission response
    - Completed history entry without the expected output image
    - Execution reported as errored by the backend
    """

    pass


class TransientError(GenerationError):
    """Poll attempt failed in a way that may succeed on the next attempt.

    Examples:
    - Network timeouts and connection errors
    - Non-2xx response from the history endpoint
    - Undecodable history payload
    """

    pass


class GenerationTimeoutError(GenerationError, TimeoutError):
    """Polling ceiling exhausted without a completion signal."""

    def __init__(
        self, message: str | None = None, prompt_id: str | None = None, attempts: int = 0
    ):
        super().__init__(message, prompt_id=prompt_id)
        self.attempts = attempts
