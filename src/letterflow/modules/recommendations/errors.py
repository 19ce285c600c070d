"""
Recommendation Service Errors

Every error carries a machine-readable ``error_code`` and the HTTP status
the routers respond with.
"""

from fastapi import HTTPException

from letterflow.modules.recommendations.models import RequestStatus


class RecommendationServiceError(Exception):
    """Base exception for recommendation service errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


# ============================================
# Secure token errors
# ============================================


class TokenNotFoundError(RecommendationServiceError):
    """No request matches the token (or it is malformed)."""

    def __init__(self):
        super().__init__(
            message="Invalid recommendation link.",
            error_code="TOKEN_NOT_FOUND",
            status_code=404,
        )


class TokenExpiredError(RecommendationServiceError):
    """The token matched a request but its expiry has passed."""

    def __init__(self):
        super().__init__(
            message="This recommendation link has expired.",
            error_code="TOKEN_EXPIRED",
            status_code=410,
        )


class RequestCancelledError(RecommendationServiceError):
    """The request was cancelled by the student."""

    def __init__(self):
        super().__init__(
            message="This recommendation request has been cancelled.",
            error_code="REQUEST_CANCELLED",
            status_code=410,
        )


# ============================================
# Input / state errors
# ============================================


class ValidationFailedError(RecommendationServiceError):
    """Input failed a business rule (file type, size, deadline, ...)."""

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            status_code=400,
        )


class InvalidRequestStateError(RecommendationServiceError):
    """The request's status does not allow the operation."""

    def __init__(self, current_status: RequestStatus, action: str):
        self.current_status = current_status
        super().__init__(
            message=f"Cannot {action} a request with status '{current_status.value}'.",
            error_code="INVALID_REQUEST_STATE",
            status_code=409,
        )


class VersionConflictError(RecommendationServiceError):
    """Concurrent submissions kept colliding on the next version number."""

    def __init__(self):
        super().__init__(
            message="Another submission was saved at the same time. Please try again.",
            error_code="VERSION_CONFLICT",
            status_code=409,
        )


class StorageUnavailableError(RecommendationServiceError):
    """The object store could not be reached."""

    def __init__(self, retry_after_seconds: int = 30):
        self.retry_after_seconds = retry_after_seconds
        super().__init__(
            message="File storage is temporarily unavailable. Please try again shortly.",
            error_code="STORAGE_UNAVAILABLE",
            status_code=503,
        )


# ============================================
# Not found errors
# ============================================


class RequestNotFoundError(RecommendationServiceError):
    def __init__(self):
        super().__init__(
            message="Recommendation request not found.",
            error_code="REQUEST_NOT_FOUND",
            status_code=404,
        )


class LetterNotFoundError(RecommendationServiceError):
    def __init__(self, message: str = "No letter has been submitted for this request."):
        super().__init__(
            message=message,
            error_code="LETTER_NOT_FOUND",
            status_code=404,
        )


class RecipientNotFoundError(RecommendationServiceError):
    def __init__(self):
        super().__init__(
            message="Recipient not found.",
            error_code="RECIPIENT_NOT_FOUND",
            status_code=404,
        )


# ============================================
# Recipient address book errors
# ============================================


class DuplicateRecipientError(RecommendationServiceError):
    def __init__(self, email: str):
        super().__init__(
            message=f"You already have a recipient with the email {email}.",
            error_code="DUPLICATE_RECIPIENT",
            status_code=409,
        )


class RecipientInUseError(RecommendationServiceError):
    def __init__(self, request_count: int):
        self.request_count = request_count
        super().__init__(
            message=(
                f"This recipient is used by {request_count} recommendation request(s) "
                "and cannot be deleted."
            ),
            error_code="RECIPIENT_IN_USE",
            status_code=409,
        )


def to_http_exception(e: RecommendationServiceError) -> HTTPException:
    """Build the HTTP error response for a service error."""
    detail: dict = {"error": e.error_code, "message": e.message}
    headers = None

    if isinstance(e, ValidationFailedError) and e.field:
        detail["field"] = e.field
    if isinstance(e, StorageUnavailableError):
        detail["retry_after_seconds"] = e.retry_after_seconds
        headers = {"Retry-After": str(e.retry_after_seconds)}

    return HTTPException(status_code=e.status_code, detail=detail, headers=headers)
