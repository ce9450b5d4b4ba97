"""
Custom exceptions for the API layer.
Separates transport failures from the services that consume them.
"""
from enum import Enum
from typing import Dict, List, Optional


class FailureKind(str, Enum):
    """How a failed operation is surfaced to the user."""
    VALIDATION = "validation"
    NETWORK_OR_SERVER = "network_or_server"
    PARTIAL_BATCH = "partial_batch"
    USER_CANCELLED = "user_cancelled"


class DocumentRepositoryError(Exception):
    """Base class for docrepo errors."""
    pass


class ApiError(DocumentRepositoryError):
    """
    Structured failure returned by any document API call.

    Attributes:
        message: Human readable message from the server, if any
        code: Machine readable error code (e.g. "rest_invalid_param")
        status_code: HTTP-like status, None for transport failures
        field_errors: Per-field validation messages keyed by field id
    """

    def __init__(
        self,
        message: Optional[str] = None,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        field_errors: Optional[Dict[str, str]] = None
    ):
        super().__init__(message or code or "API request failed")
        self.message = message
        self.code = code
        self.status_code = status_code
        self.field_errors = dict(field_errors or {})

    @property
    def is_transport_failure(self) -> bool:
        """True when no response was received at all."""
        return self.status_code is None and self.code in (None, "network_error")

    def __repr__(self) -> str:
        return f"ApiError(code={self.code!r}, status_code={self.status_code!r}, message={self.message!r})"


class DocumentNotFoundError(ApiError):
    """Raised when a document id does not exist."""

    def __init__(self, document_id: int):
        super().__init__(
            message=f"Invalid document ID: {document_id}",
            code="rest_post_invalid_id",
            status_code=404,
        )
        self.document_id = document_id


class FieldValidationError(DocumentRepositoryError):
    """Raised when metadata field definitions fail validation."""

    def __init__(self, errors: Dict[int, List[str]]):
        super().__init__("Field validation failed")
        self.errors = errors


class PartialBatchFailure(DocumentRepositoryError):
    """Raised (or recorded) when some items of a batch failed."""

    def __init__(self, failed: int, attempted: int):
        super().__init__(f"{failed} of {attempted} updates failed")
        self.failed = failed
        self.attempted = attempted


class UserCancelled(DocumentRepositoryError):
    """The user dismissed a pending operation; never surfaced as an error."""
    pass


# Codes WordPress uses for request validation problems
VALIDATION_CODES = frozenset({
    "rest_invalid_param",
    "rest_missing_callback_param",
    "validation_failed",
})

# Failures that will not go away by retrying the same request
NON_RETRYABLE_STATUSES = frozenset({400, 401, 403, 404, 409, 410, 422})


def classify_error(error: BaseException) -> FailureKind:
    """
    Map an exception to the way it is surfaced.
    Keeps presentation decisions out of the API adapters.
    """
    if isinstance(error, UserCancelled):
        return FailureKind.USER_CANCELLED
    elif isinstance(error, PartialBatchFailure):
        return FailureKind.PARTIAL_BATCH
    elif isinstance(error, FieldValidationError):
        return FailureKind.VALIDATION
    elif isinstance(error, ApiError):
        if error.field_errors or error.code in VALIDATION_CODES:
            return FailureKind.VALIDATION
        return FailureKind.NETWORK_OR_SERVER
    else:
        return FailureKind.NETWORK_OR_SERVER


def is_retryable(error: BaseException) -> bool:
    """Whether replaying the same operation could succeed."""
    kind = classify_error(error)
    if kind in (FailureKind.VALIDATION, FailureKind.USER_CANCELLED):
        return False
    if isinstance(error, ApiError) and error.status_code in NON_RETRYABLE_STATUSES:
        return False
    return True


def error_text(error: Optional[BaseException]) -> Optional[str]:
    """Best human readable text for an error, or None."""
    if error is None:
        return None
    if isinstance(error, ApiError) and error.message:
        return error.message
    text = str(error).strip()
    return text or None
