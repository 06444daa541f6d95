"""Custom exception hierarchy for planstudio."""

from enum import Enum
from typing import Optional, Dict, Any


class ErrorCode(str, Enum):
    """Standardized error codes for API responses."""

    # Version graph errors
    VERSION_NOT_FOUND = "VERSION_NOT_FOUND"
    ANGLE_NOT_FOUND = "ANGLE_NOT_FOUND"
    IMAGE_NOT_FOUND = "IMAGE_NOT_FOUND"

    # Session errors
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    MISSING_CONTEXT = "MISSING_CONTEXT"
    CORRUPT_PERSISTED_STATE = "CORRUPT_PERSISTED_STATE"

    # Validation errors
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Upstream collaborators (generation oracle, blob store)
    UPSTREAM_FAILURE = "UPSTREAM_FAILURE"
    UPSTREAM_INCOMPLETE_RESPONSE = "UPSTREAM_INCOMPLETE_RESPONSE"

    # Database errors
    STORAGE_FAILURE = "STORAGE_FAILURE"

    # Concurrency errors
    CONFLICT = "CONFLICT"

    # Generic errors
    INTERNAL_ERROR = "INTERNAL_ERROR"


class PlanStudioException(Exception):
    """
    Base exception for all planstudio errors.

    Provides structured error responses with:
    - Human-readable message
    - Machine-readable error code
    - HTTP status code
    - Optional additional details
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize exception.

        Args:
            message: Human-readable error message
            error_code: Machine-readable error code
            status_code: HTTP status code to return
            details: Optional additional context/details
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to dictionary for JSON response.

        Returns:
            Dictionary with error, message, and details fields
        """
        return {
            "error": self.error_code.value,
            "message": self.message,
            "details": self.details
        }


class VersionNotFoundError(PlanStudioException):
    """Version not found in the version graph."""

    def __init__(self, version_id: str):
        super().__init__(
            f"Version not found: {version_id}",
            ErrorCode.VERSION_NOT_FOUND,
            status_code=404,
            details={"version_id": version_id}
        )


class SessionNotFoundError(PlanStudioException):
    """Prompt session not found in database."""

    def __init__(self, session_id: str):
        super().__init__(
            f"Session not found: {session_id}",
            ErrorCode.SESSION_NOT_FOUND,
            status_code=404,
            details={"session_id": session_id}
        )


class AngleNotFoundError(PlanStudioException):
    """No version carries the requested angle label."""

    def __init__(self, angle_id: str):
        super().__init__(
            f"No render found for angle: {angle_id}",
            ErrorCode.ANGLE_NOT_FOUND,
            status_code=404,
            details={"angle_id": angle_id}
        )


class ImageNotFoundError(PlanStudioException):
    """Neither a version nor a stored image matches the identifier."""

    def __init__(self, image_id: str):
        super().__init__(
            f"Image not found: {image_id}",
            ErrorCode.IMAGE_NOT_FOUND,
            status_code=404,
            details={"image_id": image_id}
        )


class ValidationError(PlanStudioException):
    """Validation failed for user input."""

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(
            message,
            ErrorCode.VALIDATION_ERROR,
            status_code=400,
            details=details
        )


class MissingContextError(PlanStudioException):
    """Edit request carries no version, session or design intent to anchor on."""

    def __init__(self, message: str = "A session or base prompt is required to edit"):
        super().__init__(
            message,
            ErrorCode.MISSING_CONTEXT,
            status_code=400,
        )


class UpstreamFailureError(PlanStudioException):
    """The generation oracle or the blob store failed."""

    def __init__(self, service: str, message: str, upstream_status: Optional[int] = None):
        details: Dict[str, Any] = {"service": service}
        if upstream_status is not None:
            details["upstream_status"] = upstream_status
        super().__init__(
            message,
            ErrorCode.UPSTREAM_FAILURE,
            status_code=502,
            details=details
        )


class UpstreamIncompleteResponseError(PlanStudioException):
    """The generation oracle answered without a usable image part."""

    def __init__(self, message: str = "Generation response did not include image data"):
        super().__init__(
            message,
            ErrorCode.UPSTREAM_INCOMPLETE_RESPONSE,
            status_code=502,
            details={"service": "generation"}
        )


class CorruptPersistedStateError(PlanStudioException):
    """Stored session history could not be decoded.

    Raised by the history decoder and recovered inside SessionService;
    never reaches an API caller.
    """

    def __init__(self, session_id: str, reason: str):
        super().__init__(
            f"Corrupt history for session {session_id}: {reason}",
            ErrorCode.CORRUPT_PERSISTED_STATE,
            status_code=500,
            details={"session_id": session_id}
        )


class ConflictError(PlanStudioException):
    """Session history was modified by a concurrent edit."""

    def __init__(self, session_id: str, message: str = "Session history was modified by another edit"):
        super().__init__(
            message,
            ErrorCode.CONFLICT,
            status_code=409,
            details={"session_id": session_id}
        )


class StorageFailureError(PlanStudioException):
    """Database write failed."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        details = {}
        if original_error:
            details["original_error"] = str(original_error)

        super().__init__(
            message,
            ErrorCode.STORAGE_FAILURE,
            status_code=500,
            details=details
        )
