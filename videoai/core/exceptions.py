"""
Core Exception System

A framework-independent exception hierarchy for the media pipeline.
These exceptions are designed to be:
- Reusable across acquisition, transport, thumbnails and reconciliation
- Independent from FastAPI/HTTP concerns
- Easy to map to HTTP responses when needed
- Rich with debugging context
"""

from datetime import datetime, timezone
from typing import Any, Optional


class BaseAppException(Exception):
    """
    Base application exception.

    All custom exceptions should inherit from this class.

    Attributes:
        error_code: Machine-readable error identifier (e.g., "VIDEO_NOT_FOUND")
        message: Human-readable message safe for API responses
        debug_message: Internal details for logging (not exposed to clients)
        metadata: Optional dictionary with additional context
        http_status_code: Suggested HTTP status code for response mapping
        timestamp: When the exception was created
    """

    http_status_code: int = 500
    default_error_code: str = "INTERNAL_ERROR"
    default_message: str = "An internal error occurred"

    def __init__(
        self,
        error_code: Optional[str] = None,
        message: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
        debug_message: Optional[str] = None,
    ) -> None:
        self.error_code = error_code or self.default_error_code
        self.message = message or self.default_message
        self.debug_message = debug_message
        self.metadata = metadata or {}
        self.timestamp = datetime.now(timezone.utc)
        super().__init__(self.message)

    def to_dict(self, include_debug: bool = False) -> dict[str, Any]:
        """
        Serialize exception to dictionary.

        Args:
            include_debug: Whether to include debug_message (for logging)

        Returns:
            Dictionary representation of the exception
        """
        result = {
            "error_code": self.error_code,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }

        if self.metadata:
            result["metadata"] = self.metadata

        if include_debug and self.debug_message:
            result["debug_message"] = self.debug_message

        return result

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"error_code={self.error_code!r}, "
            f"message={self.message!r}, "
            f"metadata={self.metadata!r})"
        )


# =============================================================================
# Client Errors (4xx)
# =============================================================================

class ValidationException(BaseAppException):
    """
    Validation error for invalid input data.

    HTTP Status: 400 Bad Request
    """

    http_status_code = 400
    default_error_code = "VALIDATION_ERROR"
    default_message = "Validation failed"

    def __init__(
        self,
        error_code: Optional[str] = None,
        message: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
        debug_message: Optional[str] = None,
        field: Optional[str] = None,
    ) -> None:
        if field and metadata is None:
            metadata = {"field": field}
        elif field:
            metadata["field"] = field
        super().__init__(error_code, message, metadata, debug_message)


class NotFoundException(BaseAppException):
    """
    Resource not found error.

    HTTP Status: 404 Not Found
    """

    http_status_code = 404
    default_error_code = "NOT_FOUND"
    default_message = "Resource not found"

    def __init__(
        self,
        error_code: Optional[str] = None,
        message: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
        debug_message: Optional[str] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
    ) -> None:
        if resource_type or resource_id:
            metadata = metadata or {}
            if resource_type:
                metadata["resource_type"] = resource_type
            if resource_id:
                metadata["resource_id"] = resource_id
        super().__init__(error_code, message, metadata, debug_message)


class ForbiddenException(BaseAppException):
    """
    Authorization error: the caller does not own the resource.

    HTTP Status: 403 Forbidden
    """

    http_status_code = 403
    default_error_code = "FORBIDDEN"
    default_message = "Permission denied"


class ConflictException(BaseAppException):
    """
    State conflict error, e.g. completing an upload that is not uploading.

    HTTP Status: 409 Conflict
    """

    http_status_code = 409
    default_error_code = "CONFLICT"
    default_message = "Resource conflict"


# =============================================================================
# Pipeline Errors
# =============================================================================

class AcquisitionValidationError(ValidationException):
    """
    Candidate media rejected before any network call.

    Raised for unrecognized container types, oversized files and videos
    longer than the configured ceiling.
    """

    default_error_code = "ACQUISITION_REJECTED"
    default_message = "Video file rejected"


class TargetNegotiationError(BaseAppException):
    """Storage refused to hand out a write destination."""

    http_status_code = 502
    default_error_code = "UPLOAD_TARGET_REJECTED"
    default_message = "Failed to generate upload URL"


class TransferError(BaseAppException):
    """Byte transfer to the negotiated target failed or timed out."""

    http_status_code = 502
    default_error_code = "TRANSFER_FAILED"
    default_message = "File upload failed"


class RecordPersistenceError(BaseAppException):
    """A VideoRecord insert or update did not go through."""

    http_status_code = 500
    default_error_code = "RECORD_PERSISTENCE_FAILED"
    default_message = "Failed to save video record"


class CdnProcessingError(BaseAppException):
    """The CDN video processor rejected or failed a request."""

    http_status_code = 502
    default_error_code = "CDN_REQUEST_FAILED"
    default_message = "Video processor request failed"


class AIProcessingError(BaseAppException):
    """Transcription or summarization failed. Never affects the upload."""

    http_status_code = 502
    default_error_code = "AI_PROCESSING_FAILED"
    default_message = "AI processing failed"


class ThumbnailTierError(BaseAppException):
    """
    A single thumbnail tier failed.

    Non-fatal: the cascade moves on to the next tier.
    """

    http_status_code = 500
    default_error_code = "THUMBNAIL_TIER_FAILED"
    default_message = "Thumbnail strategy failed"


class DecodeUnsupportedError(ThumbnailTierError):
    """Container or codec cannot be decoded locally."""

    default_error_code = "DECODE_UNSUPPORTED"
    default_message = "Video format not supported for frame extraction"


class SeekTimeoutError(ThumbnailTierError):
    """Frame extraction did not finish before its timeout."""

    default_error_code = "SEEK_TIMEOUT"
    default_message = "Frame extraction timed out"


class EncodeError(ThumbnailTierError):
    """Decoded frame could not be turned into a JPEG."""

    default_error_code = "ENCODE_FAILED"
    default_message = "Failed to create image from video frame"


class UploadVerificationError(ThumbnailTierError):
    """Uploaded image could not be found at its destination."""

    default_error_code = "UPLOAD_NOT_VERIFIED"
    default_message = "Thumbnail not found in storage after upload"


class AllTiersExhaustedError(BaseAppException):
    """
    Every thumbnail tier failed.

    Terminal for the thumbnail only; the video itself keeps its status.
    """

    http_status_code = 500
    default_error_code = "THUMBNAIL_TIERS_EXHAUSTED"
    default_message = "No thumbnail strategy succeeded"

    def __init__(
        self,
        tier_errors: Optional[list[ThumbnailTierError]] = None,
        **kwargs: Any,
    ) -> None:
        self.tier_errors = tier_errors or []
        metadata = kwargs.pop("metadata", None) or {}
        metadata.setdefault(
            "tiers", [f"{e.error_code}: {e.message}" for e in self.tier_errors]
        )
        super().__init__(metadata=metadata, **kwargs)


class ReconciliationChannelError(BaseAppException):
    """Push channel could not be established; polling takes over."""

    http_status_code = 503
    default_error_code = "RECONCILIATION_CHANNEL_UNAVAILABLE"
    default_message = "Realtime subscription unavailable"


__all__ = [
    "BaseAppException",
    "ValidationException",
    "NotFoundException",
    "ForbiddenException",
    "ConflictException",
    "AcquisitionValidationError",
    "TargetNegotiationError",
    "TransferError",
    "RecordPersistenceError",
    "CdnProcessingError",
    "AIProcessingError",
    "ThumbnailTierError",
    "DecodeUnsupportedError",
    "SeekTimeoutError",
    "EncodeError",
    "UploadVerificationError",
    "AllTiersExhaustedError",
    "ReconciliationChannelError",
]
