"""
Typed errors shared by the services.

Every class carries the HTTP status it is rendered with by the exception
handler in careconnect.main; client-input errors are 4xx and never retried,
upstream errors are passed through to the caller without an automatic retry.
"""
from datetime import datetime


class CareConnectError(Exception):
    status_code: int = 500
    default_message: str = "Unexpected server error."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInput(CareConnectError):
    status_code = 400
    default_message = "Invalid request."


class QuotaExceeded(CareConnectError):
    """Per-user cooldown or hourly quota hit; the client may resubmit after retry_after seconds."""

    status_code = 429
    default_message = "Too many requests. Please try again later."

    def __init__(
        self,
        message: str | None = None,
        retry_after: float = 0.0,
        reset_at: datetime | None = None,
        reason: str = "quota",
    ):
        super().__init__(message)
        self.retry_after = retry_after
        self.reset_at = reset_at
        self.reason = reason


class RateLimited(CareConnectError):
    status_code = 429
    default_message = "Rate limit exceeded. Please try again later."


class ServiceUnavailable(CareConnectError):
    # Upstream billing / credits exhausted
    status_code = 402
    default_message = "Service temporarily unavailable. Please contact support."


class UpstreamError(CareConnectError):
    status_code = 500
    default_message = "Failed to get AI response"


class UpstreamTimeout(CareConnectError):
    status_code = 504
    default_message = "The AI service did not respond in time. Please try again."


class StorageFailure(CareConnectError):
    status_code = 500
    default_message = "Document storage is unavailable. Please try again later."


class UploadRejected(InvalidInput):
    reason: str = "rejected"


class TooLarge(UploadRejected):
    status_code = 413
    reason = "too_large"
    default_message = "Maximum file size is 10MB"


class UnsupportedType(UploadRejected):
    status_code = 415
    reason = "unsupported_type"
    default_message = "Only PDF and image files (PNG, JPG) are allowed"


class ExtensionMismatch(UploadRejected):
    reason = "extension_mismatch"
    default_message = "File extension does not match file type"


class ContentMismatch(UploadRejected):
    reason = "content_mismatch"
    default_message = "File content does not match the declared file type"
