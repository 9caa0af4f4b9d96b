"""
SocialBridge Connector Errors
=============================
Centralized error handling for the platform connectors.

Every failure raised by a connector is a ConnectorError subclass carrying a
standardized ErrorCode. Errors bubble to the HTTP layer, which maps them to a
status with get_http_status() and a per-route response body.
"""

from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    """Standardized error codes for debugging and API responses."""
    # Generic
    UNKNOWN = "UNKNOWN"
    INTERNAL = "INTERNAL"

    # Config / input
    CREDENTIALS_MISSING = "CREDENTIALS_MISSING"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    INVALID_CAROUSEL_SIZE = "INVALID_CAROUSEL_SIZE"
    INVALID_MEDIA_COUNT = "INVALID_MEDIA_COUNT"
    UNSUPPORTED_MEDIA_TYPE = "UNSUPPORTED_MEDIA_TYPE"

    # Upstream files
    DOWNLOAD_FAILED = "DOWNLOAD_FAILED"
    UPLOAD_FAILED = "UPLOAD_FAILED"
    MEDIA_FETCH_FAILED = "MEDIA_FETCH_FAILED"
    MEDIA_TOO_LARGE = "MEDIA_TOO_LARGE"
    MEDIA_UPLOAD_FAILED = "MEDIA_UPLOAD_FAILED"

    # Instagram
    IDENTITY_LOOKUP_FAILED = "IDENTITY_LOOKUP_FAILED"
    SESSION_LOGIN_FAILED = "SESSION_LOGIN_FAILED"
    CONTAINER_CREATE_FAILED = "CONTAINER_CREATE_FAILED"
    CONTAINER_STATUS_FAILED = "CONTAINER_STATUS_FAILED"
    CONTAINER_FAILED = "CONTAINER_FAILED"
    CONTAINER_UNKNOWN_STATE = "CONTAINER_UNKNOWN_STATE"
    CONTAINER_TIMEOUT = "CONTAINER_TIMEOUT"
    PUBLISH_FAILED = "PUBLISH_FAILED"

    # X
    TWEET_CREATE_FAILED = "TWEET_CREATE_FAILED"
    PLATFORM_AUTH_FAILED = "PLATFORM_AUTH"
    PLATFORM_RATE_LIMIT = "PLATFORM_RATE_LIMIT"


class ConnectorError(Exception):
    """
    Error raised by a platform connector.

    Attributes:
        code: Standardized error code
        message: Human-readable error message
        details: Optional additional context (upstream status, body, URLs)
        retryable: Whether a new top-level request may succeed unchanged
        component: Which connector raised the error
    """

    code = ErrorCode.UNKNOWN
    component = "unknown"
    retryable = False

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None,
        code: Optional[ErrorCode] = None,
        retryable: Optional[bool] = None,
        component: Optional[str] = None,
    ):
        if code is not None:
            self.code = code
        if retryable is not None:
            self.retryable = retryable
        if component is not None:
            self.component = component
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to dictionary for logging/API response."""
        return {
            "error_code": self.code.value,
            "error_message": self.message,
            "details": self.details,
            "retryable": self.retryable,
            "component": self.component,
        }


# =====================================================================
# Preconditions and caller input
# =====================================================================

class CredentialsMissingError(ConnectorError):
    """A required credential is absent from the environment."""
    code = ErrorCode.CREDENTIALS_MISSING
    component = "config"


class ValidationError(ConnectorError):
    """Caller input is malformed."""
    code = ErrorCode.VALIDATION_FAILED
    component = "validation"


class InvalidCarouselSizeError(ConnectorError):
    code = ErrorCode.INVALID_CAROUSEL_SIZE
    component = "instagram"


class InvalidMediaCountError(ConnectorError):
    code = ErrorCode.INVALID_MEDIA_COUNT
    component = "instagram"


class UnsupportedMediaTypeError(ConnectorError):
    code = ErrorCode.UNSUPPORTED_MEDIA_TYPE
    component = "instagram"


# =====================================================================
# Upstream file dependencies
# =====================================================================

class DownloadError(ConnectorError):
    code = ErrorCode.DOWNLOAD_FAILED
    component = "staging"
    retryable = True


class UploadError(ConnectorError):
    code = ErrorCode.UPLOAD_FAILED
    component = "staging"
    retryable = True


class MediaFetchError(ConnectorError):
    code = ErrorCode.MEDIA_FETCH_FAILED
    component = "x"
    retryable = True


class MediaSizeLimitError(ConnectorError):
    """Tweet media exceeds the ceiling for its kind."""
    code = ErrorCode.MEDIA_TOO_LARGE
    component = "x"

    def __init__(self, kind: str, limit_mb: int, size_bytes: int):
        self.kind = kind
        self.limit_mb = limit_mb
        self.size_bytes = size_bytes
        super().__init__(
            f"{kind.capitalize()} size exceeds {limit_mb}MB limit",
            details={"kind": kind, "limit_mb": limit_mb, "size_bytes": size_bytes},
        )


class MediaUploadError(ConnectorError):
    code = ErrorCode.MEDIA_UPLOAD_FAILED
    component = "x"


# =====================================================================
# Platform workflows
# =====================================================================

class IdentityLookupError(ConnectorError):
    code = ErrorCode.IDENTITY_LOOKUP_FAILED
    component = "instagram"


class SessionLoginError(ConnectorError):
    code = ErrorCode.SESSION_LOGIN_FAILED
    component = "instagram"


class ContainerCreateError(ConnectorError):
    code = ErrorCode.CONTAINER_CREATE_FAILED
    component = "instagram"


class ContainerStatusError(ConnectorError):
    code = ErrorCode.CONTAINER_STATUS_FAILED
    component = "instagram"


class ContainerFailedError(ConnectorError):
    """Container reached ERROR or EXPIRED. Terminal for this attempt."""
    code = ErrorCode.CONTAINER_FAILED
    component = "instagram"


class ContainerUnknownStateError(ConnectorError):
    code = ErrorCode.CONTAINER_UNKNOWN_STATE
    component = "instagram"


class ContainerTimeoutError(ConnectorError):
    code = ErrorCode.CONTAINER_TIMEOUT
    component = "instagram"
    retryable = True


class PublishError(ConnectorError):
    code = ErrorCode.PUBLISH_FAILED
    component = "instagram"


class TweetCreateError(ConnectorError):
    code = ErrorCode.TWEET_CREATE_FAILED
    component = "x"


class XAuthenticationError(ConnectorError):
    """X rejected the signed request (401/403)."""
    code = ErrorCode.PLATFORM_AUTH_FAILED
    component = "x"


class XRateLimitError(ConnectorError):
    code = ErrorCode.PLATFORM_RATE_LIMIT
    component = "x"
    retryable = True


# HTTP status code mapping
ERROR_HTTP_STATUS = {
    ErrorCode.UNKNOWN: 500,
    ErrorCode.INTERNAL: 500,
    ErrorCode.CREDENTIALS_MISSING: 500,
    ErrorCode.VALIDATION_FAILED: 400,
    ErrorCode.INVALID_CAROUSEL_SIZE: 400,
    ErrorCode.INVALID_MEDIA_COUNT: 400,
    ErrorCode.MEDIA_TOO_LARGE: 400,
    ErrorCode.PLATFORM_AUTH_FAILED: 401,
    ErrorCode.PLATFORM_RATE_LIMIT: 429,
}


def get_http_status(code: ErrorCode) -> int:
    """Get HTTP status code for an error code."""
    return ERROR_HTTP_STATUS.get(code, 500)


def error_from_exception(e: Exception, component: str = "unknown") -> ConnectorError:
    """Convert a generic exception to a ConnectorError."""
    if isinstance(e, ConnectorError):
        return e
    return ConnectorError(str(e) or e.__class__.__name__, code=ErrorCode.INTERNAL, component=component)
