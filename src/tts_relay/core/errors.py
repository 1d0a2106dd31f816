"""
Error Codes and Exception Hierarchy.

Every failure that can reach a caller is expressed as a RelayError subclass
carrying a machine-readable code, a human-readable message and optional
details. The API layer maps these onto HTTP status codes; the orchestrator
catches ProviderError internally and only surfaces the terminal outcome.

Taxonomy:
    ValidationError         - bad content, settings, ids or Range headers
    ProviderError           - one provider failed (always tagged with its name)
    ServiceUnavailableError - no provider available, or all candidates failed
    StorageError            - write/read failure, payload too large, bad range
    NotFoundError           - unknown conversion id or audio id

Provider failures are classified with the closed ErrorKind enum. Providers
pick the kind from the exception type or HTTP status they observed, never
from message text.

Usage:
    from tts_relay.core.errors import ErrorKind, ProviderError

    raise ProviderError("upstream returned 503", ErrorKind.SERVICE_ERROR, "GoogleTTS")
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode:
    """
    Standardized error codes for API responses.

    These codes are returned in the "error" field of every error body.
    """
    VALIDATION_ERROR = "VALIDATION_ERROR"           # Bad request content/settings
    INVALID_RANGE_HEADER = "INVALID_RANGE_HEADER"   # Unparseable Range header
    RANGE_NOT_SATISFIABLE = "RANGE_NOT_SATISFIABLE" # Range outside the file
    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"         # Audio above size ceiling
    WRITE_FAILURE = "WRITE_FAILURE"                 # Could not persist audio
    READ_FAILURE = "READ_FAILURE"                   # Stored record unreadable
    NOT_FOUND = "NOT_FOUND"                         # Unknown conversion id
    AUDIO_NOT_FOUND = "AUDIO_NOT_FOUND"             # Unknown audio id
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"     # No provider could serve
    TIMEOUT = "TIMEOUT"                             # Provider attempt timed out
    SERVICE_ERROR = "SERVICE_ERROR"                 # Provider returned an error
    API_KEY_INVALID = "API_KEY_INVALID"             # Provider credentials bad
    UNSUPPORTED_CONTENT = "UNSUPPORTED_CONTENT"     # Provider rejected the text
    PROVIDER_ERROR = "PROVIDER_ERROR"               # Unclassified provider error
    INTERNAL_ERROR = "INTERNAL_ERROR"               # Unexpected error


class ErrorKind(str, Enum):
    """Classification of a single provider failure."""
    TIMEOUT = "timeout"
    SERVICE_ERROR = "service_error"
    API_KEY_INVALID = "api_key_invalid"
    UNSUPPORTED_CONTENT = "unsupported_content"
    UNKNOWN = "unknown"


class StorageErrorKind(str, Enum):
    """Classification of a storage failure."""
    WRITE_FAILURE = "write_failure"
    PAYLOAD_TOO_LARGE = "payload_too_large"
    RANGE_NOT_SATISFIABLE = "range_not_satisfiable"
    READ_FAILURE = "read_failure"


_KIND_TO_CODE = {
    ErrorKind.TIMEOUT: ErrorCode.TIMEOUT,
    ErrorKind.SERVICE_ERROR: ErrorCode.SERVICE_ERROR,
    ErrorKind.API_KEY_INVALID: ErrorCode.API_KEY_INVALID,
    ErrorKind.UNSUPPORTED_CONTENT: ErrorCode.UNSUPPORTED_CONTENT,
    ErrorKind.UNKNOWN: ErrorCode.PROVIDER_ERROR,
}

_STORAGE_KIND_TO_CODE = {
    StorageErrorKind.WRITE_FAILURE: ErrorCode.WRITE_FAILURE,
    StorageErrorKind.PAYLOAD_TOO_LARGE: ErrorCode.PAYLOAD_TOO_LARGE,
    StorageErrorKind.RANGE_NOT_SATISFIABLE: ErrorCode.RANGE_NOT_SATISFIABLE,
    StorageErrorKind.READ_FAILURE: ErrorCode.READ_FAILURE,
}


class RelayError(Exception):
    """
    Base exception for tts-relay errors.

    Provides standardized error format for API responses with
    error code, message, and optional details.

    Attributes:
        message: Human-readable error message.
        code: Error code from ErrorCode class.
        details: Optional dictionary with additional context.
    """
    def __init__(self, message: str, code: str = ErrorCode.INTERNAL_ERROR, details: Optional[Dict] = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to standardized error response dict for API."""
        result: Dict[str, Any] = {
            "ok": False,
            "error": self.code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class ValidationError(RelayError):
    """Raised when request content, settings or headers are invalid."""
    def __init__(self, message: str, details: Optional[Dict] = None, code: str = ErrorCode.VALIDATION_ERROR):
        super().__init__(message, code, details)


class ProviderError(RelayError):
    """
    Raised by a provider when a single conversion attempt fails.

    Attributes:
        kind: ErrorKind classification.
        provider: Name of the provider that failed.
    """
    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.UNKNOWN,
        provider: str = "",
        details: Optional[Dict] = None,
    ):
        self.kind = kind
        self.provider = provider
        merged = {"provider": provider, "kind": kind.value}
        merged.update(details or {})
        super().__init__(message, _KIND_TO_CODE[kind], merged)


class ServiceUnavailableError(RelayError):
    """Raised when no provider is available or every candidate failed."""
    def __init__(self, message: str = "No TTS provider is currently available", details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.SERVICE_UNAVAILABLE, details)


class StorageError(RelayError):
    """Raised when audio cannot be written, read or sliced."""
    def __init__(self, message: str, kind: StorageErrorKind, details: Optional[Dict] = None):
        self.kind = kind
        super().__init__(message, _STORAGE_KIND_TO_CODE[kind], details)


class NotFoundError(RelayError):
    """Raised when a conversion or audio record does not exist."""
    def __init__(self, message: str, code: str = ErrorCode.NOT_FOUND, details: Optional[Dict] = None):
        super().__init__(message, code, details)
