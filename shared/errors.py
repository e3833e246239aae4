"""
Shared error handling for the geolocation caching proxy.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel

from shared.logging import request_id_var


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class GeoProxyException(Exception):
    """Base exception for proxy services."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id_var.get(),
            code=self.code,
            message=self.message,
            details=self.details
        )


class ValidationError(GeoProxyException):
    """Rejected request parameters (fields, lang, subject)."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class ConfigurationError(GeoProxyException):
    """Invalid service settings."""

    def __init__(self, message: str = "Invalid configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIGURATION_ERROR", message, details)


class UpstreamError(GeoProxyException):
    """The upstream lookup service failed or returned an unusable answer."""

    def __init__(
        self,
        message: str = "Upstream lookup failed",
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__("UPSTREAM_ERROR", message, details)
        self.status_code = status_code
        if status_code is not None:
            self.details["status_code"] = status_code


class SerializationError(GeoProxyException):
    """Snapshot could not be written or read."""

    def __init__(self, message: str = "Snapshot serialization failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("SERIALIZATION_ERROR", message, details)
