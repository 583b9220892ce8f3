"""
Shared error handling for the Newsfeed Access Layer.

Gateway errors carry the HTTP status they surface as. Downstream errors
(``TransportError`` and ``UpstreamError``) are raised by service clients and
are translated at each call site with :func:`as_gateway_error`.
"""

import json
from typing import Any, Dict, Optional

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = {}


class GatewayException(Exception):
    """Base exception for gateway errors that reach the caller."""

    status_code: int = 500

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    @property
    def headers(self) -> Dict[str, str]:
        return {}

    def to_response(self) -> Dict[str, Any]:
        """Convert to a JSON-serializable error body."""
        response = ErrorResponse(code=self.code, message=self.message, details=self.details)
        return response.model_dump(exclude_defaults=True)


class AuthenticationError(GatewayException):
    """Authentication-related errors."""

    status_code = 401

    def __init__(self, message: str = "Authentication failed", details: Optional[Dict[str, Any]] = None,
                 code: str = "AUTHENTICATION_ERROR"):
        super().__init__(code, message, details)


class MissingCredentialError(AuthenticationError):
    """No bearer credential was presented."""

    status_code = 401

    def __init__(self, message: str = "Access token required", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, code="MISSING_CREDENTIAL")


class InvalidCredentialError(AuthenticationError):
    """Credential failed signature or claim validation."""

    status_code = 403

    def __init__(self, message: str = "Invalid or expired token", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, code="INVALID_CREDENTIAL")


class ExpiredCredentialError(AuthenticationError):
    """Credential signature is valid but the token has expired."""

    status_code = 403

    def __init__(self, message: str = "Invalid or expired token", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, code="EXPIRED_CREDENTIAL")


class ValidationError(GatewayException):
    """Validation-related errors."""

    status_code = 400

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class RateLimitError(GatewayException):
    """Rate limiting errors."""

    status_code = 429

    def __init__(self, retry_after: int, message: str = "Rate limit exceeded. Try again later.",
                 details: Optional[Dict[str, Any]] = None):
        super().__init__("RATE_LIMIT_ERROR", message, details)
        self.retry_after = retry_after

    @property
    def headers(self) -> Dict[str, str]:
        return {"Retry-After": str(self.retry_after)}

    def to_response(self) -> Dict[str, Any]:
        body = super().to_response()
        body["retryAfter"] = f"{self.retry_after}s"
        return body


class UpstreamUnavailableError(GatewayException):
    """A primary-path dependency is unreachable or failing."""

    status_code = 503

    def __init__(self, service: str, message: str = "Service unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("UPSTREAM_UNAVAILABLE", message, details)
        self.service = service


class UpstreamRejectedError(GatewayException):
    """A downstream service answered with a client error; its body is relayed verbatim."""

    def __init__(self, service: str, status_code: int, body: bytes = b"", content_type: Optional[str] = None):
        super().__init__("UPSTREAM_REJECTED", "Upstream request rejected")
        self.service = service
        self.status_code = status_code
        self.body = body
        self.content_type = content_type

    def to_response(self) -> Dict[str, Any]:
        """Return the downstream JSON object, or wrap non-object bodies in ``message``."""
        try:
            payload = json.loads(self.body) if self.body else None
        except ValueError:
            payload = None

        if isinstance(payload, dict):
            return payload

        text = self.body.decode("utf-8", errors="replace").strip() if self.body else ""
        return {"message": text or self.message}


class DownstreamError(Exception):
    """Base for failures raised by service clients."""

    def __init__(self, service: str, message: str):
        self.service = service
        self.message = message
        super().__init__(f"{service}: {message}")


class TransportError(DownstreamError):
    """The service could not be reached or did not answer in time."""

    TIMEOUT = "timeout"
    CONNECT = "connect"
    NETWORK = "network"
    CIRCUIT_OPEN = "circuit_open"

    def __init__(self, service: str, kind: str, message: str = ""):
        super().__init__(service, message or kind)
        self.kind = kind

    @property
    def retryable(self) -> bool:
        return self.kind != self.CIRCUIT_OPEN


class UpstreamError(DownstreamError):
    """The service was reached but answered with a 4xx/5xx status."""

    def __init__(self, service: str, status: int, body: bytes = b"", content_type: Optional[str] = None):
        super().__init__(service, f"upstream returned {status}")
        self.status = status
        self.body = body
        self.content_type = content_type

    @property
    def is_server_error(self) -> bool:
        return self.status >= 500

    @property
    def is_not_found(self) -> bool:
        return self.status == 404


def as_gateway_error(exc: DownstreamError) -> GatewayException:
    """Translate a downstream failure for a primary-path call."""
    if isinstance(exc, UpstreamError) and not exc.is_server_error:
        return UpstreamRejectedError(exc.service, exc.status, exc.body, exc.content_type)
    details: Dict[str, Any] = {}
    if isinstance(exc, TransportError):
        details["reason"] = exc.kind
    return UpstreamUnavailableError(exc.service, details=details)
