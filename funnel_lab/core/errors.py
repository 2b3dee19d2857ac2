"""
Error taxonomy for the analysis pipeline.

Every error carries the HTTP status it maps to and the message a caller
is allowed to see. Provider-side failures never expose their details to
the caller; those only reach the error log.
"""

from typing import Optional

GENERIC_FAILURE_MESSAGE = "Internal error while analyzing the funnel. Please try again later."


class FunnelLabError(Exception):
    """Base class for pipeline errors."""
    status_code = 500
    # Whether the error belongs in the error log
    loggable = True

    @property
    def public_message(self) -> str:
        return GENERIC_FAILURE_MESSAGE

    @property
    def error_type(self) -> str:
        return type(self).__name__


class AuthError(FunnelLabError):
    """Missing, malformed or unknown bearer token."""
    status_code = 401
    loggable = False

    @property
    def public_message(self) -> str:
        return str(self)


class ValidationError(FunnelLabError):
    """Request body lacks required fields."""
    status_code = 400
    loggable = False

    @property
    def public_message(self) -> str:
        return str(self)


class AccessDeniedError(FunnelLabError):
    """The caller's plan does not entitle the feature."""
    status_code = 403
    loggable = False

    @property
    def public_message(self) -> str:
        return str(self)


class ConfigNotFound(FunnelLabError):
    """No active configuration at any consulted level."""


class ProviderFailure(FunnelLabError):
    """Anything that went wrong reaching or understanding the provider."""


class ProviderNotConfigured(ProviderFailure):
    """Provider is inactive or has no usable credentials."""


class ProviderError(ProviderFailure):
    """Provider call failed: non-2xx status, timeout or connection error."""

    def __init__(self, message: str, status: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.body = body

    def __str__(self) -> str:
        base = super().__str__()
        if self.status is None:
            return base
        if not self.body:
            return f"{base} (status {self.status})"
        return f"{base} (status {self.status}): {self.body}"


class MalformedProviderResponse(ProviderFailure):
    """The HTTP call succeeded but the reply is not the expected JSON."""

    def __init__(self, message: str, raw_text: Optional[str] = None):
        super().__init__(message)
        self.raw_text = raw_text


class CacheError(FunnelLabError):
    """Cache read or write failed. Never fatal."""


class MetricUpdateError(FunnelLabError):
    """Usage ledger or counter write failed. Never fatal."""


class ErrorLogWriteError(FunnelLabError):
    """Error log write failed. Never fatal."""
