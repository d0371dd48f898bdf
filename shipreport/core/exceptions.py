"""
Exception hierarchy for shipreport.
Each error carries a stable code and the HTTP status the API layer should use.
"""

from typing import Any, Optional


class ShipReportError(Exception):
    """Base exception for all shipreport errors."""

    # Shown to API clients instead of ``message``; None exposes ``message``.
    public_message: Optional[str] = "An unexpected error occurred"

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[dict[str, Any]] = None,
        status_code: int = 500,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}
        self.status_code = status_code

    @property
    def client_message(self) -> str:
        """Message safe to return to API clients."""
        if self.public_message is None:
            return self.message
        return self.public_message

    def to_dict(self, tracking_id: Optional[str] = None) -> dict[str, Any]:
        """
        Convert exception to dictionary for API responses.

        Server-side errors carry only their fixed public message; the full
        message and details stay in the logs.
        """
        error: dict[str, Any] = {
            "code": self.code,
            "message": self.client_message,
        }
        if self.public_message is None:
            error["details"] = self.details
        if tracking_id:
            error["trackingId"] = tracking_id
        return {"error": error}


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(ShipReportError):
    """Missing credentials or otherwise unusable configuration."""

    public_message = "The service is missing required configuration"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            code="CONFIGURATION_ERROR",
            details=details,
            status_code=500,
        )


class MissingCredentialsError(ConfigurationError):
    """Required API keys are not set."""

    def __init__(self, missing: list[str]) -> None:
        super().__init__(
            message=f"Missing required environment variables: {', '.join(missing)}",
            details={"missing": missing},
        )
        self.code = "MISSING_CREDENTIALS"
        self.missing = missing


# =============================================================================
# Validation Errors (400)
# =============================================================================


class ValidationError(ShipReportError):
    """Request validation failed."""

    public_message = None

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            details=details,
            status_code=400,
        )


class InvalidRequestError(ValidationError):
    """Invalid request parameters."""

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        details = {"field": field} if field else {}
        super().__init__(message=message, details=details)
        self.code = "INVALID_REQUEST"


# =============================================================================
# Upstream Errors (429, 502)
# =============================================================================


class ExternalServiceError(ShipReportError):
    """An upstream tracker, code host or summarizer call failed."""

    public_message = "An upstream service request failed"

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict[str, Any]] = None,
        status_code: int = 502,
    ) -> None:
        super().__init__(
            message=f"{service_name}: {message}",
            code="EXTERNAL_SERVICE_ERROR",
            details={"service": service_name, **(details or {})},
            status_code=status_code,
        )
        self.service_name = service_name
        self.reason = message
        self.upstream_status: Optional[int] = (details or {}).get("status_code")


class RateLimitError(ExternalServiceError):
    """Upstream rate limit exhausted."""

    public_message = "An upstream rate limit was exceeded"

    def __init__(self, service_name: str, reset_at: Optional[str] = None) -> None:
        message = "rate limit exceeded"
        if reset_at:
            message = f"rate limit exceeded. Resets at {reset_at}"
        super().__init__(
            service_name=service_name,
            message=message,
            details={"reset_at": reset_at},
            status_code=429,
        )
        self.code = "RATE_LIMIT_EXCEEDED"


class SummarizerError(ExternalServiceError):
    """The summarizer returned an error response."""

    public_message = "The summarizer request failed"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(service_name="OpenAI", message=message, details=details)
        self.code = "SUMMARIZER_ERROR"


# =============================================================================
# Pipeline Errors
# =============================================================================


class PipelineError(ShipReportError):
    """A recipe finished without producing usable output."""

    public_message = "The status run produced no output"

    def __init__(
        self,
        message: str,
        step: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message=message,
            code="PIPELINE_ERROR",
            details={"step": step, **(details or {})},
            status_code=500,
        )
        self.step = step
