"""Centralized exception hierarchy for the portfolio analysis service."""

from typing import Optional, Dict, Any
from enum import Enum
from datetime import datetime, timezone


class ErrorSeverity(str, Enum):
    """How loudly an error is logged and which status it falls back to."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    VALIDATION = "validation"
    BUSINESS_LOGIC = "business_logic"
    EXTERNAL_SERVICE = "external_service"
    RATE_LIMIT = "rate_limit"
    CONFIGURATION = "configuration"
    SYSTEM = "system"


class PortfolioAIException(Exception):
    """
    Base for every error the analysis pipeline raises on purpose.

    Carries a stable error code for API clients, a user-facing message,
    and optional retry hint in seconds.
    """

    def __init__(
        self,
        message: str,
        error_code: str,
        category: ErrorCategory = ErrorCategory.SYSTEM,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        details: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None,
        retry_after: Optional[int] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.category, self.severity = category, severity
        self.details = dict(details) if details else {}
        self.user_message = user_message if user_message else message
        self.retry_after = retry_after
        self.raised_at = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Flat representation used when logging outside a request."""
        data = {
            "error_code": self.error_code,
            "message": self.message,
            "category": self.category.value,
            "severity": self.severity.value,
            "raised_at": self.raised_at.isoformat(),
        }
        if self.user_message != self.message:
            data["user_message"] = self.user_message
        if self.details:
            data["details"] = self.details
        if self.retry_after is not None:
            data["retry_after"] = self.retry_after
        return data


class AnalysisNotAllowedException(PortfolioAIException):
    """Raised when a portfolio cannot be (re)analyzed right now."""

    def __init__(self, portfolio_id: int, reason: str, next_available_at: Optional[datetime] = None):
        retry_after = None
        if next_available_at is not None:
            if next_available_at.tzinfo is None:
                next_available_at = next_available_at.replace(tzinfo=timezone.utc)
            retry_after = max(0, int((next_available_at - datetime.now(timezone.utc)).total_seconds()))

        super().__init__(
            message=f"Portfolio {portfolio_id} cannot be analyzed: {reason}",
            error_code="ANALYSIS_NOT_ALLOWED",
            category=ErrorCategory.BUSINESS_LOGIC,
            severity=ErrorSeverity.LOW,
            details={
                "portfolio_id": portfolio_id,
                "reason": reason,
                "next_available_at": next_available_at.isoformat() if next_available_at else None
            },
            user_message=reason,
            retry_after=retry_after
        )


class InvalidJobTransitionException(PortfolioAIException):
    """Raised when a job update would leave the job state machine."""

    def __init__(self, job_id: str, current: str, requested: str):
        super().__init__(
            message=f"Job {job_id} cannot move from '{current}' to '{requested}'",
            error_code="INVALID_JOB_TRANSITION",
            category=ErrorCategory.BUSINESS_LOGIC,
            severity=ErrorSeverity.MEDIUM,
            details={"job_id": job_id, "current": current, "requested": requested}
        )


class ExternalServiceException(PortfolioAIException):
    """Raised when external service calls fail."""

    def __init__(
        self,
        service: str,
        message: str,
        status_code: Optional[int] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM
    ):
        super().__init__(
            message=message,
            error_code="EXTERNAL_SERVICE_ERROR",
            category=ErrorCategory.EXTERNAL_SERVICE,
            severity=severity,
            details={"service": service, "status_code": status_code},
            user_message="A temporary service issue occurred. Please try again later."
        )


class ProviderException(ExternalServiceException):
    """Raised when a content-analysis or embedding provider call fails."""

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None):
        super().__init__(
            service=f"ai_{provider}",
            message=f"AI provider error ({provider}): {message}",
            status_code=status_code,
            severity=ErrorSeverity.HIGH
        )


class MediaSourceException(PortfolioAIException):
    """Raised when no usable source reference can be derived for a media item."""

    def __init__(self, kind: str, media_id: int, reason: str):
        super().__init__(
            message=f"No usable source for {kind} {media_id}: {reason}",
            error_code="MEDIA_SOURCE_ERROR",
            category=ErrorCategory.VALIDATION,
            severity=ErrorSeverity.LOW,
            details={"kind": kind, "media_id": media_id}
        )


class ResourceNotFoundException(PortfolioAIException):
    """Raised when a requested resource is not found."""

    def __init__(self, resource_type: str, resource_id: Any):
        super().__init__(
            message=f"{resource_type} with id '{resource_id}' not found",
            error_code="RESOURCE_NOT_FOUND",
            category=ErrorCategory.BUSINESS_LOGIC,
            severity=ErrorSeverity.LOW,
            details={
                "resource_type": resource_type,
                "resource_id": str(resource_id)
            },
            user_message=f"The requested {resource_type.lower()} was not found."
        )


class RateLimitException(PortfolioAIException):
    """Raised when a rate-limit slot could not be acquired in time."""

    def __init__(self, content_class: str, capacity: int, timeout: Optional[float] = None):
        super().__init__(
            message=f"No {content_class} slot available within {timeout}s (capacity {capacity})",
            error_code="RATE_LIMIT_EXCEEDED",
            category=ErrorCategory.RATE_LIMIT,
            severity=ErrorSeverity.LOW,
            details={
                "content_class": content_class,
                "capacity": capacity,
                "timeout": timeout
            },
            user_message="Analysis capacity is exhausted. Please try again shortly.",
            retry_after=int(timeout) if timeout else None
        )


class ConfigurationException(PortfolioAIException):
    """Raised when configuration is invalid or missing."""

    def __init__(self, config_key: str, message: str):
        super().__init__(
            message=f"Configuration error for '{config_key}': {message}",
            error_code="CONFIGURATION_ERROR",
            category=ErrorCategory.CONFIGURATION,
            severity=ErrorSeverity.CRITICAL,
            details={"config_key": config_key},
            user_message="Service configuration error. Please contact support."
        )
