"""Custom exception classes for the application."""

from typing import Any


class KeywordIntelError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


# Validation Errors
class ValidationError(KeywordIntelError):
    """Data validation failed."""

    pass


# Workflow Errors
class WorkflowNotFoundError(KeywordIntelError):
    """Workflow not found for the organization."""

    def __init__(self, workflow_id: str) -> None:
        super().__init__(f"Workflow not found: {workflow_id}")


# Pipeline Errors
class PipelineError(KeywordIntelError):
    """Base class for pipeline errors."""

    pass


class StepPreconditionError(PipelineError):
    """Step preconditions not met."""

    def __init__(self, step: str, message: str) -> None:
        self.step = step
        super().__init__(f"Step {step} precondition failed: {message}")


class StepExecutionError(PipelineError):
    """A step failed after its retries were exhausted."""

    def __init__(
        self,
        step: str,
        message: str,
        *,
        retry_count: int = 0,
        error_type: str | None = None,
    ) -> None:
        self.step = step
        self.retry_count = retry_count
        self.error_type = error_type
        super().__init__(
            f"Step {step} execution failed: {message}",
            details={"retry_count": retry_count, "error_type": error_type},
        )


class AllCompetitorsFailedError(PipelineError):
    """No competitor produced seed keywords."""

    def __init__(self, failures: int) -> None:
        super().__init__(
            "All competitors failed during seed keyword extraction",
            details={"competitors_failed": failures},
        )


class ClusteringGuardError(PipelineError):
    """Keyword set is outside the range the clusterer accepts."""

    pass


class InvalidWorkflowTransitionError(PipelineError):
    """Requested workflow status transition is not allowed."""

    def __init__(self, current: str, requested: str) -> None:
        self.current = current
        self.requested = requested
        super().__init__(f"Invalid workflow transition: {current} -> {requested}")


# External API Errors
class ExternalAPIError(KeywordIntelError):
    """Error calling external API."""

    def __init__(
        self,
        api_name: str,
        message: str,
        *,
        status_code: int | None = None,
        retry_after_ms: int | None = None,
    ) -> None:
        self.api_name = api_name
        self.status_code = status_code
        self.retry_after_ms = retry_after_ms
        super().__init__(f"{api_name} API error: {message}")


class RateLimitExceededError(ExternalAPIError):
    """Rate limit exceeded for external API."""

    def __init__(self, api_name: str, retry_after_ms: int | None = None) -> None:
        super().__init__(
            api_name,
            "HTTP 429 Rate limit exceeded",
            status_code=429,
            retry_after_ms=retry_after_ms,
        )


class APIKeyMissingError(ExternalAPIError):
    """API credentials not configured."""

    def __init__(self, api_name: str) -> None:
        super().__init__(api_name, "Authentication credentials not configured", status_code=401)


class ProviderResponseError(ExternalAPIError):
    """Provider returned a non-success envelope or task status."""

    pass
