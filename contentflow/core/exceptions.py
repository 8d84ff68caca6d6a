"""
Exception hierarchy for the content pipeline.

- SubmissionValidationError: malformed submission, rejected before the stream
- TransientIOError: a store or the log is temporarily unreachable (retried)
- AnalysisError: scoring failed; the analyzer degrades instead of raising
- FatalStartupError: index/series creation failed for a reason other than
  "already exists"; the worker keeps running in a degraded mode
- InvalidStatusTransition: attempt to move a terminal content item
"""

from typing import Any, Optional


class ContentFlowError(Exception):
    """Base class for all contentflow errors."""
    pass


class SubmissionValidationError(ContentFlowError):
    """Raised when a submission fails validation. Never retried."""

    def __init__(self, message: str, details: Optional[list[dict[str, Any]]] = None):
        super().__init__(message)
        self.details = details or []


class TransientIOError(ContentFlowError):
    """Raised when a Redis-backed collaborator is temporarily unreachable."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        message = f"Transient I/O failure during {operation}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.operation = operation
        self.cause = cause


class AnalysisError(ContentFlowError):
    """Raised internally when content scoring fails."""
    pass


class FatalStartupError(ContentFlowError):
    """Raised when a startup structure (index, series, group) cannot be created."""

    def __init__(self, resource: str, cause: Optional[BaseException] = None):
        message = f"Failed to initialize {resource}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.resource = resource
        self.cause = cause


class InvalidStatusTransition(ContentFlowError):
    """Raised when a terminal content item would change status again."""

    def __init__(self, content_id: str, current: str, requested: str):
        super().__init__(
            f"Content {content_id} is already {current}; cannot move to {requested}"
        )
        self.content_id = content_id
        self.current = current
        self.requested = requested
