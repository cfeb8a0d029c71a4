"""Errors raised by the automation core."""

from collections.abc import Sequence


class AutomationError(Exception):
    """Base class for all errors raised by the automation core."""


class GenerationError(AutomationError):
    """Raised when the generator fails to produce a scenario."""


class PersistenceError(AutomationError):
    """Raised when the repository fails to read or write."""


class NotFoundError(AutomationError):
    """Raised when a scenario or result id is unknown."""


class NoExecutorError(AutomationError):
    """Raised when no registered executor supports a scenario's test type."""


class ExecutionError(AutomationError):
    """Raised when an executor faults instead of reporting a failed result."""


class ExecutorNotFoundError(AutomationError):
    """Raised when an executor plugin is not found."""


class ValidationError(AutomationError):
    """Raised when a scenario fails structural validation."""

    def __init__(self, message: str, errors: Sequence[str]) -> None:
        """Keep the individual validation errors for callers."""
        super().__init__(f"{message}: {'; '.join(errors)}")
        self.errors = list(errors)
