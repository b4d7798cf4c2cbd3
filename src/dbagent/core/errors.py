"""
Structured error types for the dbagent scheduler.

Every error raised on purpose by dbagent extends :class:`DbAgentError`, which
carries a category, a retryable flag, free-form context and an optional
chained cause.  The scheduler uses the category to decide what a failure
means for a tick:

    ┌─────────────────────────────────────────────────────────────────┐
    │                        DbAgentError                              │
    │              (category, retryable, context, cause)               │
    ├─────────────────────────────────────────────────────────────────┤
    │  ConfigError            StoreError          PlaybookExecutionError│
    │  (CONFIG, never retry)  (DATABASE, retry)   (EXECUTION)           │
    │       │                                                          │
    │  ScheduleConfigError    ScheduleNotFoundError                    │
    │       │                 (NOT_FOUND)                              │
    │  InvalidCronExpressionError                                      │
    └─────────────────────────────────────────────────────────────────┘

- A configuration error makes one schedule inert until an operator fixes it.
- A store error aborts the current tick; the loop keeps running.
- An execution error is recorded on the schedule's ``failures`` counter.

Examples:
    >>> error = StoreError("connection refused")
    >>> error.retryable
    True
    >>> error.to_dict()["category"]
    'DATABASE'

    >>> error = InvalidCronExpressionError("not-a-cron", schedule_id="s-1")
    >>> error.context["schedule_id"]
    's-1'
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories used for routing and retry decisions."""

    CONFIG = "CONFIG"
    DATABASE = "DATABASE"
    EXECUTION = "EXECUTION"
    NOT_FOUND = "NOT_FOUND"
    VALIDATION = "VALIDATION"
    INTERNAL = "INTERNAL"


class DbAgentError(Exception):
    """
    Base exception for all dbagent errors.

    Subclasses set ``default_category`` and ``default_retryable`` so callers
    rarely need to pass them explicitly.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context: dict[str, Any] = dict(context or {})
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> DbAgentError:
        """Add context to this error (fluent API)."""
        self.context.update(kwargs)
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.context:
            result["context"] = dict(self.context)
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(DbAgentError):
    """
    Configuration error.

    Never retryable - configuration must be fixed.
    """

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class ScheduleConfigError(ConfigError):
    """A schedule's cadence cannot produce a next run."""

    def __init__(self, message: str, *, schedule_id: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.schedule_id = schedule_id
        if schedule_id is not None:
            self.context.setdefault("schedule_id", schedule_id)


class InvalidCronExpressionError(ScheduleConfigError):
    """Cron expression could not be parsed."""

    def __init__(
        self,
        expression: str,
        *,
        schedule_id: str | None = None,
        cause: Exception | None = None,
    ):
        self.expression = expression
        super().__init__(
            f"Invalid cron expression: {expression!r}",
            schedule_id=schedule_id,
            context={"cron_expression": expression},
            cause=cause,
        )


# =============================================================================
# STORE ERRORS
# =============================================================================


class StoreError(DbAgentError):
    """The schedule store could not be read or written.

    Retryable: the scheduler simply tries again on the next tick.
    """

    default_category = ErrorCategory.DATABASE
    default_retryable = True


class ScheduleNotFoundError(DbAgentError):
    """No schedule with the requested id."""

    default_category = ErrorCategory.NOT_FOUND
    default_retryable = False

    def __init__(self, schedule_id: str):
        self.schedule_id = schedule_id
        super().__init__(f"Schedule not found: {schedule_id}", context={"schedule_id": schedule_id})


class ScheduleRunNotFoundError(DbAgentError):
    """No schedule run with the requested id."""

    default_category = ErrorCategory.NOT_FOUND
    default_retryable = False

    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(f"Schedule run not found: {run_id}", context={"run_id": run_id})


# =============================================================================
# EXECUTION ERRORS
# =============================================================================


class PlaybookExecutionError(DbAgentError):
    """A playbook run failed."""

    default_category = ErrorCategory.EXECUTION
    default_retryable = False

    def __init__(self, playbook: str, message: str, **kwargs: Any):
        self.playbook = playbook
        super().__init__(message, **kwargs)
        self.context.setdefault("playbook", playbook)


def categorize_error(error: Exception) -> ErrorCategory:
    """Return the category of *error*, ``INTERNAL`` for foreign exceptions."""
    if isinstance(error, DbAgentError):
        return error.category
    return ErrorCategory.INTERNAL


def as_execution_error(playbook: str, error: Exception) -> PlaybookExecutionError:
    """Wrap whatever a playbook executor raised as a :class:`PlaybookExecutionError`.

    The category of the original exception is kept in ``context['source_category']``.
    """
    if isinstance(error, PlaybookExecutionError):
        return error
    return PlaybookExecutionError(
        playbook,
        str(error) or type(error).__name__,
        context={"source_category": categorize_error(error).value},
        cause=error,
    )
