"""Tests for the dbagent error hierarchy."""

import pytest

from dbagent.core.errors import (
    ConfigError,
    DbAgentError,
    ErrorCategory,
    InvalidCronExpressionError,
    PlaybookExecutionError,
    ScheduleConfigError,
    ScheduleNotFoundError,
    ScheduleRunNotFoundError,
    StoreError,
    as_execution_error,
    categorize_error,
)


class TestDbAgentError:
    def test_defaults(self):
        error = DbAgentError("something broke")

        assert error.message == "something broke"
        assert error.category == ErrorCategory.INTERNAL
        assert error.retryable is False
        assert error.context == {}
        assert error.cause is None

    def test_cause_is_chained(self):
        cause = OSError("disk")
        error = DbAgentError("wrapped", cause=cause)

        assert error.__cause__ is cause
        assert error.to_dict()["cause"] == "disk"

    def test_with_context(self):
        error = DbAgentError("x").with_context(schedule_id="s-1", attempt=2)

        assert error.context == {"schedule_id": "s-1", "attempt": 2}

    def test_to_dict(self):
        error = StoreError("connection refused", context={"operation": "list schedules"})

        assert error.to_dict() == {
            "error_type": "StoreError",
            "message": "connection refused",
            "category": "DATABASE",
            "retryable": True,
            "context": {"operation": "list schedules"},
        }

    def test_explicit_overrides(self):
        error = StoreError("permanent", retryable=False, category=ErrorCategory.VALIDATION)

        assert error.retryable is False
        assert error.category == ErrorCategory.VALIDATION

    def test_repr(self):
        assert repr(ConfigError("bad")) == "ConfigError('bad', category=CONFIG)"


class TestScheduleErrors:
    def test_invalid_cron_is_schedule_config_error(self):
        error = InvalidCronExpressionError("* *", schedule_id="s-1")

        assert isinstance(error, ScheduleConfigError)
        assert isinstance(error, ConfigError)
        assert error.category == ErrorCategory.CONFIG
        assert error.retryable is False
        assert error.context == {"cron_expression": "* *", "schedule_id": "s-1"}

    def test_schedule_config_error_without_id(self):
        error = ScheduleConfigError("missing interval")
        assert "schedule_id" not in error.context

    def test_not_found(self):
        error = ScheduleNotFoundError("s-9")

        assert error.category == ErrorCategory.NOT_FOUND
        assert error.schedule_id == "s-9"
        assert "s-9" in error.message

    def test_run_not_found(self):
        error = ScheduleRunNotFoundError("r-1")

        assert error.category == ErrorCategory.NOT_FOUND
        assert error.context == {"run_id": "r-1"}

    def test_playbook_execution_error(self):
        error = PlaybookExecutionError("tableBloat", "model timed out")

        assert error.category == ErrorCategory.EXECUTION
        assert error.context["playbook"] == "tableBloat"


@pytest.mark.parametrize(
    ("error", "category"),
    [
        (StoreError("x"), ErrorCategory.DATABASE),
        (InvalidCronExpressionError("x"), ErrorCategory.CONFIG),
        (ScheduleNotFoundError("x"), ErrorCategory.NOT_FOUND),
        (ValueError("x"), ErrorCategory.INTERNAL),
    ],
)
def test_categorize_error(error, category):
    assert categorize_error(error) == category


class TestAsExecutionError:
    def test_wraps_foreign_exception(self):
        cause = RuntimeError("model timed out")

        error = as_execution_error("tableBloat", cause)

        assert isinstance(error, PlaybookExecutionError)
        assert error.message == "model timed out"
        assert error.category == ErrorCategory.EXECUTION
        assert error.cause is cause
        assert error.__cause__ is cause
        assert error.context == {"source_category": "INTERNAL", "playbook": "tableBloat"}

    def test_keeps_source_category(self):
        error = as_execution_error("indexUsage", StoreError("target database unreachable"))

        assert error.context["source_category"] == "DATABASE"

    def test_empty_message_uses_type_name(self):
        assert as_execution_error("tableBloat", TimeoutError()).message == "TimeoutError"

    def test_execution_error_passes_through(self):
        original = PlaybookExecutionError("tableBloat", "bad plan")

        assert as_execution_error("tableBloat", original) is original
