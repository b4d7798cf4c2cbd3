"""
API schemas: response envelopes, RFC 7807 errors, and schedule payloads.

Every endpoint returns either :class:`SuccessResponse` or
:class:`ProblemDetail` (4xx/5xx).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from dbagent.core.models.schedule import ScheduleType

T = TypeVar("T")


# ── RFC 7807 Problem Detail ─────────────────────────────────────────────


class ProblemDetail(BaseModel):
    """RFC 7807 «Problem Details for HTTP APIs».

    Example:
        {
            "type": "about:blank",
            "title": "Schedule not found: abc-123",
            "status": 404,
            "detail": "",
            "instance": "/api/schedules/abc-123"
        }
    """

    type: str = Field(default="about:blank", description="Error type URI (usually 'about:blank')")
    title: str = Field(description="Short human-readable error summary")
    status: int = Field(description="HTTP status code (e.g., 400, 404, 500)")
    detail: str = Field(default="", description="Human-readable explanation of the error")
    instance: str = Field(default="", description="URI of the failing request")
    context: dict[str, Any] = Field(default_factory=dict, description="Structured error context")


# ── Success Envelopes ────────────────────────────────────────────────────


class SuccessResponse(BaseModel, Generic[T]):
    """Standard success envelope for single-item responses."""

    data: T = Field(description="Response payload (type varies by endpoint)")
    elapsed_ms: float = Field(default=0.0, description="Server-side processing time in milliseconds")


class ListResponse(BaseModel, Generic[T]):
    """Success envelope for list responses."""

    data: list[T] = Field(description="Items")
    total: int = Field(description="Number of items returned")
    elapsed_ms: float = Field(default=0.0, description="Server-side processing time in milliseconds")


# ── Schedules ────────────────────────────────────────────────────────────


class ScheduleSchema(BaseModel):
    """A schedule as shown in the monitoring views."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    project_id: str
    connection_id: str
    user_id: str
    playbook: str
    schedule_type: str
    cron_expression: str | None = None
    min_interval_seconds: int | None = None
    max_interval_seconds: int | None = None
    additional_instructions: str | None = None
    model: str
    enabled: bool
    status: str
    last_run: datetime | None = None
    next_run: datetime | None = None
    failures: int = 0
    keep_history: int = 300
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ScheduleRunSchema(BaseModel):
    """One entry of a schedule's run history."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    schedule_id: str
    status: str
    result: str | None = None
    summary: str | None = None
    notification_level: str | None = None
    error: str | None = None
    created_at: datetime | None = None


class CreateScheduleBody(BaseModel):
    project_id: str = Field(min_length=1)
    connection_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    playbook: str = Field(min_length=1)
    schedule_type: ScheduleType = ScheduleType.CRON
    cron_expression: str | None = None
    min_interval_seconds: int | None = Field(default=None, gt=0)
    max_interval_seconds: int | None = Field(default=None, gt=0)
    additional_instructions: str | None = None
    model: str = "openai-gpt-4o"
    enabled: bool = True
    keep_history: int | None = Field(default=None, ge=1)


class UpdateScheduleBody(BaseModel):
    playbook: str | None = None
    schedule_type: ScheduleType | None = None
    cron_expression: str | None = None
    min_interval_seconds: int | None = Field(default=None, gt=0)
    max_interval_seconds: int | None = Field(default=None, gt=0)
    additional_instructions: str | None = None
    model: str | None = None
    keep_history: int | None = Field(default=None, ge=1)


# ── Scheduler ────────────────────────────────────────────────────────────


class TickSchema(BaseModel):
    """Summary of one scheduler tick."""

    started_at: datetime
    initialized: int
    eligible: int
    selected: int
    deferred: int
    completed: int
    failed: int
    skipped: int
    errors: int
    error: str | None = None


class TriggerSchema(BaseModel):
    schedule_id: str
    disposition: str
