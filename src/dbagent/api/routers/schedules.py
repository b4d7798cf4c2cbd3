"""
Schedule router: playbook schedules and their run history.

GET    /schedules
GET    /schedules/{schedule_id}
POST   /schedules
PUT    /schedules/{schedule_id}
DELETE /schedules/{schedule_id}
POST   /schedules/{schedule_id}/enable
POST   /schedules/{schedule_id}/disable
POST   /schedules/{schedule_id}/trigger
GET    /schedules/{schedule_id}/runs
"""

from __future__ import annotations

from fastapi import APIRouter, Path, Query

from dbagent.api.deps import Repository, Scheduler, Settings
from dbagent.api.schemas import (
    CreateScheduleBody,
    ListResponse,
    ScheduleRunSchema,
    ScheduleSchema,
    SuccessResponse,
    TriggerSchema,
    UpdateScheduleBody,
)
from dbagent.core.errors import ScheduleNotFoundError
from dbagent.core.scheduling import ScheduleCreate, ScheduleUpdate

router = APIRouter(prefix="/schedules")


@router.get("", response_model=ListResponse[ScheduleSchema])
def list_schedules(
    repo: Repository,
    project_id: str | None = Query(None, description="Only schedules of this project"),
):
    """List playbook schedules.

    Example:
        GET /api/schedules?project_id=p-1

        Response:
        {
            "data": [
                {
                    "id": "4f0c...",
                    "playbook": "tableBloat",
                    "schedule_type": "cron",
                    "cron_expression": "0 * * * *",
                    "enabled": true,
                    "status": "scheduled",
                    "next_run": "2024-01-01T01:00:00Z"
                }
            ],
            "total": 1
        }
    """
    schedules = repo.list_by_project(project_id) if project_id else repo.list_all()
    items = [ScheduleSchema.model_validate(s) for s in schedules]
    return ListResponse(data=items, total=len(items))


@router.get("/{schedule_id}", response_model=SuccessResponse[ScheduleSchema])
def get_schedule(repo: Repository, schedule_id: str = Path(..., description="Schedule ID")):
    """Get one schedule.

    Raises:
        404 NOT_FOUND: Schedule with specified ID does not exist.
    """
    schedule = repo.get(schedule_id)
    if schedule is None:
        raise ScheduleNotFoundError(schedule_id)
    return SuccessResponse(data=ScheduleSchema.model_validate(schedule))


@router.post("", response_model=SuccessResponse[ScheduleSchema], status_code=201)
def create_schedule(repo: Repository, settings: Settings, body: CreateScheduleBody):
    """Create a new schedule.

    An enabled schedule gets its first ``next_run`` right away.

    Raises:
        400 CONFIG: Invalid cron expression or missing interval.
    """
    schedule = repo.create(
        ScheduleCreate(
            project_id=body.project_id,
            connection_id=body.connection_id,
            user_id=body.user_id,
            playbook=body.playbook,
            schedule_type=body.schedule_type.value,
            cron_expression=body.cron_expression,
            min_interval_seconds=body.min_interval_seconds,
            max_interval_seconds=body.max_interval_seconds,
            additional_instructions=body.additional_instructions,
            model=body.model,
            enabled=body.enabled,
            keep_history=body.keep_history or settings.default_keep_history,
        )
    )
    return SuccessResponse(data=ScheduleSchema.model_validate(schedule))


@router.put("/{schedule_id}", response_model=SuccessResponse[ScheduleSchema])
def update_schedule(
    repo: Repository,
    body: UpdateScheduleBody,
    schedule_id: str = Path(..., description="Schedule ID"),
):
    """Update a schedule.  Only provided fields are changed.

    Raises:
        404 NOT_FOUND: Schedule with specified ID does not exist.
        400 CONFIG: The resulting cadence is invalid.
    """
    schedule = repo.update(
        schedule_id,
        ScheduleUpdate(
            playbook=body.playbook,
            schedule_type=body.schedule_type.value if body.schedule_type else None,
            cron_expression=body.cron_expression,
            min_interval_seconds=body.min_interval_seconds,
            max_interval_seconds=body.max_interval_seconds,
            additional_instructions=body.additional_instructions,
            model=body.model,
            keep_history=body.keep_history,
        ),
    )
    if schedule is None:
        raise ScheduleNotFoundError(schedule_id)
    return SuccessResponse(data=ScheduleSchema.model_validate(schedule))


@router.delete("/{schedule_id}", response_model=SuccessResponse[dict[str, str]])
def delete_schedule(repo: Repository, schedule_id: str = Path(..., description="Schedule ID")):
    """Delete a schedule and its run history."""
    if not repo.delete(schedule_id):
        raise ScheduleNotFoundError(schedule_id)
    return SuccessResponse(data={"id": schedule_id, "status": "deleted"})


@router.post("/{schedule_id}/enable", response_model=SuccessResponse[ScheduleSchema])
def enable_schedule(scheduler: Scheduler, schedule_id: str = Path(..., description="Schedule ID")):
    """Enable a schedule; its ``next_run`` is computed from now."""
    return SuccessResponse(data=ScheduleSchema.model_validate(scheduler.resume(schedule_id)))


@router.post("/{schedule_id}/disable", response_model=SuccessResponse[ScheduleSchema])
def disable_schedule(scheduler: Scheduler, schedule_id: str = Path(..., description="Schedule ID")):
    """Disable a schedule; it is never eligible while disabled."""
    return SuccessResponse(data=ScheduleSchema.model_validate(scheduler.pause(schedule_id)))


@router.post("/{schedule_id}/trigger", response_model=SuccessResponse[TriggerSchema])
async def trigger_schedule(scheduler: Scheduler, schedule_id: str = Path(..., description="Schedule ID")):
    """Run a schedule now.

    Returns ``skipped`` when another worker currently holds the schedule.
    """
    disposition = await scheduler.trigger(schedule_id)
    return SuccessResponse(data=TriggerSchema(schedule_id=schedule_id, disposition=disposition.value))


@router.get("/{schedule_id}/runs", response_model=ListResponse[ScheduleRunSchema])
def list_schedule_runs(
    repo: Repository,
    schedule_id: str = Path(..., description="Schedule ID"),
    limit: int = Query(50, ge=1, le=1000, description="Max runs to return"),
):
    """List a schedule's runs, newest first."""
    if repo.get(schedule_id) is None:
        raise ScheduleNotFoundError(schedule_id)
    runs = [ScheduleRunSchema.model_validate(r) for r in repo.list_runs(schedule_id, limit=limit)]
    return ListResponse(data=runs, total=len(runs))
