"""
Run router: schedule run history entries.

GET /runs/{run_id}
"""

from __future__ import annotations

from fastapi import APIRouter, Path

from dbagent.api.deps import Repository
from dbagent.api.schemas import ScheduleRunSchema, SuccessResponse
from dbagent.core.errors import ScheduleRunNotFoundError

router = APIRouter(prefix="/runs")


@router.get("/{run_id}", response_model=SuccessResponse[ScheduleRunSchema])
def get_run(repo: Repository, run_id: str = Path(..., description="Schedule run ID")):
    """Get one playbook run, including its full result text."""
    run = repo.get_run(run_id)
    if run is None:
        raise ScheduleRunNotFoundError(run_id)
    return SuccessResponse(data=ScheduleRunSchema.model_validate(run))
