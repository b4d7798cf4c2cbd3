"""
Health router.

GET /health
"""

from __future__ import annotations

from typing import Any, Literal

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from dbagent import __version__
from dbagent.api.deps import Scheduler
from dbagent.core.timestamps import utc_now

router = APIRouter()


class HealthResponse(BaseModel):
    """Health response envelope.

    ``status`` is ``unhealthy`` when the schedule store cannot be read and
    ``degraded`` when this process runs no scheduler loop of its own.
    """

    status: Literal["healthy", "degraded", "unhealthy"] = "healthy"
    service: str = "dbagent-scheduler"
    version: str = __version__
    timestamp: str = Field(default_factory=lambda: utc_now().isoformat())
    scheduler: dict[str, Any] = Field(default_factory=dict)


@router.get("/health", response_model=HealthResponse)
def health(scheduler: Scheduler):
    """Report scheduler and store health."""
    report = scheduler.health()

    if report.schedules_enabled is None:
        status = "unhealthy"
    elif report.healthy:
        status = "healthy"
    else:
        status = "degraded"

    body = HealthResponse(status=status, scheduler=report.to_dict())
    return JSONResponse(
        status_code=503 if status == "unhealthy" else 200,
        content=body.model_dump(),
    )
