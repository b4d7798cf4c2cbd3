"""
Scheduler router: tick endpoint and scheduler statistics.

POST /priv/schedule-tick
GET  /scheduler/stats
"""

from __future__ import annotations

import time
from typing import Any

from fastapi import APIRouter

from dbagent.api.deps import Scheduler
from dbagent.api.schemas import SuccessResponse, TickSchema

router = APIRouter()


@router.post("/priv/schedule-tick", response_model=SuccessResponse[TickSchema])
async def schedule_tick(scheduler: Scheduler):
    """Run one scheduler pass now.

    Lets an external cron (or a platform scheduler) drive the loop instead
    of a long-running worker.  The request returns once every playbook
    selected by this tick has finished and been reconciled.
    """
    started = time.perf_counter()
    result = await scheduler.tick()
    return SuccessResponse(
        data=TickSchema(**result.to_dict()),
        elapsed_ms=round((time.perf_counter() - started) * 1000, 2),
    )


@router.get("/scheduler/stats", response_model=SuccessResponse[dict[str, Any]])
def scheduler_stats(scheduler: Scheduler):
    """Counters accumulated by this process's scheduler service."""
    return SuccessResponse(data=scheduler.get_stats().to_dict())
