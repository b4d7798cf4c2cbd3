"""
FastAPI dependency injection: settings, the schedule store and the
scheduler service.

The connection and the :class:`SchedulerService` are created once in the
application lifespan and kept on ``app.state``; routers reach them through
the aliases below::

    from dbagent.api.deps import Repository, Scheduler

    @router.get("/things")
    def list_things(repo: Repository):
        ...
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from dbagent.core.scheduling import ScheduleRepository, SchedulerService
from dbagent.core.settings import DbAgentSettings
from dbagent.core.settings import get_settings as _load_settings

# ── Settings (singleton) ─────────────────────────────────────────────────


def get_settings() -> DbAgentSettings:
    """Cached settings (``create_app`` overrides this for its own settings)."""
    return _load_settings()


# ── Scheduler (per-app) ──────────────────────────────────────────────────


def get_scheduler(request: Request) -> SchedulerService:
    """The scheduler service created in the application lifespan."""
    return request.app.state.scheduler


def get_repository(request: Request) -> ScheduleRepository:
    """The schedule store shared by every request of this app."""
    return request.app.state.scheduler.repository


# ── Convenience type aliases ─────────────────────────────────────────────

Settings = Annotated[DbAgentSettings, Depends(get_settings)]
Scheduler = Annotated[SchedulerService, Depends(get_scheduler)]
Repository = Annotated[ScheduleRepository, Depends(get_repository)]
