"""
FastAPI application factory.

``create_app()`` wires settings, error handlers, routers and the lifespan
that opens the schedule store into a single ``FastAPI`` instance.

The lifespan builds one :class:`SchedulerService` per app.  By default the
API only serves the tick endpoint and the schedule views (a cron job or a
separate ``dbagent scheduler run`` process drives the ticks); with
``DBAGENT_API_RUN_SCHEDULER=true`` it also runs the loop in-process.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from dbagent import __version__
from dbagent.api.deps import get_settings
from dbagent.api.errors import dbagent_error_handler, unhandled_exception_handler
from dbagent.core.errors import DbAgentError
from dbagent.core.logging import get_logger
from dbagent.core.scheduling import PlaybookExecutor, create_scheduler
from dbagent.core.settings import DbAgentSettings


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: open the store, build the scheduler."""
    from dbagent.core.connection import create_connection

    log = get_logger("dbagent.api")
    settings: DbAgentSettings = app.state.settings

    conn, info = create_connection(
        settings.database_url,
        init_schema=True,
        data_dir=settings.data_dir,
    )
    log.info("api.database_ready", backend=info.backend, persistent=info.persistent)

    scheduler = create_scheduler(conn, executor=app.state.executor, settings=settings)
    app.state.scheduler = scheduler

    if settings.api_run_scheduler:
        scheduler.start()

    log.info("api.started", version=app.version, run_scheduler=settings.api_run_scheduler)
    try:
        yield
    finally:
        scheduler.stop()
        if hasattr(conn, "close"):
            conn.close()
        log.info("api.stopped")


def create_app(
    settings: DbAgentSettings | None = None,
    *,
    executor: PlaybookExecutor | None = None,
) -> FastAPI:
    """Build and return a fully-configured FastAPI application.

    Parameters
    ----------
    settings : DbAgentSettings | None
        Override settings (useful for testing).  When ``None`` the cached
        singleton from :func:`get_settings` is used.
    executor : PlaybookExecutor | None
        Executor for ticks and triggers.  When ``None`` the configured
        ``playbook_executor`` import path is loaded.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.api_title,
        version=__version__,
        lifespan=lifespan,
        docs_url=f"{settings.api_prefix}/docs",
        openapi_url=f"{settings.api_prefix}/openapi.json",
    )

    app.state.settings = settings
    app.state.executor = executor

    # Override DI so endpoints use the provided settings
    app.dependency_overrides[get_settings] = lambda: settings

    # ── Exception handlers ───────────────────────────────────────────
    app.add_exception_handler(DbAgentError, dbagent_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # ── Routers ──────────────────────────────────────────────────────
    from dbagent.api.routers import health, runs, scheduler, schedules

    prefix = settings.api_prefix

    # Health endpoint at root level (no prefix) for container healthchecks
    app.include_router(health.router, tags=["health"])

    app.include_router(scheduler.router, prefix=prefix, tags=["scheduler"])
    app.include_router(schedules.router, prefix=prefix, tags=["schedules"])
    app.include_router(runs.router, prefix=prefix, tags=["runs"])

    return app
