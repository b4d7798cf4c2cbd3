"""APScheduler backend.

Runs the tick as an APScheduler 3.x ``BackgroundScheduler`` interval job,
for deployments that already operate APScheduler.  Requires the
``[apscheduler]`` extra::

    pip install dbagent-scheduler[apscheduler]

The job fires once on start, then every interval.  It is registered with
``max_instances=1`` and ``coalesce=True``; a fire time that comes due while
a tick is still running is dropped and counted as ``skipped_fires``.
"""

from __future__ import annotations

import asyncio
import threading
from datetime import datetime
from typing import Any

from dbagent.core.errors import ConfigError
from dbagent.core.logging import get_logger
from dbagent.core.timestamps import utc_now

from .protocol import BackendHealth, TickCallback

logger = get_logger(__name__)

TICK_JOB_ID = "dbagent_scheduler_tick"


def _import_apscheduler() -> tuple[Any, int]:
    try:
        from apscheduler.events import EVENT_JOB_MAX_INSTANCES
        from apscheduler.schedulers.background import BackgroundScheduler
    except ImportError as exc:
        raise ConfigError(
            "The apscheduler backend needs APScheduler. "
            "Install it with: pip install dbagent-scheduler[apscheduler]",
            context={"backend": "apscheduler"},
            cause=exc,
        ) from exc
    return BackgroundScheduler, EVENT_JOB_MAX_INSTANCES


class APSchedulerBackend:
    """Drive the scheduler tick from an APScheduler interval job.

    Example::

        >>> backend = APSchedulerBackend()
        >>> backend.start(service.tick, interval_seconds=60.0)
        >>> backend.stop()
    """

    name: str = "apscheduler"

    def __init__(self) -> None:
        scheduler_cls, max_instances_event = _import_apscheduler()
        self._scheduler = scheduler_cls(timezone="UTC")
        self._scheduler.add_listener(self._on_fire_skipped, max_instances_event)
        self._lock = threading.Lock()
        self._interval = 60.0
        self._tick_count = 0
        self._failed_ticks = 0
        self._skipped_fires = 0
        self._last_tick: datetime | None = None

    def start(self, tick_callback: TickCallback, interval_seconds: float = 60.0) -> None:
        """Register the tick job and start APScheduler's worker thread."""
        if self._scheduler.running:
            logger.warning("scheduler.backend_already_started", backend=self.name)
            return

        self._interval = interval_seconds
        self._scheduler.add_job(
            self._run_tick,
            "interval",
            args=(tick_callback,),
            seconds=interval_seconds,
            id=TICK_JOB_ID,
            next_run_time=utc_now(),
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info("scheduler.backend_started", backend=self.name, interval_seconds=interval_seconds)

    def _run_tick(self, tick_callback: TickCallback) -> None:
        with self._lock:
            self._tick_count += 1
            self._last_tick = utc_now()
        try:
            asyncio.run(tick_callback())
        except Exception:
            with self._lock:
                self._failed_ticks += 1
            logger.exception("scheduler.tick_crashed", backend=self.name)

    def _on_fire_skipped(self, event: Any) -> None:
        with self._lock:
            self._skipped_fires += 1
        logger.warning("scheduler.fire_skipped", backend=self.name, reason="tick still running")

    def stop(self) -> None:
        """Shut APScheduler down, waiting for a running tick to finish."""
        if not self._scheduler.running:
            return
        self._scheduler.shutdown(wait=True)
        logger.info("scheduler.backend_stopped", backend=self.name, ticks=self._tick_count)

    def health(self) -> dict[str, Any]:
        running = self.is_running
        with self._lock:
            return BackendHealth(
                healthy=running,
                backend=self.name,
                tick_count=self._tick_count,
                last_tick=self._last_tick,
                extra={
                    "interval_seconds": self._interval,
                    "failed_ticks": self._failed_ticks,
                    "skipped_fires": self._skipped_fires,
                    "scheduled_jobs": len(self._scheduler.get_jobs()) if running else 0,
                },
            ).to_dict()

    @property
    def is_running(self) -> bool:
        return bool(self._scheduler.running)
