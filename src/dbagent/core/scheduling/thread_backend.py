"""Thread backend: the default beat for dbagent worker processes.

One daemon thread owns the beat.  It ticks as soon as it starts, then
sleeps ``interval_seconds`` on an :class:`threading.Event` after each tick
returns, so ticks are strictly serial::

    start() ──► [tick] ── wait(interval) ── [tick] ── wait ── ...
                                   ▲
    stop()  ──── event.set() ──────┘   (an in-flight tick is never cut short)

Every ``start()`` gets its own stop event, so a loop left behind by a
timed-out ``stop()`` exits after its tick even if the backend is restarted.

Each tick gets a fresh event loop via :func:`asyncio.run`.  A tick that
raises is logged and counted; the beat carries on.
"""

from __future__ import annotations

import asyncio
import threading
from datetime import datetime
from typing import Any

from dbagent.core.logging import get_logger
from dbagent.core.timestamps import utc_now

from .protocol import BackendHealth, TickCallback

logger = get_logger(__name__)


class ThreadSchedulerBackend:
    """Drive the scheduler tick from a background daemon thread.

    Example:
        >>> backend = ThreadSchedulerBackend(shutdown_timeout=10.0)
        >>> backend.start(service.tick, interval_seconds=60.0)
        >>> backend.stop()
    """

    name = "thread"

    def __init__(self, shutdown_timeout: float = 30.0) -> None:
        self._shutdown_timeout = shutdown_timeout
        self._state_lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._stop_signal: threading.Event | None = None
        self._interval = 60.0

        self._tick_count = 0
        self._failed_ticks = 0
        self._last_tick: datetime | None = None
        self._last_error: str | None = None

    def start(self, tick_callback: TickCallback, interval_seconds: float = 60.0) -> None:
        """Spawn the beat thread.  A second call while running is ignored.

        If an earlier ``stop()`` timed out and its tick is still in flight,
        this blocks until that tick returns, so two beats never overlap.
        """
        if self.is_running:
            logger.warning("scheduler.backend_already_started", backend=self.name)
            return

        previous = self._thread
        if previous is not None and previous.is_alive():
            logger.warning("scheduler.backend_waiting_for_previous_loop", backend=self.name)
            previous.join()

        self._interval = interval_seconds
        self._stop_signal = threading.Event()
        self._thread = threading.Thread(
            target=self._run,
            args=(tick_callback, interval_seconds, self._stop_signal),
            name="dbagent-scheduler",
            daemon=True,
        )
        self._thread.start()

    def _run(self, tick_callback: TickCallback, interval_seconds: float, stop_signal: threading.Event) -> None:
        logger.info("scheduler.backend_started", backend=self.name, interval_seconds=interval_seconds)
        while not stop_signal.is_set():
            self._beat(tick_callback)
            stop_signal.wait(interval_seconds)
        logger.info("scheduler.backend_stopped", backend=self.name, ticks=self._tick_count)

    def _beat(self, tick_callback: TickCallback) -> None:
        with self._state_lock:
            self._tick_count += 1
            self._last_tick = utc_now()
        try:
            asyncio.run(tick_callback())
        except Exception as exc:
            with self._state_lock:
                self._failed_ticks += 1
                self._last_error = str(exc) or type(exc).__name__
            logger.exception("scheduler.tick_crashed", backend=self.name)

    def stop(self) -> None:
        """Stop the beat, waiting up to ``shutdown_timeout`` for a running tick."""
        thread, stop_signal = self._thread, self._stop_signal
        if thread is None or stop_signal is None:
            return

        stop_signal.set()
        thread.join(timeout=self._shutdown_timeout)
        if thread.is_alive():
            logger.warning(
                "scheduler.backend_stop_timeout",
                backend=self.name,
                timeout_seconds=self._shutdown_timeout,
            )

    def health(self) -> dict[str, Any]:
        return self.get_health().to_dict()

    def get_health(self) -> BackendHealth:
        with self._state_lock:
            return BackendHealth(
                healthy=self.is_running,
                backend=self.name,
                tick_count=self._tick_count,
                last_tick=self._last_tick,
                extra={
                    "interval_seconds": self._interval,
                    "failed_ticks": self._failed_ticks,
                    "last_error": self._last_error,
                },
            )

    @property
    def is_running(self) -> bool:
        return (
            self._thread is not None
            and self._thread.is_alive()
            and self._stop_signal is not None
            and not self._stop_signal.is_set()
        )

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def last_tick(self) -> datetime | None:
        return self._last_tick
