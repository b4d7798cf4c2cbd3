"""Playbook executors.

The scheduler never runs a playbook itself: it hands the schedule's
playbook, connection and model to a :class:`PlaybookExecutor`.  Which
executor a worker uses is configured by import path::

    DBAGENT_PLAYBOOK_EXECUTOR=myagent.playbooks:ModelPlaybookExecutor

:class:`LoggingPlaybookExecutor` is the default.  It performs no work and
reports success, which is enough to exercise claiming, reconciliation and
run history in development.
"""

from __future__ import annotations

import asyncio
import importlib
from collections import deque
from typing import Any

from dbagent.core.errors import ConfigError
from dbagent.core.logging import get_logger
from dbagent.core.models.schedule import NotificationLevel

from .protocol import PlaybookExecutor, PlaybookOutcome

logger = get_logger(__name__)


def resolve_executor_ref(ref: str) -> Any:
    """Import and return the object identified by ``'module:qualname'``.

    Raises:
        ConfigError: The reference is malformed or cannot be imported.
    """
    module_path, _, attr_path = ref.partition(":")
    if not module_path or not attr_path:
        raise ConfigError(f"Invalid executor ref (expected 'module:attr'): {ref!r}")

    try:
        obj: Any = importlib.import_module(module_path)
        for part in attr_path.split("."):
            obj = getattr(obj, part)
    except (ImportError, AttributeError) as exc:
        raise ConfigError(f"Cannot import playbook executor {ref!r}: {exc}", cause=exc) from exc
    return obj


def load_executor(ref: str) -> PlaybookExecutor:
    """Build the configured playbook executor.

    *ref* may name an executor instance, or a class or factory that is
    called without arguments to produce one.

    Raises:
        ConfigError: The reference cannot be imported or does not yield an
            object with an async ``run`` method.
    """
    obj = resolve_executor_ref(ref)
    if isinstance(obj, type) or (callable(obj) and not isinstance(obj, PlaybookExecutor)):
        executor = obj()
    else:
        executor = obj

    if not isinstance(executor, PlaybookExecutor):
        raise ConfigError(
            f"{ref!r} did not produce a PlaybookExecutor",
            context={"executor": ref, "type": type(executor).__name__},
        )
    logger.debug("executor.loaded", executor=ref)
    return executor


class LoggingPlaybookExecutor:
    """Executor that only logs the playbook it was asked to run.

    The most recent ``max_recorded_calls`` invocations are kept in ``calls``.
    """

    def __init__(self, delay_seconds: float = 0.0, max_recorded_calls: int = 100) -> None:
        self.delay_seconds = delay_seconds
        self.calls: deque[dict[str, Any]] = deque(maxlen=max_recorded_calls)

    async def run(
        self,
        playbook: str,
        connection_id: str,
        user_id: str,
        project_id: str,
        *,
        additional_instructions: str | None = None,
        model: str | None = None,
    ) -> PlaybookOutcome:
        call = {
            "playbook": playbook,
            "connection_id": connection_id,
            "user_id": user_id,
            "project_id": project_id,
            "additional_instructions": additional_instructions,
            "model": model,
        }
        self.calls.append(call)
        logger.info("playbook.run", **call)

        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)

        return PlaybookOutcome(
            succeeded=True,
            result=f"Playbook {playbook} was not executed (logging executor).",
            summary="No issues found",
            notification_level=NotificationLevel.INFO.value,
        )
