"""SQLAlchemy engine, session and Connection bridge for PostgreSQL stores.

The schedule repository speaks DB-API style SQL with ``?`` placeholders.
:class:`SAConnectionBridge` rewrites those to named binds and runs them on a
SQLAlchemy ``Session``, so the same repository serves SQLite and PostgreSQL.

* ``create_dbagent_engine`` -- engine from a URL, ``pool_pre_ping`` on.
* ``DbAgentSession``        -- ``Session`` with ``expire_on_commit=False``.
* ``SAConnectionBridge``    -- ``Session`` -> ``Connection`` protocol.
"""

from __future__ import annotations

import itertools
import re
from collections.abc import Sequence
from typing import Any

from sqlalchemy import create_engine as _sa_create_engine
from sqlalchemy import text
from sqlalchemy.engine import Engine, Result
from sqlalchemy.orm import Session

_PLACEHOLDER = re.compile(r"\?")


def create_dbagent_engine(url: str, *, echo: bool = False, **pool_options: Any) -> Engine:
    """Create an engine for *url*; ``pool_options`` go straight to SQLAlchemy."""
    pool_options.setdefault("pool_pre_ping", True)
    return _sa_create_engine(url, echo=echo, **pool_options)


class DbAgentSession(Session):
    """Session that keeps loaded attributes after commit."""

    def __init__(self, bind: Engine | None = None, **kwargs: Any) -> None:
        kwargs.setdefault("expire_on_commit", False)
        super().__init__(bind=bind, **kwargs)


def _to_named_binds(sql: str, parameters: Sequence[Any]) -> tuple[str, dict[str, Any]]:
    """``WHERE id = ? AND version = ?`` -> ``WHERE id = :p0 AND version = :p1``."""
    counter = itertools.count()
    named = _PLACEHOLDER.sub(lambda _m: f":p{next(counter)}", sql)
    return named, {f"p{i}": value for i, value in enumerate(parameters)}


class SAConnectionBridge:
    """A SQLAlchemy ``Session`` behind the ``Connection`` protocol.

    ``execute`` returns the bridge itself; its :attr:`rowcount` reports the
    rows touched by the last statement, like a DB-API cursor.
    """

    def __init__(self, session: Session) -> None:
        self._session = session
        self._result: Result[Any] | None = None

    def execute(self, sql: str, parameters: Sequence[Any] | None = None) -> SAConnectionBridge:
        if parameters:
            named, binds = _to_named_binds(sql, parameters)
            self._result = self._session.execute(text(named), binds)
        else:
            self._result = self._session.execute(text(sql))
        return self

    def executemany(self, sql: str, seq_of_parameters: Sequence[Sequence[Any]]) -> None:
        for parameters in seq_of_parameters:
            self.execute(sql, parameters)

    def fetchone(self) -> tuple[Any, ...] | None:
        row = self._result.fetchone() if self._result is not None else None
        return None if row is None else tuple(row)

    def fetchall(self) -> list[tuple[Any, ...]]:
        if self._result is None:
            return []
        return [tuple(row) for row in self._result.fetchall()]

    def commit(self) -> None:
        self._session.commit()

    def rollback(self) -> None:
        self._session.rollback()

    def close(self) -> None:
        self._session.close()

    @property
    def rowcount(self) -> int:
        return -1 if self._result is None else self._result.rowcount

    @property
    def session(self) -> Session:
        return self._session
