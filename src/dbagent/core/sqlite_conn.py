"""SQLite adapter for the :class:`~dbagent.core.protocols.Connection` protocol.

``sqlite3.Connection`` has ``execute`` but no connection-level
``fetchone``/``fetchall``; this adapter keeps one cursor and exposes both.
``execute`` hands that cursor back so callers can read ``rowcount`` (the
schedule claim depends on it).

Several workers may share one SQLite file.  File databases are therefore
opened in WAL mode with a busy timeout, so a worker waits for a competing
claim's write lock instead of failing with ``database is locked``.
"""

from __future__ import annotations

import sqlite3
from typing import Any

MEMORY = ":memory:"


class SqliteConnection:
    """One ``sqlite3`` connection plus a shared cursor.

    Opened with ``check_same_thread=False``: the thread backend ticks on its
    own thread while API requests use the same store.
    """

    def __init__(self, path: str = MEMORY, *, timeout: float = 30.0, wal: bool = True) -> None:
        self.path = path
        self._conn = sqlite3.connect(path, check_same_thread=False, timeout=timeout)
        self._cursor = self._conn.cursor()
        if wal and path != MEMORY:
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute(f"PRAGMA busy_timeout={int(timeout * 1000)}")

    def execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        return self._cursor.execute(sql, tuple(params))

    def executemany(self, sql: str, params: list[tuple]) -> sqlite3.Cursor:
        return self._cursor.executemany(sql, params)

    def fetchone(self) -> Any:
        return self._cursor.fetchone()

    def fetchall(self) -> list[Any]:
        return self._cursor.fetchall()

    def commit(self) -> None:
        self._conn.commit()

    def rollback(self) -> None:
        self._conn.rollback()

    def close(self) -> None:
        self._conn.close()

    @property
    def raw(self) -> sqlite3.Connection:
        return self._conn

    def __repr__(self) -> str:
        return f"SqliteConnection(path={self.path!r})"
