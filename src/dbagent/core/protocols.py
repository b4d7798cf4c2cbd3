"""
Protocol definitions shared across dbagent.

``Connection`` is the minimal synchronous database contract the schedule
repository is written against.  ``sqlite3`` (through
:class:`~dbagent.core.sqlite_conn.SqliteConnection`) and PostgreSQL
(through :class:`~dbagent.core.orm.session.SAConnectionBridge`) both
satisfy it, so the same SQL runs on either backend.

    Connection Protocol:
    ┌────────────────────────────────────────────────────────┐
    │ execute(sql, params)   → cursor-like (rowcount, fetch*) │
    │ executemany(sql, list) → Execute for multiple params    │
    │ fetchone()             → Get one result row             │
    │ fetchall()             → Get all result rows            │
    │ commit()               → Commit transaction             │
    │ rollback()             → Rollback transaction           │
    └────────────────────────────────────────────────────────┘

SQL passed through this protocol uses ``?`` positional placeholders.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Connection(Protocol):
    """Minimal SYNCHRONOUS connection interface for database operations."""

    def execute(self, sql: str, params: tuple = ()) -> Any:
        """Execute SQL statement; the result exposes ``rowcount``. SYNC."""
        ...

    def executemany(self, sql: str, params: list[tuple]) -> Any:
        """Execute SQL statement for multiple parameter sets. SYNC."""
        ...

    def fetchone(self) -> Any:
        """Fetch one row from last query. SYNC."""
        ...

    def fetchall(self) -> list:
        """Fetch all rows from last query. SYNC."""
        ...

    def commit(self) -> None:
        """Commit current transaction. SYNC."""
        ...

    def rollback(self) -> None:
        """Rollback current transaction. SYNC."""
        ...
