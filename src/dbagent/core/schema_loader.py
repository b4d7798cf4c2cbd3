"""Apply the bundled ``core/schema/NN_*.sql`` files to a connection.

Files are applied in name order.  Every statement uses ``IF NOT EXISTS``,
so running the loader against an initialised store changes nothing.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from pathlib import Path

from dbagent.core.errors import StoreError
from dbagent.core.logging import get_logger
from dbagent.core.protocols import Connection

logger = get_logger(__name__)

SCHEMA_DIR = Path(__file__).resolve().parent / "schema"


def _split_sql(sql: str) -> list[str]:
    """Split a script on statement-terminating ``;`` lines, dropping ``--`` comments."""
    return list(_iter_statements(sql))


def _iter_statements(sql: str) -> Iterator[str]:
    buffer: list[str] = []
    for line in sql.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("--"):
            continue
        buffer.append(line)
        if stripped.endswith(";"):
            statement = "\n".join(buffer).strip()
            buffer.clear()
            if statement != ";":
                yield statement
    tail = "\n".join(buffer).strip()
    if tail:
        yield tail


def get_schema_files(schema_dir: Path | str | None = None) -> list[Path]:
    directory = Path(schema_dir) if schema_dir else SCHEMA_DIR
    return sorted(directory.glob("*.sql")) if directory.is_dir() else []


def apply_all_schemas(
    conn: Connection,
    schema_dir: Path | str | None = None,
    *,
    skip_files: Sequence[str] | None = None,
) -> list[str]:
    """Apply every schema file not named in *skip_files*.

    Returns:
        Names of the files applied, in order.

    Raises:
        StoreError: A statement failed; the transaction is rolled back.
    """
    skipped = set(skip_files or ())
    applied: list[str] = []

    for path in get_schema_files(schema_dir):
        if path.name in skipped:
            logger.debug("schema.skipped", file=path.name)
            continue
        for statement in _split_sql(path.read_text(encoding="utf-8")):
            try:
                conn.execute(statement)
            except Exception as exc:
                conn.rollback()
                raise StoreError(
                    f"Schema file {path.name} failed: {exc}",
                    context={"file": path.name},
                    cause=exc,
                ) from exc
        applied.append(path.name)
        logger.debug("schema.applied", file=path.name)

    conn.commit()
    logger.info("schema.all_applied", count=len(applied))
    return applied
