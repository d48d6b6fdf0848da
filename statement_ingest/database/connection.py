from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import psycopg
from psycopg_pool import ConnectionPool

from statement_ingest.config.settings import Settings

_pool: ConnectionPool | None = None
_SCHEMA_PATH = Path(__file__).parent / "schema.sql"


def build_conninfo(settings: Settings) -> str:
    return (
        f"host={settings.db_host} "
        f"port={settings.db_port} "
        f"dbname={settings.db_database} "
        f"user={settings.db_username} "
        f"password={settings.db_password}"
    )


def init_pool(settings: Settings, max_size: int = 10) -> None:
    """Open the process connection pool. Waits until one connection is ready."""
    global _pool  # noqa: PLW0603
    _pool = ConnectionPool(build_conninfo(settings), min_size=1, max_size=max_size, open=True)
    _pool.wait(timeout=10.0)


def close_pool() -> None:
    global _pool  # noqa: PLW0603
    if _pool is not None:
        _pool.close()
        _pool = None


@contextmanager
def get_connection() -> Generator[psycopg.Connection[Any], None, None]:
    """Yield a pooled connection. Caller manages commit/rollback."""
    if _pool is None:
        raise RuntimeError("Connection pool not initialized. Call init_pool() first.")
    with _pool.connection() as conn:
        yield conn


def apply_schema() -> None:
    """Create all tables and indexes from the bundled schema.sql."""
    ddl = _SCHEMA_PATH.read_text(encoding="utf-8")
    with get_connection() as conn:
        conn.execute(ddl)
        conn.commit()
