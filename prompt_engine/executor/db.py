"""Database layer for execution records.

Supports two backends:
- PostgreSQL (production, set EXECUTOR_DATABASE_URL=postgres://...)
- SQLite (local development and tests, default)

Uses raw SQL via psycopg2 (Postgres) or sqlite3 (SQLite). No ORM.

Thread-safety: Postgres uses a ThreadedConnectionPool. SQLite uses
per-call connections with check_same_thread=False.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Optional

from prompt_engine.config import get_settings

logger = logging.getLogger(__name__)

_settings = get_settings()

# Database URL: postgres://... for Postgres, or empty for SQLite
DATABASE_URL = _settings.database_url
SQLITE_PATH: Path = _settings.sqlite_path

_initialized = False
_pg_pool = None


def configure(database_url: str = "", sqlite_path: Optional[Path] = None) -> None:
    """Point the layer at a different database and force re-initialisation."""
    global DATABASE_URL, SQLITE_PATH, _initialized, _pg_pool
    DATABASE_URL = database_url
    if sqlite_path is not None:
        SQLITE_PATH = Path(sqlite_path)
    if _pg_pool is not None:
        _pg_pool.closeall()
    _pg_pool = None
    _initialized = False


def _is_postgres() -> bool:
    """Check if we're using Postgres."""
    return DATABASE_URL.startswith("postgres")


def _get_pg_pool():
    """Get or create the Postgres connection pool (lazy singleton)."""
    global _pg_pool
    if _pg_pool is None:
        import psycopg2.pool
        _pg_pool = psycopg2.pool.ThreadedConnectionPool(
            minconn=1,
            maxconn=5,
            dsn=DATABASE_URL,
        )
        logger.info("PostgreSQL connection pool initialized (1-5 connections)")
    return _pg_pool


@contextmanager
def get_connection():
    """Get a database connection (Postgres or SQLite).

    Usage:
        with get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(...)
            conn.commit()
    """
    if _is_postgres():
        pool = _get_pg_pool()
        conn = pool.getconn()
        try:
            yield conn
        finally:
            pool.putconn(conn)
    else:
        SQLITE_PATH.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(SQLITE_PATH), check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        try:
            yield conn
        finally:
            conn.close()


def _json_dumps(data: Any) -> str:
    """Serialize data to JSON string for storage."""
    if data is None:
        return "{}"
    return json.dumps(data, ensure_ascii=False, default=str)


def _json_loads(text: Any) -> Any:
    """Deserialize JSON string from storage."""
    if not text:
        return {}
    if isinstance(text, (dict, list)):
        return text  # Already parsed (Postgres JSONB)
    return json.loads(text)


def execute(sql: str, params: tuple = (), fetch: str = "none") -> Any:
    """Execute a SQL statement.

    Args:
        sql: SQL statement (use %s placeholders; adapted to ? for SQLite)
        params: Parameters tuple
        fetch: "none", "one", "all"

    Returns:
        None for "none", dict for "one", list[dict] for "all"
    """
    init_db()
    adapted_sql = sql if _is_postgres() else sql.replace("%s", "?")

    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute(adapted_sql, params)

        if fetch == "one":
            row = cursor.fetchone()
            if row is None:
                return None
            if _is_postgres():
                columns = [desc[0] for desc in cursor.description]
                return dict(zip(columns, row))
            return dict(row)
        elif fetch == "all":
            rows = cursor.fetchall()
            if _is_postgres():
                columns = [desc[0] for desc in cursor.description]
                return [dict(zip(columns, row)) for row in rows]
            return [dict(row) for row in rows]

        conn.commit()
        return None


def init_db() -> None:
    """Create tables if they don't exist."""
    global _initialized
    if _initialized:
        return

    if _is_postgres():
        _init_postgres()
    else:
        _init_sqlite()

    _initialized = True
    backend = "PostgreSQL" if _is_postgres() else f"SQLite ({SQLITE_PATH})"
    logger.info(f"Executor database initialized: {backend}")


def _init_postgres() -> None:
    """Create Postgres tables."""
    ddl = """
    CREATE TABLE IF NOT EXISTS prompt_executions (
        id VARCHAR(100) PRIMARY KEY,
        template_id VARCHAR(100),
        template_version INTEGER,
        template_snapshot JSONB,
        app VARCHAR(100) NOT NULL,
        stage VARCHAR(100) NOT NULL,
        feature VARCHAR(200),
        project_id VARCHAR(100),
        tags_snapshot JSONB NOT NULL DEFAULT '[]',
        inputs JSONB NOT NULL DEFAULT '{}',
        resolved_prompt TEXT NOT NULL,
        model VARCHAR(200) NOT NULL,
        status VARCHAR(20) NOT NULL,
        output_raw TEXT,
        error_message TEXT,
        provider_used VARCHAR(50),
        execution_time_ms INTEGER DEFAULT 0,
        notes TEXT,
        started_at TIMESTAMPTZ NOT NULL,
        finished_at TIMESTAMPTZ,
        created_at TIMESTAMPTZ NOT NULL,
        updated_at TIMESTAMPTZ NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_prompt_executions_created
        ON prompt_executions(created_at DESC);
    CREATE INDEX IF NOT EXISTS idx_prompt_executions_scope
        ON prompt_executions(app, stage, project_id);
    """
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute(ddl)
        conn.commit()


def _init_sqlite() -> None:
    """Create SQLite tables."""
    ddl = """
    CREATE TABLE IF NOT EXISTS prompt_executions (
        id TEXT PRIMARY KEY,
        template_id TEXT,
        template_version INTEGER,
        template_snapshot TEXT,
        app TEXT NOT NULL,
        stage TEXT NOT NULL,
        feature TEXT,
        project_id TEXT,
        tags_snapshot TEXT NOT NULL DEFAULT '[]',
        inputs TEXT NOT NULL DEFAULT '{}',
        resolved_prompt TEXT NOT NULL,
        model TEXT NOT NULL,
        status TEXT NOT NULL,
        output_raw TEXT,
        error_message TEXT,
        provider_used TEXT,
        execution_time_ms INTEGER DEFAULT 0,
        notes TEXT,
        started_at TEXT NOT NULL,
        finished_at TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_prompt_executions_created
        ON prompt_executions(created_at DESC);
    CREATE INDEX IF NOT EXISTS idx_prompt_executions_scope
        ON prompt_executions(app, stage, project_id);
    """
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.executescript(ddl)
        conn.commit()
