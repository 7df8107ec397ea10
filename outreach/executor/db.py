"""Database layer for the job orchestrator.

Supports two backends:
- PostgreSQL (production, set OUTREACH_DATABASE_URL)
- SQLite (local development and tests, default)

Uses raw SQL via psycopg2 (Postgres) or sqlite3 (SQLite). No ORM.

A ``Database`` instance owns its connection pool and is passed into every
store at construction. Postgres uses a ThreadedConnectionPool; SQLite uses
per-call connections with check_same_thread=False. ``close()`` releases the
pool on shutdown.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

logger = logging.getLogger(__name__)


def json_dumps(data: Any) -> str:
    """Serialize data to JSON string for storage."""
    return json.dumps(data, ensure_ascii=False, default=str)


def json_loads(text: Any, default: Any = None) -> Any:
    """Deserialize JSON from storage."""
    if text is None or text == "":
        return default
    if isinstance(text, (dict, list)):
        return text  # Already parsed (Postgres JSONB)
    return json.loads(text)


class Transaction:
    """Cursor wrapper used inside ``Database.transaction()``.

    Adapts placeholders and returns rows as dicts for both backends.
    """

    def __init__(self, cursor, is_postgres: bool):
        self._cursor = cursor
        self._is_postgres = is_postgres

    def execute(self, sql: str, params: tuple = (), fetch: str = "none") -> Any:
        """Execute a statement.

        Args:
            sql: SQL statement using %s placeholders
            params: Parameters tuple
            fetch: "none", "one", "all" or "rowcount"
        """
        if not self._is_postgres:
            sql = sql.replace("%s", "?")
        self._cursor.execute(sql, params)

        if fetch == "one":
            row = self._cursor.fetchone()
            if row is None:
                return None
            return self._to_dict(row)
        if fetch == "all":
            return [self._to_dict(row) for row in self._cursor.fetchall()]
        if fetch == "rowcount":
            return self._cursor.rowcount
        return None

    def _to_dict(self, row) -> dict:
        if self._is_postgres:
            columns = [desc[0] for desc in self._cursor.description]
            return dict(zip(columns, row))
        return dict(row)


class Database:
    """Owned connection pool plus schema management."""

    def __init__(
        self,
        url: str = "",
        sqlite_path: Optional[Path] = None,
        min_connections: int = 1,
        max_connections: int = 5,
    ):
        self.url = url
        self.sqlite_path = Path(sqlite_path) if sqlite_path else Path("outreach.db")
        self._min_connections = min_connections
        self._max_connections = max_connections
        self._pg_pool = None
        self._closed = False

    @property
    def is_postgres(self) -> bool:
        return self.url.startswith("postgres")

    @property
    def backend_name(self) -> str:
        return "PostgreSQL" if self.is_postgres else f"SQLite ({self.sqlite_path})"

    def _get_pg_pool(self):
        if self._pg_pool is None:
            import psycopg2.pool
            self._pg_pool = psycopg2.pool.ThreadedConnectionPool(
                minconn=self._min_connections,
                maxconn=self._max_connections,
                dsn=self.url,
            )
            logger.info(
                f"PostgreSQL connection pool initialized "
                f"({self._min_connections}-{self._max_connections} connections)"
            )
        return self._pg_pool

    @contextmanager
    def connection(self):
        """Acquire a connection for the duration of the block.

        Usage:
            with db.connection() as conn:
                cursor = conn.cursor()
                cursor.execute(...)
                conn.commit()
        """
        if self._closed:
            raise RuntimeError("Database has been closed")

        if self.is_postgres:
            pool = self._get_pg_pool()
            conn = pool.getconn()
            try:
                yield conn
            finally:
                pool.putconn(conn)
        else:
            conn = sqlite3.connect(
                str(self.sqlite_path), timeout=30, check_same_thread=False
            )
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA foreign_keys=ON")
            try:
                yield conn
            finally:
                conn.close()

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        """Run several statements atomically.

        Commits when the block exits cleanly, rolls back on any exception.
        """
        with self.connection() as conn:
            tx = Transaction(conn.cursor(), self.is_postgres)
            try:
                yield tx
            except BaseException:
                conn.rollback()
                raise
            conn.commit()

    def execute(self, sql: str, params: tuple = (), fetch: str = "none") -> Any:
        """Execute a single statement in its own transaction."""
        with self.transaction() as tx:
            return tx.execute(sql, params, fetch=fetch)

    def init_schema(self) -> None:
        """Create tables if they don't exist."""
        if self.is_postgres:
            with self.connection() as conn:
                cursor = conn.cursor()
                cursor.execute(_POSTGRES_DDL)
                conn.commit()
        else:
            self.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
            with self.connection() as conn:
                conn.executescript(_SQLITE_DDL)
                conn.commit()
        logger.info(f"Database initialized: {self.backend_name}")

    def ping(self) -> bool:
        try:
            self.execute("SELECT 1", fetch="one")
            return True
        except Exception as e:
            logger.warning(f"Database ping failed: {e}")
            return False

    def close(self) -> None:
        """Release pooled connections."""
        if self._closed:
            return
        self._closed = True
        if self._pg_pool is not None:
            self._pg_pool.closeall()
            self._pg_pool = None
            logger.info("PostgreSQL connection pool closed")


_POSTGRES_DDL = """
CREATE TABLE IF NOT EXISTS profiles (
    profile_id VARCHAR(100) PRIMARY KEY,
    user_id VARCHAR(200),
    bio TEXT NOT NULL,
    research_interests TEXT NOT NULL,
    cv_text TEXT NOT NULL,
    cv_file_name VARCHAR(500),
    uploaded_at VARCHAR(40) NOT NULL
);

CREATE TABLE IF NOT EXISTS jobs (
    job_id VARCHAR(100) PRIMARY KEY,
    user_id VARCHAR(200),
    profile_id VARCHAR(100) NOT NULL,
    target_field VARCHAR(500) NOT NULL,
    target_institution VARCHAR(500),
    status VARCHAR(40) NOT NULL DEFAULT 'PENDING',
    current_stage_index INTEGER NOT NULL DEFAULT 0,
    prospects JSONB DEFAULT '[]',
    research_analyses JSONB DEFAULT '[]',
    cv_insights JSONB,
    email_drafts JSONB DEFAULT '[]',
    error TEXT,
    created_at VARCHAR(40) NOT NULL,
    updated_at VARCHAR(40) NOT NULL,
    completed_at VARCHAR(40)
);

CREATE INDEX IF NOT EXISTS idx_jobs_user ON jobs(user_id, created_at);

CREATE TABLE IF NOT EXISTS job_logs (
    id SERIAL PRIMARY KEY,
    job_id VARCHAR(100) NOT NULL REFERENCES jobs(job_id),
    stage_number INTEGER NOT NULL,
    message TEXT NOT NULL,
    timestamp VARCHAR(40) NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_job_logs_job ON job_logs(job_id, id);

CREATE TABLE IF NOT EXISTS prospects (
    id VARCHAR(100) PRIMARY KEY,
    job_id VARCHAR(100) NOT NULL,
    position INTEGER NOT NULL DEFAULT 0,
    data JSONB NOT NULL,
    created_at VARCHAR(40) NOT NULL
);

CREATE TABLE IF NOT EXISTS research_analyses (
    id VARCHAR(100) PRIMARY KEY,
    job_id VARCHAR(100) NOT NULL,
    position INTEGER NOT NULL DEFAULT 0,
    data JSONB NOT NULL,
    created_at VARCHAR(40) NOT NULL
);

CREATE TABLE IF NOT EXISTS cv_insights (
    id VARCHAR(100) PRIMARY KEY,
    job_id VARCHAR(100) NOT NULL,
    position INTEGER NOT NULL DEFAULT 0,
    data JSONB NOT NULL,
    created_at VARCHAR(40) NOT NULL
);

CREATE TABLE IF NOT EXISTS email_drafts (
    id VARCHAR(100) PRIMARY KEY,
    job_id VARCHAR(100) NOT NULL,
    position INTEGER NOT NULL DEFAULT 0,
    data JSONB NOT NULL,
    created_at VARCHAR(40) NOT NULL
);
"""

_SQLITE_DDL = """
CREATE TABLE IF NOT EXISTS profiles (
    profile_id TEXT PRIMARY KEY,
    user_id TEXT,
    bio TEXT NOT NULL,
    research_interests TEXT NOT NULL,
    cv_text TEXT NOT NULL,
    cv_file_name TEXT,
    uploaded_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS jobs (
    job_id TEXT PRIMARY KEY,
    user_id TEXT,
    profile_id TEXT NOT NULL,
    target_field TEXT NOT NULL,
    target_institution TEXT,
    status TEXT NOT NULL DEFAULT 'PENDING',
    current_stage_index INTEGER NOT NULL DEFAULT 0,
    prospects TEXT DEFAULT '[]',
    research_analyses TEXT DEFAULT '[]',
    cv_insights TEXT,
    email_drafts TEXT DEFAULT '[]',
    error TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    completed_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_jobs_user ON jobs(user_id, created_at);

CREATE TABLE IF NOT EXISTS job_logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    job_id TEXT NOT NULL REFERENCES jobs(job_id),
    stage_number INTEGER NOT NULL,
    message TEXT NOT NULL,
    timestamp TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_job_logs_job ON job_logs(job_id, id);

CREATE TABLE IF NOT EXISTS prospects (
    id TEXT PRIMARY KEY,
    job_id TEXT NOT NULL,
    position INTEGER NOT NULL DEFAULT 0,
    data TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS research_analyses (
    id TEXT PRIMARY KEY,
    job_id TEXT NOT NULL,
    position INTEGER NOT NULL DEFAULT 0,
    data TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS cv_insights (
    id TEXT PRIMARY KEY,
    job_id TEXT NOT NULL,
    position INTEGER NOT NULL DEFAULT 0,
    data TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS email_drafts (
    id TEXT PRIMARY KEY,
    job_id TEXT NOT NULL,
    position INTEGER NOT NULL DEFAULT 0,
    data TEXT NOT NULL,
    created_at TEXT NOT NULL
);
"""
