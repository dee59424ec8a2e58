import json
import sqlite3
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Optional, Any

from .config import DATABASE_PATH, DATABASE_URL
from .models import AnalysisRecord, AnalysisResult, AudioResult, UserAIConfig

IS_POSTGRES = bool(DATABASE_URL)

# ---------------------------------------------------------------------------
# PostgreSQL connection pool (only initialised when DATABASE_URL is set)
# ---------------------------------------------------------------------------

if IS_POSTGRES:
    import psycopg2
    import psycopg2.pool
    from psycopg2.extras import RealDictCursor

    # Expose a DB-agnostic base error that callers can catch.
    DatabaseError = psycopg2.Error

    _pool = psycopg2.pool.ThreadedConnectionPool(1, 10, DATABASE_URL)

    class _PooledConnection:
        """Thin wrapper around a psycopg2 connection borrowed from the pool.

        Intercepts close() to return the connection to the pool instead of
        discarding it, so the rest of the code can call conn.close() freely.
        """

        def __init__(self, conn):
            self._conn = conn

        def cursor(self):  # noqa: D102
            return self._conn.cursor(cursor_factory=RealDictCursor)

        def commit(self):  # noqa: D102
            self._conn.commit()

        def rollback(self):  # noqa: D102
            self._conn.rollback()

        def close(self):  # returns connection to pool rather than closing it
            _pool.putconn(self._conn)

else:
    DatabaseError = sqlite3.Error


def get_connection():
    """Return a database connection (SQLite or pooled PostgreSQL)."""
    if IS_POSTGRES:
        return _PooledConnection(_pool.getconn())
    conn = sqlite3.connect(DATABASE_PATH)
    conn.row_factory = sqlite3.Row
    return conn


# ---------------------------------------------------------------------------
# Query helpers for cross-database compatibility
# ---------------------------------------------------------------------------

def _q(query: str) -> str:
    """Replace SQLite-style ? placeholders with %s for PostgreSQL."""
    if IS_POSTGRES:
        return query.replace("?", "%s")
    return query


def _insert_and_get_id(cursor, query: str, params: tuple) -> int:
    """Execute an INSERT and return the generated primary key.

    PostgreSQL uses RETURNING id; SQLite uses cursor.lastrowid.
    The *query* must use ? placeholders (they are adapted automatically).
    """
    if IS_POSTGRES:
        cursor.execute(_q(query) + " RETURNING id", params)
        return cursor.fetchone()["id"]
    cursor.execute(query, params)
    return cursor.lastrowid


def _pk_col() -> str:
    """Return the DDL fragment for an auto-incrementing primary key column."""
    return "id SERIAL PRIMARY KEY" if IS_POSTGRES else "id INTEGER PRIMARY KEY AUTOINCREMENT"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_db_dt(value: Optional[datetime]) -> str:
    if value is None:
        return _now()
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def _parse_dt(value: Any) -> Optional[datetime]:
    """Parse a datetime that may already be a datetime (PostgreSQL) or a string (SQLite).

    Naive values are taken to be UTC, which is how every timestamp is written.
    """
    if value is None:
        return None
    if not isinstance(value, datetime):
        value = datetime.fromisoformat(str(value))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


# ---------------------------------------------------------------------------
# Schema creation
# ---------------------------------------------------------------------------

def init_db():
    """Create all tables if they don't exist."""
    conn = get_connection()
    cursor = conn.cursor()

    pk = _pk_col()

    cursor.execute(f"""
        CREATE TABLE IF NOT EXISTS ai_configs (
            {pk},
            user_id TEXT UNIQUE NOT NULL,
            model_id TEXT NOT NULL,
            prompt_id TEXT NOT NULL,
            language TEXT NOT NULL DEFAULT 'en',
            max_content_length INTEGER NOT NULL DEFAULT 10000,
            enable_caching SMALLINT NOT NULL DEFAULT 1,
            cache_expiration INTEGER NOT NULL DEFAULT 3600,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)

    cursor.execute(f"""
        CREATE TABLE IF NOT EXISTS analyses (
            {pk},
            url TEXT NOT NULL,
            user_id TEXT NOT NULL,
            analysis TEXT NOT NULL,
            audio TEXT NOT NULL,
            timestamp TIMESTAMP NOT NULL,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)

    # Indexes for the cache lookup and history queries
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_analyses_url_user ON analyses(url, user_id, created_at)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_analyses_user ON analyses(user_id, created_at)")

    conn.commit()
    conn.close()


# ---------------------------------------------------------------------------
# AI configuration helpers
# ---------------------------------------------------------------------------

# Columns a caller may change through upsert_ai_config()
CONFIG_COLUMNS = (
    "model_id",
    "prompt_id",
    "language",
    "max_content_length",
    "enable_caching",
    "cache_expiration",
)


def _row_to_config(row) -> UserAIConfig:
    return UserAIConfig(
        id=row["id"],
        user_id=row["user_id"],
        model_id=row["model_id"],
        prompt_id=row["prompt_id"],
        language=row["language"],
        max_content_length=row["max_content_length"],
        enable_caching=bool(row["enable_caching"]),
        cache_expiration=row["cache_expiration"],
        created_at=_parse_dt(row["created_at"]),
        updated_at=_parse_dt(row["updated_at"]),
    )


def _insert_config_if_absent(cursor, config: UserAIConfig):
    now = _now()
    cursor.execute(
        _q("""INSERT INTO ai_configs
           (user_id, model_id, prompt_id, language, max_content_length, enable_caching,
            cache_expiration, created_at, updated_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
           ON CONFLICT (user_id) DO NOTHING"""),
        (
            config.user_id,
            config.model_id,
            config.prompt_id,
            config.language,
            config.max_content_length,
            1 if config.enable_caching else 0,
            config.cache_expiration,
            now,
            now,
        ),
    )


def get_ai_config(user_id: str) -> Optional[UserAIConfig]:
    """Return the stored AI configuration for a user, or ``None``."""
    conn = get_connection()
    cursor = conn.cursor()

    cursor.execute(_q("SELECT * FROM ai_configs WHERE user_id = ?"), (user_id,))
    row = cursor.fetchone()
    conn.close()

    return _row_to_config(row) if row else None


def create_ai_config(config: UserAIConfig) -> UserAIConfig:
    """Store *config* unless the user already has one; return the stored row.

    Two concurrent first requests for the same user both end up reading the
    single row that won the insert.
    """
    conn = get_connection()
    cursor = conn.cursor()

    _insert_config_if_absent(cursor, config)
    conn.commit()

    cursor.execute(_q("SELECT * FROM ai_configs WHERE user_id = ?"), (config.user_id,))
    row = cursor.fetchone()
    conn.close()

    return _row_to_config(row)


def upsert_ai_config(defaults: UserAIConfig, updates: dict) -> UserAIConfig:
    """Create-or-update a user's configuration, writing only the columns in *updates*.

    *defaults* seeds the row when the user has none yet. Columns not named in
    *updates* are left as stored, so concurrent updates of different fields
    do not overwrite each other.
    """
    unknown = set(updates) - set(CONFIG_COLUMNS)
    if unknown:
        raise ValueError(f"Unknown config columns: {', '.join(sorted(unknown))}")

    conn = get_connection()
    cursor = conn.cursor()

    _insert_config_if_absent(cursor, defaults)

    if updates:
        columns = [col for col in CONFIG_COLUMNS if col in updates]
        assignments = ", ".join(f"{col} = ?" for col in columns)
        params = [
            (1 if updates[col] else 0) if col == "enable_caching" else updates[col]
            for col in columns
        ]
        cursor.execute(
            _q(f"UPDATE ai_configs SET {assignments}, updated_at = ? WHERE user_id = ?"),
            (*params, _now(), defaults.user_id),
        )

    conn.commit()

    cursor.execute(_q("SELECT * FROM ai_configs WHERE user_id = ?"), (defaults.user_id,))
    row = cursor.fetchone()
    conn.close()

    return _row_to_config(row)


def delete_ai_config(user_id: str) -> bool:
    """Delete a user's AI configuration. Returns True if a row was removed."""
    conn = get_connection()
    cursor = conn.cursor()

    cursor.execute(_q("DELETE FROM ai_configs WHERE user_id = ?"), (user_id,))
    deleted = cursor.rowcount > 0

    conn.commit()
    conn.close()
    return deleted


def get_all_ai_configs() -> list[UserAIConfig]:
    """Return every stored AI configuration (maintenance scripts)."""
    conn = get_connection()
    cursor = conn.cursor()

    cursor.execute("SELECT * FROM ai_configs ORDER BY user_id")
    rows = cursor.fetchall()
    conn.close()

    return [_row_to_config(row) for row in rows]


# ---------------------------------------------------------------------------
# Analysis record helpers
# ---------------------------------------------------------------------------

def _row_to_record(row) -> AnalysisRecord:
    analysis = json.loads(row["analysis"])
    audio = json.loads(row["audio"])
    return AnalysisRecord(
        id=row["id"],
        url=row["url"],
        user_id=row["user_id"],
        analysis=AnalysisResult(**analysis),
        audio=AudioResult(**audio),
        timestamp=_parse_dt(row["timestamp"]),
        created_at=_parse_dt(row["created_at"]),
        updated_at=_parse_dt(row["updated_at"]),
    )


def save_analysis(record: AnalysisRecord) -> int:
    """Insert an analysis record and return its ID.

    Records are never updated in place; every successful run adds a row.
    """
    conn = get_connection()
    cursor = conn.cursor()

    created_at = _to_db_dt(record.created_at)
    record_id = _insert_and_get_id(
        cursor,
        """INSERT INTO analyses (url, user_id, analysis, audio, timestamp, created_at, updated_at)
           VALUES (?, ?, ?, ?, ?, ?, ?)""",
        (
            record.url,
            record.user_id,
            json.dumps(asdict(record.analysis)),
            json.dumps(asdict(record.audio)),
            _to_db_dt(record.timestamp),
            created_at,
            created_at,
        ),
    )

    conn.commit()
    conn.close()
    return record_id


def get_latest_analysis(url: str, user_id: str) -> Optional[AnalysisRecord]:
    """Return the most recent analysis of *url* for *user_id*, or ``None``."""
    conn = get_connection()
    cursor = conn.cursor()

    cursor.execute(
        _q("""SELECT * FROM analyses
           WHERE url = ? AND user_id = ?
           ORDER BY created_at DESC, id DESC
           LIMIT 1"""),
        (url, user_id),
    )
    row = cursor.fetchone()
    conn.close()

    return _row_to_record(row) if row else None


def get_analyses_for_user(user_id: str, limit: int = 10) -> list[AnalysisRecord]:
    """Return a user's analyses, newest first."""
    conn = get_connection()
    cursor = conn.cursor()

    cursor.execute(
        _q("""SELECT * FROM analyses
           WHERE user_id = ?
           ORDER BY created_at DESC, id DESC
           LIMIT ?"""),
        (user_id, limit),
    )
    rows = cursor.fetchall()
    conn.close()

    return [_row_to_record(row) for row in rows]


def get_analysis_by_id(record_id: int, user_id: str) -> Optional[AnalysisRecord]:
    """Return a single analysis if it exists and belongs to *user_id*."""
    conn = get_connection()
    cursor = conn.cursor()

    cursor.execute(
        _q("SELECT * FROM analyses WHERE id = ? AND user_id = ?"),
        (record_id, user_id),
    )
    row = cursor.fetchone()
    conn.close()

    return _row_to_record(row) if row else None


def delete_analysis(record_id: int, user_id: str) -> bool:
    """Delete an analysis owned by *user_id*. Returns True if a row was removed."""
    conn = get_connection()
    cursor = conn.cursor()

    cursor.execute(
        _q("DELETE FROM analyses WHERE id = ? AND user_id = ?"),
        (record_id, user_id),
    )
    deleted = cursor.rowcount > 0

    conn.commit()
    conn.close()
    return deleted
