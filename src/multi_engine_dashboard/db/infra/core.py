# db/infra/core.py
import json
import logging
import sqlite3
from datetime import datetime, UTC

from contextlib import contextmanager

from multi_engine_dashboard.config import MIGRATIONS_PATH
from multi_engine_dashboard.db.infra.migrations import apply_migrations
from multi_engine_dashboard.db.infra.schema import find_schema_drift

logger = logging.getLogger(__name__)


def init_db(db_path: str, migrations_dir=MIGRATIONS_PATH):
    """
    Initialize the database:
    - switch to WAL journaling (one writer, concurrent readers)
    - apply migrations
    - warn about drift from the declared schema
    """
    logger.info("Initializing database at %s", db_path)
    try:
        with get_conn(db_path) as conn:
            conn.execute("PRAGMA journal_mode = WAL")
            apply_migrations(conn, migrations_dir)
            for problem in find_schema_drift(conn):
                logger.warning("Schema drift: %s", problem)
    except Exception:
        logger.exception("Database initialization failed")
        raise


def utc_now() -> str:
    """
    Current UTC time in a fixed-width ISO-8601 form so that text
    ordering in SQL equals chronological ordering.
    """
    return datetime.now(UTC).isoformat(timespec="microseconds")


def safe_json_loads(value: str | None, default=None):
    """
    Decode a JSON column such as ai_results.metadata. NULL, blank and
    malformed text all read as `default`.
    """
    if value is None or value.strip() == "":
        return default
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        logger.warning("Unreadable JSON column value (%s), using default", e)
        return default


# -----------------------
# Connection helper
# -----------------------

@contextmanager
def get_conn(path):
    conn = sqlite3.connect(path, timeout=30.0)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
