import logging
import os
from datetime import datetime, UTC

logger = logging.getLogger(__name__)


def pending_migrations(conn, migrations_dir) -> list[str]:
    """
    Return migration filenames in `migrations_dir` not yet recorded
    in the migrations table, in filename order.
    """
    applied = {
        row[0]
        for row in conn.execute("SELECT id FROM migrations").fetchall()
    }
    return [
        fname
        for fname in sorted(os.listdir(migrations_dir))
        if fname.endswith(".sql") and fname not in applied
    ]


def apply_migrations(conn, migrations_dir) -> list[str]:
    """
    Apply SQL migrations exactly once, in filename order.

    Each file is executed as a script and then recorded in the
    `migrations` table. Returns the ids applied by this call.
    """

    # Ensure migrations table exists before reading history
    conn.execute("""
        CREATE TABLE IF NOT EXISTS migrations (
            id TEXT PRIMARY KEY,
            applied_at TEXT NOT NULL
        )
    """)

    applied_now: list[str] = []

    for fname in pending_migrations(conn, migrations_dir):
        path = os.path.join(migrations_dir, fname)
        with open(path, "r", encoding="utf-8") as f:
            sql = f.read()

        logger.info("Applying migration %s", fname)
        try:
            conn.executescript(sql)
        except Exception:
            logger.exception("Migration %s failed", fname)
            raise

        conn.execute(
            "INSERT INTO migrations (id, applied_at) VALUES (?, ?)",
            (fname, datetime.now(UTC).isoformat()),
        )

        conn.commit()
        applied_now.append(fname)

    if not applied_now:
        logger.debug("Database schema is up to date")

    return applied_now
