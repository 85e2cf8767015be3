"""db/results.py

Construction modes:

- ResultDAO(db_path="...")
- ResultDAO(conn=sqlite3.Connection)

Results are insert-only; they disappear only through the cascade from
their step or project.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional
from contextlib import contextmanager

from multi_engine_dashboard.db.infra.core import get_conn, safe_json_loads, utc_now
from multi_engine_dashboard.models import Result

logger = logging.getLogger(__name__)

_RESULT_COLUMNS = "r.id, r.step_id, r.prompt, r.engine, r.response, r.metadata, r.created_at"


def _result_from_row(row) -> Result:
    return Result(
        id=row["id"],
        step_id=row["step_id"],
        prompt=row["prompt"],
        engine=row["engine"],
        response=row["response"],
        metadata=safe_json_loads(row["metadata"], None),
        created_at=row["created_at"],
    )


class ResultDAO:
    def __init__(self, db_path: Optional[str] = None, conn=None):
        if conn is None and db_path is None:
            raise ValueError("ResultDAO requires either db_path or conn")

        self._db_path = db_path
        self._conn = conn

    # -----------------------
    # internal helpers
    # -----------------------

    @contextmanager
    def _connection(self):
        """
        Yield a connection.
        If DAO was constructed with a connection, reuse it.
        Otherwise, open a new one.
        """
        if self._conn is not None:
            yield self._conn
        else:
            with get_conn(self._db_path) as conn:
                yield conn

    # -----------------------
    # READ operations
    # -----------------------

    def get(self, result_id: int) -> Result | None:
        try:
            with self._connection() as conn:
                row = conn.execute(
                    f"SELECT {_RESULT_COLUMNS} FROM ai_results r WHERE r.id = ?",
                    (result_id,),
                ).fetchone()
        except Exception:
            logger.exception("Failed to load result %s from DB", result_id)
            raise

        return _result_from_row(row) if row else None

    def list(
        self,
        *,
        project_id: Optional[int] = None,
        step_id: Optional[int] = None,
        engine: Optional[str] = None,
        prompt: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> list[Result]:
        """
        Results matching every given filter, newest first.

        project_id filters through the owning step.
        """
        query = f"SELECT {_RESULT_COLUMNS} FROM ai_results r"
        conditions: list[str] = []
        params: list[Any] = []

        if project_id is not None:
            query += " JOIN steps s ON s.id = r.step_id"
            conditions.append("s.project_id = ?")
            params.append(project_id)

        if step_id is not None:
            conditions.append("r.step_id = ?")
            params.append(step_id)

        if engine is not None:
            conditions.append("r.engine = ?")
            params.append(engine)

        if prompt is not None:
            conditions.append("r.prompt = ?")
            params.append(prompt)

        if conditions:
            query += " WHERE " + " AND ".join(conditions)

        query += " ORDER BY r.created_at DESC, r.id DESC"

        # limit=0 and offset=0 mean "not set".
        # SQLite only accepts OFFSET after a LIMIT; -1 means unbounded
        if limit or offset:
            query += " LIMIT ?"
            params.append(limit or -1)
        if offset:
            query += " OFFSET ?"
            params.append(offset)

        logger.debug("Loading results from DB: %s %s", query, params)
        try:
            with self._connection() as conn:
                rows = conn.execute(query, tuple(params)).fetchall()
        except Exception:
            logger.exception("Failed to load results from DB")
            raise

        return [_result_from_row(row) for row in rows]

    # -----------------------
    # WRITE operations
    # -----------------------

    def insert(
        self,
        step_id: int,
        prompt: str,
        engine: str,
        response: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Result:
        """
        Insert one result row. Raises sqlite3.IntegrityError when the
        step does not exist.
        """
        ts = utc_now()
        metadata_json = json.dumps(metadata) if metadata else None

        logger.info("Saving %s result for step %s to DB", engine, step_id)
        try:
            with self._connection() as conn:
                cur = conn.execute(
                    """
                    INSERT INTO ai_results
                        (step_id, prompt, engine, response, metadata, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (step_id, prompt, engine, response, metadata_json, ts),
                )
                result_id = cur.lastrowid
        except Exception:
            logger.exception("Failed to save %s result for step %s to DB", engine, step_id)
            raise

        return Result(
            id=result_id,
            step_id=step_id,
            prompt=prompt,
            engine=engine,
            response=response,
            metadata=dict(metadata) if metadata else None,
            created_at=ts,
        )
