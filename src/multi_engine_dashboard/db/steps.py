"""db/steps.py

Steps are created together with their project (see ProjectDAO.create)
and never updated, so this DAO is read-only.
"""
from __future__ import annotations

import logging
from typing import Optional
from contextlib import contextmanager

from multi_engine_dashboard.db.infra.core import get_conn
from multi_engine_dashboard.models import Step

logger = logging.getLogger(__name__)


class StepDAO:
    def __init__(self, db_path: Optional[str] = None, conn=None):
        if conn is None and db_path is None:
            raise ValueError("StepDAO requires either db_path or conn")

        self._db_path = db_path
        self._conn = conn

    @contextmanager
    def _connection(self):
        if self._conn is not None:
            yield self._conn
        else:
            with get_conn(self._db_path) as conn:
                yield conn

    def get(self, step_id: int) -> Step | None:
        logger.debug("Loading step %s from DB", step_id)
        try:
            with self._connection() as conn:
                row = conn.execute(
                    """
                    SELECT id, project_id, name, order_index, created_at
                    FROM steps WHERE id = ?
                    """,
                    (step_id,),
                ).fetchone()
        except Exception:
            logger.exception("Failed to load step %s from DB", step_id)
            raise

        return Step.from_row(row) if row else None

    def list_for_project(self, project_id: int) -> list[Step]:
        logger.debug("Loading steps for project %s from DB", project_id)
        try:
            with self._connection() as conn:
                rows = conn.execute(
                    """
                    SELECT id, project_id, name, order_index, created_at
                    FROM steps
                    WHERE project_id = ?
                    ORDER BY order_index ASC
                    """,
                    (project_id,),
                ).fetchall()
        except Exception:
            logger.exception("Failed to load steps for project %s from DB", project_id)
            raise

        return [Step.from_row(row) for row in rows]

    def list_with_counts(self, project_id: int) -> list[dict]:
        """
        Steps of a project in pipeline order with a live `resultCount`.
        """
        try:
            with self._connection() as conn:
                rows = conn.execute(
                    """
                    SELECT s.id, s.project_id, s.name, s.order_index, s.created_at,
                           COUNT(r.id) AS result_count
                    FROM steps s
                    LEFT JOIN ai_results r ON r.step_id = s.id
                    WHERE s.project_id = ?
                    GROUP BY s.id
                    ORDER BY s.order_index ASC
                    """,
                    (project_id,),
                ).fetchall()
        except Exception:
            logger.exception("Failed to load steps with counts for project %s", project_id)
            raise

        return [
            {**Step.from_row(row).to_dict(), "resultCount": row["result_count"]}
            for row in rows
        ]

    def count_results(self, step_id: int) -> int:
        try:
            with self._connection() as conn:
                row = conn.execute(
                    "SELECT COUNT(*) AS count FROM ai_results WHERE step_id = ?",
                    (step_id,),
                ).fetchone()
        except Exception:
            logger.exception("Failed to count results for step %s", step_id)
            raise

        return row["count"]
