"""db/projects.py

Construction modes:

- ProjectDAO(db_path="...")
- ProjectDAO(conn=sqlite3.Connection)

Support for atomic multi-step operations:

with project_dao(db_path) as dao:
    project = dao.create("Essay", "Long-form draft")
    dao.update(project.id, description="Short-form draft")
"""
from __future__ import annotations

import logging
from typing import Optional
from contextlib import contextmanager

from multi_engine_dashboard.config import DEFAULT_STEPS
from multi_engine_dashboard.db.infra.core import get_conn, utc_now
from multi_engine_dashboard.models import Project

logger = logging.getLogger(__name__)

_UNSET = object()


class ProjectDAO:
    def __init__(self, db_path: Optional[str] = None, conn=None):
        if conn is None and db_path is None:
            raise ValueError("ProjectDAO requires either db_path or conn")

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

    def get(self, project_id: int) -> Project | None:
        logger.debug("Loading project %s from DB", project_id)
        try:
            with self._connection() as conn:
                row = conn.execute(
                    """
                    SELECT id, name, description, created_at, updated_at
                    FROM projects WHERE id = ?
                    """,
                    (project_id,),
                ).fetchone()
        except Exception:
            logger.exception("Failed to load project %s from DB", project_id)
            raise

        return Project.from_row(row) if row else None

    def list(self) -> list[Project]:
        logger.debug("Loading projects from DB")
        try:
            with self._connection() as conn:
                rows = conn.execute(
                    """
                    SELECT id, name, description, created_at, updated_at
                    FROM projects
                    ORDER BY updated_at DESC, id DESC
                    """
                ).fetchall()
        except Exception:
            logger.exception("Failed to load projects from DB")
            raise

        return [Project.from_row(row) for row in rows]

    def list_with_counts(self) -> list[dict]:
        """
        Projects (most recently updated first) with a live `resultCount`.
        """
        logger.debug("Loading projects with result counts from DB")
        try:
            with self._connection() as conn:
                rows = conn.execute(
                    """
                    SELECT p.id, p.name, p.description, p.created_at, p.updated_at,
                           COUNT(r.id) AS result_count
                    FROM projects p
                    LEFT JOIN steps s ON s.project_id = p.id
                    LEFT JOIN ai_results r ON r.step_id = s.id
                    GROUP BY p.id
                    ORDER BY p.updated_at DESC, p.id DESC
                    """
                ).fetchall()
        except Exception:
            logger.exception("Failed to load projects with result counts from DB")
            raise

        return [
            {**Project.from_row(row).to_dict(), "resultCount": row["result_count"]}
            for row in rows
        ]

    def count_results(self, project_id: int) -> int:
        try:
            with self._connection() as conn:
                row = conn.execute(
                    """
                    SELECT COUNT(*) AS count
                    FROM ai_results r
                    JOIN steps s ON s.id = r.step_id
                    WHERE s.project_id = ?
                    """,
                    (project_id,),
                ).fetchone()
        except Exception:
            logger.exception("Failed to count results for project %s", project_id)
            raise

        return row["count"]

    # -----------------------
    # WRITE operations
    # -----------------------

    def create(self, name: str, description: Optional[str] = None) -> Project:
        """
        Insert a project together with its default pipeline steps.
        """
        ts = utc_now()
        logger.info("Saving project %r to DB", name)
        try:
            with self._connection() as conn:
                c = conn.cursor()
                c.execute(
                    """
                    INSERT INTO projects (name, description, created_at, updated_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (name, description, ts, ts),
                )
                project_id = c.lastrowid

                c.executemany(
                    """
                    INSERT INTO steps (project_id, name, order_index, created_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    [
                        (project_id, step_name, order_index, ts)
                        for step_name, order_index in DEFAULT_STEPS
                    ],
                )
        except Exception:
            logger.exception("Failed to save project %r to DB", name)
            raise

        return Project(
            id=project_id,
            name=name,
            description=description,
            created_at=ts,
            updated_at=ts,
        )

    def update(
        self,
        project_id: int,
        *,
        name=_UNSET,
        description=_UNSET,
    ) -> Project | None:
        """
        Update the given fields; `updated_at` is bumped only when at
        least one field is passed. Returns the stored project, or None
        if it does not exist.
        """
        updates: list[str] = []
        params: list = []

        if name is not _UNSET:
            updates.append("name = ?")
            params.append(name)
        if description is not _UNSET:
            updates.append("description = ?")
            params.append(description)

        if updates:
            updates.append("updated_at = ?")
            params.append(utc_now())
            params.append(project_id)

            logger.info("Updating project %s in DB", project_id)
            try:
                with self._connection() as conn:
                    conn.execute(
                        f"UPDATE projects SET {', '.join(updates)} WHERE id = ?",
                        tuple(params),
                    )
            except Exception:
                logger.exception("Failed to update project %s in DB", project_id)
                raise

        return self.get(project_id)

    def delete(self, project_id: int) -> bool:
        """
        Delete a project; steps and results go with it (ON DELETE CASCADE).
        Returns False if no such project existed.
        """
        logger.info("Deleting project %s from DB", project_id)
        try:
            with self._connection() as conn:
                cur = conn.execute(
                    "DELETE FROM projects WHERE id = ?",
                    (project_id,),
                )
        except Exception:
            logger.exception("Failed to delete project %s from DB", project_id)
            raise

        return cur.rowcount > 0


# -----------------------
# Transaction-scoped DAO
# -----------------------

@contextmanager
def project_dao(db_path: str):
    """
    Yield a ProjectDAO bound to a single transaction.
    """
    with get_conn(db_path) as conn:
        yield ProjectDAO(conn=conn)
