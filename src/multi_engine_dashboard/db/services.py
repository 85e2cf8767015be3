# src/multi_engine_dashboard/db/services.py
import logging
from dataclasses import dataclass
from typing import Dict, Any, List, Optional

from multi_engine_dashboard.db.infra.core import init_db
from multi_engine_dashboard.db.projects import ProjectDAO, project_dao
from multi_engine_dashboard.db.steps import StepDAO
from multi_engine_dashboard.db.results import ResultDAO
from multi_engine_dashboard.models import Project, Step, Result

logger = logging.getLogger(__name__)


# -----------------------
# Project Service
# -----------------------
class ProjectService:
    def __init__(self, db_path: str):
        self.db_path = db_path

    def create_project(self, name: str, description: Optional[str] = None) -> Project:
        """Atomically create a project and its default steps."""
        with project_dao(self.db_path) as dao:
            return dao.create(name, description)

    def get_project(self, project_id: int) -> Project | None:
        return ProjectDAO(self.db_path).get(project_id)

    def list_projects(self) -> List[Project]:
        return ProjectDAO(self.db_path).list()

    def list_projects_with_counts(self) -> List[dict]:
        return ProjectDAO(self.db_path).list_with_counts()

    def update_project(self, project_id: int, **fields) -> Project | None:
        with project_dao(self.db_path) as dao:
            return dao.update(project_id, **fields)

    def delete_project(self, project_id: int) -> bool:
        return ProjectDAO(self.db_path).delete(project_id)

    def count_results(self, project_id: int) -> int:
        return ProjectDAO(self.db_path).count_results(project_id)

    def get_step(self, step_id: int) -> Step | None:
        return StepDAO(self.db_path).get(step_id)

    def list_steps(self, project_id: int) -> List[Step]:
        return StepDAO(self.db_path).list_for_project(project_id)

    def list_steps_with_counts(self, project_id: int) -> List[dict]:
        return StepDAO(self.db_path).list_with_counts(project_id)

    def count_step_results(self, step_id: int) -> int:
        return StepDAO(self.db_path).count_results(step_id)


# -----------------------
# Result Service
# -----------------------
class ResultService:
    def __init__(self, db_path: str):
        self.db_path = db_path

    def save_result(
        self,
        step_id: int,
        prompt: str,
        engine: str,
        response: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Result:
        return ResultDAO(self.db_path).insert(step_id, prompt, engine, response, metadata)

    def get_result(self, result_id: int) -> Result | None:
        return ResultDAO(self.db_path).get(result_id)

    def list_results(
        self,
        *,
        project_id: Optional[int] = None,
        step_id: Optional[int] = None,
        engine: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Result]:
        return ResultDAO(self.db_path).list(
            project_id=project_id,
            step_id=step_id,
            engine=engine,
            limit=limit,
            offset=offset,
        )

    def results_for_prompt(self, prompt: str, *, step_id: Optional[int] = None) -> List[Result]:
        return ResultDAO(self.db_path).list(prompt=prompt, step_id=step_id)


# -----------------------
# Store handle
# -----------------------
@dataclass(frozen=True)
class Store:
    """
    Process-wide handle over one database file. Build it once with
    open_store() and pass it to whatever needs persistence.
    """
    db_path: str
    projects: ProjectService
    results: ResultService


def open_store(db_path) -> Store:
    db_path = str(db_path)
    init_db(db_path)
    logger.info("Store ready at %s", db_path)
    return Store(
        db_path=db_path,
        projects=ProjectService(db_path),
        results=ResultService(db_path),
    )
