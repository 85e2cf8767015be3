"""HTTP API for the multi-engine dashboard.

JSON endpoints over the store, the fan-out engine and the result
aggregator. Errors are returned as {"error": message}.
"""
import logging
import os
from typing import Any, Dict, Optional

from fastapi import Body, FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from multi_engine_dashboard.aggregator import ResultAggregator
from multi_engine_dashboard.config import (
    DB_FILE_PATH,
    ENGINE_BY_SLUG,
    SQLITE_MAX_INT,
    configure_logging,
    load_provider_settings,
)
from multi_engine_dashboard.db.services import Store, open_store
from multi_engine_dashboard.engine import FanOutEngine
from multi_engine_dashboard.errors import DashboardError, NotFoundError, ValidationError
from multi_engine_dashboard.llm_client import ProviderGateway, build_gateways

logger = logging.getLogger(__name__)


# ============================================================================
# Request helpers
# ============================================================================


def _parse_id(value: Any, label: str) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {label} ID")
    if parsed <= 0 or parsed > SQLITE_MAX_INT:
        raise ValidationError(f"Invalid {label} ID")
    return parsed


def _optional_int(value: Optional[str], label: str) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        parsed = int(value)
    except ValueError:
        raise ValidationError(f"Invalid {label}")
    if parsed < 0 or parsed > SQLITE_MAX_INT:
        raise ValidationError(f"Invalid {label}")
    return parsed


def _clean_name(name: Any) -> str:
    if not name or not isinstance(name, str) or not name.strip():
        raise ValidationError("Project name is required")
    return name.strip()


def _clean_description(description: Any) -> Optional[str]:
    if description is None:
        return None
    if not isinstance(description, str):
        raise ValidationError("Project description must be a string")
    return description.strip() or None


# ============================================================================
# App factory
# ============================================================================


def create_app(
    store: Optional[Store] = None,
    gateways: Optional[Dict[str, ProviderGateway]] = None,
) -> FastAPI:
    """
    Build the API around explicit handles. Missing handles are created
    from configuration (database file, provider credentials).
    """
    if store is None:
        store = open_store(DB_FILE_PATH)
    if gateways is None:
        settings = load_provider_settings()
        missing = settings.missing_credentials()
        if missing:
            logger.warning("No credentials for: %s", ", ".join(missing))
        gateways = build_gateways(settings)

    fanout = FanOutEngine(gateways=gateways, result_service=store.results)
    aggregator = ResultAggregator(store)

    app = FastAPI(title="Multi-Engine Dashboard API", version="0.1.0")
    app.state.store = store
    app.state.fanout = fanout

    @app.exception_handler(DashboardError)
    async def handle_dashboard_error(request, exc: DashboardError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse({"error": exc.message}, status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request, exc: RequestValidationError):
        return JSONResponse({"error": "Invalid request body"}, status_code=400)

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    @app.get("/api/projects")
    def list_projects():
        return {"projects": store.projects.list_projects_with_counts()}

    @app.post("/api/projects", status_code=201)
    def create_project(payload: Dict[str, Any] = Body(...)):
        project = store.projects.create_project(
            _clean_name(payload.get("name")),
            _clean_description(payload.get("description")),
        )
        return {"project": project.to_dict()}

    @app.get("/api/projects/{project_id}")
    def get_project(project_id: str):
        pid = _parse_id(project_id, "project")
        project = store.projects.get_project(pid)
        if project is None:
            raise NotFoundError("Project not found")
        return {"project": project.to_dict()}

    @app.patch("/api/projects/{project_id}")
    def update_project(project_id: str, payload: Dict[str, Any] = Body(...)):
        pid = _parse_id(project_id, "project")
        fields: Dict[str, Any] = {}
        if "name" in payload:
            fields["name"] = _clean_name(payload["name"])
        if "description" in payload:
            fields["description"] = _clean_description(payload["description"])

        project = store.projects.update_project(pid, **fields)
        if project is None:
            raise NotFoundError("Project not found")
        return {"project": project.to_dict()}

    @app.delete("/api/projects/{project_id}")
    def delete_project(project_id: str):
        pid = _parse_id(project_id, "project")
        if not store.projects.delete_project(pid):
            raise NotFoundError("Project not found")
        return {"deleted": pid}

    @app.get("/api/projects/{project_id}/steps")
    def list_steps(project_id: str):
        pid = _parse_id(project_id, "project")
        return {"steps": store.projects.list_steps_with_counts(pid)}

    @app.get("/api/projects/{project_id}/history")
    def project_history(project_id: str):
        pid = _parse_id(project_id, "project")
        if store.projects.get_project(pid) is None:
            raise NotFoundError("Project not found")
        return {"stepGroups": [g.to_dict() for g in aggregator.project_history(pid)]}

    @app.get("/api/steps/{step_id}/history")
    def step_history(step_id: str):
        sid = _parse_id(step_id, "step")
        step = store.projects.get_step(sid)
        if step is None:
            raise NotFoundError("Step not found")
        return {
            "step": step.to_dict(),
            "promptGroups": [g.to_dict() for g in aggregator.step_history(sid)],
        }

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    @app.get("/api/results")
    def list_results(
        project_id: Optional[str] = None,
        step_id: Optional[str] = None,
        engine: Optional[str] = None,
        limit: Optional[str] = None,
        offset: Optional[str] = None,
    ):
        results = store.results.list_results(
            project_id=_optional_int(project_id, "project_id"),
            step_id=_optional_int(step_id, "step_id"),
            engine=engine or None,
            limit=_optional_int(limit, "limit"),
            offset=_optional_int(offset, "offset"),
        )
        return {"results": [r.to_dict() for r in results]}

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    @app.post("/api/submit")
    def submit_all(payload: Dict[str, Any] = Body(...)):
        outcomes = fanout.submit(payload.get("prompt"), payload.get("step_id"))
        return {"outcomes": {name: o.to_dict() for name, o in outcomes.items()}}

    @app.post("/api/{engine_slug}")
    def submit_one(engine_slug: str, payload: Dict[str, Any] = Body(...)):
        engine_name = ENGINE_BY_SLUG.get(engine_slug)
        if engine_name is None:
            raise NotFoundError(f"Unknown engine '{engine_slug}'")
        success = fanout.submit_one(engine_name, payload.get("prompt"), payload.get("step_id"))
        return {"response": success.text}

    return app


def get_app() -> FastAPI:
    """Entry point for uvicorn's --factory mode."""
    configure_logging()
    db_path = os.environ.get("DATABASE_PATH") or DB_FILE_PATH
    return create_app(store=open_store(db_path))
