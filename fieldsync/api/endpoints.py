"""
fieldsync/api/endpoints.py - FastAPI routes over the sync core.

Endpoint summary:
    GET  /api/health               Liveness probe.
    GET  /api/status               Operator on/off flag for field clients.
    POST /api/status               Set the flag (boolean only).
    POST /api/sync                 Reconcile one batch, return the merged set.
    GET  /api/projects             Statistics for every project, newest first.
    GET  /api/project/{name}       Metadata, records and statistics of one project.
    GET  /api/data/{layer}         Raw record set of one layer (legacy clients).
    GET  /api/layers               Record counts per layer (legacy clients).

Field clients in the wild send either camelCase keys (areaHa, colorCode, ...)
or the original German attribute names (flaeche_ha, bearbeitet, datum,
farbe); the request models accept both.

Error mapping:
    ValidationError / malformed body  → 400
    ProjectNotFoundError              → 404
    PersistenceError                  → 500 (batch rolled back, safe to retry)
"""

import logging
from dataclasses import asdict
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from fieldsync import __version__
from fieldsync.config import DEFAULT_CONFIG, FieldSyncConfig
from fieldsync.errors import PersistenceError, ProjectNotFoundError, ValidationError
from fieldsync.models import ProjectMetadata, coerce_text
from fieldsync.storage.base import RecordStore
from fieldsync.storage.memory import InMemoryRecordStore
from fieldsync.sync.service import (
    CollectorStatus,
    SyncRequest,
    layer_summaries,
    project_detail,
    project_overviews,
    project_records,
    sync_batch,
    update_status,
)

logger = logging.getLogger(__name__)


# ── Request models ────────────────────────────────────────────────────────────

class PolygonIn(BaseModel):
    """One partial polygon update. Only id is required by the reconciler."""
    model_config = ConfigDict(extra="ignore")

    id: Any = None
    area_ha: Any = Field(None, validation_alias=AliasChoices("areaHa", "area_ha", "flaeche_ha"))
    contributor_name: Any = Field(
        None, validation_alias=AliasChoices("contributorName", "contributor_name", "bearbeitet")
    )
    date_completed: Any = Field(
        None, validation_alias=AliasChoices("dateCompleted", "date_completed", "datum")
    )
    color_code: Any = Field(None, validation_alias=AliasChoices("colorCode", "color_code", "farbe"))
    geometry: Any = None


class ProjectInfoIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    project_name: Optional[str] = Field(
        None, validation_alias=AliasChoices("projectName", "project_name")
    )
    color_assignments: Optional[dict[str, Any]] = Field(
        None, validation_alias=AliasChoices("colorAssignments", "colorWorkers", "color_assignments")
    )
    target_shares: Optional[dict[str, Any]] = Field(
        None, validation_alias=AliasChoices("targetShares", "workerPercentages", "target_shares")
    )
    session_info: Any = Field(None, validation_alias=AliasChoices("sessionInfo", "session_info"))

    def to_metadata(self) -> ProjectMetadata:
        assignments = None
        if self.color_assignments is not None:
            assignments = {
                str(code): coerce_text(name) for code, name in self.color_assignments.items()
            }
        return ProjectMetadata(
            color_assignments=assignments,
            target_shares=self.target_shares,
            session_info=self.session_info,
        )


class SyncBody(BaseModel):
    model_config = ConfigDict(extra="ignore")

    layer_name: Optional[str] = Field(None, validation_alias=AliasChoices("layerName", "layer_name"))
    data: Optional[list[Any]] = Field(None, validation_alias=AliasChoices("data", "records"))
    project_info: Optional[ProjectInfoIn] = Field(
        None, validation_alias=AliasChoices("projectInfo", "project_info", "contributorMetadata")
    )
    source: Optional[str] = None
    timestamp: Any = None

    def to_request(self) -> SyncRequest:
        records = None
        if self.data is not None:
            # Non-object entries pass through and are skipped by the reconciler.
            records = [
                PolygonIn.model_validate(item).model_dump() if isinstance(item, dict) else item
                for item in self.data
            ]
        info = self.project_info
        return SyncRequest(
            records=records,
            project_name=info.project_name if info else None,
            layer_name=self.layer_name,
            metadata=info.to_metadata() if info else None,
            source_tag=self.source,
            timestamp=self.timestamp,
        )


class StatusBody(BaseModel):
    status: Any = None
    timestamp: Any = None
    source: Optional[str] = None


# ── Application factory ───────────────────────────────────────────────────────

def create_app(
    store: Optional[RecordStore] = None,
    config: FieldSyncConfig = DEFAULT_CONFIG,
) -> FastAPI:
    """
    Create the fieldsync FastAPI application.

    Args:
        store:  Record Store shared by all requests. Defaults to a fresh
                InMemoryRecordStore; pass a PostgresRecordStore in production.
        config: FieldSyncConfig forwarded to the core.

    Returns:
        Configured FastAPI application. Store-touching routes are plain
        (non-async) functions so FastAPI runs them in its thread pool.
    """
    store = store if store is not None else InMemoryRecordStore()

    app = FastAPI(
        title="fieldsync",
        version=__version__,
        description=(
            "Central collector for offline field-survey clients: reconciles "
            "partial polygon edits and reports per-project progress."
        ),
    )
    app.state.store = store
    app.state.collector_status = CollectorStatus()

    # ── Error mapping ─────────────────────────────────────────────────────────

    @app.exception_handler(ValidationError)
    async def _validation_error(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def _malformed_body(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={
                "error": "Malformed request body.",
                "details": [
                    {"loc": list(e.get("loc", ())), "msg": e.get("msg", "")}
                    for e in exc.errors()
                ],
            },
        )

    @app.exception_handler(ProjectNotFoundError)
    async def _not_found(request: Request, exc: ProjectNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"error": str(exc)})

    @app.exception_handler(PersistenceError)
    async def _persistence(request: Request, exc: PersistenceError) -> JSONResponse:
        return JSONResponse(
            status_code=500,
            content={"error": str(exc), "retryable": exc.retryable},
        )

    # ── Routes ────────────────────────────────────────────────────────────────

    @app.get("/api/health", tags=["system"])
    async def health() -> dict:
        """Liveness probe."""
        return {"status": "ok", "version": __version__}

    @app.get("/api/status", tags=["system"])
    async def get_status() -> dict:
        return asdict(app.state.collector_status)

    @app.post("/api/status", tags=["system"])
    def set_status(body: StatusBody) -> dict:
        """Set the collector flag. Non-boolean status values are rejected."""
        app.state.collector_status = update_status(
            app.state.collector_status,
            body.status,
            timestamp=body.timestamp,
            source=body.source,
            config=config,
        )
        return {"success": True, **asdict(app.state.collector_status)}

    @app.post("/api/sync", tags=["sync"])
    def sync(body: SyncBody) -> dict:
        """
        Reconcile one batch from a field client.

        Returns:
            {created_count, updated_count, total_records, records, last_sync}
            where records is the full post-merge set of the project.
        """
        result = sync_batch(store, body.to_request(), config)
        return {
            "success": True,
            "project_name": result.project_name,
            "created_count": result.created_count,
            "updated_count": result.updated_count,
            "total_records": result.total_records,
            "records": [asdict(r) for r in result.records],
            "last_sync": result.last_sync,
        }

    @app.get("/api/projects", tags=["statistics"])
    def list_projects() -> dict:
        overviews = project_overviews(store, config)
        return {
            "projects": [{"name": s.project_name, **asdict(s)} for s in overviews],
            "total_projects": len(overviews),
        }

    @app.get("/api/project/{name}", tags=["statistics"])
    def get_project(name: str) -> dict:
        detail = project_detail(store, name, config)
        return {
            "project_name": detail.project.name,
            "info": asdict(detail.project),
            "data": [asdict(r) for r in detail.records],
            "statistics": asdict(detail.statistics),
        }

    @app.get("/api/data/{layer}", tags=["legacy"])
    def get_layer_data(layer: str) -> dict:
        records = project_records(store, layer)
        return {
            "layer_name": layer,
            "data": [asdict(r) for r in records],
            "count": len(records),
        }

    @app.get("/api/layers", tags=["legacy"])
    def list_layers() -> dict:
        layers = layer_summaries(store)
        return {"layers": [asdict(layer) for layer in layers], "total_layers": len(layers)}

    logger.info("fieldsync FastAPI application created on %s.", type(store).__name__)
    return app
