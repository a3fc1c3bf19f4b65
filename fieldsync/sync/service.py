"""
fieldsync/sync/service.py - Sync service and read helpers.

sync_batch() is the single entry point of the write path:

    validate request → ensure_project → reconcile → commit

The registry update and every reconciliation of the batch share one store
transaction, so they commit together or not at all. Validation happens
before any store access.

The read helpers raise ProjectNotFoundError for unknown projects so callers
can tell "no such project" apart from a malformed request. Store failures
during a read surface as PersistenceError, like on the write path.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterator, Optional

from fieldsync.config import DEFAULT_CONFIG, FieldSyncConfig
from fieldsync.errors import (
    FieldSyncError,
    PersistenceError,
    ProjectNotFoundError,
    ValidationError,
)
from fieldsync.metrics.statistics import ProjectStatistics, aggregate
from fieldsync.models import (
    PolygonRecord,
    Project,
    ProjectMetadata,
    coerce_text,
    parse_timestamp,
)
from fieldsync.storage.base import RecordStore
from fieldsync.sync.reconcile import reconcile
from fieldsync.sync.registry import ensure_project

logger = logging.getLogger(__name__)


@dataclass
class SyncRequest:
    """
    One inbound batch from a field client.

    The project is addressed by project_name when given, else by layer_name.
    records are partial dicts keyed id, area_ha, contributor_name,
    date_completed, color_code, geometry.
    """
    records: Any
    project_name: Optional[str] = None
    layer_name: Optional[str] = None
    metadata: Optional[ProjectMetadata] = None
    source_tag: Optional[str] = None
    timestamp: Any = None

    @property
    def project_key(self) -> str:
        return coerce_text(self.project_name) or coerce_text(self.layer_name)


@dataclass
class SyncResult:
    project_name: str
    created_count: int
    updated_count: int
    total_records: int
    records: list[PolygonRecord]
    last_sync: datetime


@dataclass
class ProjectDetail:
    project: Project
    records: list[PolygonRecord]
    statistics: ProjectStatistics


@dataclass
class LayerSummary:
    name: str
    polygon_count: int
    last_update: Optional[datetime]


def validate_request(request: SyncRequest) -> None:
    """
    Reject malformed requests before touching storage.

    Raises:
        ValidationError: No project key, or records is not a non-empty list.
    """
    if not request.project_key:
        raise ValidationError("A project name or layer key is required.")
    if not isinstance(request.records, list):
        raise ValidationError("records must be a list of polygon updates.")
    if not request.records:
        raise ValidationError("records must not be empty.")


def sync_batch(
    store: RecordStore,
    request: SyncRequest,
    config: FieldSyncConfig = DEFAULT_CONFIG,
) -> SyncResult:
    """
    Apply one sync batch atomically.

    Returns:
        SyncResult with the counts and the full post-merge record set.

    Raises:
        ValidationError:  Malformed request (storage untouched).
        PersistenceError: Store failure (batch rolled back, cause chained).
    """
    validate_request(request)
    name = request.project_key
    stamp = parse_timestamp(request.timestamp)

    logger.info(
        "Sync for '%s' from %s: %d entries.",
        name,
        coerce_text(request.source_tag) or config.default_source_tag,
        len(request.records),
    )

    try:
        with store.transaction():
            project = ensure_project(store, name, request.metadata, stamp)
            result = reconcile(
                store,
                project.id,
                request.records,
                source_tag=request.source_tag,
                timestamp=stamp,
                config=config,
            )
    except FieldSyncError:
        raise
    except Exception as exc:
        logger.error("Sync for '%s' rolled back: %s", name, exc)
        raise PersistenceError(f"Record store failure during sync: {exc}") from exc

    return SyncResult(
        project_name=name,
        created_count=result.created_count,
        updated_count=result.updated_count,
        total_records=len(result.records),
        records=result.records,
        last_sync=stamp,
    )


# ── Read helpers ──────────────────────────────────────────────────────────────

@contextmanager
def _store_reads(what: str) -> Iterator[None]:
    """Re-raise store failures during a read as PersistenceError."""
    try:
        yield
    except FieldSyncError:
        raise
    except Exception as exc:
        logger.error("Reading %s failed: %s", what, exc)
        raise PersistenceError(f"Record store failure while reading {what}: {exc}") from exc


def _require_project(store: RecordStore, name: str) -> Project:
    project = store.find_project_by_name(coerce_text(name))
    if project is None:
        raise ProjectNotFoundError(name)
    return project


def project_records(store: RecordStore, name: str) -> list[PolygonRecord]:
    """Raw record set of a project. Raises ProjectNotFoundError."""
    with _store_reads(f"project '{name}'"):
        project = _require_project(store, name)
        return store.list_records_for_project(project.id)


def project_statistics(
    store: RecordStore,
    name: str,
    config: FieldSyncConfig = DEFAULT_CONFIG,
) -> ProjectStatistics:
    """Statistics of one project. Raises ProjectNotFoundError."""
    with _store_reads(f"project '{name}'"):
        project = _require_project(store, name)
        records = store.list_records_for_project(project.id)
    return aggregate(records, project, config)


def project_detail(
    store: RecordStore,
    name: str,
    config: FieldSyncConfig = DEFAULT_CONFIG,
) -> ProjectDetail:
    """Project metadata, records and statistics. Raises ProjectNotFoundError."""
    with _store_reads(f"project '{name}'"):
        project = _require_project(store, name)
        records = store.list_records_for_project(project.id)
    return ProjectDetail(
        project=project,
        records=records,
        statistics=aggregate(records, project, config),
    )


_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def project_overviews(
    store: RecordStore,
    config: FieldSyncConfig = DEFAULT_CONFIG,
) -> list[ProjectStatistics]:
    """Statistics for every project, most recently updated first."""
    with _store_reads("project list"):
        snapshot = [(p, store.list_records_for_project(p.id)) for p in store.list_projects()]
    overviews = [aggregate(records, p, config) for p, records in snapshot]
    overviews.sort(key=lambda s: s.last_update or _OLDEST, reverse=True)
    return overviews


def layer_summaries(store: RecordStore) -> list[LayerSummary]:
    with _store_reads("layer list"):
        snapshot = [(p, store.list_records_for_project(p.id)) for p in store.list_projects()]
    summaries = []
    for project, records in snapshot:
        stamps = [r.last_update for r in records if r.last_update is not None]
        summaries.append(
            LayerSummary(
                name=project.name,
                polygon_count=len(records),
                last_update=max(stamps) if stamps else None,
            )
        )
    return summaries


# ── Collector status flag ─────────────────────────────────────────────────────

@dataclass
class CollectorStatus:
    """Operator-set on/off flag shown to field clients."""
    status: bool = False
    last_update: datetime = field(default_factory=lambda: datetime.now(tz=timezone.utc))
    source: str = "server"


def update_status(
    current: CollectorStatus,
    status: Any,
    timestamp: Any = None,
    source: Optional[str] = None,
    config: FieldSyncConfig = DEFAULT_CONFIG,
) -> CollectorStatus:
    """
    Return the new collector status.

    Raises:
        ValidationError: status is not a real boolean.
    """
    if not isinstance(status, bool):
        raise ValidationError("status must be a boolean.")
    updated = CollectorStatus(
        status=status,
        last_update=parse_timestamp(timestamp),
        source=coerce_text(source) or config.default_source_tag,
    )
    logger.info(
        "Collector status %s -> %s (by %s).", current.status, updated.status, updated.source
    )
    return updated
