"""
fieldsync/storage/memory.py - Dict-backed Record Store.

Transactions are serialized with a re-entrant lock held from begin() to
commit()/rollback(). begin() snapshots the whole state; rollback() restores
it, so a failed batch leaves no partial writes. Reads outside a transaction
take the same lock briefly and therefore never observe a half-applied batch.
"""

import copy
import itertools
import logging
import threading
from datetime import datetime
from typing import Any, Optional

from fieldsync.models import PolygonRecord, Project
from fieldsync.storage.base import RecordStore

logger = logging.getLogger(__name__)


class InMemoryRecordStore(RecordStore):
    """Record Store kept in process memory. Not durable across restarts."""

    def __init__(self) -> None:
        super().__init__()
        self._lock = threading.RLock()
        self._projects: dict[int, Project] = {}
        self._project_ids: dict[str, int] = {}
        self._records: dict[int, dict[str, PolygonRecord]] = {}
        self._ids = itertools.count(1)
        self._snapshot: Optional[tuple] = None

    # ── Transaction scope ─────────────────────────────────────────────────────

    def begin(self) -> None:
        self._lock.acquire()
        self._snapshot = copy.deepcopy(
            (self._projects, self._project_ids, self._records)
        )

    def commit(self) -> None:
        self._snapshot = None
        self._lock.release()

    def rollback(self) -> None:
        if self._snapshot is not None:
            self._projects, self._project_ids, self._records = self._snapshot
            self._snapshot = None
            logger.info("In-memory transaction rolled back.")
        self._lock.release()

    # ── Projects ──────────────────────────────────────────────────────────────

    def find_project_by_name(self, name: str) -> Optional[Project]:
        with self._lock:
            project_id = self._project_ids.get(name)
            if project_id is None:
                return None
            return copy.deepcopy(self._projects[project_id])

    def create_project(
        self,
        name: str,
        color_assignments: dict[str, str],
        target_shares: dict[str, float],
        session_info: Any,
        timestamp: datetime,
    ) -> Project:
        with self._lock:
            if name in self._project_ids:
                raise KeyError(f"Project '{name}' already exists.")
            project = Project(
                id=next(self._ids),
                name=name,
                color_assignments=copy.deepcopy(color_assignments),
                target_shares=copy.deepcopy(target_shares),
                session_info=copy.deepcopy(session_info),
                created_at=timestamp,
                updated_at=timestamp,
            )
            self._projects[project.id] = project
            self._project_ids[name] = project.id
            self._records[project.id] = {}
            return copy.deepcopy(project)

    def update_project_metadata(
        self,
        project_id: Any,
        fields: dict[str, Any],
        timestamp: datetime,
    ) -> Project:
        with self._lock:
            project = self._projects[project_id]
            for name, value in fields.items():
                setattr(project, name, copy.deepcopy(value))
            project.updated_at = timestamp
            return copy.deepcopy(project)

    def list_projects(self) -> list[Project]:
        with self._lock:
            return [copy.deepcopy(p) for p in self._projects.values()]

    # ── Polygon records ───────────────────────────────────────────────────────

    def find_record(self, project_id: Any, record_id: str) -> Optional[PolygonRecord]:
        with self._lock:
            record = self._records.get(project_id, {}).get(record_id)
            return record.copy() if record is not None else None

    def insert_record(self, project_id: Any, record: PolygonRecord) -> None:
        with self._lock:
            records = self._records[project_id]
            if record.record_id in records:
                raise KeyError(
                    f"Record '{record.record_id}' already exists in project {project_id}."
                )
            records[record.record_id] = record.copy()

    def update_record_fields(
        self,
        project_id: Any,
        record_id: str,
        fields: dict[str, Any],
    ) -> None:
        with self._lock:
            record = self._records[project_id][record_id]
            for name, value in fields.items():
                setattr(record, name, copy.deepcopy(value))

    def list_records_for_project(self, project_id: Any) -> list[PolygonRecord]:
        with self._lock:
            return [r.copy() for r in self._records.get(project_id, {}).values()]
