"""
fieldsync/storage/base.py - The Record Store contract consumed by the core.

Every mutation the core performs happens inside transaction(). Transactions
are re-entrant per thread: a nested transaction() joins the outer one, so the
sync service can wrap the registry and the reconciler in one scope while the
reconciler still opens its own scope when called on its own.
"""

import abc
import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator, Optional

from fieldsync.models import PolygonRecord, Project

logger = logging.getLogger(__name__)


class RecordStore(abc.ABC):
    """
    Durable keyed storage for Projects and Polygon Records.

    Implementations provide begin/commit/rollback; callers use transaction().
    Objects returned by find_*/list_* are detached copies: mutating them has
    no effect on the store.
    """

    def __init__(self) -> None:
        self._local = threading.local()

    # ── Transaction scope ─────────────────────────────────────────────────────

    def in_transaction(self) -> bool:
        return getattr(self._local, "depth", 0) > 0

    @contextmanager
    def transaction(self) -> Iterator["RecordStore"]:
        """
        Run the enclosed block atomically.

        The outermost scope commits on normal exit and rolls back on any
        exception, which is re-raised unchanged.
        """
        depth = getattr(self._local, "depth", 0)
        self._local.depth = depth + 1
        if depth:
            try:
                yield self
            finally:
                self._local.depth = depth
            return

        try:
            self.begin()
            try:
                yield self
                self.commit()
            except BaseException:
                logger.debug("Rolling back transaction on %s.", type(self).__name__)
                self.rollback()
                raise
        finally:
            self._local.depth = 0

    @abc.abstractmethod
    def begin(self) -> None: ...

    @abc.abstractmethod
    def commit(self) -> None: ...

    @abc.abstractmethod
    def rollback(self) -> None: ...

    # ── Projects ──────────────────────────────────────────────────────────────

    @abc.abstractmethod
    def find_project_by_name(self, name: str) -> Optional[Project]: ...

    @abc.abstractmethod
    def create_project(
        self,
        name: str,
        color_assignments: dict[str, str],
        target_shares: dict[str, float],
        session_info: Any,
        timestamp: datetime,
    ) -> Project: ...

    @abc.abstractmethod
    def update_project_metadata(
        self,
        project_id: Any,
        fields: dict[str, Any],
        timestamp: datetime,
    ) -> Project:
        """Replace each metadata field named in `fields` wholesale."""

    @abc.abstractmethod
    def list_projects(self) -> list[Project]: ...

    # ── Polygon records ───────────────────────────────────────────────────────

    @abc.abstractmethod
    def find_record(self, project_id: Any, record_id: str) -> Optional[PolygonRecord]: ...

    @abc.abstractmethod
    def insert_record(self, project_id: Any, record: PolygonRecord) -> None: ...

    @abc.abstractmethod
    def update_record_fields(
        self,
        project_id: Any,
        record_id: str,
        fields: dict[str, Any],
    ) -> None: ...

    @abc.abstractmethod
    def list_records_for_project(self, project_id: Any) -> list[PolygonRecord]:
        """All records of the project in insertion order."""
