"""
fieldsync/storage/postgres.py - PostgreSQL Record Store (psycopg2).

Connections come from a ThreadedConnectionPool. A transaction binds one
connection to the calling thread from begin() until commit()/rollback();
reads outside a transaction borrow a connection for the single statement.
When every pooled connection is checked out, callers wait for one to be
returned.

find_record() inside a transaction takes a row lock (SELECT ... FOR UPDATE)
so two batches touching the same record serialize on it. Two batches that
both fill the same empty field still resolve as "last commit wins".

Schema bootstrap is not managed here beyond create_schema(), which issues the
DDL below with IF NOT EXISTS guards.
"""

import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator, Optional

import psycopg2
import psycopg2.extras
import psycopg2.pool

from fieldsync.models import PolygonRecord, Project
from fieldsync.storage.base import RecordStore

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS fs_project (
    id                SERIAL PRIMARY KEY,
    name              TEXT NOT NULL UNIQUE,
    color_assignments JSONB NOT NULL DEFAULT '{}'::jsonb,
    target_shares     JSONB NOT NULL DEFAULT '{}'::jsonb,
    session_info      JSONB,
    created_at        TIMESTAMPTZ NOT NULL,
    updated_at        TIMESTAMPTZ NOT NULL
);

CREATE TABLE IF NOT EXISTS fs_polygon_record (
    seq              BIGSERIAL,
    project_id       INTEGER NOT NULL REFERENCES fs_project(id) ON DELETE CASCADE,
    record_id        TEXT NOT NULL,
    area_ha          DOUBLE PRECISION NOT NULL DEFAULT 0 CHECK (area_ha >= 0),
    contributor_name TEXT NOT NULL DEFAULT '',
    date_completed   TEXT NOT NULL DEFAULT '',
    color_code       TEXT NOT NULL DEFAULT '',
    geometry         JSONB,
    source           TEXT NOT NULL DEFAULT '',
    last_update      TIMESTAMPTZ,
    created_at       TIMESTAMPTZ,
    updated_at       TIMESTAMPTZ,
    PRIMARY KEY (project_id, record_id)
);
"""

_PROJECT_COLUMNS = (
    "id, name, color_assignments, target_shares, session_info, created_at, updated_at"
)
_RECORD_COLUMNS = (
    "record_id, area_ha, contributor_name, date_completed, color_code, geometry, "
    "source, last_update, created_at, updated_at"
)
_JSON_FIELDS = {"color_assignments", "target_shares", "session_info", "geometry"}
_PROJECT_METADATA_FIELDS = {"color_assignments", "target_shares", "session_info"}
_RECORD_FIELDS = set(_RECORD_COLUMNS.replace(" ", "").split(",")) - {"record_id"}


def _adapt(name: str, value: Any) -> Any:
    if name in _JSON_FIELDS and value is not None:
        return psycopg2.extras.Json(value)
    return value


def _project_from_row(row: dict) -> Project:
    return Project(
        id=row["id"],
        name=row["name"],
        color_assignments=row["color_assignments"] or {},
        target_shares=row["target_shares"] or {},
        session_info=row["session_info"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _record_from_row(row: dict) -> PolygonRecord:
    return PolygonRecord(
        record_id=row["record_id"],
        area_ha=float(row["area_ha"] or 0.0),
        contributor_name=row["contributor_name"] or "",
        date_completed=row["date_completed"] or "",
        color_code=row["color_code"] or "",
        geometry=row["geometry"],
        source=row["source"] or "",
        last_update=row["last_update"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class PostgresRecordStore(RecordStore):
    """
    Record Store backed by PostgreSQL.

    Args:
        dsn:      libpq connection string.
        min_conn: Minimum pooled connections.
        max_conn: Maximum pooled connections (bounds concurrent requests).
    """

    def __init__(self, dsn: str, min_conn: int = 1, max_conn: int = 10) -> None:
        super().__init__()
        self._pool = psycopg2.pool.ThreadedConnectionPool(min_conn, max_conn, dsn)
        # getconn() fails instead of waiting when the pool is exhausted, so
        # callers queue on this semaphore first.
        self._slots = threading.BoundedSemaphore(max_conn)

    def close(self) -> None:
        self._pool.closeall()

    def create_schema(self) -> None:
        with self._cursor() as cur:
            cur.execute(SCHEMA_SQL)
        logger.info("fieldsync schema ensured.")

    def _acquire(self) -> Any:
        """Wait for a free pool slot, then check out a connection."""
        self._slots.acquire()
        try:
            return self._pool.getconn()
        except BaseException:
            self._slots.release()
            raise

    def _give_back(self, conn: Any) -> None:
        try:
            self._pool.putconn(conn)
        finally:
            self._slots.release()

    # ── Transaction scope ─────────────────────────────────────────────────────

    def begin(self) -> None:
        conn = self._acquire()
        conn.autocommit = False
        self._local.conn = conn

    def commit(self) -> None:
        conn = self._local.conn
        try:
            conn.commit()
        finally:
            self._release()

    def rollback(self) -> None:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            return
        try:
            conn.rollback()
        finally:
            self._release()

    def _release(self) -> None:
        conn = self._local.conn
        self._local.conn = None
        self._give_back(conn)

    @contextmanager
    def _cursor(self) -> Iterator[Any]:
        """Cursor on the thread's transaction, or a one-statement autocommit."""
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                yield cur
            return

        conn = self._acquire()
        try:
            with conn:
                with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                    yield cur
        finally:
            self._give_back(conn)

    # ── Projects ──────────────────────────────────────────────────────────────

    def find_project_by_name(self, name: str) -> Optional[Project]:
        lock = " FOR UPDATE" if self.in_transaction() else ""
        with self._cursor() as cur:
            cur.execute(
                f"SELECT {_PROJECT_COLUMNS} FROM fs_project WHERE name = %s{lock}",
                (name,),
            )
            row = cur.fetchone()
        return _project_from_row(row) if row else None

    def create_project(
        self,
        name: str,
        color_assignments: dict[str, str],
        target_shares: dict[str, float],
        session_info: Any,
        timestamp: datetime,
    ) -> Project:
        with self._cursor() as cur:
            cur.execute(
                f"""
                INSERT INTO fs_project
                    (name, color_assignments, target_shares, session_info,
                     created_at, updated_at)
                VALUES (%s, %s, %s, %s, %s, %s)
                RETURNING {_PROJECT_COLUMNS}
                """,
                (
                    name,
                    psycopg2.extras.Json(color_assignments),
                    psycopg2.extras.Json(target_shares),
                    _adapt("session_info", session_info),
                    timestamp,
                    timestamp,
                ),
            )
            return _project_from_row(cur.fetchone())

    def update_project_metadata(
        self,
        project_id: Any,
        fields: dict[str, Any],
        timestamp: datetime,
    ) -> Project:
        unknown = set(fields) - _PROJECT_METADATA_FIELDS
        if unknown:
            raise ValueError(f"Not project metadata fields: {sorted(unknown)}")
        assignments = [f"{name} = %s" for name in fields] + ["updated_at = %s"]
        params = [_adapt(name, value) for name, value in fields.items()]
        params += [timestamp, project_id]
        with self._cursor() as cur:
            cur.execute(
                f"UPDATE fs_project SET {', '.join(assignments)} "
                f"WHERE id = %s RETURNING {_PROJECT_COLUMNS}",
                params,
            )
            return _project_from_row(cur.fetchone())

    def list_projects(self) -> list[Project]:
        with self._cursor() as cur:
            cur.execute(f"SELECT {_PROJECT_COLUMNS} FROM fs_project ORDER BY id")
            return [_project_from_row(row) for row in cur.fetchall()]

    # ── Polygon records ───────────────────────────────────────────────────────

    def find_record(self, project_id: Any, record_id: str) -> Optional[PolygonRecord]:
        lock = " FOR UPDATE" if self.in_transaction() else ""
        with self._cursor() as cur:
            cur.execute(
                f"SELECT {_RECORD_COLUMNS} FROM fs_polygon_record "
                f"WHERE project_id = %s AND record_id = %s{lock}",
                (project_id, record_id),
            )
            row = cur.fetchone()
        return _record_from_row(row) if row else None

    def insert_record(self, project_id: Any, record: PolygonRecord) -> None:
        with self._cursor() as cur:
            cur.execute(
                f"""
                INSERT INTO fs_polygon_record (project_id, {_RECORD_COLUMNS})
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    project_id,
                    record.record_id,
                    record.area_ha,
                    record.contributor_name,
                    record.date_completed,
                    record.color_code,
                    _adapt("geometry", record.geometry),
                    record.source,
                    record.last_update,
                    record.created_at,
                    record.updated_at,
                ),
            )

    def update_record_fields(
        self,
        project_id: Any,
        record_id: str,
        fields: dict[str, Any],
    ) -> None:
        if not fields:
            return
        unknown = set(fields) - _RECORD_FIELDS
        if unknown:
            raise ValueError(f"Not polygon record fields: {sorted(unknown)}")
        assignments = [f"{name} = %s" for name in fields]
        params = [_adapt(name, value) for name, value in fields.items()]
        params += [project_id, record_id]
        with self._cursor() as cur:
            cur.execute(
                f"UPDATE fs_polygon_record SET {', '.join(assignments)} "
                "WHERE project_id = %s AND record_id = %s",
                params,
            )

    def list_records_for_project(self, project_id: Any) -> list[PolygonRecord]:
        with self._cursor() as cur:
            cur.execute(
                f"SELECT {_RECORD_COLUMNS} FROM fs_polygon_record "
                "WHERE project_id = %s ORDER BY seq",
                (project_id,),
            )
            return [_record_from_row(row) for row in cur.fetchall()]
