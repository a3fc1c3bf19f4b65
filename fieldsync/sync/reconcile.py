"""
fieldsync/sync/reconcile.py - Merge Reconciler.

Reconciles a batch of partial polygon updates from one field client against
the stored record set of a project.

Per incoming entry, keyed by id:
    - Unknown id   → insert with the incoming values, empty defaults
                     elsewhere. Counted as created.
    - Known id     → field-level policy:
        contributor_name, date_completed, color_code, geometry:
            fill-if-empty. Written only when the stored value is empty and
            the incoming one is not. A stored value is never overwritten,
            so a stale client cannot erase completed work.
        area_ha:
            authoritative from the latest submission. Written whenever the
            incoming value differs from the stored one by more than
            config.area_tolerance.
      If anything changed, source / updated_at / last_update are stamped and
      the record counts as updated; otherwise it is left untouched.
    - Entry without an id → skipped silently.

Stored records absent from the batch are left alone: there is no
deletion-by-omission, so partial batches from independent clients compose.

The whole batch runs in one store transaction. A store failure rolls it back
and is re-raised as PersistenceError.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional

from fieldsync.config import DEFAULT_CONFIG, FieldSyncConfig
from fieldsync.errors import FieldSyncError, PersistenceError
from fieldsync.models import (
    FILL_IF_EMPTY_FIELDS,
    PolygonRecord,
    coerce_area,
    coerce_record_id,
    coerce_text,
    is_empty_value,
    parse_timestamp,
)
from fieldsync.storage.base import RecordStore

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    created_count: int = 0
    updated_count: int = 0
    skipped_count: int = 0
    records: list[PolygonRecord] = field(default_factory=list)


def _incoming_value(entry: Mapping[str, Any], name: str) -> Any:
    """Normalised incoming value of a fill-if-empty field."""
    value = entry.get(name)
    if name == "geometry":
        return None if is_empty_value(value) else value
    return coerce_text(value)


def _new_record(
    record_id: str,
    entry: Mapping[str, Any],
    source: str,
    timestamp: datetime,
) -> PolygonRecord:
    return PolygonRecord(
        record_id=record_id,
        area_ha=coerce_area(entry.get("area_ha")) or 0.0,
        contributor_name=_incoming_value(entry, "contributor_name"),
        date_completed=_incoming_value(entry, "date_completed"),
        color_code=_incoming_value(entry, "color_code"),
        geometry=_incoming_value(entry, "geometry"),
        source=source,
        last_update=timestamp,
        created_at=timestamp,
        updated_at=timestamp,
    )


def merge_fields(
    stored: PolygonRecord,
    entry: Mapping[str, Any],
    config: FieldSyncConfig = DEFAULT_CONFIG,
) -> dict[str, Any]:
    """
    Return the field values the merge policy would change on `stored`.

    An empty dict means the entry carries nothing new.
    """
    changes: dict[str, Any] = {}

    for name in FILL_IF_EMPTY_FIELDS:
        incoming = _incoming_value(entry, name)
        if is_empty_value(incoming):
            continue
        if is_empty_value(getattr(stored, name)):
            changes[name] = incoming

    area = coerce_area(entry.get("area_ha"))
    if area is not None and abs(area - stored.area_ha) > config.area_tolerance:
        changes["area_ha"] = area

    return changes


def reconcile(
    store: RecordStore,
    project_id: Any,
    incoming: Iterable[Mapping[str, Any]],
    source_tag: Optional[str] = None,
    timestamp: Any = None,
    config: FieldSyncConfig = DEFAULT_CONFIG,
) -> ReconcileResult:
    """
    Merge a batch of partial records into a project.

    Args:
        store:      Record Store. Joins an enclosing transaction if any.
        project_id: Store id of the owning project.
        incoming:   Partial records with keys id, area_ha, contributor_name,
                    date_completed, color_code, geometry. Only id is required.
        source_tag: Provenance stamped on created/updated records
                    (default config.default_source_tag).
        timestamp:  datetime or ISO 8601 string (default: now, UTC).
        config:     FieldSyncConfig (area tolerance, default source tag).

    Returns:
        ReconcileResult with created/updated/skipped counts and the full
        post-merge record set of the project.

    Raises:
        PersistenceError: The store failed; nothing from this batch was kept.
    """
    source = coerce_text(source_tag) or config.default_source_tag
    stamp = parse_timestamp(timestamp)
    result = ReconcileResult()
    created_ids: set[str] = set()

    try:
        with store.transaction():
            for entry in incoming:
                if not isinstance(entry, Mapping):
                    result.skipped_count += 1
                    continue
                record_id = coerce_record_id(entry.get("id"))
                if record_id is None:
                    result.skipped_count += 1
                    continue

                stored = store.find_record(project_id, record_id)
                if stored is None:
                    store.insert_record(
                        project_id, _new_record(record_id, entry, source, stamp)
                    )
                    created_ids.add(record_id)
                    result.created_count += 1
                    continue

                changes = merge_fields(stored, entry, config)
                if not changes:
                    continue
                changes.update(source=source, updated_at=stamp, last_update=stamp)
                store.update_record_fields(project_id, record_id, changes)
                if record_id not in created_ids:
                    result.updated_count += 1

            result.records = store.list_records_for_project(project_id)
    except FieldSyncError:
        raise
    except Exception as exc:
        logger.error(
            "Batch for project %s rolled back after store failure: %s", project_id, exc
        )
        raise PersistenceError(f"Record store failure during sync: {exc}") from exc

    if result.skipped_count:
        logger.debug("Skipped %d entries without an id.", result.skipped_count)
    logger.info(
        "Reconciled project %s: %d created, %d updated, %d total.",
        project_id,
        result.created_count,
        result.updated_count,
        len(result.records),
    )
    return result
