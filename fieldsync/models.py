"""
fieldsync/models.py - Project and Polygon Record entities.

A Project owns zero or more PolygonRecords keyed by (project_id, record_id).
The completion predicate is_completed() is the single "done" gate used by the
reconciler, the aggregator and the API.

Incoming client values are loosely typed (numeric ids, numeric strings with a
comma decimal separator, padded text). The coerce_* helpers normalise them
once on ingest so the rest of the package only sees clean values.
"""

import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

logger = logging.getLogger(__name__)

# Fields the reconciler writes under the fill-if-empty policy.
FILL_IF_EMPTY_FIELDS = ("contributor_name", "date_completed", "color_code", "geometry")


@dataclass
class ProjectMetadata:
    """
    Partial project metadata supplied by a sync request.

    A field left as None was omitted by the caller and keeps its stored value.
    """
    color_assignments: Optional[dict[str, str]] = None
    target_shares: Optional[dict[str, float]] = None
    session_info: Optional[Any] = None

    def supplied_fields(self) -> dict[str, Any]:
        """Return only the fields the caller actually supplied."""
        return {
            name: value
            for name, value in (
                ("color_assignments", self.color_assignments),
                ("target_shares", self.target_shares),
                ("session_info", self.session_info),
            )
            if value is not None
        }


@dataclass
class Project:
    """
    A survey project.

    Fields:
        id:                 Store-assigned identifier.
        name:               Unique, client-chosen project name (or layer key).
        color_assignments:  color code → contributor display name.
        target_shares:      color code → target percentage of total area.
                            Values need not sum to 100.
        session_info:       Opaque client session payload.
    """
    id: Any
    name: str
    color_assignments: dict[str, str] = field(default_factory=dict)
    target_shares: dict[str, float] = field(default_factory=dict)
    session_info: Any = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class PolygonRecord:
    """
    One mapped land parcel tracked within a project.

    Empty strings mean "not recorded yet". geometry is opaque and never
    inspected.
    """
    record_id: str
    area_ha: float = 0.0
    contributor_name: str = ""
    date_completed: str = ""
    color_code: str = ""
    geometry: Any = None
    source: str = ""
    last_update: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def copy(self) -> "PolygonRecord":
        return copy.deepcopy(self)


def is_completed(record: PolygonRecord) -> bool:
    """A record is completed iff contributor, date and color are all set."""
    return bool(record.contributor_name and record.date_completed and record.color_code)


# ── Value coercion ────────────────────────────────────────────────────────────

def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def coerce_record_id(value: Any) -> Optional[str]:
    """Return the id as a non-blank string, or None when it is missing."""
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip()
    return text or None


def coerce_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def coerce_area(value: Any) -> Optional[float]:
    """
    Parse an incoming area in hectares.

    Returns None when the value is absent or unusable: None, blank, zero,
    negative, non-finite or unparseable. Zero is the empty value of the
    field, so an explicit 0 is treated like an omission.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        text = value.strip().replace(",", ".")
        if not text:
            return None
        try:
            area = float(text)
        except ValueError:
            logger.warning("Ignoring unparseable area value %r.", value)
            return None
    else:
        try:
            area = float(value)
        except (TypeError, ValueError):
            logger.warning("Ignoring unparseable area value %r.", value)
            return None

    if area != area or area in (float("inf"), float("-inf")):
        return None
    if area < 0:
        logger.warning("Ignoring negative area value %r.", value)
        return None
    if area == 0:
        return None
    return area


def is_empty_value(value: Any) -> bool:
    """Empty for fill-if-empty purposes: None, blank string, empty container."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (dict, list, tuple)):
        return len(value) == 0
    return False


def parse_timestamp(value: Any) -> datetime:
    """
    Normalise a request timestamp to an aware UTC datetime.

    Accepts datetimes and ISO 8601 strings (a trailing 'Z' is allowed).
    Missing or unparseable values fall back to the current time.
    """
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            logger.warning("Unparseable timestamp %r; using current time.", value)
            return utc_now()
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return utc_now()
