"""
fieldsync/metrics/statistics.py - Statistics Aggregator.

aggregate() is a pure function of a project's current record set and its
metadata. It is read-only, so it may run concurrently with writes and with
itself; a caller may see a snapshot that is momentarily behind an in-flight
sync.

Computed fields:
    totals          polygon counts, areas and completion percentages.
    contributors    one entry per assigned color code: completed area,
                    record count, share of total area, target share and a
                    newest-first chronology grouped by completion date.
    daily_timeline  see fieldsync.metrics.timeline.
    hierarchy       see fieldsync.metrics.hierarchy.

Every percentage is 100 * part / whole and 0 when whole is 0.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Iterable, Mapping, Optional

from fieldsync.config import DEFAULT_CONFIG, FieldSyncConfig
from fieldsync.metrics.dates import DateExpression, last_day, parse_dates, sort_key
from fieldsync.metrics.hierarchy import HierarchyNode, build_hierarchy
from fieldsync.metrics.shares import percentage
from fieldsync.metrics.timeline import DailyTimelineEntry, build_daily_timeline
from fieldsync.models import PolygonRecord, Project, is_completed

logger = logging.getLogger(__name__)


@dataclass
class ChronologyEntry:
    """
    A contributor's completed records sharing one date_completed value.

    Fields:
        date_completed: The raw date text shared by the group.
        day:            Latest calendar day the text covers (None if unparseable).
        area:           Summed area_ha of the group.
        record_ids:     Member record ids in record-set order.
    """
    date_completed: str
    day: Optional[date]
    area: float
    record_ids: list[str] = field(default_factory=list)


@dataclass
class ContributorStatistics:
    """
    Progress of the contributor assigned to one color code.

    Only completed records carrying the color count towards area and
    polygon_count. percentage is relative to the project's total area;
    target_percentage is the configured share (None when not configured).
    """
    name: str
    color: str
    area: float
    polygon_count: int
    percentage: float
    target_percentage: Optional[float] = None
    chronology: list[ChronologyEntry] = field(default_factory=list)


@dataclass
class ProjectStatistics:
    project_name: Optional[str]
    total_polygons: int
    completed_polygons: int
    completion_percentage: float
    total_area: float
    completed_area: float
    completion_area_percentage: float
    contributors: dict[str, ContributorStatistics]
    participant_count: int
    daily_timeline: list[DailyTimelineEntry]
    hierarchy: HierarchyNode
    last_update: Optional[datetime] = None


def _target_share(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def build_chronology(
    records: Iterable[PolygonRecord],
    expressions: Optional[Mapping[str, DateExpression]] = None,
    config: FieldSyncConfig = DEFAULT_CONFIG,
) -> list[ChronologyEntry]:
    """
    Group records by date_completed, newest first. Ties keep first-seen order.

    Args:
        records:     Records to group (normally one contributor's completed set).
        expressions: Pre-parsed date variants keyed by date text. Texts
                     missing from it are parsed with `config`.
        config:      FieldSyncConfig (date keywords).
    """
    records = list(records)
    if expressions is None:
        expressions = {}
    missing = [r.date_completed for r in records if r.date_completed not in expressions]
    if missing:
        expressions = {**expressions, **parse_dates(missing, config)}

    groups: dict[str, ChronologyEntry] = {}
    for record in records:
        entry = groups.get(record.date_completed)
        if entry is None:
            entry = ChronologyEntry(
                date_completed=record.date_completed,
                day=last_day(expressions[record.date_completed]),
                area=0.0,
            )
            groups[record.date_completed] = entry
        entry.area += record.area_ha
        entry.record_ids.append(record.record_id)

    return sorted(
        groups.values(),
        key=lambda e: sort_key(expressions[e.date_completed]),
        reverse=True,
    )


def aggregate(
    records: Iterable[PolygonRecord],
    project: Optional[Project] = None,
    config: FieldSyncConfig = DEFAULT_CONFIG,
) -> ProjectStatistics:
    """
    Compute the ProjectStatistics for a record set.

    Args:
        records: The project's current records (post-merge).
        project: Supplies color_assignments and target_shares. Without it,
                 no contributor entries are produced.
        config:  FieldSyncConfig (date keywords, labels, remainder tolerance).

    Returns:
        ProjectStatistics. The input records are not modified.
    """
    records = list(records)
    color_assignments = dict(project.color_assignments) if project else {}
    target_shares = dict(project.target_shares) if project else {}

    completed = [r for r in records if is_completed(r)]
    # Each distinct date text is parsed once and shared by every consumer.
    expressions = parse_dates((r.date_completed for r in completed), config)
    total_area = math.fsum(r.area_ha for r in records)
    completed_area = math.fsum(r.area_ha for r in completed)

    contributors: dict[str, ContributorStatistics] = {}
    for code, name in color_assignments.items():
        if not name:
            continue
        own = [r for r in completed if r.color_code == code]
        area = math.fsum(r.area_ha for r in own)
        contributors[code] = ContributorStatistics(
            name=name,
            color=code,
            area=area,
            polygon_count=len(own),
            percentage=percentage(area, total_area),
            target_percentage=_target_share(target_shares.get(code)),
            chronology=build_chronology(own, expressions, config),
        )

    last_updates = [r.last_update for r in records if r.last_update is not None]

    stats = ProjectStatistics(
        project_name=project.name if project else None,
        total_polygons=len(records),
        completed_polygons=len(completed),
        completion_percentage=percentage(len(completed), len(records)),
        total_area=total_area,
        completed_area=completed_area,
        completion_area_percentage=percentage(completed_area, total_area),
        contributors=contributors,
        participant_count=len(contributors),
        daily_timeline=build_daily_timeline(
            completed, color_assignments, expressions, config
        ),
        hierarchy=build_hierarchy(
            contributors.values(), total_area, completed_area, config
        ),
        last_update=max(last_updates) if last_updates else None,
    )

    logger.debug(
        "Aggregated %s: %d/%d polygons complete, %.4f/%.4f ha.",
        stats.project_name,
        stats.completed_polygons,
        stats.total_polygons,
        stats.completed_area,
        stats.total_area,
    )
    return stats
