"""
fieldsync/metrics/timeline.py - Daily area timeline.

Every completed record's date is run through the Date Expander and
area_ha / N is attributed to each of its N days. The per-day shares are then
summed overall and per contributor with a pandas group-by.

A record's contributor label is the name assigned to its color code; records
whose color has no assignment fall back to their own contributor_name.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Mapping, Optional

import pandas as pd

from fieldsync.config import DEFAULT_CONFIG, FieldSyncConfig
from fieldsync.metrics.dates import DateExpression, distribute_area, parse_dates
from fieldsync.models import PolygonRecord, is_completed

logger = logging.getLogger(__name__)


@dataclass
class DailyContributorArea:
    name: str
    color: str
    area: float


@dataclass
class DailyTimelineEntry:
    """Area attributed to one calendar day, overall and per contributor."""
    day: date
    total_area: float
    contributors: list[DailyContributorArea] = field(default_factory=list)


def build_daily_timeline(
    records: Iterable[PolygonRecord],
    color_assignments: Optional[dict[str, str]] = None,
    expressions: Optional[Mapping[str, DateExpression]] = None,
    config: FieldSyncConfig = DEFAULT_CONFIG,
) -> list[DailyTimelineEntry]:
    """
    Build the per-day timeline, newest day first.

    Completed records with an unparseable date contribute nothing. Within a
    day, contributors are ordered by area descending.

    Args:
        records:           Records to attribute; incomplete ones are ignored.
        color_assignments: color code → contributor display name.
        expressions:       Pre-parsed date variants keyed by date text. Texts
                           missing from it are parsed with `config`.
        config:            FieldSyncConfig (date keywords, range limit).
    """
    color_assignments = color_assignments or {}
    completed = [r for r in records if is_completed(r)]
    if expressions is None:
        expressions = {}
    missing = [r.date_completed for r in completed if r.date_completed not in expressions]
    if missing:
        expressions = {**expressions, **parse_dates(missing, config)}

    rows = []
    skipped = 0
    for record in completed:
        shares = distribute_area(expressions[record.date_completed], record.area_ha)
        if not shares:
            skipped += 1
            continue
        name = color_assignments.get(record.color_code) or record.contributor_name
        for day, share in shares:
            rows.append(
                {"day": day, "contributor": name, "color": record.color_code, "area": share}
            )

    if skipped:
        logger.debug("%d completed records have no attributable date.", skipped)
    if not rows:
        return []

    df = pd.DataFrame(rows)
    per_contributor = (
        df.groupby(["day", "contributor", "color"], sort=False, as_index=False)["area"]
        .sum()
        .sort_values(["day", "area"], ascending=[False, False], kind="stable")
    )

    timeline: list[DailyTimelineEntry] = []
    for day, day_rows in per_contributor.groupby("day", sort=False):
        timeline.append(
            DailyTimelineEntry(
                day=day,
                total_area=float(day_rows["area"].sum()),
                contributors=[
                    DailyContributorArea(
                        name=row.contributor, color=row.color, area=float(row.area)
                    )
                    for row in day_rows.itertuples(index=False)
                ],
            )
        )
    return timeline


def contributor_series(
    timeline: list[DailyTimelineEntry],
    name: str,
) -> list[tuple[date, float]]:
    """(day, area) pairs for one contributor, in timeline order."""
    series = []
    for entry in timeline:
        area = sum(c.area for c in entry.contributors if c.name == name)
        if area > 0:
            series.append((entry.day, area))
    return series
