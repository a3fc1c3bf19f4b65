"""
fieldsync/metrics/hierarchy.py - Nested-proportion breakdown of project area.

Root (total area) → one child per contributor (completed area attributed to
their color) → an unassigned remainder child for the area nobody has
completed yet. The remainder is only present when it is positive.
"""

from dataclasses import dataclass, field
from typing import Iterable, Optional

from fieldsync.config import DEFAULT_CONFIG, FieldSyncConfig
from fieldsync.metrics.shares import percentage


@dataclass
class HierarchyNode:
    name: str
    value: float
    color: Optional[str] = None
    percentage: float = 0.0
    children: list["HierarchyNode"] = field(default_factory=list)


def build_hierarchy(
    contributors: Iterable,
    total_area: float,
    completed_area: float,
    config: FieldSyncConfig = DEFAULT_CONFIG,
) -> HierarchyNode:
    """
    Build the sunburst tree.

    Args:
        contributors:   ContributorStatistics-like objects exposing name,
                        area, color and percentage.
        total_area:     Sum of area_ha over every record.
        completed_area: Sum of area_ha over completed records.
        config:         Supplies labels and the remainder tolerance.
    """
    children = [
        HierarchyNode(
            name=c.name,
            value=c.area,
            color=c.color,
            percentage=c.percentage,
        )
        for c in contributors
    ]

    remainder = total_area - completed_area
    if remainder > config.area_tolerance:
        children.append(
            HierarchyNode(
                name=config.unassigned_label,
                value=remainder,
                color=config.unassigned_color,
                percentage=percentage(remainder, total_area),
            )
        )

    return HierarchyNode(
        name=config.hierarchy_root_label,
        value=total_area,
        percentage=100.0 if total_area > 0 else 0.0,
        children=children,
    )
