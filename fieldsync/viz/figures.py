"""
fieldsync/viz/figures.py - Plotly figures for project progress.

Visual encoding:
    - Contributor color: the color code mapped through COLOR_MAP
      (unknown codes fall back to FALLBACK_COLOR).
    - Sunburst:  root = total area, ring = contributors + unassigned remainder.
    - Timeline:  one bar per day, stacked by contributor, oldest day on the left.

Both builders return a go.Figure and do no IO.
"""

import logging
from typing import Optional

import plotly.graph_objects as go

from fieldsync.metrics.hierarchy import HierarchyNode
from fieldsync.metrics.statistics import ProjectStatistics
from fieldsync.metrics.timeline import contributor_series

logger = logging.getLogger(__name__)

COLOR_MAP = {
    "r": "#ef4444",
    "g": "#10b981",
    "b": "#3b82f6",
    "y": "#f59e0b",
    "gray": "#6b7280",
}
FALLBACK_COLOR = "#8b5cf6"


def _color(code: Optional[str]) -> str:
    return COLOR_MAP.get(code or "", FALLBACK_COLOR)


def _flatten(
    node: HierarchyNode,
    parent_id: str,
    out: dict[str, list],
    node_id: Optional[str] = None,
) -> None:
    # Ids are positional; names and color codes may repeat among siblings.
    node_id = node_id or node.name
    out["ids"].append(node_id)
    out["labels"].append(node.name)
    out["parents"].append(parent_id)
    out["values"].append(node.value)
    out["colors"].append(_color(node.color) if node.color else "rgba(0,0,0,0)")
    out["hover"].append(f"<b>{node.name}</b><br>{node.value:.2f} ha<br>{node.percentage:.1f}%")
    for index, child in enumerate(node.children):
        _flatten(child, node_id, out, f"{node_id}/{index}")


def sunburst_figure(stats: ProjectStatistics) -> go.Figure:
    """
    Sunburst of the area hierarchy (total → contributors → unassigned).

    The root value is raised to the children's sum when float rounding would
    otherwise leave it marginally smaller, since branchvalues="total"
    drops such branches.
    """
    out: dict[str, list] = {k: [] for k in ("ids", "labels", "parents", "values", "colors", "hover")}
    _flatten(stats.hierarchy, "", out)

    children_total = sum(c.value for c in stats.hierarchy.children)
    if out["values"] and out["values"][0] < children_total:
        out["values"][0] = children_total

    fig = go.Figure(
        go.Sunburst(
            ids=out["ids"],
            labels=out["labels"],
            parents=out["parents"],
            values=out["values"],
            branchvalues="total",
            marker={"colors": out["colors"]},
            hovertext=out["hover"],
            hoverinfo="text",
        )
    )
    fig.update_layout(
        title=f"{stats.project_name or 'Project'}: area by contributor",
        margin={"t": 40, "l": 0, "r": 0, "b": 0},
    )
    return fig


def timeline_figure(
    stats: ProjectStatistics,
    color_code: Optional[str] = None,
) -> go.Figure:
    """
    Daily completed area as bars.

    Args:
        stats:      ProjectStatistics from aggregate().
        color_code: When given, plot only the contributor assigned to this
                    color; otherwise stack every contributor.
    """
    fig = go.Figure()

    if color_code is not None:
        contributor = stats.contributors.get(color_code)
        if contributor is None:
            logger.warning("No contributor assigned to color %r.", color_code)
        else:
            series = sorted(contributor_series(stats.daily_timeline, contributor.name))
            fig.add_trace(
                go.Bar(
                    x=[day.isoformat() for day, _ in series],
                    y=[area for _, area in series],
                    name=contributor.name,
                    marker_color=_color(color_code),
                )
            )
    else:
        days = sorted(entry.day for entry in stats.daily_timeline)
        per_contributor: dict[tuple[str, str], dict] = {}
        for entry in stats.daily_timeline:
            for c in entry.contributors:
                per_contributor.setdefault((c.name, c.color), {})[entry.day] = c.area
        for (name, color), areas in per_contributor.items():
            fig.add_trace(
                go.Bar(
                    x=[day.isoformat() for day in days],
                    y=[areas.get(day, 0.0) for day in days],
                    name=name,
                    marker_color=_color(color),
                )
            )
        fig.update_layout(barmode="stack")

    fig.update_layout(
        title=f"{stats.project_name or 'Project'}: completed area per day",
        xaxis_title="Day",
        yaxis_title="Area (ha)",
    )
    return fig
