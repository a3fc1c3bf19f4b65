"""
fieldsync.viz - Plotly figures built from ProjectStatistics.

Modules:
    figures  sunburst_figure() for the area hierarchy, timeline_figure() for
             the daily timeline (overall or one contributor).
"""

from fieldsync.viz.figures import sunburst_figure, timeline_figure
