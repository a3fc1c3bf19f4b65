"""
fieldsync.metrics - Derived statistics over a project's record set.

Modules:
    dates       Date Expander: tagged date variants, day expansion, area split.
    statistics  aggregate(): totals, per-contributor stats and chronology.
    timeline    Daily timeline (area / N attributed to each expanded day).
    hierarchy   Total → contributor → unassigned breakdown for sunburst views.
    shares      percentage() helper shared by the modules above.

Everything here is a pure function of the records plus project metadata.
"""

from fieldsync.metrics.statistics import ProjectStatistics, aggregate
