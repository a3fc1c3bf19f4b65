"""
fieldsync/config.py - All tunable parameters for the collector.

Tolerances, default tags and presentation labels live here so that a
calibration change is a single-file diff.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class FieldSyncConfig:
    """
    Immutable configuration for reconciliation and statistics.

    Override by constructing a new FieldSyncConfig with the desired values.
    """

    # ── Merge Reconciler ──────────────────────────────────────────────────────
    area_tolerance: float = 1e-4
    # Incoming area_ha replaces the stored value only when the absolute
    # difference exceeds this (hectares).

    default_source_tag: str = "unknown"
    # Provenance tag stamped on created/updated records when the sync
    # request carries none.

    # ── Date Expander ─────────────────────────────────────────────────────────
    range_keyword: str = "bis"
    # Separator of a closed range: "01.03.2025 bis 03.03.2025".
    # The same word prefixes the open-start form: "bis 03.03.2025".

    open_end_keyword: str = "ab"
    # Prefix of the open-end form: "ab 01.03.2025".

    max_range_days: int = 3660
    # Longest closed range (days, inclusive) attributed day by day. Longer
    # ranges, usually a mistyped year, are treated as unparseable.

    # ── Statistics / hierarchy ────────────────────────────────────────────────
    hierarchy_root_label: str = "Project"
    unassigned_label: str = "Unassigned"
    unassigned_color: str = "gray"
    # Label and color of the remainder node (total_area - completed_area).

    # ── Storage ───────────────────────────────────────────────────────────────
    dsn_env_var: str = "FIELDSYNC_DSN"
    # Environment variable holding the PostgreSQL DSN for the CLI.


# Singleton default. Import this everywhere instead of constructing anew.
DEFAULT_CONFIG = FieldSyncConfig()
