"""
fieldsync/metrics/shares.py - Percentage helper shared by the metric modules.
"""


def percentage(part: float, whole: float) -> float:
    """100 * part / whole, 0.0 when whole is not positive, clamped to [0, 100]."""
    if whole <= 0:
        return 0.0
    return min(100.0, max(0.0, 100.0 * part / whole))
