"""
fieldsync/tests/test_statistics.py - Tests for the Statistics Aggregator.

Tests verify:
- The completion predicate across every empty/non-empty combination.
- Totals, areas and percentages, including zero denominators.
- Per-contributor entries keyed by assigned color (open codes allowed).
- Chronology grouping by date text, ordered newest first in calendar order.
- Daily timeline spreads range areas evenly and sums per day/contributor.
- Hierarchy remainder appears only when some area is unassigned.
"""

import itertools
from datetime import date, datetime, timezone

import pytest

from fieldsync.config import FieldSyncConfig
from fieldsync.metrics.hierarchy import build_hierarchy
from fieldsync.metrics.shares import percentage
from fieldsync.metrics.statistics import aggregate, build_chronology
from fieldsync.models import PolygonRecord, Project, is_completed


# ── Helpers ───────────────────────────────────────────────────────────────────

def rec(record_id, area=1.0, who="", when="", color="", last_update=None):
    return PolygonRecord(
        record_id=record_id,
        area_ha=area,
        contributor_name=who,
        date_completed=when,
        color_code=color,
        last_update=last_update,
    )


def project(assignments=None, shares=None, name="Forst Nord"):
    return Project(
        id=1,
        name=name,
        color_assignments=assignments or {},
        target_shares=shares or {},
    )


def sample_records():
    return [
        rec("a", 2.0, "Alice", "01.03.2025", "r"),
        rec("b", 1.0, "Alice", "01.03.2025", "r"),
        rec("c", 3.0, "Alice", "02.03.2025 bis 04.03.2025", "r"),
        rec("d", 4.0, "Bob", "05.03.2025", "g"),
        rec("e", 5.0),                          # untouched
        rec("f", 5.0, "Carol", "", "b"),        # no date → not completed
    ]


# ── Completion predicate ──────────────────────────────────────────────────────

@pytest.mark.parametrize(
    "who,when,color",
    list(itertools.product(["", "Alice"], ["", "01.03.2025"], ["", "r"])),
)
def test_completion_predicate_all_combinations(who, when, color):
    record = rec("x", who=who, when=when, color=color)
    assert is_completed(record) == (who != "" and when != "" and color != "")


# ── Totals ────────────────────────────────────────────────────────────────────

def test_empty_project_is_all_zero():
    stats = aggregate([], project({"r": "Alice"}))
    assert stats.total_polygons == 0
    assert stats.completed_polygons == 0
    assert stats.completion_percentage == 0
    assert stats.total_area == 0
    assert stats.completion_area_percentage == 0
    assert stats.contributors["r"].percentage == 0
    assert stats.daily_timeline == []
    assert stats.hierarchy.value == 0
    assert [c.name for c in stats.hierarchy.children] == ["Alice"]
    assert stats.last_update is None


def test_totals_and_percentages():
    stats = aggregate(sample_records(), project({"r": "Alice", "g": "Bob"}))
    assert stats.total_polygons == 6
    assert stats.completed_polygons == 4
    assert stats.completion_percentage == pytest.approx(4 / 6 * 100)
    assert stats.total_area == pytest.approx(20.0)
    assert stats.completed_area == pytest.approx(10.0)
    assert stats.completion_area_percentage == pytest.approx(50.0)


def test_zero_area_records_give_zero_area_percentage():
    stats = aggregate([rec("a", 0.0, "A", "01.03.2025", "r")], project({"r": "A"}))
    assert stats.completion_percentage == 100.0
    assert stats.completion_area_percentage == 0.0
    assert stats.contributors["r"].percentage == 0.0


@pytest.mark.parametrize(
    "part,whole,expected",
    [(0, 0, 0.0), (5, 0, 0.0), (1, 4, 25.0), (4, 4, 100.0), (4.0000001, 4, 100.0)],
)
def test_percentage_helper(part, whole, expected):
    assert percentage(part, whole) == pytest.approx(expected)


def test_percentages_within_bounds():
    stats = aggregate(sample_records(), project({"r": "Alice", "g": "Bob", "b": "Carol"}))
    values = [stats.completion_percentage, stats.completion_area_percentage]
    values += [c.percentage for c in stats.contributors.values()]
    for value in values:
        assert 0.0 <= value <= 100.0


# ── Contributors ──────────────────────────────────────────────────────────────

def test_contributor_stats_by_color():
    stats = aggregate(
        sample_records(),
        project({"r": "Alice", "g": "Bob", "b": "Carol"}, {"r": "40", "g": 35}),
    )
    alice = stats.contributors["r"]
    assert alice.name == "Alice"
    assert alice.area == pytest.approx(6.0)
    assert alice.polygon_count == 3
    assert alice.percentage == pytest.approx(30.0)
    assert alice.target_percentage == 40.0

    bob = stats.contributors["g"]
    assert bob.area == pytest.approx(4.0)
    assert bob.target_percentage == 35.0

    # Carol's only record is not completed.
    carol = stats.contributors["b"]
    assert carol.area == 0
    assert carol.polygon_count == 0
    assert carol.target_percentage is None
    assert stats.participant_count == 3


def test_unassigned_codes_and_blank_names_are_skipped():
    stats = aggregate(sample_records(), project({"r": "Alice", "y": ""}))
    assert list(stats.contributors) == ["r"]


def test_open_color_codes_supported():
    records = [rec("a", 2.0, "Dana", "01.03.2025", "orange")]
    stats = aggregate(records, project({"orange": "Dana"}))
    assert stats.contributors["orange"].area == 2.0


def test_no_project_means_no_contributors():
    stats = aggregate(sample_records())
    assert stats.contributors == {}
    assert stats.project_name is None
    assert stats.completed_area == pytest.approx(10.0)


# ── Chronology ────────────────────────────────────────────────────────────────

def test_chronology_grouped_and_newest_first():
    records = [
        rec("a", 2.0, "A", "01.03.2025", "r"),
        rec("b", 1.0, "A", "01.03.2025", "r"),
        rec("c", 3.0, "A", "02.03.2025 bis 04.03.2025", "r"),
        rec("d", 0.5, "A", "kaputt", "r"),
        rec("e", 4.0, "A", "05.03.2025", "r"),
        rec("f", 1.5, "A", "31.12.2024", "r"),
    ]
    chronology = build_chronology(records)
    assert [e.date_completed for e in chronology] == [
        "05.03.2025",
        "02.03.2025 bis 04.03.2025",
        "01.03.2025",
        "31.12.2024",
        "kaputt",
    ]
    first_march = chronology[2]
    assert first_march.area == pytest.approx(3.0)
    assert first_march.record_ids == ["a", "b"]
    assert first_march.day == date(2025, 3, 1)
    assert chronology[1].day == date(2025, 3, 4)
    assert chronology[-1].day is None


def test_contributor_chronology_only_has_own_completed_records():
    stats = aggregate(sample_records(), project({"r": "Alice", "g": "Bob"}))
    bob = stats.contributors["g"]
    assert [(e.date_completed, e.record_ids) for e in bob.chronology] == [("05.03.2025", ["d"])]


# ── Daily timeline ────────────────────────────────────────────────────────────

def test_range_area_split_per_day():
    records = [rec("a", 3.0, "Alice", "01.03.2025 bis 03.03.2025", "r")]
    stats = aggregate(records, project({"r": "Alice"}))
    timeline = stats.daily_timeline
    assert [e.day for e in timeline] == [date(2025, 3, 3), date(2025, 3, 2), date(2025, 3, 1)]
    for entry in timeline:
        assert entry.total_area == pytest.approx(1.0)
        assert entry.contributors[0].name == "Alice"
        assert entry.contributors[0].area == pytest.approx(1.0)


def test_timeline_sums_per_day_and_contributor():
    stats = aggregate(sample_records(), project({"r": "Alice", "g": "Bob"}))
    by_day = {e.day: e for e in stats.daily_timeline}

    # 01.03: a (2.0) + b (1.0), Alice only.
    assert by_day[date(2025, 3, 1)].total_area == pytest.approx(3.0)
    # 02.03 to 04.03: c spreads 1.0 per day.
    assert by_day[date(2025, 3, 3)].total_area == pytest.approx(1.0)
    # 05.03: Bob.
    assert by_day[date(2025, 3, 5)].contributors[0].name == "Bob"

    total = sum(e.total_area for e in stats.daily_timeline)
    assert total == pytest.approx(stats.completed_area)


def test_timeline_falls_back_to_record_contributor_name():
    records = [rec("a", 1.0, "Erik", "01.03.2025", "purple")]
    stats = aggregate(records, project({"r": "Alice"}))
    assert stats.daily_timeline[0].contributors[0].name == "Erik"


def test_timeline_skips_unparseable_dates():
    records = [rec("a", 1.0, "Alice", "gestern", "r")]
    stats = aggregate(records, project({"r": "Alice"}))
    assert stats.completed_polygons == 1
    assert stats.daily_timeline == []


# ── Hierarchy ─────────────────────────────────────────────────────────────────

def test_hierarchy_with_unassigned_remainder():
    stats = aggregate(sample_records(), project({"r": "Alice", "g": "Bob"}))
    root = stats.hierarchy
    assert root.name == "Project"
    assert root.value == pytest.approx(20.0)
    names = [c.name for c in root.children]
    assert names == ["Alice", "Bob", "Unassigned"]
    remainder = root.children[-1]
    assert remainder.value == pytest.approx(10.0)
    assert remainder.color == "gray"
    assert remainder.percentage == pytest.approx(50.0)


def test_hierarchy_without_remainder_when_all_completed():
    records = [rec("a", 2.0, "Alice", "01.03.2025", "r"), rec("b", 1.0, "Bob", "02.03.2025", "g")]
    stats = aggregate(records, project({"r": "Alice", "g": "Bob"}))
    assert [c.name for c in stats.hierarchy.children] == ["Alice", "Bob"]


def test_hierarchy_builds_on_its_own():
    root = build_hierarchy([], total_area=4.0, completed_area=0.0)
    assert [c.name for c in root.children] == ["Unassigned"]
    assert root.children[0].percentage == percentage(4.0, 4.0) == 100.0


# ── Purity ────────────────────────────────────────────────────────────────────

def test_aggregate_is_repeatable_and_does_not_mutate():
    records = sample_records()
    before = [r.copy() for r in records]
    meta = project({"r": "Alice", "g": "Bob"})
    assert aggregate(records, meta) == aggregate(records, meta)
    assert records == before


def test_last_update_is_newest_record_stamp():
    t1 = datetime(2025, 3, 1, tzinfo=timezone.utc)
    t2 = datetime(2025, 3, 4, tzinfo=timezone.utc)
    records = [rec("a", last_update=t2), rec("b", last_update=t1), rec("c")]
    assert aggregate(records).last_update == t2


# ── Configuration and range limits ────────────────────────────────────────────

def test_custom_date_keywords_reach_every_statistic():
    config = FieldSyncConfig(range_keyword="to", open_end_keyword="from")
    records = [
        rec("a", 3.0, "Alice", "01.03.2025 to 03.03.2025", "r"),
        rec("b", 1.0, "Alice", "from 05.03.2025", "r"),
    ]
    stats = aggregate(records, project({"r": "Alice"}), config)

    assert [e.day for e in stats.daily_timeline] == [
        date(2025, 3, 5), date(2025, 3, 3), date(2025, 3, 2), date(2025, 3, 1),
    ]
    chronology = stats.contributors["r"].chronology
    assert [e.date_completed for e in chronology] == ["from 05.03.2025", "01.03.2025 to 03.03.2025"]
    assert chronology[1].day == date(2025, 3, 3)


def test_overlong_range_contributes_no_days():
    records = [
        rec("a", 1.0, "Alice", "01.01.1000 bis 31.12.9999", "r"),
        rec("b", 2.0, "Alice", "01.03.2025", "r"),
    ]
    stats = aggregate(records, project({"r": "Alice"}))
    assert [e.day for e in stats.daily_timeline] == [date(2025, 3, 1)]
    assert stats.contributors["r"].chronology[-1].day is None
    # The record still counts as completed area.
    assert stats.completed_area == pytest.approx(3.0)


def test_long_range_within_limit_is_spread():
    config = FieldSyncConfig(max_range_days=400)
    records = [rec("a", 365.0, "Alice", "01.01.2025 bis 31.12.2025", "r")]
    timeline = aggregate(records, project({"r": "Alice"}), config).daily_timeline
    assert len(timeline) == 365
    assert timeline[0].day == date(2025, 12, 31)
    assert timeline[-1].day == date(2025, 1, 1)
    assert all(e.total_area == pytest.approx(1.0) for e in timeline)


def test_contributors_within_day_ordered_by_area():
    records = [
        rec("a", 1.0, "Alice", "01.03.2025", "r"),
        rec("b", 3.0, "Bob", "01.03.2025", "g"),
        rec("c", 1.5, "Alice", "01.03.2025", "r"),
    ]
    stats = aggregate(records, project({"r": "Alice", "g": "Bob"}))
    day = stats.daily_timeline[0]
    assert [(c.name, c.area) for c in day.contributors] == [("Bob", 3.0), ("Alice", 2.5)]
    assert day.total_area == pytest.approx(5.5)
