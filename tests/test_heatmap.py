"""Tests for heatmap windows, cell aggregation, hour map and labels."""

from __future__ import annotations

from datetime import date, timedelta

import pytest

from conftest import NOW, UTC, ms, sample_at
from heatmap import (
    WindowSpec,
    build_heatmap_matrix,
    build_hour_map,
    classify_heat_cell,
    collect_tags,
    resolve_window,
    summarize_state,
)
from trinity_models import MONDAY, SampleFilter

HOUR = timedelta(hours=1)
DAY = timedelta(days=1)


# ---- window resolution ----


def test_trailing_window_bounds():
    window = resolve_window(WindowSpec(days=7), NOW, UTC)
    assert window.end_ms == ms(2025, 11, 20, 12)
    assert window.start_ms == ms(2025, 11, 13, 12)
    assert window.days[0] == date(2025, 11, 20)
    assert window.days[-1] == date(2025, 11, 14)


def test_week_window_starts_sunday():
    window = resolve_window(WindowSpec(mode="week"), NOW, UTC)
    assert window.days[0] == date(2025, 11, 16)
    assert len(window.days) == 7
    assert window.start_ms == ms(2025, 11, 16)
    assert window.end_ms == ms(2025, 11, 23)


def test_week_window_monday_start():
    window = resolve_window(WindowSpec(mode="week", week_start=MONDAY), NOW, UTC)
    assert window.days[0] == date(2025, 11, 17)


def test_week_paging_back_and_clamped_forward():
    previous = resolve_window(WindowSpec(mode="week", offset=-1), NOW, UTC)
    future = resolve_window(WindowSpec(mode="week", offset=2), NOW, UTC)
    assert previous.days[0] == date(2025, 11, 9)
    assert future.days[0] == date(2025, 11, 16)


def test_month_window_rows_and_paging():
    current = resolve_window(WindowSpec(mode="month"), NOW, UTC)
    assert len(current.days) == 30
    assert current.days[0] == date(2025, 11, 1)

    older = resolve_window(WindowSpec(mode="month", offset=-11), NOW, UTC)
    assert older.days[0] == date(2024, 12, 1)
    assert len(older.days) == 31


def test_window_spec_validation():
    with pytest.raises(ValueError):
        WindowSpec(mode="year")
    with pytest.raises(ValueError):
        WindowSpec(days=0)


# ---- trailing matrix ----


def test_trailing_rows_count_back_from_now():
    samples = [
        sample_at(NOW - HOUR, p=6),
        sample_at(NOW - DAY - HOUR, p=4),
    ]
    matrix = build_heatmap_matrix(samples, WindowSpec(days=7), now=NOW, tz=UTC)
    assert len(matrix.rows) == 7
    assert all(len(row.cells) == 24 for row in matrix.rows)
    assert matrix.rows[0].cells[11].p == 6.0
    assert matrix.rows[1].cells[11].p == 4.0


def test_trailing_window_is_half_open():
    samples = [
        sample_at(NOW, p=1),                                    # end: excluded
        sample_at(NOW - 7 * DAY, p=2),                          # start: included
        sample_at(ms(2025, 11, 13, 12) - 1, p=3),               # before start
    ]
    matrix = build_heatmap_matrix(samples, WindowSpec(days=7), now=NOW, tz=UTC)
    assert matrix.total_count == 1
    # exactly seven days back is clamped into the last row
    assert matrix.rows[6].cells[12].p == 2.0


def test_cell_mean_and_count():
    samples = [sample_at(NOW - HOUR, p=4, c=2), sample_at(NOW - HOUR, p=8, c=None)]
    cell = build_heatmap_matrix(samples, WindowSpec(), now=NOW, tz=UTC).rows[0].cells[11]
    assert cell.count == 2
    assert cell.p == 6.0
    assert cell.c == 2.0


def test_empty_cells_are_none():
    matrix = build_heatmap_matrix([], WindowSpec(), now=NOW, tz=UTC)
    assert matrix.total_count == 0
    cell = matrix.rows[3].cells[5]
    assert cell.count == 0
    assert cell.p is None and cell.c is None and cell.s is None


def test_non_finite_component_counted_but_not_averaged():
    samples = [sample_at(NOW - HOUR, p=float("nan"), c=5, s=5)]
    cell = build_heatmap_matrix(samples, WindowSpec(), now=NOW, tz=UTC).rows[0].cells[11]
    assert cell.count == 1
    assert cell.p is None
    assert cell.c == 5.0


def test_matrix_values_and_counts_shape():
    matrix = build_heatmap_matrix([sample_at(NOW - HOUR)], WindowSpec(days=3), now=NOW, tz=UTC)
    assert len(matrix.values("p")) == 3
    assert matrix.counts()[0][11] == 1
    assert matrix.to_dict()["rows"][0]["date"] == "2025-11-20"


# ---- calendar matrix ----


def test_week_matrix_rows_are_chronological():
    samples = [
        sample_at(ms(2025, 11, 16, 9), p=3),   # Sunday
        sample_at(ms(2025, 11, 15, 9), p=9),   # previous Saturday, outside
    ]
    matrix = build_heatmap_matrix(samples, WindowSpec(mode="week"), now=NOW, tz=UTC)
    assert matrix.rows[0].label == "11/16"
    assert matrix.rows[0].cells[9].p == 3.0
    assert matrix.total_count == 1


def test_month_matrix_maps_by_date():
    samples = [sample_at(ms(2025, 11, 30, 23, 30), s=8)]
    matrix = build_heatmap_matrix(samples, WindowSpec(mode="month"), now=NOW, tz=UTC)
    assert matrix.rows[29].cells[23].s == 8.0


# ---- filters ----


def test_filters_apply_before_bucketing():
    saturday = sample_at(ms(2025, 11, 15, 10), p=9, tags=["gym"])
    friday = sample_at(ms(2025, 11, 14, 10), p=3, tags=["work"])
    window = WindowSpec(days=7)

    weekend = build_heatmap_matrix([saturday, friday], window, SampleFilter(day_type="weekend"), NOW, UTC)
    assert weekend.total_count == 1
    assert weekend.rows[5].cells[10].p == 9.0

    tagged = build_heatmap_matrix([saturday, friday], window, SampleFilter(tag="work"), NOW, UTC)
    assert tagged.total_count == 1
    assert tagged.rows[6].cells[10].p == 3.0


# ---- hour map ----


def test_hour_map_has_24_entries():
    hours = build_hour_map([], WindowSpec(), now=NOW, tz=UTC)
    assert [h.hour for h in hours] == list(range(24))
    assert all(h.label == "No data" and h.p is None for h in hours)


def test_hour_map_averages_across_days_and_labels():
    samples = [
        sample_at(NOW - HOUR, p=9, c=9, s=1),
        sample_at(NOW - DAY - HOUR, p=9, c=7, s=3),
    ]
    entry = build_hour_map(samples, WindowSpec(), now=NOW, tz=UTC)[11]
    assert entry.count == 2
    assert entry.c == 8.0
    assert entry.label == "High-energy focus"


def test_hour_map_clamps_values():
    entry = build_hour_map([sample_at(NOW - HOUR, p=25)], WindowSpec(), now=NOW, tz=UTC)[11]
    assert entry.p == 10.0


# ---- labels ----


@pytest.mark.parametrize("values,label", [
    ((9, 9, 2), "High-energy focus"),
    ((3, 3, 3), "Low-energy rest"),
    ((6, 4, 8), "Impulse elevated"),
    ((7, 8, 5), "Deep-work friendly"),
    ((7, 6, 7), "Social / exercise friendly"),
    ((5, 5, 5), "Routine"),
])
def test_summarize_state(values, label):
    assert summarize_state(*values) == label


def test_heat_class_priority_and_intensity():
    assert classify_heat_cell(7, 7, 7).category == "impulse"
    assert classify_heat_cell(7, 7, 7).intensity == pytest.approx(0.25)
    assert classify_heat_cell(5, 9, 5).category == "cognitive"
    assert classify_heat_cell(10, 1, 1).intensity == 1.0
    assert classify_heat_cell(6.4, 6.4, None).category == "neutral"


def test_collect_tags_first_seen_order():
    samples = [sample_at(NOW, tags=["b", "a"]), sample_at(NOW, tags=["a", "", "c"])]
    assert collect_tags(samples) == ["b", "a", "c"]
