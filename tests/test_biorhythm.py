"""Tests for the standard curve, smoothing helpers and the dynamic baseline."""

from __future__ import annotations

import math
from datetime import datetime, timedelta

import pytest

from biorhythm import (
    calculate_dynamic_baseline,
    smooth_data,
    standard_curve,
    standard_value,
)
from conftest import UTC, sample_at

DAY = datetime(2025, 11, 19, tzinfo=UTC)


def full_day(values_by_hour, dimension="p"):
    """One sample per hour with the given value for `dimension`."""
    samples = []
    for hour, value in values_by_hour.items():
        kwargs = {"p": 5, "c": 5, "s": 5, dimension: value}
        samples.append(sample_at(DAY + timedelta(hours=hour, minutes=10), **kwargs))
    return samples


# ---- standard curve ----


@pytest.mark.parametrize("hour,expected", [
    (0, 2.0), (5.5, 2.0), (9, 5.9), (13, 8.0), (16, 9.0), (20, 6.6),
])
def test_standard_physical(hour, expected):
    assert standard_value(hour, "p") == pytest.approx(expected)


@pytest.mark.parametrize("hour,expected", [
    (3, 1.0), (8, 9.0), (12, 5.0), (15, 8.0), (20, 4.0),
])
def test_standard_cognitive(hour, expected):
    assert standard_value(hour, "c") == expected


@pytest.mark.parametrize("hour,expected", [(7, 7.0), (12, 3.0), (21, 8.0)])
def test_standard_impulse(hour, expected):
    assert standard_value(hour, "s") == expected


def test_standard_unknown_dimension():
    with pytest.raises(ValueError):
        standard_value(10, "q")


def test_standard_curve_has_24_hours():
    curve = standard_curve("c")
    assert [point.hour for point in curve] == list(range(24))


# ---- helpers ----


def test_smooth_clips_at_edges():
    assert smooth_data([1, 2, 3]) == pytest.approx([1.5, 2.0, 2.5])


# ---- dynamic baseline ----


def test_empty_history_is_flat_five():
    curve = calculate_dynamic_baseline([], "p", UTC)
    assert [point.value for point in curve] == [5.0] * 24


def test_constant_history_is_flat():
    curve = calculate_dynamic_baseline(full_day({h: 7 for h in range(24)}), "p", UTC)
    assert [point.value for point in curve] == pytest.approx([7.0] * 24)


def test_curve_has_every_hour_once_and_is_finite():
    curve = calculate_dynamic_baseline(full_day({12: 8}), "c", UTC)
    assert [point.hour for point in curve] == list(range(24))
    assert all(math.isfinite(point.value) for point in curve)


def test_smoothing_wraps_midnight():
    values = {h: 0 for h in range(24)}
    values[23] = 9
    curve = calculate_dynamic_baseline(full_day(values), "s", UTC)
    by_hour = {point.hour: point.value for point in curve}
    assert by_hour[0] == pytest.approx(3.0)
    assert by_hour[22] == pytest.approx(3.0)
    assert by_hour[23] == pytest.approx(3.0)
    assert by_hour[1] == pytest.approx(0.0)


def test_hour_mean_is_plain_average():
    history = full_day({h: 4 for h in range(24)}) + full_day({h: 8 for h in range(24)})
    curve = calculate_dynamic_baseline(history, "p", UTC)
    assert [point.value for point in curve] == pytest.approx([6.0] * 24)


def test_missing_hours_filled_progressively():
    # only hour 2 observed: hour 0 = (5 + 6) / 2, hour 1 = (5.5 + 6) / 2
    history = full_day({2: 6})
    curve = calculate_dynamic_baseline(history, "p", UTC)
    # unsmoothed hour 0..2 would be 5.5, 5.75, 6; every later hour is 6
    assert curve[10].value == pytest.approx(6.0)
    assert curve[1].value == pytest.approx((5.5 + 5.75 + 6.0) / 3)


def test_non_numeric_values_skipped():
    history = full_day({h: 6 for h in range(24)}) + [sample_at(DAY, p=None)]
    curve = calculate_dynamic_baseline(history, "p", UTC)
    assert curve[0].value == pytest.approx(6.0)


def test_hours_follow_time_zone():
    history = [sample_at(DAY + timedelta(hours=h), p=9 if h == 12 else 1) for h in range(24)]
    utc_curve = calculate_dynamic_baseline(history, "p", UTC)
    tokyo_curve = calculate_dynamic_baseline(history, "p", "Asia/Tokyo")
    assert max(utc_curve, key=lambda p: p.value).hour in (11, 12, 13)
    assert max(tokyo_curve, key=lambda p: p.value).hour in (20, 21, 22)
