"""Tests for the analyzer facade and the context / prompt generator."""

from __future__ import annotations

import json
from datetime import date, timedelta

import pytest

from conftest import NOW, UTC, ms, sample_at
from heatmap import WindowSpec
from trinity_analyzer import TrinityAnalyzer
from trinity_context_generator import TrinityContextGenerator
from trinity_models import CalendarEvent, MonthlyBaseline, SampleFilter, TrinityValue

DAY = timedelta(days=1)


@pytest.fixture()
def samples():
    history = [
        sample_at(NOW - d * DAY + timedelta(hours=h - 12), p=6, c=6, s=3, tags=["work"])
        for d in range(1, 6)
        for h in (9, 13, 18)
    ]
    today = [
        sample_at(ms(2025, 11, 20, 9), p=8, c=7, s=2, tags=["coffee"]),
        sample_at(ms(2025, 11, 20, 11, 30), p=9, c=6, s=3, note="after run"),
    ]
    return history + today


@pytest.fixture()
def analyzer(samples):
    return TrinityAnalyzer(samples, tz=UTC, now=NOW, baseline_days=30)


@pytest.fixture()
def generator(analyzer, tmp_path):
    events = [
        CalendarEvent("e1", "Team sync", ms(2025, 11, 20, 15), ms(2025, 11, 20, 16)),
        CalendarEvent("e2", "Flight", ms(2025, 11, 22, 7), ms(2025, 11, 22, 9)),
        CalendarEvent("e0", "Breakfast", ms(2025, 11, 20, 8), ms(2025, 11, 20, 9)),
    ]
    return TrinityContextGenerator(analyzer, events=events, output_dir=tmp_path / "out")


# ---- analyzer ----


def test_analyzer_rejects_bad_baseline_days(samples):
    with pytest.raises(ValueError):
        TrinityAnalyzer(samples, tz=UTC, now=NOW, baseline_days=0)


def test_baseline_separates_today_from_history(analyzer):
    result = analyzer.analyze_baseline()
    assert result["day"] == date(2025, 11, 20)
    assert result["today_count"] == 2
    assert result["history_count"] == 15
    assert result["coverage"] == pytest.approx(0.5)
    assert len(result["points"]) == 48
    assert result["latest"].time == "11:30"


def test_baseline_history_respects_filters(analyzer):
    result = analyzer.analyze_baseline(filters=SampleFilter(tag="gym"))
    assert result["history_count"] == 0
    # no history: baseline falls back to the standard curve
    point = result["points"][18]
    assert point.p_baseline == point.p_standard


def test_baseline_tag_filter_applies_to_today():
    history = [
        sample_at(ms(2025, 11, 20 - d, 9), p=6, c=6, s=3, tags=["work"])
        for d in (1, 2, 3)
    ]
    today = [sample_at(ms(2025, 11, 20, 9), p=2, c=6, s=3, tags=["gym"])]
    analyzer = TrinityAnalyzer(history + today, tz=UTC, now=NOW)

    result = analyzer.analyze_baseline(filters=SampleFilter(tag="work"))

    assert result["history_count"] == 3
    assert result["today_count"] == 0
    assert result["points"][18].p_actual is None
    assert result["latest"] is None
    assert result["insight"] == "No samples recorded today yet."


def test_baseline_day_type_filter_leaves_today_alone():
    history = [sample_at(ms(2025, 11, 20 - d, 9), tags=["work"]) for d in (1, 2, 3)]
    today = [sample_at(ms(2025, 11, 20, 9), p=2)]
    analyzer = TrinityAnalyzer(history + today, tz=UTC, now=NOW)

    # 2025-11-20 is a Thursday
    result = analyzer.analyze_baseline(filters=SampleFilter(day_type="weekend"))

    assert result["today_count"] == 1
    assert result["points"][18].p_actual == 2.0


def test_monthly_median_limited_to_month(analyzer):
    stats = analyzer.analyze_median_stats(date(2025, 10, 1))
    assert stats.sample == 0


def test_full_analysis_sections(analyzer):
    analysis = analyzer.generate_full_analysis()
    assert set(analysis) == {
        "baseline", "median_stats", "monthly_median", "heatmap", "hour_map",
        "periods", "seasons", "weekly_trend", "tags",
    }
    assert analysis["tags"] == ["work", "coffee"]
    assert analysis["weekly_trend"].status == "Normal"
    assert analysis["heatmap"].total_count == 17


# ---- context ----


def test_context_sections(generator):
    context = generator.generate_context()
    assert list(context) == [
        "meta", "baseline_comparison", "monthly_baseline", "period_summaries",
        "seasonal_summaries", "hourly_profile", "weekly_trend", "upcoming_events",
        "data_quality",
    ]
    assert context["meta"]["date"] == "2025-11-20"
    assert context["meta"]["day_of_week"] == "Thursday"


def test_baseline_comparison_reports_latest_slot(generator):
    comparison = generator.generate_context()["baseline_comparison"]
    assert comparison["latest_slot"] == "11:30"
    assert [slot["time"] for slot in comparison["recorded_slots"]] == ["09:00", "11:30"]
    physical = comparison["dimensions"]["physical"]
    assert physical["actual"] == 9.0
    assert physical["delta_raw"] == pytest.approx(9.0 - physical["baseline"], abs=0.01)


def test_upcoming_events_within_next_day(generator):
    events = generator.generate_context()["upcoming_events"]
    assert [e["id"] for e in events] == ["e1"]
    assert events[0]["display"] == "[15:00] Team sync"


def test_monthly_baseline_prefers_snapshot(analyzer, tmp_path):
    snapshot = MonthlyBaseline("2025-11", TrinityValue(6.0, 6.0, 3.0), 15, False, 0)
    generator = TrinityContextGenerator(analyzer, monthly_baseline=snapshot, output_dir=tmp_path)
    section = generator.generate_context()["monthly_baseline"]
    assert section["cached"] is True
    assert section["values"] == {"p": 6.0, "c": 6.0, "s": 3.0}


def test_hourly_profile_omits_empty_hours(generator):
    profile = generator.generate_context(window=WindowSpec(days=7))["hourly_profile"]
    assert set(profile["hours"]) == {"09:00", "11:00", "13:00", "18:00"}
    assert profile["hours_with_data"] == 4


def test_data_quality(generator):
    quality = generator.generate_context()["data_quality"]
    assert quality["completeness_score"] == "4/4"
    assert quality["confidence"] == "High"


def test_empty_analyzer_context(tmp_path):
    generator = TrinityContextGenerator(TrinityAnalyzer([], tz=UTC, now=NOW), output_dir=tmp_path)
    context = generator.generate_context()
    assert context["baseline_comparison"]["insight"] == "No samples recorded today yet."
    assert context["period_summaries"]["week"]["text"] == "Last 7 days: insufficient data."
    assert context["data_quality"]["confidence"] == "Low"


# ---- prompt ----


def test_system_prompt_sections(generator):
    prompt = generator.generate_system_prompt()
    assert "[Last 24 hours]" in prompt
    assert "[11:30] P:9 C:6 S:3 () - after run" in prompt
    assert "[Upcoming events]\n[15:00] Team sync" in prompt
    assert "Today: avg P:8.5 C:6.5 S:2.5, samples 2." in prompt
    assert prompt.rstrip().endswith("one concrete, actionable suggestion.")


def test_system_prompt_without_events(analyzer, tmp_path):
    prompt = TrinityContextGenerator(analyzer, output_dir=tmp_path).generate_system_prompt()
    assert "No events in next 24h." in prompt


# ---- save ----


def test_save_context_writes_json(generator):
    path = generator.generate_and_save(filename="ctx.json")
    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["meta"]["date"] == "2025-11-20"
    assert path.parent == generator.output_dir
