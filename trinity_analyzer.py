"""
Trinity Analyzer - The Logic Core
Runs the baseline, median, heatmap and period components over one sample
collection with a fixed time-zone policy and reference time.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from baseline_stats import compute_median_stats, month_bounds_ms
from chart_series import (
    ChartDataPoint,
    baseline_coverage,
    describe_delta,
    latest_delta,
    latest_point,
    process_chart_data,
)
from heatmap import (
    HeatmapMatrix,
    HourSummary,
    WindowSpec,
    build_heatmap_matrix,
    build_hour_map,
    collect_tags,
)
from period_summary import (
    PeriodSummary,
    WeeklyTrend,
    summarize_periods,
    summarize_seasons,
    weekly_trend_status,
)
from trinity_models import (
    MedianStats,
    Sample,
    SampleFilter,
    TimezoneLike,
    day_bounds_ms,
    filter_samples,
    resolve_now,
    resolve_timezone,
    start_of_day,
    to_epoch_ms,
)

log = logging.getLogger("trinity_analyzer")


class TrinityAnalyzer:
    """
    Self-tracking state analyzer.
    Holds an immutable snapshot of samples and derives every view from it.
    """

    DEFAULT_BASELINE_DAYS = 30

    def __init__(self, samples: Iterable[Sample], tz: TimezoneLike = None,
                 now: Optional[datetime] = None, baseline_days: int = DEFAULT_BASELINE_DAYS):
        """
        Initialize the analyzer.

        Args:
            samples: Sample collection (any order)
            tz: Time-zone policy (None = system local zone)
            now: Reference time (defaults to the current time)
            baseline_days: Days of history behind the dynamic baseline
        """
        if baseline_days < 1:
            raise ValueError(f"baseline_days must be at least 1, got {baseline_days}")
        self.tz = resolve_timezone(tz)
        self.now = resolve_now(now, self.tz)
        self.baseline_days = baseline_days
        self.samples: List[Sample] = sorted(samples, key=lambda s: s.timestamp)

    @property
    def today(self) -> date:
        return self.now.date()

    def samples_between(self, start_ms: int, end_ms: int) -> List[Sample]:
        return [s for s in self.samples if start_ms <= s.timestamp < end_ms]

    def analyze_baseline(self, day: Optional[date] = None,
                         filters: Optional[SampleFilter] = None) -> Dict[str, Any]:
        """
        Chart series of one day against the dynamic baseline.

        Args:
            day: Day to chart (defaults to today)
            filters: Optional tag / day-type filter. The tag applies to the
                charted day as well; the day type only to the history.

        Returns:
            Dictionary with points, latest slot, latest delta, insight text
            and baseline coverage
        """
        day = day or self.today
        day_start, day_end = day_bounds_ms(day, self.tz)
        history_start = to_epoch_ms(start_of_day(day - timedelta(days=self.baseline_days), self.tz))

        today_samples = self.samples_between(day_start, day_end)
        if filters is not None and filters.tag:
            today_samples = filter_samples(today_samples, SampleFilter(tag=filters.tag), self.tz)
        history = filter_samples(self.samples_between(history_start, day_start), filters, self.tz)

        points: List[ChartDataPoint] = process_chart_data(today_samples, history, day, self.tz)
        delta = latest_delta(points)
        log.debug("baseline for %s: %d today, %d history samples", day, len(today_samples), len(history))

        return {
            "day": day,
            "points": points,
            "latest": latest_point(points),
            "delta": delta,
            "insight": describe_delta(delta),
            "today_count": len(today_samples),
            "history_count": len(history),
            "coverage": baseline_coverage(len(history), self.baseline_days),
        }

    def analyze_median_stats(self, month: Optional[date] = None) -> MedianStats:
        """Outlier-filtered medians over one calendar month (or everything when None)."""
        if month is None:
            return compute_median_stats(self.samples)
        start_ms, end_ms = month_bounds_ms(month.year, month.month, self.tz)
        return compute_median_stats(self.samples_between(start_ms, end_ms))

    def analyze_heatmap(self, window: Optional[WindowSpec] = None,
                        filters: Optional[SampleFilter] = None) -> HeatmapMatrix:
        return build_heatmap_matrix(self.samples, window or WindowSpec(), filters, self.now, self.tz)

    def analyze_hour_map(self, window: Optional[WindowSpec] = None,
                         filters: Optional[SampleFilter] = None) -> List[HourSummary]:
        return build_hour_map(self.samples, window or WindowSpec(), filters, self.now, self.tz)

    def analyze_periods(self) -> Dict[str, PeriodSummary]:
        return summarize_periods(self.samples, ("today", "week", "month", "all"), self.now, self.tz)

    def analyze_seasons(self) -> Dict[str, PeriodSummary]:
        return summarize_seasons(self.samples, self.tz)

    def analyze_weekly_trend(self) -> WeeklyTrend:
        return weekly_trend_status(self.samples, self.now, self.tz)

    def generate_full_analysis(self, day: Optional[date] = None,
                               window: Optional[WindowSpec] = None,
                               filters: Optional[SampleFilter] = None) -> Dict[str, Any]:
        """
        Generate the complete analysis for a day.

        Args:
            day: Day to chart (defaults to today)
            window: Heatmap / hour-map window (defaults to the last 7 days)
            filters: Optional tag / day-type filter

        Returns:
            Dictionary containing all analysis results
        """
        day = day or self.today
        window = window or WindowSpec()

        return {
            "baseline": self.analyze_baseline(day, filters),
            "median_stats": self.analyze_median_stats(),
            "monthly_median": self.analyze_median_stats(day),
            "heatmap": self.analyze_heatmap(window, filters),
            "hour_map": self.analyze_hour_map(window, filters),
            "periods": self.analyze_periods(),
            "seasons": self.analyze_seasons(),
            "weekly_trend": self.analyze_weekly_trend(),
            "tags": collect_tags(self.samples),
        }
