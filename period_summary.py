"""
Period Summary - Coarse Aggregates for Narrative Context
Simple means per named bucket (today, last 7/30 days, all-time, seasons),
calendar week/month listings and the plain-text lines handed to the chat
collaborator.
"""

import math
from calendar import monthrange
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence

import pandas as pd

from trinity_models import (
    DIMENSIONS,
    MS_PER_DAY,
    SUNDAY,
    Sample,
    TimezoneLike,
    Window,
    day_bounds_ms,
    resolve_now,
    resolve_timezone,
    samples_to_frame,
    start_of_day,
    to_epoch_ms,
    to_local,
)

SEASON_MONTHS = {
    "winter": (12, 1, 2),
    "spring": (3, 4, 5),
    "summer": (6, 7, 8),
    "autumn": (9, 10, 11),
}
SEASONS = tuple(SEASON_MONTHS)

ROLLING_DAYS = {"week": 7, "month": 30}

BUCKET_LABELS = {
    "today": "Today",
    "week": "Last 7 days",
    "month": "Last 30 days",
    "all": "All time",
    "winter": "Winter",
    "spring": "Spring",
    "summer": "Summer",
    "autumn": "Autumn",
}
BUCKETS = tuple(BUCKET_LABELS)

EMPTY_MEAN = 0.0

# Weekly physical trend thresholds
BURNOUT_THRESHOLD = 3.0
MANIC_THRESHOLD = 8.0
NEUTRAL_AVERAGE = 5.0


@dataclass
class PeriodSummary:
    bucket: str
    label: str
    p: Optional[float]
    c: Optional[float]
    s: Optional[float]
    count: int

    @property
    def has_data(self) -> bool:
        return self.count > 0

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


@dataclass
class PeriodData:
    """Samples of one calendar period, oldest first."""
    period: str
    start_ms: int
    end_ms: int
    samples: List[Sample] = field(default_factory=list)


@dataclass
class WeeklyTrend:
    status: str
    average: float
    count: int


def season_of(month: int) -> str:
    """Season name for a calendar month (1-12)."""
    for season, months in SEASON_MONTHS.items():
        if month in months:
            return season
    raise ValueError(f"Month must be 1-12, got {month}")


def _bucket_frame(frame: pd.DataFrame, bucket: str, reference: datetime, tz: TimezoneLike) -> pd.DataFrame:
    if bucket == "all":
        return frame
    if bucket == "today":
        start_ms, end_ms = day_bounds_ms(reference.date(), tz)
        return frame[(frame["timestamp"] >= start_ms) & (frame["timestamp"] < end_ms)]
    if bucket in ROLLING_DAYS:
        end_ms = to_epoch_ms(reference)
        start_ms = end_ms - ROLLING_DAYS[bucket] * MS_PER_DAY
        return frame[(frame["timestamp"] >= start_ms) & (frame["timestamp"] < end_ms)]
    return frame[frame["month"].isin(SEASON_MONTHS[bucket])]


def _safe_mean(series: pd.Series) -> Optional[float]:
    # empty bucket -> 0.0; samples present but none finite -> None
    if series.empty:
        return EMPTY_MEAN
    value = series.mean()
    return None if math.isnan(value) else float(value)


def summarize_period(samples: Iterable[Sample], bucket: str, now: Optional[datetime] = None,
                     tz: TimezoneLike = None) -> PeriodSummary:
    """
    Mean P/C/S and sample count for one bucket.

    Args:
        samples: Sample collection
        bucket: One of BUCKETS
        now: Reference time for the today/week/month buckets
        tz: Time-zone policy for calendar days and seasons

    Returns:
        PeriodSummary; empty buckets report count 0 and 0.0 means. A
        dimension no sample in the bucket carries reports None.
    """
    if bucket not in BUCKET_LABELS:
        raise ValueError(f"Unknown bucket {bucket!r}, expected one of {BUCKETS}")
    zone = resolve_timezone(tz)
    frame = samples_to_frame(samples, zone)
    selected = _bucket_frame(frame, bucket, resolve_now(now, zone), zone)

    return PeriodSummary(
        bucket=bucket,
        label=BUCKET_LABELS[bucket],
        count=len(selected),
        **{dim: _safe_mean(selected[dim]) for dim in DIMENSIONS},
    )


def summarize_periods(samples: Iterable[Sample], buckets: Sequence[str] = ("today", "week", "month"),
                      now: Optional[datetime] = None, tz: TimezoneLike = None) -> Dict[str, PeriodSummary]:
    samples = list(samples)
    return {bucket: summarize_period(samples, bucket, now, tz) for bucket in buckets}


def summarize_seasons(samples: Iterable[Sample], tz: TimezoneLike = None) -> Dict[str, PeriodSummary]:
    samples = list(samples)
    return {season: summarize_period(samples, season, tz=tz) for season in SEASONS}


def weekly_trend_status(samples: Iterable[Sample], now: Optional[datetime] = None,
                        tz: TimezoneLike = None) -> WeeklyTrend:
    """Flag burnout or manic risk from the physical mean of the last 7 days."""
    summary = summarize_period(samples, "week", now, tz)
    if summary.p is None or not summary.has_data:
        return WeeklyTrend(status="Normal", average=NEUTRAL_AVERAGE, count=summary.count)

    status = "Normal"
    if summary.p < BURNOUT_THRESHOLD:
        status = "Burnout Risk"
    if summary.p > MANIC_THRESHOLD:
        status = "Manic Risk"
    return WeeklyTrend(status=status, average=summary.p, count=summary.count)


# -------------------------
# Calendar periods
# -------------------------

def _sorted_between(samples: Iterable[Sample], start_ms: int, end_ms: int) -> List[Sample]:
    return sorted(
        (s for s in samples if start_ms <= s.timestamp < end_ms),
        key=lambda s: s.timestamp,
    )


def get_week_data(samples: Iterable[Sample], week_start_ms: int, week_end_ms: int,
                  tz: TimezoneLike = None) -> PeriodData:
    """All samples of one week, with a "November 2025 · Week 4" label."""
    first = to_local(week_start_ms, tz)
    week_number = math.ceil(first.day / 7)
    return PeriodData(
        period=f"{first.strftime('%B %Y')} · Week {week_number}",
        start_ms=week_start_ms,
        end_ms=week_end_ms,
        samples=_sorted_between(samples, week_start_ms, week_end_ms),
    )


def get_month_data(samples: Iterable[Sample], month_start_ms: int, month_end_ms: int,
                   tz: TimezoneLike = None) -> PeriodData:
    first = to_local(month_start_ms, tz)
    return PeriodData(
        period=first.strftime("%B %Y"),
        start_ms=month_start_ms,
        end_ms=month_end_ms,
        samples=_sorted_between(samples, month_start_ms, month_end_ms),
    )


def month_weeks(year: int, month: int, week_start: int = SUNDAY, tz: TimezoneLike = None) -> List[Window]:
    """Calendar weeks that overlap a month, each as a [start, end) window."""
    first = date(year, month, 1)
    last = date(year, month, monthrange(year, month)[1])
    week = first - timedelta(days=(first.weekday() - week_start) % 7)

    weeks = []
    while week <= last:
        days = [week + timedelta(days=i) for i in range(7)]
        weeks.append(Window(
            "week",
            to_epoch_ms(start_of_day(week, tz)),
            to_epoch_ms(start_of_day(week + timedelta(days=7), tz)),
            days,
        ))
        week += timedelta(days=7)
    return weeks


# -------------------------
# Text rendering
# -------------------------

def render_period_text(summary: PeriodSummary) -> str:
    if not summary.has_data:
        return f"{summary.label}: insufficient data."
    return (
        f"{summary.label}: avg P:{_fmt_mean(summary.p)} C:{_fmt_mean(summary.c)} "
        f"S:{_fmt_mean(summary.s)}, samples {summary.count}."
    )


def _fmt_mean(value: Optional[float]) -> str:
    return "-" if value is None else f"{value:.1f}"


def _fmt_score(value: Optional[float]) -> str:
    return "-" if value is None else f"{value:g}"


def render_recent_samples(samples: Iterable[Sample], tz: TimezoneLike = None) -> str:
    """One "[HH:MM] P:8 C:7 S:3 (tags)" line per sample, oldest first."""
    lines = []
    for sample in sorted(samples, key=lambda s: s.timestamp):
        stamp = to_local(sample.timestamp, tz).strftime("%H:%M")
        values = sample.values
        line = f"[{stamp}] P:{_fmt_score(values.p)} C:{_fmt_score(values.c)} S:{_fmt_score(values.s)}"
        line += f" ({', '.join(sample.tags)})"
        if sample.note:
            line += f" - {sample.note}"
        lines.append(line)
    return "\n".join(lines) if lines else "No data"
