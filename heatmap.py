"""
Heatmap - The Time-Window Aggregator
Buckets samples into day x hour grids over trailing, calendar-week and
calendar-month windows, plus a 24-hour profile over the whole window.
"""

import logging
from calendar import monthrange
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pandas as pd

from trinity_models import (
    DIMENSIONS,
    MS_PER_DAY,
    SUNDAY,
    Sample,
    SampleFilter,
    TimezoneLike,
    Window,
    filter_samples,
    resolve_now,
    resolve_timezone,
    samples_to_frame,
    start_of_day,
    to_epoch_ms,
)

log = logging.getLogger("heatmap")

WINDOW_MODES = ("trailing", "week", "month")
HOURS_PER_DAY = 24

# Heat colour thresholds
HEAT_THRESHOLD = 6.5
HEAT_FLOOR = 6.0
HEAT_SPAN = 4.0


@dataclass(frozen=True)
class WindowSpec:
    """
    Which days a heatmap covers.

    mode "trailing" covers the last `days` x 24h ending now; "week" and
    "month" are calendar-aligned and paged with a non-positive `offset`.
    `week_start` uses datetime.weekday() numbering (6 = Sunday).
    """
    mode: str = "trailing"
    days: int = 7
    offset: int = 0
    week_start: int = SUNDAY

    def __post_init__(self):
        if self.mode not in WINDOW_MODES:
            raise ValueError(f"Unknown window mode {self.mode!r}, expected one of {WINDOW_MODES}")
        if self.days < 1:
            raise ValueError(f"Window must cover at least one day, got {self.days}")
        if self.week_start not in range(7):
            raise ValueError(f"week_start must be a weekday number 0-6, got {self.week_start}")

    @property
    def page(self) -> int:
        # never page past the current week/month
        return min(self.offset, 0)


@dataclass
class HeatmapCell:
    hour: int
    count: int = 0
    p: Optional[float] = None
    c: Optional[float] = None
    s: Optional[float] = None

    @property
    def has_data(self) -> bool:
        return self.count > 0

    def get(self, dimension: str) -> Optional[float]:
        return getattr(self, dimension)

    def to_dict(self) -> Dict[str, Any]:
        return {"hour": self.hour, "count": self.count, "p": self.p, "c": self.c, "s": self.s}


@dataclass
class HeatmapRow:
    day: date
    label: str
    cells: List[HeatmapCell] = field(default_factory=list)


@dataclass
class HeatmapMatrix:
    window: Window
    rows: List[HeatmapRow]

    def values(self, dimension: str) -> List[List[Optional[float]]]:
        return [[cell.get(dimension) for cell in row.cells] for row in self.rows]

    def counts(self) -> List[List[int]]:
        return [[cell.count for cell in row.cells] for row in self.rows]

    @property
    def total_count(self) -> int:
        return sum(sum(row) for row in self.counts())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.window.mode,
            "start": self.window.start_ms,
            "end": self.window.end_ms,
            "rows": [
                {"date": row.day.isoformat(), "label": row.label, "hours": [c.to_dict() for c in row.cells]}
                for row in self.rows
            ],
        }


@dataclass
class HourSummary:
    hour: int
    count: int
    p: Optional[float]
    c: Optional[float]
    s: Optional[float]
    label: str

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


@dataclass(frozen=True)
class HeatClass:
    category: str  # "impulse", "cognitive", "physical" or "neutral"
    intensity: float


# -------------------------
# Windows
# -------------------------

def _shift_month(year: int, month: int, offset: int) -> Tuple[int, int]:
    index = year * 12 + (month - 1) + offset
    return index // 12, index % 12 + 1


def resolve_window(window: WindowSpec, now: Optional[datetime] = None, tz: TimezoneLike = None) -> Window:
    """
    Concrete [start, end) bounds and day rows for a window spec.

    Args:
        window: WindowSpec to resolve
        now: Reference time (defaults to the current time)
        tz: Time-zone policy for calendar alignment

    Returns:
        Window with epoch-ms bounds and the row days in display order
    """
    zone = resolve_timezone(tz)
    reference = resolve_now(now, zone)
    today = reference.date()

    if window.mode == "trailing":
        now_ms = to_epoch_ms(reference)
        days = [today - timedelta(days=d) for d in range(window.days)]
        return Window("trailing", now_ms - window.days * MS_PER_DAY, now_ms, days)

    if window.mode == "week":
        back = (today.weekday() - window.week_start) % 7
        first = today - timedelta(days=back) + timedelta(weeks=window.page)
        days = [first + timedelta(days=i) for i in range(7)]
        return Window(
            "week",
            to_epoch_ms(start_of_day(first, zone)),
            to_epoch_ms(start_of_day(first + timedelta(days=7), zone)),
            days,
        )

    year, month = _shift_month(today.year, today.month, window.page)
    length = monthrange(year, month)[1]
    first = date(year, month, 1)
    days = [first + timedelta(days=i) for i in range(length)]
    return Window(
        "month",
        to_epoch_ms(start_of_day(first, zone)),
        to_epoch_ms(start_of_day(first + timedelta(days=length), zone)),
        days,
    )


def _windowed_frame(samples: Iterable[Sample], window: Window, filters: Optional[SampleFilter],
                    tz: TimezoneLike) -> pd.DataFrame:
    frame = samples_to_frame(filter_samples(samples, filters, tz), tz)
    in_window = (frame["timestamp"] >= window.start_ms) & (frame["timestamp"] < window.end_ms)
    return frame[in_window]


def _row_index(frame: pd.DataFrame, window: Window) -> pd.Series:
    """Row per sample; NaN where the sample falls outside the rows."""
    rows = len(window.days)
    if window.mode == "trailing":
        elapsed = (window.end_ms - frame["timestamp"]) // MS_PER_DAY
        # clock skew and DST can nudge a day index past the edges
        return elapsed.clip(lower=0, upper=rows - 1).astype(float)

    first = window.days[0]
    index = frame["date"].map(lambda d: float((d - first).days))
    return index.where((index >= 0) & (index < rows))


def _mean_or_none(value: Any) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    return float(value)


# -------------------------
# Aggregation
# -------------------------

def build_heatmap_matrix(samples: Iterable[Sample], window: WindowSpec,
                         filters: Optional[SampleFilter] = None,
                         now: Optional[datetime] = None, tz: TimezoneLike = None) -> HeatmapMatrix:
    """
    Mean value per (day, hour) cell over a window.

    Args:
        samples: Sample collection
        window: Which days to cover
        filters: Optional tag / day-type filter applied before bucketing
        now: Reference time
        tz: Time-zone policy

    Returns:
        HeatmapMatrix with one row per day and 24 cells per row; empty cells
        have count 0 and None means
    """
    zone = resolve_timezone(tz)
    resolved = resolve_window(window, now, zone)
    rows = [
        HeatmapRow(day=d, label=d.strftime("%m/%d"), cells=[HeatmapCell(hour=h) for h in range(HOURS_PER_DAY)])
        for d in resolved.days
    ]

    frame = _windowed_frame(samples, resolved, filters, zone)
    if frame.empty:
        return HeatmapMatrix(window=resolved, rows=rows)

    frame = frame.assign(row=_row_index(frame, resolved)).dropna(subset=["row"])
    frame = frame.astype({"row": int, "hour": int})
    grouped = frame.groupby(["row", "hour"])
    means = grouped[list(DIMENSIONS)].mean()
    counts = grouped.size()

    for (row, hour), count in counts.items():
        cell = rows[row].cells[hour]
        cell.count = int(count)
        for dim in DIMENSIONS:
            setattr(cell, dim, _mean_or_none(means.loc[(row, hour), dim]))

    log.debug("heatmap %s: %d samples in %d cells", resolved.mode, len(frame), len(counts))
    return HeatmapMatrix(window=resolved, rows=rows)


def build_hour_map(samples: Iterable[Sample], window: WindowSpec,
                   filters: Optional[SampleFilter] = None,
                   now: Optional[datetime] = None, tz: TimezoneLike = None) -> List[HourSummary]:
    """24 per-hour means across the whole filtered window, labelled by state."""
    zone = resolve_timezone(tz)
    resolved = resolve_window(window, now, zone)
    frame = _windowed_frame(samples, resolved, filters, zone)

    counts: Dict[int, int] = {}
    means = pd.DataFrame(columns=list(DIMENSIONS))
    if not frame.empty:
        frame = frame.astype({"hour": int})
        grouped = frame.groupby("hour")
        means = grouped[list(DIMENSIONS)].mean()
        counts = {int(h): int(n) for h, n in grouped.size().items()}

    summaries = []
    for hour in range(HOURS_PER_DAY):
        count = counts.get(hour, 0)
        if count == 0:
            summaries.append(HourSummary(hour, 0, None, None, None, "No data"))
            continue
        values = {dim: _mean_or_none(means.loc[hour, dim]) for dim in DIMENSIONS}
        summaries.append(HourSummary(
            hour=hour,
            count=count,
            label=summarize_state(values["p"], values["c"], values["s"]),
            **values,
        ))
    return summaries


# -------------------------
# Labels
# -------------------------

def summarize_state(p: Optional[float], c: Optional[float], s: Optional[float]) -> str:
    """Rule-based label for an hour's average state."""
    p = p if p is not None else 0.0
    c = c if c is not None else 0.0
    s = s if s is not None else 0.0
    if p >= 8 and c >= 8 and s <= 4:
        return "High-energy focus"
    if p <= 4 and c <= 4 and s <= 4:
        return "Low-energy rest"
    if s >= 7 and c <= 5:
        return "Impulse elevated"
    if c >= 7 and p >= 6 and s <= 6:
        return "Deep-work friendly"
    if p >= 6 and s >= 6:
        return "Social / exercise friendly"
    return "Routine"


def classify_heat_cell(p: Optional[float], c: Optional[float], s: Optional[float]) -> HeatClass:
    """Dominant colour class: impulse beats cognitive beats physical."""
    for category, value in (("impulse", s), ("cognitive", c), ("physical", p)):
        if value is not None and value >= HEAT_THRESHOLD:
            return HeatClass(category, min(1.0, (value - HEAT_FLOOR) / HEAT_SPAN))
    return HeatClass("neutral", 0.0)


def collect_tags(samples: Iterable[Sample]) -> List[str]:
    """Distinct non-empty tags in first-seen order."""
    seen: Dict[str, None] = {}
    for sample in samples:
        for tag in sample.tags:
            if tag and tag not in seen:
                seen[tag] = None
    return list(seen)
