"""
Trinity Models - The Data Layer
Samples, derived records and the time-zone policy shared by every analytics
component. Builds the pandas frame the aggregators work on.
"""

import math
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, tzinfo
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union
from zoneinfo import ZoneInfo

import numpy as np
import pandas as pd


DIMENSIONS: Tuple[str, ...] = ("p", "c", "s")
DIMENSION_LABELS = {"p": "Physical", "c": "Cognitive", "s": "Impulse"}
TRENDS = ("up", "flat", "down")

# datetime.weekday() numbering
MONDAY = 0
SUNDAY = 6

SCORE_MIN = 0.0
SCORE_MAX = 10.0

MS_PER_MINUTE = 60 * 1000
MS_PER_HOUR = 60 * MS_PER_MINUTE
MS_PER_DAY = 24 * MS_PER_HOUR

FRAME_COLUMNS = ["id", "timestamp", "date", "hour", "weekday", "month", "p", "c", "s", "tags"]

TimezoneLike = Union[tzinfo, str, None]


@dataclass(frozen=True)
class TrinityValue:
    """One Physical / Cognitive / Impulse triple. Components may be absent."""
    p: Optional[float]
    c: Optional[float]
    s: Optional[float]

    def get(self, dimension: str) -> Optional[float]:
        check_dimension(dimension)
        return getattr(self, dimension)

    def as_dict(self) -> Dict[str, Optional[float]]:
        return {"p": self.p, "c": self.c, "s": self.s}

    @classmethod
    def from_dict(cls, raw: Any) -> "TrinityValue":
        raw = raw if isinstance(raw, dict) else {}
        return cls(
            p=coerce_score(raw.get("p")),
            c=coerce_score(raw.get("c")),
            s=coerce_score(raw.get("s")),
        )


DEFAULT_BASELINE = TrinityValue(p=5.0, c=5.0, s=2.0)


@dataclass(frozen=True)
class Sample:
    """A single recorded state. Never mutated after creation."""
    id: str
    timestamp: int  # epoch milliseconds
    values: TrinityValue
    tags: Tuple[str, ...] = ()
    trend: str = "flat"
    note: Optional[str] = None

    @classmethod
    def from_dict(cls, record: Dict[str, Any]) -> "Sample":
        """
        Build a Sample from a stored record.

        Raises:
            ValueError: if the record has no usable id or timestamp
        """
        if not isinstance(record, dict):
            raise ValueError(f"Sample record must be a mapping, got {type(record).__name__}")
        sample_id = record.get("id")
        if not sample_id:
            raise ValueError("Sample record has no id")
        timestamp = record.get("timestamp")
        if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)) or not math.isfinite(timestamp):
            raise ValueError(f"Sample {sample_id} has an invalid timestamp: {timestamp!r}")

        tags = record.get("tags") or []
        if isinstance(tags, str):
            tags = [tags]
        trend = record.get("trend", "flat")
        note = record.get("note")

        return cls(
            id=str(sample_id),
            timestamp=int(timestamp),
            values=TrinityValue.from_dict(record.get("values")),
            tags=tuple(str(t) for t in tags if t is not None),
            trend=trend if trend in TRENDS else "flat",
            note=str(note) if note else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "id": self.id,
            "timestamp": self.timestamp,
            "values": self.values.as_dict(),
            "tags": list(self.tags),
            "trend": self.trend,
        }
        if self.note:
            record["note"] = self.note
        return record


@dataclass
class CalendarEvent:
    """Calendar entry, optionally linked to a sample."""
    id: str
    title: str
    start_time: int
    end_time: int
    description: Optional[str] = None
    log_id: Optional[str] = None

    @classmethod
    def from_dict(cls, record: Dict[str, Any]) -> "CalendarEvent":
        if not isinstance(record, dict) or not record.get("id"):
            raise ValueError("Event record has no id")
        start = record.get("startTime")
        if isinstance(start, bool) or not isinstance(start, (int, float)):
            raise ValueError(f"Event {record.get('id')} has an invalid startTime: {start!r}")
        end = record.get("endTime", start)
        if isinstance(end, bool) or not isinstance(end, (int, float)):
            end = start
        return cls(
            id=str(record["id"]),
            title=str(record.get("title", "")),
            start_time=int(start),
            end_time=int(end),
            description=record.get("description"),
            log_id=record.get("logId"),
        )

    def to_dict(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "startTime": self.start_time,
            "endTime": self.end_time,
        }
        if self.description:
            record["description"] = self.description
        if self.log_id:
            record["logId"] = self.log_id
        return record


@dataclass
class MonthlyBaseline:
    """Cached median snapshot for one calendar month."""
    month_key: str
    values: TrinityValue
    sample: int
    low_confidence: bool
    computed_at: int

    @classmethod
    def from_dict(cls, record: Dict[str, Any]) -> "MonthlyBaseline":
        if not isinstance(record, dict) or not record.get("monthKey"):
            raise ValueError("Monthly baseline record has no monthKey")
        values = TrinityValue.from_dict(record.get("values"))
        # a cached snapshot with holes is filled from the defaults
        values = TrinityValue(
            p=values.p if values.p is not None else DEFAULT_BASELINE.p,
            c=values.c if values.c is not None else DEFAULT_BASELINE.c,
            s=values.s if values.s is not None else DEFAULT_BASELINE.s,
        )
        sample = record.get("sample", 0)
        return cls(
            month_key=str(record["monthKey"]),
            values=values,
            sample=int(sample) if isinstance(sample, (int, float)) else 0,
            low_confidence=bool(record.get("lowConfidence", True)),
            computed_at=int(record.get("computedAt", 0) or 0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "monthKey": self.month_key,
            "values": self.values.as_dict(),
            "sample": self.sample,
            "lowConfidence": self.low_confidence,
            "computedAt": self.computed_at,
        }


@dataclass
class MedianStats:
    values: TrinityValue
    sample: int
    low_confidence: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "values": self.values.as_dict(),
            "sample": self.sample,
            "lowConfidence": self.low_confidence,
        }


@dataclass
class Window:
    """A concrete [start, end) window with its day rows in display order."""
    mode: str
    start_ms: int
    end_ms: int
    days: List[date] = field(default_factory=list)


def check_dimension(dimension: str) -> str:
    if dimension not in DIMENSIONS:
        raise ValueError(f"Unknown dimension {dimension!r}, expected one of {DIMENSIONS}")
    return dimension


def coerce_score(value: Any) -> Optional[float]:
    """Return a finite float for numeric input, None for anything else."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float, np.integer, np.floating)):
        value = float(value)
        return value if math.isfinite(value) else None
    return None


def clamp_score(value: float) -> float:
    return max(SCORE_MIN, min(SCORE_MAX, value))


# -------------------------
# Time-zone policy
# -------------------------

def resolve_timezone(tz: TimezoneLike) -> Optional[tzinfo]:
    """
    Normalise a time-zone policy.

    Args:
        tz: None or "local" for the system zone, an IANA name, or a tzinfo

    Returns:
        A tzinfo, or None meaning "system local time"
    """
    if tz is None:
        return None
    if isinstance(tz, tzinfo):
        return tz
    name = str(tz).strip()
    if not name or name.lower() == "local":
        return None
    return ZoneInfo(name)


def to_local(timestamp_ms: int, tz: TimezoneLike = None) -> datetime:
    """Convert epoch milliseconds to an aware datetime under the policy."""
    zone = resolve_timezone(tz)
    seconds = timestamp_ms / 1000
    if zone is None:
        return datetime.fromtimestamp(seconds).astimezone()
    return datetime.fromtimestamp(seconds, zone)


def to_epoch_ms(dt: datetime) -> int:
    if dt.tzinfo is None:
        dt = dt.astimezone()
    return int(round(dt.timestamp() * 1000))


def start_of_day(day: date, tz: TimezoneLike = None) -> datetime:
    """Local midnight of a calendar day, DST-aware."""
    zone = resolve_timezone(tz)
    if zone is None:
        return datetime(day.year, day.month, day.day).astimezone()
    return datetime(day.year, day.month, day.day, tzinfo=zone)


def day_bounds_ms(day: date, tz: TimezoneLike = None) -> Tuple[int, int]:
    start = start_of_day(day, tz)
    end = start_of_day(day + timedelta(days=1), tz)
    return to_epoch_ms(start), to_epoch_ms(end)


def resolve_now(now: Union[datetime, int, None], tz: TimezoneLike = None) -> datetime:
    """Reference time as an aware datetime in the policy zone."""
    if now is None:
        return to_local(to_epoch_ms(datetime.now().astimezone()), tz)
    if isinstance(now, datetime):
        return to_local(to_epoch_ms(now), tz)
    return to_local(int(now), tz)


def month_key(dt: datetime) -> str:
    return f"{dt.year:04d}-{dt.month:02d}"


# -------------------------
# DataFrame construction
# -------------------------

def samples_to_frame(samples: Iterable[Sample], tz: TimezoneLike = None) -> pd.DataFrame:
    """
    Convert samples into a DataFrame with local calendar columns.

    Values are clamped to [0, 10]; absent or non-finite components become
    NaN so pandas aggregations skip them. Input order is preserved.

    Args:
        samples: Sample collection
        tz: Time-zone policy used for hour/date/weekday/month columns

    Returns:
        DataFrame with FRAME_COLUMNS
    """
    zone = resolve_timezone(tz)
    records = []
    for sample in samples:
        local = to_local(sample.timestamp, zone)
        record = {
            "id": sample.id,
            "timestamp": sample.timestamp,
            "date": local.date(),
            "hour": local.hour,
            "weekday": local.weekday(),
            "month": local.month,
            "tags": tuple(sample.tags),
        }
        for dim in DIMENSIONS:
            value = coerce_score(sample.values.get(dim))
            record[dim] = clamp_score(value) if value is not None else np.nan
        records.append(record)

    frame = pd.DataFrame(records, columns=FRAME_COLUMNS)
    for dim in DIMENSIONS:
        frame[dim] = frame[dim].astype(float)
    return frame


# -------------------------
# Filters
# -------------------------

DAY_TYPES = ("all", "weekday", "weekend")


@dataclass(frozen=True)
class SampleFilter:
    """Optional tag and weekday/weekend restriction."""
    tag: Optional[str] = None
    day_type: str = "all"

    def __post_init__(self):
        if self.day_type not in DAY_TYPES:
            raise ValueError(f"Unknown day type {self.day_type!r}, expected one of {DAY_TYPES}")


def is_weekend(local: datetime) -> bool:
    return local.weekday() >= 5


def filter_samples(samples: Iterable[Sample], filters: Optional[SampleFilter] = None,
                   tz: TimezoneLike = None) -> List[Sample]:
    """Keep samples carrying the tag and falling on the requested day type."""
    samples = list(samples)
    if filters is None:
        return samples

    zone = resolve_timezone(tz)
    kept = []
    for sample in samples:
        if filters.tag and filters.tag not in sample.tags:
            continue
        if filters.day_type != "all":
            weekend = is_weekend(to_local(sample.timestamp, zone))
            if weekend != (filters.day_type == "weekend"):
                continue
        kept.append(sample)
    return kept
