"""
Chart Series - The Compositor
Aligns a day's actual samples, the standard circadian curve and the dynamic
baseline into 48 half-hour slots, and derives deltas against the baseline.
"""

from dataclasses import dataclass
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence

from biorhythm import calculate_dynamic_baseline, standard_value
from trinity_models import (
    DIMENSION_LABELS,
    DIMENSIONS,
    MS_PER_MINUTE,
    Sample,
    TimezoneLike,
    TrinityValue,
    clamp_score,
    coerce_score,
    resolve_now,
    resolve_timezone,
    start_of_day,
    to_epoch_ms,
    to_local,
)

SLOT_MINUTES = 30
SLOTS_PER_DAY = 48
ACTUAL_TOLERANCE_MS = 15 * MS_PER_MINUTE
STEADY_DELTA = 0.2


@dataclass
class ChartDataPoint:
    """One half-hour slot. *_actual is None where nothing was recorded."""
    time: str
    timestamp: int
    p_standard: float
    p_baseline: float
    p_actual: Optional[float]
    c_standard: float
    c_baseline: float
    c_actual: Optional[float]
    s_standard: float
    s_baseline: float
    s_actual: Optional[float]

    def standard(self, dimension: str) -> float:
        return getattr(self, f"{dimension}_standard")

    def baseline(self, dimension: str) -> float:
        return getattr(self, f"{dimension}_baseline")

    def actual(self, dimension: str) -> Optional[float]:
        return getattr(self, f"{dimension}_actual")

    def has_actual(self) -> bool:
        return any(self.actual(dim) is not None for dim in DIMENSIONS)

    def delta(self, dimension: str) -> float:
        baseline = self.baseline(dimension)
        actual = self.actual(dimension)
        return (actual if actual is not None else baseline) - baseline

    def deltas(self) -> TrinityValue:
        return TrinityValue(**{dim: self.delta(dim) for dim in DIMENSIONS})

    def to_dict(self) -> Dict[str, object]:
        return dict(self.__dict__)


def generate_time_slots(day: date, tz: TimezoneLike = None) -> List[int]:
    """48 slot timestamps, 30 minutes apart from local midnight."""
    midnight = to_epoch_ms(start_of_day(day, tz))
    return [midnight + i * SLOT_MINUTES * MS_PER_MINUTE for i in range(SLOTS_PER_DAY)]


def _find_actual(samples: Sequence[Sample], slot_ms: int) -> Optional[Sample]:
    """First sample in input order inside [slot - 15 min, slot + 15 min)."""
    # half-open rather than open at both ends: a sample exactly on hh:15 or hh:45
    # lands in the later slot instead of matching none
    for sample in samples:
        if slot_ms - ACTUAL_TOLERANCE_MS <= sample.timestamp < slot_ms + ACTUAL_TOLERANCE_MS:
            return sample
    return None


def _actual_value(sample: Optional[Sample], dimension: str) -> Optional[float]:
    if sample is None:
        return None
    value = coerce_score(sample.values.get(dimension))
    return clamp_score(value) if value is not None else None


def process_chart_data(today_samples: Iterable[Sample], history_samples: Iterable[Sample] = (),
                       day: Optional[date] = None, tz: TimezoneLike = None) -> List[ChartDataPoint]:
    """
    Merge actual, standard and baseline values for every half-hour of a day.

    Args:
        today_samples: Samples of the charted day (at most one per slot expected)
        history_samples: Samples the dynamic baseline is built from
        day: Calendar day to chart (defaults to today under the policy)
        tz: Time-zone policy

    Returns:
        48 ChartDataPoint rows, slot 0 at local midnight
    """
    zone = resolve_timezone(tz)
    today_samples = list(today_samples)
    history_samples = list(history_samples)
    if day is None:
        day = resolve_now(None, zone).date()

    # Dynamic baselines; empty history falls back to the standard curve
    curves: Dict[str, Dict[int, float]] = {}
    for dim in DIMENSIONS:
        if history_samples:
            curve = calculate_dynamic_baseline(history_samples, dim, zone)
            curves[dim] = {point.hour: point.value for point in curve}
        else:
            curves[dim] = {}

    points = []
    for slot_ms in generate_time_slots(day, zone):
        local = to_local(slot_ms, zone)
        hour_float = local.hour + local.minute / 60
        sample = _find_actual(today_samples, slot_ms)

        row: Dict[str, object] = {"time": local.strftime("%H:%M"), "timestamp": slot_ms}
        for dim in DIMENSIONS:
            standard = standard_value(hour_float, dim)
            row[f"{dim}_standard"] = standard
            row[f"{dim}_baseline"] = curves[dim].get(local.hour, standard)
            row[f"{dim}_actual"] = _actual_value(sample, dim)
        points.append(ChartDataPoint(**row))

    return points


def latest_point(points: Sequence[ChartDataPoint]) -> Optional[ChartDataPoint]:
    """Last slot that carries any actual value."""
    for point in reversed(points):
        if point.has_actual():
            return point
    return None


def latest_delta(points: Sequence[ChartDataPoint]) -> Optional[TrinityValue]:
    point = latest_point(points)
    return point.deltas() if point else None


def format_delta(value: float) -> str:
    sign = "+" if value > 0 else ""
    return f"{sign}{value:.1f}"


def describe_delta(delta: Optional[TrinityValue]) -> str:
    """One-line reading of the dimension that deviates most from baseline."""
    if delta is None:
        return "No samples recorded today yet."

    dim, value = max(
        ((d, delta.get(d) or 0.0) for d in DIMENSIONS),
        key=lambda item: abs(item[1]),
    )
    if abs(value) < STEADY_DELTA:
        return "Overall close to baseline, state is steady."

    direction = "above" if value > 0 else "below"
    return f"{DIMENSION_LABELS[dim]} {direction} baseline {format_delta(value)}"


def baseline_coverage(sample_count: int, days: int) -> float:
    """Share of the baseline window backed by samples, capped at 1."""
    return min(1.0, sample_count / max(1, days))
