"""
Biorhythm - Baseline Curve Reconstruction
Rebuilds a smooth 24-hour expected-value curve from sparse samples, and
holds the fixed circadian reference curve used when there is no history.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

import numpy as np

from trinity_models import Sample, TimezoneLike, check_dimension, samples_to_frame

log = logging.getLogger("biorhythm")

HOURS_PER_DAY = 24
WRAP_HOURS = 3
SMOOTHING_WINDOW = 3
MISSING_HOUR_DEFAULT = 5.0


@dataclass(frozen=True)
class BaselinePoint:
    hour: int
    value: float


def standard_value(hour: float, dimension: str) -> float:
    """
    Fixed circadian reference value for a (fractional) hour of day.

    Physical rises through the morning and peaks in the early evening,
    cognitive peaks mid-morning with a post-lunch dip, impulse is high at
    night and early morning and low through the day.
    """
    check_dimension(dimension)
    if dimension == "p":
        if hour < 6:
            return 2.0
        if hour < 12:
            return 2 + (hour - 6) * 1.3
        if hour < 15:
            return 8.0
        if hour < 18:
            return 9.0
        return 9 - (hour - 18) * 1.2
    if dimension == "c":
        if hour < 5:
            return 1.0
        if hour < 11:
            return 9.0
        if hour < 14:
            return 5.0
        if hour < 17:
            return 8.0
        return 4.0
    # impulse
    if hour < 8:
        return 7.0
    if hour < 20:
        return 3.0
    return 8.0


def standard_curve(dimension: str) -> List[BaselinePoint]:
    """Reference curve sampled on the hour."""
    return [BaselinePoint(hour=h, value=standard_value(h, dimension)) for h in range(HOURS_PER_DAY)]


def smooth_data(values: Sequence[float], window: int = SMOOTHING_WINDOW) -> List[float]:
    """
    Moving average clipped at the array ends.

    Each point averages values[i - window // 2 : i + ceil(window / 2)],
    so edge points average fewer neighbours instead of wrapping.
    """
    data = np.asarray(values, dtype=float)
    n = len(data)
    left = window // 2
    right = window - left
    smoothed = []
    for idx in range(n):
        start = max(0, idx - left)
        end = min(n, idx + right)
        smoothed.append(float(data[start:end].mean()))
    return smoothed


def _fill_missing_hours(hourly: List[Optional[float]]) -> List[float]:
    """Fill empty hours with the mean of the previous filled and next observed value."""
    filled = list(hourly)
    for hour in range(len(filled)):
        if filled[hour] is not None:
            continue
        prev_val = filled[hour - 1] if hour > 0 else MISSING_HOUR_DEFAULT

        next_val = prev_val
        for later in range(hour + 1, len(filled)):
            if filled[later] is not None:
                next_val = filled[later]
                break

        filled[hour] = (prev_val + next_val) / 2
    return filled


def calculate_dynamic_baseline(history: Iterable[Sample], dimension: str,
                               tz: TimezoneLike = None) -> List[BaselinePoint]:
    """
    Reverse-engineer the typical value for each hour of day.

    Args:
        history: Historical samples
        dimension: "p", "c" or "s"
        tz: Time-zone policy for the hour-of-day grouping

    Returns:
        24 BaselinePoint entries, hours 0..23, all finite
    """
    check_dimension(dimension)
    frame = samples_to_frame(history, tz)

    # Plain mean per hour of day, NaN for hours without data
    hourly_means = (
        frame.dropna(subset=[dimension])
        .groupby("hour")[dimension]
        .mean()
        .reindex(range(HOURS_PER_DAY))
    )
    hourly = [None if np.isnan(v) else float(v) for v in hourly_means.tolist()]
    observed = sum(v is not None for v in hourly)
    log.debug("dynamic baseline %s: %d/24 hours observed", dimension, observed)

    filled = _fill_missing_hours(hourly)

    # Wrap around midnight so 23h and 0h smooth into each other
    extended = filled[-WRAP_HOURS:] + filled + filled[:WRAP_HOURS]
    smoothed = smooth_data(extended, SMOOTHING_WINDOW)
    final = smoothed[WRAP_HOURS:WRAP_HOURS + HOURS_PER_DAY]

    return [BaselinePoint(hour=h, value=v) for h, v in enumerate(final)]
