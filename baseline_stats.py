"""
Baseline Stats - Outlier-Resistant Statistics
Median + IQR outlier rejection per dimension, and the monthly median
snapshot that is cached by the store.
"""

import logging
import math
from datetime import date, datetime
from typing import Iterable, List, Optional, Sequence

import numpy as np

from trinity_models import (
    DEFAULT_BASELINE,
    DIMENSIONS,
    MedianStats,
    MonthlyBaseline,
    Sample,
    TimezoneLike,
    TrinityValue,
    month_key,
    resolve_now,
    samples_to_frame,
    start_of_day,
    to_epoch_ms,
)

log = logging.getLogger("baseline_stats")

LOW_CONFIDENCE_THRESHOLD = 5
IQR_FENCE = 1.5


def median(values: Sequence[float]) -> float:
    """Median of the finite values in a list; 0 when there are none."""
    arr = np.asarray(values, dtype=float)
    arr = arr[np.isfinite(arr)]
    if arr.size == 0:
        return 0.0
    return float(np.median(arr))


def filter_outliers(values: Sequence[float]) -> List[float]:
    """
    Drop values outside the 1.5 * IQR fences.

    Fewer than 4 values are returned unchanged. Otherwise the result is
    sorted ascending. Q1 is the median of the lower half (before floor(n/2)),
    Q3 the median of the upper half (from ceil(n/2)).
    """
    if len(values) < 4:
        return list(values)

    ordered = np.sort(np.asarray(values, dtype=float))
    n = len(ordered)
    q1 = median(ordered[: n // 2])
    q3 = median(ordered[math.ceil(n / 2):])
    iqr = q3 - q1
    lower = q1 - IQR_FENCE * iqr
    upper = q3 + IQR_FENCE * iqr

    kept = ordered[(ordered >= lower) & (ordered <= upper)]
    return kept.tolist()


def compute_median_stats(samples: Iterable[Sample]) -> MedianStats:
    """
    Outlier-filtered median per dimension.

    Args:
        samples: Sample collection (any order)

    Returns:
        MedianStats with per-dimension medians, the smallest filtered sample
        count across dimensions and the low-confidence flag
    """
    frame = samples_to_frame(samples)
    if frame.empty:
        return MedianStats(values=DEFAULT_BASELINE, sample=0, low_confidence=True)

    filtered = {dim: filter_outliers(frame[dim].dropna().tolist()) for dim in DIMENSIONS}
    sample = min(len(filtered[dim]) for dim in DIMENSIONS)

    medians = {
        dim: median(filtered[dim]) if filtered[dim] else DEFAULT_BASELINE.get(dim)
        for dim in DIMENSIONS
    }
    log.debug("median stats over %d samples: %s (n=%d)", len(frame), medians, sample)

    return MedianStats(
        values=TrinityValue(**medians),
        sample=sample,
        low_confidence=sample < LOW_CONFIDENCE_THRESHOLD,
    )


def build_monthly_baseline(samples: Iterable[Sample], key: str, computed_at: int) -> MonthlyBaseline:
    """Wrap compute_median_stats into a cacheable monthly snapshot."""
    stats = compute_median_stats(samples)
    return MonthlyBaseline(
        month_key=key,
        values=stats.values,
        sample=stats.sample,
        low_confidence=stats.low_confidence,
        computed_at=computed_at,
    )


def month_bounds_ms(year: int, month: int, tz: TimezoneLike = None):
    """[start, end) of a calendar month in epoch milliseconds."""
    start = start_of_day(date(year, month, 1), tz)
    if month == 12:
        end = start_of_day(date(year + 1, 1, 1), tz)
    else:
        end = start_of_day(date(year, month + 1, 1), tz)
    return to_epoch_ms(start), to_epoch_ms(end)


def get_monthly_baseline(store, year: int, month: int, tz: TimezoneLike = None,
                         now: Optional[datetime] = None) -> MonthlyBaseline:
    """
    Cached monthly baseline, recomputed when missing or still accumulating.

    Args:
        store: Repository exposing get_samples_in_range,
            get_cached_monthly_baseline and save_monthly_baseline
        year: Calendar year
        month: Calendar month (1-12)
        tz: Time-zone policy defining the month boundaries
        now: Reference time (defaults to the current time)

    Returns:
        MonthlyBaseline snapshot
    """
    reference = resolve_now(now, tz)
    key = f"{year:04d}-{month:02d}"
    finished = key < month_key(reference)

    if finished:
        cached = store.get_cached_monthly_baseline(key)
        if cached is not None:
            return cached

    start_ms, end_ms = month_bounds_ms(year, month, tz)
    samples = store.get_samples_in_range(start_ms, end_ms)
    snapshot = build_monthly_baseline(samples, key, to_epoch_ms(reference))
    store.save_monthly_baseline(snapshot)
    log.info("monthly baseline %s recomputed from %d samples", key, len(samples))
    return snapshot
