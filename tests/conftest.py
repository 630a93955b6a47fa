"""Shared fixtures: samples are built in UTC so hour buckets are predictable."""

from __future__ import annotations

import itertools
from datetime import datetime, timezone

import pytest

from trinity_models import Sample, TrinityValue, to_epoch_ms

UTC = timezone.utc
NOW = datetime(2025, 11, 20, 12, 0, tzinfo=UTC)  # a Thursday

_ids = itertools.count(1)


def ms(year, month, day, hour=0, minute=0):
    return to_epoch_ms(datetime(year, month, day, hour, minute, tzinfo=UTC))


def sample_at(timestamp, p=5.0, c=5.0, s=5.0, tags=(), sample_id=None, note=None):
    if isinstance(timestamp, datetime):
        timestamp = to_epoch_ms(timestamp)
    return Sample(
        id=sample_id or f"s{next(_ids)}",
        timestamp=timestamp,
        values=TrinityValue(p=p, c=c, s=s),
        tags=tuple(tags),
        note=note,
    )


@pytest.fixture()
def now():
    return NOW


@pytest.fixture()
def make_sample():
    return sample_at
