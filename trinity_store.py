"""
Trinity Store - The Persistence Layer
JSON-file repository behind the narrow interface the analytics read from:
samples by time range, calendar events and cached monthly baselines.
"""

import json
import logging
import os
import time
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from trinity_models import (
    TRENDS,
    CalendarEvent,
    MonthlyBaseline,
    Sample,
    TrinityValue,
    coerce_score,
)

log = logging.getLogger("trinity_store")


class TrinityStore:
    """
    Single-document JSON store.

    The document holds three collections: "logs" (samples), "events" and
    "monthly_baselines" (keyed by month). Every write replaces the file
    atomically.
    """

    DEFAULT_DATA_DIR = Path("data_cache")
    DATA_FILENAME = "trinity_data.json"

    def __init__(self, data_dir: Optional[Path] = None, filename: Optional[str] = None):
        """
        Initialize the store.

        Args:
            data_dir: Directory holding the data file (default: data_cache)
            filename: Data file name inside data_dir
        """
        self.data_dir = Path(data_dir) if data_dir else self.DEFAULT_DATA_DIR
        self.path = self.data_dir / (filename or self.DATA_FILENAME)
        self._ensure_data_dir()

    def _ensure_data_dir(self) -> None:
        """Create data directory if it doesn't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)

    # -------------------------
    # Raw document
    # -------------------------

    def _empty_document(self) -> Dict[str, Any]:
        return {"logs": [], "events": [], "monthly_baselines": {}}

    def load_document(self) -> Dict[str, Any]:
        """
        Load the whole document.

        Missing or empty files yield an empty document; a corrupt file is
        backed up next to the original and replaced by an empty document.
        """
        if not self.path.exists():
            return self._empty_document()

        text = self.path.read_text(encoding="utf-8").strip()
        if not text:
            return self._empty_document()

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            backup = self.path.with_suffix(f".corrupt-{int(time.time())}.json")
            backup.write_text(text, encoding="utf-8")
            log.warning("corrupt data file %s (%s), backed up to %s", self.path, e, backup)
            document = self._empty_document()
            self.save_document(document)
            return document

        document = self._empty_document()
        if isinstance(data, dict):
            for key in document:
                if isinstance(data.get(key), type(document[key])):
                    document[key] = data[key]
        return document

    def save_document(self, document: Dict[str, Any]) -> Path:
        """Write the document through a temp file and os.replace."""
        tmp = self.path.with_name(self.path.name + ".tmp")
        payload = json.dumps(document, indent=2, sort_keys=True, ensure_ascii=False) + "\n"
        with open(tmp, "w", encoding="utf-8") as f:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, self.path)
        return self.path

    # -------------------------
    # Samples
    # -------------------------

    def _parse_samples(self, records: List[Any]) -> List[Sample]:
        samples = []
        for record in records:
            try:
                samples.append(Sample.from_dict(record))
            except ValueError as e:
                log.warning("skipping malformed sample record: %s", e)
        return samples

    def save_sample(self, values: TrinityValue, timestamp: Optional[int] = None,
                    tags: Sequence[str] = (), trend: str = "flat",
                    note: Optional[str] = None) -> Sample:
        """
        Append a new sample.

        Args:
            values: Recorded P/C/S values
            timestamp: Epoch milliseconds (defaults to now)
            tags: Tags, duplicates allowed
            trend: "up", "flat" or "down"
            note: Optional free text

        Returns:
            The stored Sample with its generated id
        """
        if trend not in TRENDS:
            raise ValueError(f"Unknown trend {trend!r}, expected one of {TRENDS}")
        for dim, value in values.as_dict().items():
            if coerce_score(value) is None:
                raise ValueError(f"Value {dim} must be a finite number, got {value!r}")

        sample = Sample(
            id=str(uuid.uuid4()),
            timestamp=int(timestamp if timestamp is not None else time.time() * 1000),
            values=values,
            tags=tuple(tags),
            trend=trend,
            note=note or None,
        )
        document = self.load_document()
        document["logs"].append(sample.to_dict())
        self.save_document(document)
        log.debug("saved sample %s at %d", sample.id, sample.timestamp)
        return sample

    def get_sample(self, sample_id: str) -> Optional[Sample]:
        for sample in self.get_all_samples():
            if sample.id == sample_id:
                return sample
        return None

    def get_all_samples(self) -> List[Sample]:
        """All parseable samples, oldest first."""
        samples = self._parse_samples(self.load_document()["logs"])
        return sorted(samples, key=lambda s: s.timestamp)

    def get_samples_in_range(self, start_ms: int, end_ms: int) -> List[Sample]:
        """Samples with start_ms <= timestamp < end_ms, oldest first."""
        return [s for s in self.get_all_samples() if start_ms <= s.timestamp < end_ms]

    def delete_sample(self, sample_id: str) -> bool:
        """Remove a sample by id. Returns False when no such sample exists."""
        document = self.load_document()
        kept = [r for r in document["logs"] if not (isinstance(r, dict) and r.get("id") == sample_id)]
        if len(kept) == len(document["logs"]):
            return False
        document["logs"] = kept
        self.save_document(document)
        return True

    # -------------------------
    # Monthly baselines
    # -------------------------

    def get_cached_monthly_baseline(self, month_key: str) -> Optional[MonthlyBaseline]:
        record = self.load_document()["monthly_baselines"].get(month_key)
        if record is None:
            return None
        try:
            return MonthlyBaseline.from_dict(record)
        except ValueError as e:
            log.warning("ignoring malformed monthly baseline %s: %s", month_key, e)
            return None

    def save_monthly_baseline(self, baseline: MonthlyBaseline) -> None:
        document = self.load_document()
        document["monthly_baselines"][baseline.month_key] = baseline.to_dict()
        self.save_document(document)

    # -------------------------
    # Events
    # -------------------------

    def save_event(self, event: CalendarEvent) -> None:
        """Insert or replace an event by id."""
        document = self.load_document()
        events = [r for r in document["events"] if not (isinstance(r, dict) and r.get("id") == event.id)]
        events.append(event.to_dict())
        document["events"] = events
        self.save_document(document)

    def get_events(self) -> List[CalendarEvent]:
        """All parseable events ordered by start time."""
        events = []
        for record in self.load_document()["events"]:
            try:
                events.append(CalendarEvent.from_dict(record))
            except ValueError as e:
                log.warning("skipping malformed event record: %s", e)
        return sorted(events, key=lambda e: e.start_time)
