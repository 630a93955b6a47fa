"""
Trinity Context Generator - The Feeder
Generates trinity_context.json with a hierarchical view of the current state
and the plain-text prompt handed to the chat collaborator.
"""

import json
import logging
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from chart_series import format_delta
from heatmap import WindowSpec
from period_summary import render_period_text, render_recent_samples
from trinity_analyzer import TrinityAnalyzer
from trinity_models import (
    DIMENSION_LABELS,
    DIMENSIONS,
    MS_PER_HOUR,
    CalendarEvent,
    MonthlyBaseline,
    SampleFilter,
    to_epoch_ms,
    to_local,
)

log = logging.getLogger("trinity_context_generator")

PROMPT_HEADER = (
    "Generate an analysis report from the user's records of the last 24 hours "
    "and of the recent weeks and months.\n"
    "Background: this is a biofeedback monitor built on sparse sampling and "
    "algorithmic reconstruction. The user records their state at random moments; "
    "each record is a sample point, and a continuous curve is rebuilt from the "
    "built-in standard circadian curve combined with the user's own records, "
    "forming a baseline that keeps moving as new data arrives.\n"
    "Requirements: plain, natural language and no hallucination. If data is "
    "missing or not enough for a sound conclusion, say so instead of inventing one."
)

PROMPT_QUESTIONS = (
    "Please give: 1) where the current state stands; 2) attribution and prediction; "
    "3) disturbances and anomalies; 4) one concrete, actionable suggestion."
)


class TrinityContextGenerator:
    """
    Generates the Trinity context object.
    Outputs hierarchical JSON and prompt text for AI agent consumption.
    """

    OUTPUT_DIR = Path("output")
    UPCOMING_EVENT_HOURS = 24
    RECENT_SAMPLE_HOURS = 24

    def __init__(self, analyzer: TrinityAnalyzer, events: Optional[Iterable[CalendarEvent]] = None,
                 monthly_baseline: Optional[MonthlyBaseline] = None,
                 output_dir: Optional[Path] = None):
        """
        Initialize the context generator.

        Args:
            analyzer: TrinityAnalyzer instance holding the samples
            events: Calendar events (only upcoming ones are used)
            monthly_baseline: Cached monthly snapshot; computed from the
                analyzer's samples when not given
            output_dir: Where save_context writes (default: output)
        """
        self.analyzer = analyzer
        self.events: List[CalendarEvent] = sorted(events or [], key=lambda e: e.start_time)
        self.monthly_baseline = monthly_baseline
        self.output_dir = Path(output_dir) if output_dir else self.OUTPUT_DIR
        self._ensure_output_dir()

    def _ensure_output_dir(self) -> None:
        """Create output directory if it doesn't exist."""
        self.output_dir.mkdir(parents=True, exist_ok=True)

    @property
    def _now_ms(self) -> int:
        return to_epoch_ms(self.analyzer.now)

    def generate_meta(self, day: date) -> Dict[str, Any]:
        """Generate metadata section."""
        return {
            "date": day.isoformat(),
            "day_of_week": day.strftime("%A"),
            "timezone": str(self.analyzer.now.tzinfo),
            "reference_time": self.analyzer.now.isoformat(),
            "generated_at": datetime.now().isoformat(),
        }

    def generate_baseline_comparison(self, baseline: Dict[str, Any]) -> Dict[str, Any]:
        """Latest recorded slot against the dynamic baseline."""
        latest = baseline["latest"]
        delta = baseline["delta"]

        section: Dict[str, Any] = {
            "latest_slot": latest.time if latest else None,
            "insight": baseline["insight"],
            "samples_today": baseline["today_count"],
            "history_samples": baseline["history_count"],
            "baseline_coverage": round(baseline["coverage"], 2),
            "recorded_slots": [point.to_dict() for point in baseline["points"] if point.has_actual()],
        }
        if latest is None:
            section["dimensions"] = {}
            return section

        section["dimensions"] = {
            DIMENSION_LABELS[dim].lower(): {
                "actual": latest.actual(dim),
                "baseline": round(latest.baseline(dim), 2),
                "standard": round(latest.standard(dim), 2),
                "delta": format_delta(delta.get(dim)),
                "delta_raw": round(delta.get(dim), 2),
            }
            for dim in DIMENSIONS
        }
        return section

    def generate_monthly_baseline(self, day: date) -> Dict[str, Any]:
        """Median snapshot for the month of `day`."""
        snapshot = self.monthly_baseline
        if snapshot is None:
            stats = self.analyzer.analyze_median_stats(day)
            return {
                "month": f"{day.year:04d}-{day.month:02d}",
                **stats.to_dict(),
                "cached": False,
            }
        return {
            "month": snapshot.month_key,
            "values": snapshot.values.as_dict(),
            "sample": snapshot.sample,
            "lowConfidence": snapshot.low_confidence,
            "cached": True,
        }

    def generate_hourly_profile(self, window: WindowSpec,
                                filters: Optional[SampleFilter]) -> Dict[str, Any]:
        """Per-hour means with state labels; hours without data are omitted."""
        hours = self.analyzer.analyze_hour_map(window, filters)
        observed = [h for h in hours if h.count > 0]
        return {
            "window": {"mode": window.mode, "days": window.days, "offset": window.page},
            "hours": {f"{h.hour:02d}:00": h.to_dict() for h in observed},
            "hours_with_data": len(observed),
        }

    def upcoming_events(self) -> List[CalendarEvent]:
        """Events starting within the next 24 hours."""
        start = self._now_ms
        end = start + self.UPCOMING_EVENT_HOURS * MS_PER_HOUR
        return [e for e in self.events if start <= e.start_time < end]

    def _format_event(self, event: CalendarEvent) -> str:
        return f"[{to_local(event.start_time, self.analyzer.tz).strftime('%H:%M')}] {event.title}"

    def _assess_data_quality(self, baseline: Dict[str, Any], periods: Dict[str, Any]) -> Dict[str, Any]:
        """Assess the quality and completeness of the data."""
        quality_flags = {
            "today_available": periods["today"].has_data,
            "week_available": periods["week"].has_data,
            "month_available": periods["month"].has_data,
            "baseline_history_available": baseline["history_count"] > 0,
        }

        available_count = sum(quality_flags.values())
        total_count = len(quality_flags)

        return {
            "completeness_score": f"{available_count}/{total_count}",
            "completeness_percentage": round(available_count / total_count * 100, 0),
            "data_flags": quality_flags,
            "total_samples": len(self.analyzer.samples),
            "confidence": "High" if available_count >= 4 else "Medium" if available_count >= 2 else "Low",
        }

    def generate_context(self, day: Optional[date] = None, window: Optional[WindowSpec] = None,
                         filters: Optional[SampleFilter] = None) -> Dict[str, Any]:
        """
        Generate the complete Trinity context object.

        Args:
            day: Day to analyze (defaults to the analyzer's today)
            window: Window for the hourly profile (defaults to the last 7 days)
            filters: Optional tag / day-type filter

        Returns:
            Complete context dictionary
        """
        day = day or self.analyzer.today
        window = window or WindowSpec()

        baseline = self.analyzer.analyze_baseline(day, filters)
        periods = self.analyzer.analyze_periods()
        seasons = self.analyzer.analyze_seasons()
        trend = self.analyzer.analyze_weekly_trend()

        context = {
            "meta": self.generate_meta(day),
            "baseline_comparison": self.generate_baseline_comparison(baseline),
            "monthly_baseline": self.generate_monthly_baseline(day),
            "period_summaries": {
                bucket: {**summary.to_dict(), "text": render_period_text(summary)}
                for bucket, summary in periods.items()
            },
            "seasonal_summaries": {season: summary.to_dict() for season, summary in seasons.items()},
            "hourly_profile": self.generate_hourly_profile(window, filters),
            "weekly_trend": {
                "status": trend.status,
                "physical_average": round(trend.average, 2),
                "samples": trend.count,
            },
            "upcoming_events": [
                {**event.to_dict(), "display": self._format_event(event)}
                for event in self.upcoming_events()
            ],
            "data_quality": self._assess_data_quality(baseline, periods),
        }
        log.debug("context generated for %s", day)
        return context

    def generate_system_prompt(self) -> str:
        """
        Build the plain-text system prompt for the chat collaborator.

        Returns:
            Prompt with recent samples, weekly overview, upcoming events and
            today / 7-day / 30-day summary lines
        """
        now_ms = self._now_ms
        since = now_ms - self.RECENT_SAMPLE_HOURS * MS_PER_HOUR
        recent = [s for s in self.analyzer.samples if since <= s.timestamp <= now_ms]
        periods = self.analyzer.analyze_periods()

        events = self.upcoming_events()
        calendar_text = "\n".join(self._format_event(e) for e in events) if events else "No events in next 24h."
        summary_text = "\n".join(render_period_text(periods[bucket]) for bucket in ("today", "week", "month"))

        sections = [
            PROMPT_HEADER,
            "",
            "[Last 24 hours]",
            render_recent_samples(recent, self.analyzer.tz),
            "",
            "[Last week overview]",
            render_period_text(periods["week"]),
            "",
            "[Upcoming events]",
            calendar_text,
            "",
            "[Summary (day/week/month)]",
            summary_text,
            "",
            PROMPT_QUESTIONS,
        ]
        return "\n".join(sections)

    def _convert_values(self, obj: Any) -> Any:
        """Recursively convert numpy scalars to Python types for JSON serialization."""
        if isinstance(obj, dict):
            return {k: self._convert_values(v) for k, v in obj.items()}
        elif isinstance(obj, (list, tuple)):
            return [self._convert_values(item) for item in obj]
        elif hasattr(obj, "item"):  # numpy types
            return obj.item()
        return obj

    def save_context(self, context: Dict[str, Any], filename: str = "trinity_context.json") -> Path:
        """
        Save the context to a JSON file.

        Args:
            context: Context dictionary to save
            filename: Output filename

        Returns:
            Path to the saved file
        """
        filepath = self.output_dir / filename
        clean_context = self._convert_values(context)
        with open(filepath, "w", encoding="utf-8") as f:
            json.dump(clean_context, f, indent=2, default=str, ensure_ascii=False)
        log.info("context saved to %s", filepath)
        return filepath

    def generate_and_save(self, day: Optional[date] = None, window: Optional[WindowSpec] = None,
                          filters: Optional[SampleFilter] = None,
                          filename: str = "trinity_context.json") -> Path:
        """
        Generate context and save to file in one step.

        Args:
            day: Day to generate context for
            window: Window for the hourly profile
            filters: Optional tag / day-type filter
            filename: Output filename

        Returns:
            Path to the saved file
        """
        context = self.generate_context(day, window, filters)
        return self.save_context(context, filename)
