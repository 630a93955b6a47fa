#!/usr/bin/env python3
"""
Trinity Analytics Pipeline - Main Orchestrator
A self-tracking pipeline for the Physical / Cognitive / Impulse state:
- records sparse samples into a local JSON store
- reconstructs the hourly baseline and compares today against it
- aggregates heatmaps, period and seasonal summaries

and outputs a JSON context file plus a prompt for AI agent consumption.
"""

import argparse
import json
import logging
import random
import sys
import uuid
from datetime import date, datetime, timedelta
from typing import List, Optional

import numpy as np

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()

from baseline_stats import get_monthly_baseline
from biorhythm import standard_value
from heatmap import WINDOW_MODES, WindowSpec, classify_heat_cell
from trinity_analyzer import TrinityAnalyzer
from trinity_config import BASELINE_PRESETS, Settings, load_settings
from trinity_context_generator import TrinityContextGenerator
from trinity_models import (
    DAY_TYPES,
    DIMENSIONS,
    TRENDS,
    MonthlyBaseline,
    Sample,
    SampleFilter,
    TrinityValue,
    clamp_score,
    resolve_now,
    resolve_timezone,
    start_of_day,
    to_epoch_ms,
)
from trinity_store import TrinityStore


class NumpyJSONEncoder(json.JSONEncoder):
    """Custom JSON encoder that handles numpy types."""
    def default(self, obj):
        if isinstance(obj, np.integer):
            return int(obj)
        elif isinstance(obj, np.floating):
            return float(obj)
        elif isinstance(obj, np.ndarray):
            return obj.tolist()
        elif isinstance(obj, np.bool_):
            return bool(obj)
        return super().default(obj)


def setup_argparser() -> argparse.ArgumentParser:
    """Set up command line argument parser."""
    parser = argparse.ArgumentParser(
        description="Trinity Analytics Pipeline - Record and analyze Physical/Cognitive/Impulse state",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Record a sample now
  python main.py --log 7 8 3 --tags work coffee --trend up

  # Analyze stored samples for today
  python main.py --run

  # Analyze a specific date with weekday-only history
  python main.py --run --date 2026-02-05 --day-type weekday

  # Use demo mode with generated samples
  python main.py --demo --prompt

Environment Variables:
  TRINITY_DATA_DIR       - Where the sample store lives (default: data_cache)
  TRINITY_OUTPUT_DIR     - Where context files are written (default: output)
  TRINITY_TIMEZONE       - IANA zone for hour-of-day grouping (default: system zone)
  TRINITY_BASELINE_DAYS  - Days of history behind the baseline (default: 30)
  TRINITY_HEATMAP_DAYS   - Days in the trailing heatmap (default: 7)
  TRINITY_WEEK_START     - sunday or monday (default: sunday)
  TRINITY_LOG_LEVEL      - Logging level (default: WARNING)
        """
    )

    parser.add_argument(
        "--log",
        type=float,
        nargs=3,
        metavar=("P", "C", "S"),
        default=None,
        help="Record a sample with Physical, Cognitive and Impulse values (0-10)"
    )

    parser.add_argument(
        "--tags",
        type=str,
        nargs="*",
        default=[],
        help="Tags for the recorded sample"
    )

    parser.add_argument(
        "--trend",
        type=str,
        default="flat",
        choices=TRENDS,
        help="Trend marker for the recorded sample"
    )

    parser.add_argument(
        "--note",
        type=str,
        default=None,
        help="Free-text note for the recorded sample"
    )

    parser.add_argument(
        "--time",
        type=str,
        default=None,
        help="Sample time (YYYY-MM-DD HH:MM or HH:MM for today, defaults to now)"
    )

    parser.add_argument(
        "--delete",
        type=str,
        default=None,
        metavar="SAMPLE_ID",
        help="Delete a stored sample by id"
    )

    parser.add_argument(
        "--run",
        action="store_true",
        help="Analyze the stored samples"
    )

    parser.add_argument(
        "--demo",
        action="store_true",
        help="Run in demo mode with generated samples (store is not touched)"
    )

    parser.add_argument(
        "--date",
        type=str,
        default=None,
        help="Target date for analysis (YYYY-MM-DD format, defaults to today)"
    )

    parser.add_argument(
        "--baseline-days",
        type=int,
        default=None,
        help="Days of history behind the dynamic baseline (default: 30)"
    )

    parser.add_argument(
        "--baseline-preset",
        type=str,
        default=None,
        choices=list(BASELINE_PRESETS),
        help="Baseline history preset: short (7d), standard (30d), extended (90d)"
    )

    parser.add_argument(
        "--day-type",
        type=str,
        default="all",
        choices=DAY_TYPES,
        help="Restrict baseline history and heatmaps to weekdays or weekends"
    )

    parser.add_argument(
        "--tag",
        type=str,
        default=None,
        help="Restrict baseline history and heatmaps to samples carrying this tag"
    )

    parser.add_argument(
        "--heat-range",
        type=str,
        default="trailing",
        choices=WINDOW_MODES,
        help="Heatmap window: trailing days, calendar week or calendar month"
    )

    parser.add_argument(
        "--heat-days",
        type=int,
        default=None,
        help="Days in the trailing heatmap window (default: 7)"
    )

    parser.add_argument(
        "--week-offset",
        type=int,
        default=0,
        help="Page calendar week/month windows back (0 = current, -1 = previous)"
    )

    parser.add_argument(
        "--prompt",
        action="store_true",
        help="Print the chat system prompt after the analysis"
    )

    parser.add_argument(
        "--output",
        type=str,
        default="trinity_context.json",
        help="Output filename for the context JSON"
    )

    parser.add_argument(
        "--timezone",
        type=str,
        default=None,
        help="IANA time zone for hour-of-day grouping ('local' for the system zone)"
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose output"
    )

    return parser


def generate_sample_data(days: int = 45, now: Optional[datetime] = None,
                         seed: Optional[int] = None, tz=None) -> List[Sample]:
    """Generate demo samples that loosely follow the standard circadian curve."""
    rng = random.Random(seed)
    now = resolve_now(now, tz)
    samples = []

    for i in range(days, -1, -1):
        day = (now - timedelta(days=i)).date()
        # 2-6 random check-ins between 07:00 and 23:00
        for _ in range(rng.randint(2, 6)):
            stamp = start_of_day(day, tz) + timedelta(hours=rng.randint(7, 22), minutes=rng.choice([0, 10, 20, 30, 40, 50]))
            if stamp >= now:
                continue
            hour = stamp.hour + stamp.minute / 60
            values = {
                dim: round(clamp_score(standard_value(hour, dim) + rng.uniform(-2.0, 2.0)))
                for dim in DIMENSIONS
            }
            tags = rng.sample(["work", "coffee", "exercise", "social", "reading", "commute"], rng.randint(0, 2))
            samples.append(Sample(
                id=str(uuid.uuid4()),
                timestamp=to_epoch_ms(stamp),
                values=TrinityValue(**values),
                tags=tuple(tags),
                trend=rng.choice(TRENDS),
            ))

    return samples


def parse_sample_time(raw: str, tz) -> datetime:
    """Parse --time under the active time-zone policy."""
    zone = resolve_timezone(tz)
    try:
        parsed = datetime.strptime(raw, "%Y-%m-%d %H:%M")
    except ValueError:
        clock = datetime.strptime(raw, "%H:%M")
        today = datetime.now(zone).date() if zone else date.today()
        parsed = datetime.combine(today, clock.time())
    if zone is None:
        return parsed.astimezone()
    return parsed.replace(tzinfo=zone)


def build_window(args, settings: Settings) -> WindowSpec:
    return WindowSpec(
        mode=args.heat_range,
        days=args.heat_days or settings.heatmap_days,
        offset=args.week_offset,
        week_start=settings.week_start,
    )


def build_filters(args) -> Optional[SampleFilter]:
    if args.tag is None and args.day_type == "all":
        return None
    return SampleFilter(tag=args.tag, day_type=args.day_type)


def print_summary(context: dict, analyzer: TrinityAnalyzer, window: WindowSpec,
                  filters: Optional[SampleFilter]) -> None:
    """Print key insights from a generated context."""
    print("\n🔑 KEY INSIGHTS:")
    print("-" * 40)

    comparison = context["baseline_comparison"]
    print(f"\n📈 Baseline: {comparison['insight']}")
    if comparison["latest_slot"]:
        print(f"   Latest slot: {comparison['latest_slot']}")
    print(f"   Baseline coverage: {comparison['baseline_coverage']:.0%} "
          f"({comparison['history_samples']} history samples)")

    monthly = context["monthly_baseline"]
    values = monthly["values"]
    confidence = "low confidence" if monthly["lowConfidence"] else f"{monthly['sample']} samples"
    print(f"\n📅 Monthly median {monthly['month']}: "
          f"P:{values['p']:.1f} C:{values['c']:.1f} S:{values['s']:.1f} ({confidence})")

    print("\n🗓️  Periods:")
    for summary in context["period_summaries"].values():
        print(f"   {summary['text']}")

    trend = context["weekly_trend"]
    print(f"\n⚖️  Weekly trend: {trend['status']} (P avg {trend['physical_average']:.1f})")

    heatmap = analyzer.analyze_heatmap(window, filters)
    hot_cells = 0
    for row in heatmap.rows:
        for cell in row.cells:
            if cell.has_data and classify_heat_cell(cell.p, cell.c, cell.s).category != "neutral":
                hot_cells += 1
    print(f"\n🔥 Heatmap ({heatmap.window.mode}, {len(heatmap.rows)} days): "
          f"{heatmap.total_count} samples, {hot_cells} elevated cells")

    profile = context["hourly_profile"]["hours"]
    if profile:
        print("\n🕐 Hourly profile:")
        for hour, entry in profile.items():
            print(f"   {hour}  {entry['label']} (n={entry['count']})")

    events = context["upcoming_events"]
    if events:
        print("\n📋 UPCOMING EVENTS:")
        print("-" * 40)
        for event in events:
            print(f"  • {event['display']}")


def run_analysis(analyzer: TrinityAnalyzer, settings: Settings, args,
                 events=None, monthly_baseline: Optional[MonthlyBaseline] = None) -> None:
    """Analyze a sample collection and write the context file."""
    target_day = parse_target_date(args.date) or analyzer.today
    window = build_window(args, settings)
    filters = build_filters(args)

    print("\n📊 Running Trinity Analysis...")
    generator = TrinityContextGenerator(
        analyzer,
        events=events,
        monthly_baseline=monthly_baseline,
        output_dir=settings.output_dir,
    )

    print("🔬 Generating Trinity Context...")
    context = generator.generate_context(target_day, window, filters)
    output_path = generator.save_context(context, args.output)

    print("\n" + "=" * 60)
    print("✅ PIPELINE COMPLETE")
    print("=" * 60)
    print(f"\n📅 Analysis Date: {target_day.isoformat()}")
    print(f"📁 Output File: {output_path}")
    print(f"📊 Data Quality: {context['data_quality']['completeness_score']} windows with data")
    print(f"🎯 Confidence: {context['data_quality']['confidence']}")

    print_summary(context, analyzer, window, filters)

    if args.prompt:
        print("\n💬 System prompt:")
        print("-" * 40)
        print(generator.generate_system_prompt())

    print("\n" + "=" * 60)
    if args.verbose:
        print("\n📄 Full context JSON:")
        print(json.dumps(context, indent=2, cls=NumpyJSONEncoder, ensure_ascii=False))


def parse_target_date(raw: Optional[str]) -> Optional[date]:
    if not raw:
        return None
    return datetime.strptime(raw, "%Y-%m-%d").date()


def resolve_baseline_days(args, settings: Settings) -> int:
    if args.baseline_preset:
        return BASELINE_PRESETS[args.baseline_preset]
    return args.baseline_days or settings.baseline_days


def run_demo_mode(settings: Settings, args) -> None:
    """Run the pipeline in demo mode with generated samples."""
    print("\n" + "=" * 60)
    print("🧬 TRINITY ANALYTICS PIPELINE - DEMO MODE")
    print("=" * 60)
    print("\nGenerating sample check-ins...")

    samples = generate_sample_data(tz=settings.timezone)
    if args.verbose:
        print(f"\nGenerated {len(samples)} samples")

    analyzer = TrinityAnalyzer(samples, tz=settings.timezone,
                               baseline_days=resolve_baseline_days(args, settings))
    run_analysis(analyzer, settings, args)


def run_full_pipeline(settings: Settings, args) -> None:
    """Analyze the samples in the local store."""
    print("\n" + "=" * 60)
    print("🧬 TRINITY ANALYTICS PIPELINE")
    print("=" * 60)

    print(f"\n📂 Opening store in {settings.data_dir}...")
    store = TrinityStore(settings.data_dir)
    samples = store.get_all_samples()
    print(f"📥 Loaded {len(samples)} samples")

    if not samples:
        print("\n⚠️  No samples recorded yet. Record one with: python main.py --log P C S")

    analyzer = TrinityAnalyzer(samples, tz=settings.timezone,
                               baseline_days=resolve_baseline_days(args, settings))
    target_day = parse_target_date(args.date) or analyzer.today
    monthly = get_monthly_baseline(store, target_day.year, target_day.month,
                                   tz=settings.timezone, now=analyzer.now)

    run_analysis(analyzer, settings, args, events=store.get_events(), monthly_baseline=monthly)


def record_sample(settings: Settings, args) -> None:
    """Store one sample from --log."""
    store = TrinityStore(settings.data_dir)
    timestamp = to_epoch_ms(parse_sample_time(args.time, settings.timezone)) if args.time else None
    p, c, s = args.log
    sample = store.save_sample(
        TrinityValue(p=p, c=c, s=s),
        timestamp=timestamp,
        tags=args.tags,
        trend=args.trend,
        note=args.note,
    )
    print(f"✅ Recorded sample {sample.id}")
    print(f"   P:{p:g} C:{c:g} S:{s:g} ({', '.join(sample.tags)})")


def main():
    """Main entry point."""
    parser = setup_argparser()
    args = parser.parse_args()

    try:
        settings = load_settings()
    except ValueError as e:
        print(f"❌ Invalid configuration: {e}")
        sys.exit(1)
    if args.timezone:
        settings.timezone = None if args.timezone.lower() == "local" else args.timezone

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else settings.log_level_number,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Validate user input before touching the store
    try:
        resolve_timezone(settings.timezone)
        parse_target_date(args.date)
        if args.time:
            parse_sample_time(args.time, settings.timezone)
        build_window(args, settings)
        if args.baseline_days is not None and args.baseline_days < 1:
            raise ValueError("--baseline-days must be at least 1")
    except (ValueError, KeyError) as e:
        print(f"❌ Invalid argument: {e}")
        print("   Dates use YYYY-MM-DD, times use HH:MM or 'YYYY-MM-DD HH:MM'")
        sys.exit(1)

    if args.log is not None:
        try:
            record_sample(settings, args)
        except ValueError as e:
            print(f"❌ Could not record sample: {e}")
            sys.exit(1)
    elif args.delete:
        store = TrinityStore(settings.data_dir)
        if not store.delete_sample(args.delete):
            print(f"❌ No sample with id {args.delete}")
            sys.exit(1)
        print(f"🗑️  Deleted sample {args.delete}")
    elif args.demo:
        run_demo_mode(settings, args)
    elif args.run:
        run_full_pipeline(settings, args)
    else:
        parser.print_help()
        print("\n💡 Quick start:")
        print("   Demo mode:  python main.py --demo")
        print("   Record:     python main.py --log 7 8 3 --tags work")
        print("   Analyze:    python main.py --run")


if __name__ == "__main__":
    main()
