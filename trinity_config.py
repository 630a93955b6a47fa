"""
Trinity Config - Environment Settings
Reads TRINITY_* variables (after .env loading in main.py) into one Settings
object. CLI flags override these values.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional
from zoneinfo import ZoneInfoNotFoundError

from trinity_models import MONDAY, SUNDAY, resolve_timezone

WEEK_STARTS = {"sunday": SUNDAY, "monday": MONDAY}
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Baseline history presets, in days
BASELINE_PRESETS = {
    "short": 7,
    "standard": 30,
    "extended": 90,
}


@dataclass
class Settings:
    data_dir: Path = Path("data_cache")
    output_dir: Path = Path("output")
    timezone: Optional[str] = None  # None = system local zone
    baseline_days: int = 30
    heatmap_days: int = 7
    week_start: int = SUNDAY
    log_level: str = "WARNING"

    @property
    def log_level_number(self) -> int:
        return getattr(logging, self.log_level)


def _positive_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value < 1:
        raise ValueError(f"{name} must be at least 1, got {value}")
    return value


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from environment variables.

    Args:
        environ: Mapping to read from (defaults to os.environ)

    Returns:
        Settings populated from TRINITY_* variables

    Raises:
        ValueError: if a variable holds an invalid value
    """
    env = os.environ if environ is None else environ

    timezone = (env.get("TRINITY_TIMEZONE") or "").strip() or None
    if timezone is not None:
        try:
            resolve_timezone(timezone)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"TRINITY_TIMEZONE is not a known time zone: {timezone!r}") from None
        if timezone.lower() == "local":
            timezone = None

    week_start = (env.get("TRINITY_WEEK_START") or "sunday").strip().lower()
    if week_start not in WEEK_STARTS:
        raise ValueError(f"TRINITY_WEEK_START must be one of {tuple(WEEK_STARTS)}, got {week_start!r}")

    log_level = (env.get("TRINITY_LOG_LEVEL") or "WARNING").strip().upper()
    if log_level not in LOG_LEVELS:
        raise ValueError(f"TRINITY_LOG_LEVEL must be one of {LOG_LEVELS}, got {log_level!r}")

    return Settings(
        data_dir=Path(env.get("TRINITY_DATA_DIR") or "data_cache"),
        output_dir=Path(env.get("TRINITY_OUTPUT_DIR") or "output"),
        timezone=timezone,
        baseline_days=_positive_int(env, "TRINITY_BASELINE_DAYS", 30),
        heatmap_days=_positive_int(env, "TRINITY_HEATMAP_DAYS", 7),
        week_start=WEEK_STARTS[week_start],
        log_level=log_level,
    )
