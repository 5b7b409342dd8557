"""Configuration loader for the monitor YAML format.

Parses YAML files with the following top-level sections::

    monitor:     # tick intervals, run duration, log level
    ingest:      # smoothing window, timestamp fallback, mock data shape
    staleness:   # DOWN threshold and LIVE window
    scheduler:   # analysis interval, cold-start guard, window, timeout
    analyzer:    # analyzer type + constructor kwargs
    rooms:       # lock flag and the ordered list of rooms

Example:

.. code-block:: yaml

    monitor:
      fetch_interval_s: 30
      log_level: INFO

    ingest:
      timestamp_fallback: epoch

    analyzer:
      type: webhook
      url: https://example.com/analyze

    rooms:
      locked: false
      entries:
        - id: room-01
          name: Living Room
          url: https://example.com/living-room.csv
          description: Main living area monitoring (ESP32-A)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from roomwatch.analyzers.factory import AnalyzerSettings
from roomwatch.models import RoomConfig
from roomwatch.normalizer import TimestampFallback
from roomwatch.scheduler import SchedulerPolicy
from roomwatch.staleness import LIVE_MINUTES, STALE_THRESHOLD_MINUTES

__all__ = ["IngestSettings", "MonitorYAMLConfig", "StalenessSettings", "load_yaml_config"]

logger = logging.getLogger("roomwatch.config")


class IngestSettings(BaseModel):
    """How room sources are fetched and normalized.

    Attributes:
        smoothing_window: Trailing window of the gas-channel moving average.
        timestamp_fallback: ``now``, ``epoch`` or ``drop`` for rows whose
            timestamp cannot be resolved.
        mock_points: Length of the synthetic series used on failure.
        mock_offset_minutes: How far in the past the synthetic series ends.
        request_timeout_s: HTTP timeout for source fetches.
    """

    smoothing_window: int = Field(default=5, ge=1)
    timestamp_fallback: TimestampFallback = TimestampFallback.NOW
    mock_points: int = Field(default=40, ge=1)
    mock_offset_minutes: float = 0.0
    request_timeout_s: float = 15.0


class StalenessSettings(BaseModel):
    threshold_minutes: float = STALE_THRESHOLD_MINUTES
    live_minutes: float = LIVE_MINUTES


class MonitorYAMLConfig(BaseModel):
    """Parsed representation of the full YAML configuration.

    Attributes:
        fetch_interval_s: Period of the data-fetch tick.
        clock_interval_s: Period of the wall-clock (staleness) tick.
        duration_s: Optional run duration (seconds).
        log_level: Logging level string.
        ingest: Source fetching / normalization settings.
        staleness: Staleness classifier thresholds.
        scheduler: Insight scheduling policy.
        analyzer: Validated analyzer type and constructor options.
        rooms: Ordered room registry entries.
        rooms_locked: Whether the registry starts locked.
    """

    fetch_interval_s: float = 30.0
    clock_interval_s: float = 1.0
    duration_s: float | None = None
    log_level: str = "INFO"
    ingest: IngestSettings = Field(default_factory=IngestSettings)
    staleness: StalenessSettings = Field(default_factory=StalenessSettings)
    scheduler: SchedulerPolicy = Field(default_factory=SchedulerPolicy)
    analyzer: AnalyzerSettings = Field(default_factory=lambda: AnalyzerSettings(type="threshold"))
    rooms: list[RoomConfig] = Field(default_factory=list)
    rooms_locked: bool = False


def load_yaml_config(path: str | Path) -> MonitorYAMLConfig:
    """Load and validate a YAML configuration file.

    Returns a :class:`MonitorYAMLConfig` ready to be passed to
    :meth:`RoomMonitor.from_config`.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with path.open("r") as fh:
        raw: dict[str, Any] = yaml.safe_load(fh) or {}

    # --- monitor section ---
    mon_section = raw.get("monitor") or {}
    duration_s = mon_section.get("duration_s")

    # --- rooms section ---
    rooms_section = raw.get("rooms") or {}
    if isinstance(rooms_section, list):
        # Bare list form: rooms: [{...}, {...}]
        rooms_section = {"entries": rooms_section}
    rooms = [RoomConfig(**_room_kwargs(entry)) for entry in rooms_section.get("entries") or []]

    config = MonitorYAMLConfig(
        fetch_interval_s=float(mon_section.get("fetch_interval_s", 30.0)),
        clock_interval_s=float(mon_section.get("clock_interval_s", 1.0)),
        duration_s=float(duration_s) if duration_s is not None else None,
        log_level=str(mon_section.get("log_level", "INFO")).upper(),
        ingest=IngestSettings(**(raw.get("ingest") or {})),
        staleness=StalenessSettings(**(raw.get("staleness") or {})),
        scheduler=SchedulerPolicy(**(raw.get("scheduler") or {})),
        analyzer=AnalyzerSettings.model_validate(raw.get("analyzer") or {"type": "threshold"}),
        rooms=rooms,
        rooms_locked=bool(rooms_section.get("locked", False)),
    )

    logger.info(
        "Loaded config: %d rooms (locked=%s), analyzer=%s",
        len(config.rooms),
        config.rooms_locked,
        config.analyzer.type,
    )
    return config


def _room_kwargs(entry: dict[str, Any]) -> dict[str, Any]:
    """Accept ``csv_url`` / ``csvUrl`` as spellings of ``url``."""
    entry = dict(entry)  # copy
    for alias in ("csv_url", "csvUrl"):
        if alias in entry and "url" not in entry:
            entry["url"] = entry.pop(alias)
    return entry
