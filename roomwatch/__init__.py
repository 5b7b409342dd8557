"""roomwatch - ingest room air-quality telemetry published as CSV, detect
nodes that stopped reporting, and schedule rate-limited health analysis.

Quick start::

    from roomwatch import RoomConfig, RoomMonitor, RoomRegistry
    from roomwatch.analyzers import ThresholdAnalyzer

    registry = RoomRegistry([
        RoomConfig(id="lab", name="Lab", url="https://example.com/lab.csv"),
    ])
    monitor = RoomMonitor(registry, ThresholdAnalyzer(), fetch_interval_s=30)
    monitor.run(duration_s=120)
"""

from __future__ import annotations

from roomwatch.errors import IngestError, RoomwatchError
from roomwatch.models import Insight, InsightStatus, RoomConfig, SensorReading, Trend
from roomwatch.monitor import CycleReport, RoomMonitor
from roomwatch.registry import RoomRegistry
from roomwatch.staleness import SignalState, StalenessVerdict

__all__ = [
    "CycleReport",
    "IngestError",
    "Insight",
    "InsightStatus",
    "RoomConfig",
    "RoomMonitor",
    "RoomRegistry",
    "RoomwatchError",
    "SensorReading",
    "SignalState",
    "StalenessVerdict",
    "Trend",
]

__version__ = "0.1.0"
