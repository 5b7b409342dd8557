#!/usr/bin/env python3
"""YAML config-driven example -- load the monitor configuration from a YAML
file and build the analyzer with the factory.

All settings (rooms, intervals, timestamp policy, analyzer) live in
``configs/roomwatch.yaml``; the Python code is minimal.

Usage::

    python examples/yaml_config_example.py

Equivalent CLI::

    roomwatch run --config examples/configs/roomwatch.yaml --duration 60
"""

from __future__ import annotations

import logging
from pathlib import Path


def main() -> None:
    print("=== YAML Config-Driven Example ===\n")

    config_path = Path(__file__).parent / "configs" / "roomwatch.yaml"
    if not config_path.exists():
        print(f"  Config file not found: {config_path}")
        return

    print(f"  Config file: {config_path}\n")

    # --- Load the YAML configuration ---
    from roomwatch.config import load_yaml_config
    cfg = load_yaml_config(config_path)

    logging.basicConfig(
        level=getattr(logging, cfg.log_level, logging.INFO),
        format="%(asctime)s %(name)-30s %(levelname)-7s %(message)s",
        datefmt="%H:%M:%S",
    )

    print(f"  Fetch interval:     {cfg.fetch_interval_s} s")
    print(f"  Analysis interval:  {cfg.scheduler.analysis_interval_s} s")
    print(f"  Timestamp fallback: {cfg.ingest.timestamp_fallback.value}")
    print(f"  Analyzer:           {cfg.analyzer.type}")
    print(f"  Rooms ({'locked' if cfg.rooms_locked else 'unlocked'}):")
    for room in cfg.rooms:
        print(f"    {room.id}: {room.name} - {room.description}")
    print()

    # --- Build and run the monitor ---
    from roomwatch.monitor import RoomMonitor
    monitor = RoomMonitor.from_config(cfg)
    monitor.run(duration_s=cfg.duration_s or 60)


if __name__ == "__main__":
    main()
