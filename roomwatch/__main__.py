"""CLI entry point for roomwatch.

Usage::

    roomwatch run --config roomwatch.yaml
    roomwatch run --url https://example.com/lab.csv --duration 120
    roomwatch inspect ./readings.csv --fallback drop
    roomwatch list-analyzers
    roomwatch init-config --output roomwatch.yaml
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import textwrap
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from roomwatch.monitor import CycleReport, RoomMonitor

# ---------------------------------------------------------------------------
# Sample YAML config template for init-config
# ---------------------------------------------------------------------------
_SAMPLE_CONFIG = """\
# roomwatch configuration

monitor:
  fetch_interval_s: 30                # how often every room is re-fetched
  clock_interval_s: 1                 # staleness re-evaluation tick
  # duration_s: 600                   # optional: auto-stop after N seconds
  # log_level: INFO                   # DEBUG, INFO, WARNING, ERROR

ingest:
  smoothing_window: 5                 # moving average over gas channels
  timestamp_fallback: now             # now, epoch or drop for unparseable timestamps
  mock_points: 40                     # synthetic series length when a source fails
  mock_offset_minutes: 0              # shift the synthetic series into the past
  request_timeout_s: 15

staleness:
  threshold_minutes: 5                # older than this -> DOWN
  live_minutes: 1                     # newer than this -> LIVE

scheduler:
  analysis_interval_s: 300            # at most one routine analysis per room per interval
  min_readings: 5                     # cold-start guard
  window: 10                          # most recent readings sent to the analyzer
  timeout_s: 30

analyzer:
  type: threshold                     # threshold or webhook

  # type: webhook
  # url: https://example.com/analyze
  # timeout_s: 30
  # headers:
  #   Authorization: Bearer my-token

rooms:
  locked: false                       # true forbids adding/removing rooms
  entries:
    - id: room-01
      name: Living Room
      url: https://docs.google.com/spreadsheets/d/e/XXXX/pub?output=csv
      description: Main living area monitoring (ESP32-A)
"""


# ======================================================================
# Main entry point
# ======================================================================


def main(argv: list[str] | None = None) -> None:
    epilog = textwrap.dedent("""\
        examples:
          roomwatch run --config roomwatch.yaml
          roomwatch run --url https://example.com/lab.csv --duration 120
          roomwatch inspect https://example.com/lab.csv
          roomwatch inspect ./readings.csv --fallback epoch
          roomwatch list-analyzers
          roomwatch init-config --output roomwatch.yaml
    """)

    parser = argparse.ArgumentParser(
        prog="roomwatch",
        description="Monitor room air-quality sensor feeds and schedule health analysis.",
        epilog=epilog,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", title="commands")

    # -- run ---------------------------------------------------------------
    run_parser = subparsers.add_parser(
        "run",
        help="Monitor rooms until stopped.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            examples:
              roomwatch run --config roomwatch.yaml
              roomwatch run -u https://example.com/a.csv -u https://example.com/b.csv
        """),
    )
    run_parser.add_argument(
        "--config",
        "-c",
        type=str,
        default=None,
        help="Path to YAML config file. When set, --url flags are ignored.",
    )
    run_parser.add_argument(
        "--url",
        "-u",
        action="append",
        dest="urls",
        default=None,
        help="CSV source URL of a room (repeatable).",
    )
    run_parser.add_argument(
        "--duration",
        "-d",
        type=float,
        default=None,
        help="Run duration in seconds (default: indefinite, Ctrl-C to stop).",
    )
    run_parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO).",
    )

    # -- inspect -----------------------------------------------------------
    inspect_parser = subparsers.add_parser(
        "inspect",
        help="Ingest one source once and print readings, status and alerts.",
    )
    inspect_parser.add_argument("source", type=str, help="CSV URL or local file path.")
    inspect_parser.add_argument(
        "--room-id",
        type=str,
        default="inspect",
        help="Room id attached to the readings (default: inspect).",
    )
    inspect_parser.add_argument(
        "--fallback",
        type=str,
        default="now",
        choices=["now", "epoch", "drop"],
        help="Policy for unparseable timestamps (default: now).",
    )
    inspect_parser.add_argument(
        "--limit",
        type=int,
        default=10,
        help="Number of most recent readings to print (default: 10).",
    )

    # -- list-analyzers ----------------------------------------------------
    subparsers.add_parser(
        "list-analyzers",
        help="List all available analyzer types.",
    )

    # -- init-config -------------------------------------------------------
    init_parser = subparsers.add_parser(
        "init-config",
        help="Generate a sample YAML configuration file.",
    )
    init_parser.add_argument(
        "--output",
        "-o",
        type=str,
        default=None,
        help="Write config to this file instead of stdout.",
    )

    # A flag-like first argument (e.g. --config, -u) implies "run".
    _known_commands = {"run", "inspect", "list-analyzers", "init-config"}
    raw_args = argv if argv is not None else sys.argv[1:]
    if raw_args and raw_args[0] not in _known_commands and raw_args[0] not in ("-h", "--help"):
        raw_args = ["run", *list(raw_args)]

    args = parser.parse_args(raw_args)

    if args.command is None:
        parser.print_help()
        return

    # -- Dispatch ----------------------------------------------------------
    if args.command == "run":
        _cmd_run(args)
    elif args.command == "inspect":
        _cmd_inspect(args)
    elif args.command == "list-analyzers":
        _cmd_list_analyzers()
    elif args.command == "init-config":
        _cmd_init_config(args.output)
    else:
        parser.print_help()


# ======================================================================
# Command implementations
# ======================================================================


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s %(name)-30s %(levelname)-7s %(message)s",
        datefmt="%H:%M:%S",
    )


def _cmd_run(args: argparse.Namespace) -> None:
    """Execute the monitor."""
    _configure_logging(args.log_level)

    if args.config:
        _run_from_config(args.config, args.duration)
    elif args.urls:
        _run_quick(args.urls, args.duration)
    else:
        print("Error: nothing to monitor. Pass --config or at least one --url.")
        sys.exit(1)


def _run_from_config(config_path: str, duration_override: float | None) -> None:
    """Load YAML config and run the monitor."""
    from roomwatch.config import load_yaml_config
    from roomwatch.monitor import RoomMonitor

    cfg = load_yaml_config(config_path)
    logging.getLogger().setLevel(getattr(logging, cfg.log_level, logging.INFO))

    monitor = RoomMonitor.from_config(cfg)
    monitor.add_cycle_listener(_console_report(monitor))

    duration = duration_override if duration_override is not None else cfg.duration_s
    monitor.run(duration_s=duration)


def _run_quick(urls: list[str], duration: float | None) -> None:
    """Run with one room per ``--url`` and the default analyzer."""
    from urllib.parse import urlparse

    from roomwatch.models import RoomConfig
    from roomwatch.monitor import RoomMonitor
    from roomwatch.registry import RoomRegistry

    registry = RoomRegistry(
        RoomConfig(id=f"room-{i:02d}", name=urlparse(url).netloc or url, url=url)
        for i, url in enumerate(urls, start=1)
    )
    monitor = RoomMonitor(registry)
    monitor.add_cycle_listener(_console_report(monitor))
    monitor.run(duration_s=duration)


def _console_report(monitor: RoomMonitor):
    """Cycle listener printing one status line per room."""

    def _print(report: CycleReport) -> None:
        print(f"\n[{report.finished_at:%H:%M:%S}] cycle: {report.rooms} rooms")
        for room in monitor.registry:
            verdict = monitor.status(room.id)
            insight = monitor.insight_for(room.id)
            status = insight.status.value if insight else "-"
            prediction = insight.prediction if insight else "(no analysis yet)"
            mock = " [synthetic]" if verdict.is_synthetic else ""
            print(f"  {room.name:<24} {verdict.state.value:<8} {status:<8} {prediction}{mock}")

    return _print


# -- inspect ---------------------------------------------------------------


def _cmd_inspect(args: argparse.Namespace) -> None:
    from datetime import datetime
    from pathlib import Path

    from roomwatch.alerts import find_alerts, summarize
    from roomwatch.errors import IngestError
    from roomwatch.normalizer import parse_csv
    from roomwatch.smoothing import smooth
    from roomwatch.staleness import classify_series

    now = datetime.now().astimezone()
    if args.source.startswith(("http://", "https://")):
        series = asyncio.run(_ingest_url(args.source, args.room_id, args.fallback, now))
    else:
        path = Path(args.source)
        if not path.exists():
            print(f"Error: file not found: {path}")
            sys.exit(1)
        try:
            series = smooth(parse_csv(path.read_text(), args.room_id, now=now, fallback=args.fallback))
        except IngestError as exc:
            print(f"Error: {exc}")
            sys.exit(1)

    verdict = classify_series(series, now)
    print(f"\nSource: {args.source}")
    print(f"Status: {verdict.state.value} (age {verdict.age_minutes:.1f} min){' [synthetic]' if verdict.is_synthetic else ''}")

    print(f"\n{'Timestamp':<26} {'Temp':>7} {'Hum':>7} {'Gas':>8} {'CO2':>8}")
    print("-" * 60)
    for r in series[-args.limit :] if args.limit > 0 else []:
        print(
            f"{r.timestamp.isoformat(timespec='seconds'):<26} "
            f"{r.temperature:>7.1f} {r.humidity:>7.1f} {r.toxic_gas:>8.1f} {r.co2:>8.1f}"
        )

    summary = summarize(series)
    print(
        f"\nReadings: {summary.count}  avg temp {summary.avg_temperature:.2f}  "
        f"avg hum {summary.avg_humidity:.2f}  peak gas {summary.peak_toxic_gas:.1f}  "
        f"peak co2 {summary.peak_co2:.1f}"
    )

    alerts = find_alerts(series)
    print(f"Alerts: {len(alerts)}")
    for alert in alerts[: args.limit]:
        print(f"  {alert.timestamp.isoformat(timespec='seconds')}  {alert.channel:<10} {alert.value:.1f}")
    print()


async def _ingest_url(url: str, room_id: str, fallback: str, now):
    import httpx

    from roomwatch.models import RoomConfig
    from roomwatch.sources import RoomIngestor

    async with httpx.AsyncClient(timeout=15.0) as client:
        ingestor = RoomIngestor(client, fallback=fallback)
        return await ingestor.ingest(RoomConfig(id=room_id, name=room_id, url=url), now=now)


# -- list-analyzers ---------------------------------------------------------


def _cmd_list_analyzers() -> None:
    from roomwatch.analyzers.factory import available_analyzers

    print(f"\n{'Analyzer':<12} {'Class':<20} {'Notes'}")
    print("-" * 70)
    for name, cls in available_analyzers().items():
        print(f"{name:<12} {cls.__name__:<20} {cls.summary}")
    print()


# -- init-config ------------------------------------------------------------


def _cmd_init_config(output_path: str | None) -> None:
    if output_path:
        from pathlib import Path

        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        Path(output_path).write_text(_SAMPLE_CONFIG)
        print(f"Sample config written to {output_path}")
    else:
        print(_SAMPLE_CONFIG)


# ======================================================================
if __name__ == "__main__":
    main()
