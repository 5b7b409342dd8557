"""RoomMonitor - top-level orchestrator that wires room sources, the
staleness classifier and the insight scheduler together.

Two periodic tasks run on one event loop:

* the **fetch tick** re-fetches every room's full visible window, decides
  per room whether to run the analyzer, and commits the new series and
  insights only once the whole cycle has finished;
* the **clock tick** (1 s) re-classifies every room from the wall clock,
  so a room turns DOWN between fetches purely because time passes.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
import signal
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from types import MappingProxyType
from typing import Any

import httpx
from pydantic import BaseModel, Field

from roomwatch.alerts import is_hazardous
from roomwatch.analyzers.base import Analyzer
from roomwatch.analyzers.threshold import ThresholdAnalyzer
from roomwatch.config import IngestSettings, MonitorYAMLConfig, StalenessSettings
from roomwatch.mock_data import MockDataGenerator
from roomwatch.models import Insight, RoomConfig, SensorReading
from roomwatch.registry import RoomRegistry
from roomwatch.scheduler import InsightScheduler, SchedulerPolicy
from roomwatch.sources import RoomIngestor
from roomwatch.staleness import StalenessVerdict, classify_series

__all__ = ["CycleReport", "RoomMonitor"]

logger = logging.getLogger("roomwatch")

StatusListener = Callable[[dict[str, StalenessVerdict]], Any]
CycleListener = Callable[["CycleReport"], Any]


class CycleReport(BaseModel):
    """Summary of one fetch cycle.

    Attributes:
        started_at: Wall-clock time the cycle began (used as its ``now``).
        finished_at: Wall-clock time the cycle committed its results.
        rooms: Number of rooms processed.
        analyzed: Rooms whose insight was replaced this cycle.
        synthetic: Rooms that fell back to synthetic data.
        failed: Rooms whose processing raised unexpectedly.
        forced_room_id: Room a manual refresh targeted, if any.
    """

    started_at: datetime
    finished_at: datetime
    rooms: int = 0
    analyzed: list[str] = Field(default_factory=list)
    synthetic: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)
    forced_room_id: str | None = None


def _event_loop_running() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


async def _call_listener(listener: Callable[[Any], Any], payload: Any) -> None:
    try:
        result = listener(payload)
        if inspect.isawaitable(result):
            await result
    except Exception:
        logger.exception("Listener %r failed", listener)


class RoomMonitor:
    """High-level API for monitoring rooms and scheduling their analysis.

    Example::

        from roomwatch import RoomConfig, RoomMonitor, RoomRegistry

        registry = RoomRegistry([RoomConfig(id="lab", name="Lab", url="https://…/pub?output=csv")])
        monitor = RoomMonitor(registry)
        monitor.run(duration_s=120)

    Parameters:
        registry:
            Ordered list of monitored rooms.  Rooms removed from it have
            their series, insight and scheduling state dropped.
        analyzer:
            The external analysis step; defaults to :class:`ThresholdAnalyzer`.
        ingest / staleness / policy:
            Settings for the ingestion pipeline, the classifier and the
            scheduler.
        fetch_interval_s / clock_interval_s:
            Periods of the fetch tick and the wall-clock tick.
        client:
            Optional ``httpx.AsyncClient`` shared with the caller (not
            closed by the monitor).
        clock:
            Returns the current aware ``datetime``; injectable for tests.
    """

    def __init__(
        self,
        registry: RoomRegistry,
        analyzer: Analyzer | None = None,
        *,
        ingest: IngestSettings | None = None,
        staleness: StalenessSettings | None = None,
        policy: SchedulerPolicy | None = None,
        fetch_interval_s: float = 30.0,
        clock_interval_s: float = 1.0,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.registry = registry
        self.ingest_settings = ingest or IngestSettings()
        self.staleness = staleness or StalenessSettings()
        self.scheduler = InsightScheduler(analyzer or ThresholdAnalyzer(), policy)
        self.fetch_interval_s = fetch_interval_s
        self.clock_interval_s = clock_interval_s
        self._clock = clock or (lambda: datetime.now().astimezone())

        self._client = client
        self._owns_client = client is None
        self._mock = MockDataGenerator(
            points=self.ingest_settings.mock_points,
            offset_minutes=self.ingest_settings.mock_offset_minutes,
        )

        self._series: dict[str, list[SensorReading]] = {}
        self._insights: dict[str, Insight] = {}
        # Cycle start time each stored entry was produced at.
        self._series_at: dict[str, datetime] = {}
        self._insight_at: dict[str, datetime] = {}
        self._verdicts: dict[str, StalenessVerdict] = {}
        self._status_listeners: list[StatusListener] = []
        self._cycle_listeners: list[CycleListener] = []
        self._manual_tasks: set[asyncio.Task[CycleReport]] = set()
        self._stop_event: asyncio.Event | None = None
        self._running = False
        self.last_update: datetime | None = None

        registry.subscribe(self._on_registry_change)

    # ------------------------------------------------------------------
    # Read access (display layer)
    # ------------------------------------------------------------------

    @property
    def series(self) -> MappingProxyType[str, list[SensorReading]]:
        return MappingProxyType(self._series)

    @property
    def insights(self) -> MappingProxyType[str, Insight]:
        return MappingProxyType(self._insights)

    def series_for(self, room_id: str) -> list[SensorReading]:
        return list(self._series.get(room_id, []))

    def insight_for(self, room_id: str) -> Insight | None:
        return self._insights.get(room_id)

    def status(self, room_id: str, now: datetime | None = None) -> StalenessVerdict:
        """Classify *room_id* against the wall clock right now."""
        return classify_series(
            self._series.get(room_id, []),
            now or self._clock(),
            threshold_minutes=self.staleness.threshold_minutes,
            live_minutes=self.staleness.live_minutes,
        )

    def statuses(self, now: datetime | None = None) -> dict[str, StalenessVerdict]:
        now = now or self._clock()
        return {room.id: self.status(room.id, now) for room in self.registry}

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_status_listener(self, listener: StatusListener) -> None:
        """Called on every clock tick with ``{room_id: verdict}``."""
        self._status_listeners.append(listener)

    def add_cycle_listener(self, listener: CycleListener) -> None:
        """Called after every committed fetch cycle with its :class:`CycleReport`."""
        self._cycle_listeners.append(listener)

    # ------------------------------------------------------------------
    # Fetch cycle
    # ------------------------------------------------------------------

    async def refresh(self, force_room_id: str | None = None) -> CycleReport:
        """Run one fetch cycle over all rooms and commit the results.

        Rooms are processed one at a time.  A room's failure is logged and
        never aborts the cycle; its previous insight is kept.
        """
        now = self._clock()
        ingestor = RoomIngestor(
            self._get_client(),
            fallback=self.ingest_settings.timestamp_fallback,
            smoothing_window=self.ingest_settings.smoothing_window,
            mock=self._mock,
        )
        fresh_series: dict[str, list[SensorReading]] = {}
        fresh_insights: dict[str, Insight] = {}
        report = CycleReport(started_at=now, finished_at=now, forced_room_id=force_room_id)

        for room in self.registry:
            report.rooms += 1
            try:
                await self._process_room(room, ingestor, fresh_series, fresh_insights, report, now=now)
            except Exception:
                logger.exception("Room '%s': processing failed", room.id)
                report.failed.append(room.id)

        self._commit(self._series, self._series_at, fresh_series, now)
        superseded = self._commit(self._insights, self._insight_at, fresh_insights, now)
        for room_id in superseded:
            report.analyzed.remove(room_id)
        self.last_update = report.finished_at = self._clock()

        logger.info(
            "Cycle done: %d rooms, %d analyzed, %d synthetic, %d failed",
            report.rooms,
            len(report.analyzed),
            len(report.synthetic),
            len(report.failed),
        )
        for listener in self._cycle_listeners:
            await _call_listener(listener, report)
        return report

    async def _process_room(
        self,
        room: RoomConfig,
        ingestor: RoomIngestor,
        fresh_series: dict[str, list[SensorReading]],
        fresh_insights: dict[str, Insight],
        report: CycleReport,
        *,
        now: datetime,
    ) -> None:
        series = await ingestor.ingest(room, now=now)
        fresh_series[room.id] = series
        verdict = classify_series(
            series,
            now,
            threshold_minutes=self.staleness.threshold_minutes,
            live_minutes=self.staleness.live_minutes,
        )

        if series and series[-1].is_synthetic:
            report.synthetic.append(room.id)
        elif series and not verdict.is_stale and is_hazardous(series[-1]):
            latest = series[-1]
            logger.warning(
                "Hazard in room '%s' (%s): gas=%.0f ppm, co2=%.0f ppm",
                room.id,
                room.name,
                latest.toxic_gas,
                latest.co2,
            )

        insight = await self.scheduler.process(
            room.id,
            series,
            verdict,
            self._insights.get(room.id),
            forced=room.id == report.forced_room_id,
            now=now,
        )
        if insight is not None:
            fresh_insights[room.id] = insight
            report.analyzed.append(room.id)

    def _commit(
        self,
        store: dict[str, Any],
        stamps: dict[str, datetime],
        fresh: dict[str, Any],
        produced_at: datetime,
    ) -> list[str]:
        """Merge *fresh* into *store*, skipping rooms that were removed or
        already hold an entry from a cycle that started later.

        Returns the room ids whose fresh entry was superseded.
        """
        superseded: list[str] = []
        for room_id, value in fresh.items():
            if room_id not in self.registry:
                continue
            stored_at = stamps.get(room_id)
            if stored_at is not None and stored_at > produced_at:
                logger.debug("Room '%s': keeping newer entry from %s", room_id, stored_at.isoformat())
                superseded.append(room_id)
                continue
            store[room_id] = value
            stamps[room_id] = produced_at
        return superseded

    def request_analysis(self, room_id: str) -> asyncio.Task[CycleReport]:
        """Start a manual refresh cycle that forces analysis of *room_id*.

        The cycle runs independently of the periodic timer.
        """
        if room_id not in self.registry:
            raise KeyError(f"Unknown room '{room_id}'")
        task = asyncio.create_task(self.refresh(force_room_id=room_id), name=f"refresh-{room_id}")
        self._manual_tasks.add(task)
        task.add_done_callback(self._manual_tasks.discard)
        return task

    # ------------------------------------------------------------------
    # Clock tick
    # ------------------------------------------------------------------

    async def tick_clock(self) -> dict[str, StalenessVerdict]:
        """Re-classify every room from the wall clock and notify listeners."""
        verdicts = self.statuses()
        for room_id, verdict in verdicts.items():
            previous = self._verdicts.get(room_id)
            if previous is not None and previous.state != verdict.state:
                logger.info(
                    "Room '%s': %s -> %s (age %.1f min)",
                    room_id,
                    previous.state.value,
                    verdict.state.value,
                    verdict.age_minutes,
                )
        self._verdicts = verdicts
        for listener in self._status_listeners:
            await _call_listener(listener, verdicts)
        return verdicts

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(self, duration_s: float | None = None) -> None:
        """Blocking entry point.

        When called from inside a running event loop (Jupyter, IPython)
        the monitor gets a worker thread with its own loop, and any error
        it raises is re-raised here.

        Parameters:
            duration_s: Stop after this many seconds; ``None`` runs until
                        Ctrl-C or :meth:`stop`.
        """
        if _event_loop_running():
            with ThreadPoolExecutor(max_workers=1, thread_name_prefix="roomwatch") as pool:
                pool.submit(self._run_to_completion, duration_s).result()
        else:
            self._run_to_completion(duration_s)

    def _run_to_completion(self, duration_s: float | None) -> None:
        try:
            asyncio.run(self.run_async(duration_s=duration_s))
        except KeyboardInterrupt:
            logger.info("Interrupted by user")

    async def run_async(self, duration_s: float | None = None) -> None:
        """Async entry point - runs the fetch and clock ticks until stopped."""
        if not len(self.registry):
            logger.warning("No rooms registered - nothing to monitor.")

        logger.info(
            "Starting monitor: %d rooms, fetch every %.0fs, analysis every %.0fs",
            len(self.registry),
            self.fetch_interval_s,
            self.scheduler.policy.analysis_interval_s,
        )

        # NotImplementedError: raised on Windows where signal handlers are unsupported.
        # RuntimeError: raised when running in a non-main thread (e.g. notebook env).
        loop = asyncio.get_running_loop()
        self._stop_event = stop_event = asyncio.Event()
        installed: list[signal.Signals] = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError, RuntimeError):
                loop.add_signal_handler(sig, stop_event.set)
                installed.append(sig)

        self._running = True
        tasks = [
            asyncio.create_task(self._fetch_loop(), name="roomwatch-fetch"),
            asyncio.create_task(self._clock_loop(), name="roomwatch-clock"),
        ]
        try:
            if duration_s is None:
                await stop_event.wait()
                logger.info("Stop signal received - shutting down")
            else:
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=duration_s)
                    logger.info("Stop signal received - shutting down")
                except asyncio.TimeoutError:
                    logger.info("Duration reached (%.1fs) - stopping", duration_s)
        except asyncio.CancelledError:
            logger.info("Monitor cancelled")
        finally:
            self._running = False
            for task in [*tasks, *self._manual_tasks]:
                task.cancel()
            for task in [*tasks, *self._manual_tasks]:
                with contextlib.suppress(asyncio.CancelledError):
                    await task
            for sig in installed:
                loop.remove_signal_handler(sig)
            self._stop_event = None
            await self.close()
            logger.info("Monitor stopped.")

    def stop(self) -> None:
        """Ask a running :meth:`run_async` to shut down."""
        if self._stop_event is not None:
            self._stop_event.set()

    async def close(self) -> None:
        """Close the owned HTTP client and the analyzer."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
        await self.scheduler.analyzer.close()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _fetch_loop(self) -> None:
        loop = asyncio.get_running_loop()
        while self._running:
            started = loop.time()
            try:
                await self.refresh()
            except Exception:
                logger.exception("Fetch cycle failed")
            elapsed = loop.time() - started
            await asyncio.sleep(max(0.0, self.fetch_interval_s - elapsed))

    async def _clock_loop(self) -> None:
        while self._running:
            await self.tick_clock()
            await asyncio.sleep(self.clock_interval_s)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.ingest_settings.request_timeout_s))
        return self._client

    def _on_registry_change(self, event: str, room: RoomConfig) -> None:
        if event == "removed":
            self._series.pop(room.id, None)
            self._insights.pop(room.id, None)
            self._series_at.pop(room.id, None)
            self._insight_at.pop(room.id, None)
            self._verdicts.pop(room.id, None)
            self.scheduler.forget(room.id)

    # ------------------------------------------------------------------
    # Alternative constructors
    # ------------------------------------------------------------------

    @classmethod
    def from_config(
        cls,
        config: MonitorYAMLConfig,
        analyzer: Analyzer | None = None,
        **kwargs: Any,
    ) -> RoomMonitor:
        """Create a monitor from a parsed YAML configuration.

        The analyzer is built from ``config.analyzer`` unless one is
        passed explicitly.
        """
        from roomwatch.analyzers.factory import create_analyzer

        registry = RoomRegistry(config.rooms, locked=config.rooms_locked)
        return cls(
            registry,
            analyzer or create_analyzer(config.analyzer),
            ingest=config.ingest,
            staleness=config.staleness,
            policy=config.scheduler,
            fetch_interval_s=config.fetch_interval_s,
            clock_interval_s=config.clock_interval_s,
            **kwargs,
        )
