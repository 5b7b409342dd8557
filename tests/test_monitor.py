"""Tests for roomwatch.monitor - fetch cycles, clock tick, registry wiring, run."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import httpx
import pytest

from roomwatch.analyzers.base import AnalysisRequest, Analyzer
from roomwatch.analyzers.factory import AnalyzerSettings
from roomwatch.analyzers.threshold import ThresholdAnalyzer
from roomwatch.config import MonitorYAMLConfig
from roomwatch.models import Insight, InsightStatus, RoomConfig, SensorReading
from roomwatch.monitor import CycleReport, RoomMonitor
from roomwatch.registry import RoomRegistry
from roomwatch.sources import RoomIngestor
from roomwatch.staleness import SignalState

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

# -----------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------


class _Clock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


def _csv(rows: int = 8, *, gas: float = 90.0) -> str:
    lines = ["timestamp,temperature,humidity,mq2 gas,co2"]
    for i in range(rows):
        ts = NOW - timedelta(seconds=10 * (rows - i))
        lines.append(f"{ts.isoformat()},22.0,48.0,{gas},{410 + i}")
    return "\n".join(lines)


def _room(room_id: str) -> RoomConfig:
    return RoomConfig(id=room_id, name=room_id.title(), url=f"https://sheets.example.com/{room_id}.csv")


class _Feeds:
    """MockTransport handler serving one CSV body (or status) per room."""

    def __init__(self, **bodies: str | int) -> None:
        self.bodies = bodies

    def __call__(self, request: httpx.Request) -> httpx.Response:
        room_id = request.url.path.strip("/").removesuffix(".csv")
        body = self.bodies.get(room_id, 404)
        if isinstance(body, int):
            return httpx.Response(body)
        return httpx.Response(200, text=body, headers={"content-type": "text/csv"})


class _ScriptedAnalyzer(Analyzer):
    def __init__(self, *insights: Insight) -> None:
        self.insights = list(insights) or [Insight(status="SAFE", confidence=0.7, prediction="Fine.")]
        self.requests: list[AnalysisRequest] = []
        self.closed = False

    async def analyze(self, request: AnalysisRequest) -> Insight:
        self.requests.append(request)
        index = min(len(self.requests) - 1, len(self.insights) - 1)
        return self.insights[index]

    async def close(self) -> None:
        self.closed = True


def _monitor(feeds: _Feeds, *room_ids: str, analyzer: Analyzer | None = None, clock: _Clock | None = None):
    client = httpx.AsyncClient(transport=httpx.MockTransport(feeds))
    registry = RoomRegistry([_room(r) for r in room_ids])
    monitor = RoomMonitor(
        registry,
        analyzer or _ScriptedAnalyzer(),
        client=client,
        clock=clock or _Clock(),
        fetch_interval_s=60.0,
        clock_interval_s=0.01,
    )
    return monitor, client


# -----------------------------------------------------------------------
# Fetch cycle
# -----------------------------------------------------------------------


class TestRefresh:
    """One fetch cycle over the registry."""

    @pytest.mark.asyncio
    async def test_commits_series_and_insights(self) -> None:
        monitor, client = _monitor(_Feeds(lab=_csv(), attic=500), "lab", "attic", analyzer=ThresholdAnalyzer())
        async with client:
            report = await monitor.refresh()

        assert isinstance(report, CycleReport)
        assert report.rooms == 2
        assert report.synthetic == ["attic"]
        assert report.failed == []
        assert sorted(report.analyzed) == ["attic", "lab"]

        assert len(monitor.series["lab"]) == 8
        assert not monitor.series["lab"][-1].is_synthetic
        assert all(r.is_synthetic for r in monitor.series["attic"])

        assert monitor.insight_for("lab").status is InsightStatus.SAFE
        assert monitor.insight_for("attic").status is InsightStatus.DANGER
        assert monitor.last_update == NOW

    @pytest.mark.asyncio
    async def test_status_per_room(self) -> None:
        monitor, client = _monitor(_Feeds(lab=_csv(), attic=500), "lab", "attic")
        async with client:
            await monitor.refresh()
        assert monitor.status("lab").state is SignalState.LIVE
        assert monitor.status("attic").state is SignalState.DOWN
        assert monitor.status("attic").is_synthetic

    @pytest.mark.asyncio
    async def test_cold_start_room_not_analyzed(self) -> None:
        analyzer = _ScriptedAnalyzer()
        monitor, client = _monitor(_Feeds(lab=_csv(rows=3)), "lab", analyzer=analyzer)
        async with client:
            report = await monitor.refresh()
        assert report.analyzed == []
        assert analyzer.requests == []
        assert monitor.insight_for("lab") is None

    @pytest.mark.asyncio
    async def test_interval_limits_analysis(self) -> None:
        clock = _Clock()
        analyzer = _ScriptedAnalyzer()
        monitor, client = _monitor(_Feeds(lab=_csv()), "lab", analyzer=analyzer, clock=clock)
        async with client:
            await monitor.refresh()
            clock.advance(seconds=30)
            await monitor.refresh()
            clock.advance(minutes=5)
            await monitor.refresh()
        assert len(analyzer.requests) == 2

    @pytest.mark.asyncio
    async def test_forced_refresh_analyzes_target_only(self) -> None:
        analyzer = _ScriptedAnalyzer()
        monitor, client = _monitor(_Feeds(a=_csv(), b=_csv()), "a", "b", analyzer=analyzer)
        async with client:
            await monitor.refresh()
            report = await monitor.refresh(force_room_id="b")
        assert report.forced_room_id == "b"
        assert report.analyzed == ["b"]
        assert [r.room_id for r in analyzer.requests] == ["a", "b", "b"]

    @pytest.mark.asyncio
    async def test_slow_cycle_does_not_overwrite_newer_forced_insight(self) -> None:
        clock = _Clock()
        feeds = _Feeds(a=_csv(), b=_csv())
        b_requested = asyncio.Event()
        release_b = asyncio.Event()
        b_calls = 0

        async def _handler(request: httpx.Request) -> httpx.Response:
            nonlocal b_calls
            if request.url.path == "/b.csv":
                b_calls += 1
                if b_calls == 1:
                    b_requested.set()
                    await release_b.wait()
            return feeds(request)

        analyzer = _ScriptedAnalyzer(
            Insight(status="SAFE", confidence=0.6, prediction="older verdict"),
            Insight(status="WARNING", confidence=0.8, prediction="newer forced verdict"),
        )
        client = httpx.AsyncClient(transport=httpx.MockTransport(_handler))
        monitor = RoomMonitor(
            RoomRegistry([_room("a"), _room("b")]),
            analyzer,
            client=client,
            clock=clock,
        )
        async with client:
            slow = asyncio.create_task(monitor.refresh())
            await asyncio.wait_for(b_requested.wait(), timeout=5)

            clock.advance(seconds=20)
            await monitor.refresh(force_room_id="a")
            assert monitor.insight_for("a").prediction == "newer forced verdict"

            release_b.set()
            slow_report = await asyncio.wait_for(slow, timeout=5)

        assert monitor.insight_for("a").prediction == "newer forced verdict"
        assert "a" not in slow_report.analyzed
        assert monitor.scheduler.state("a").last_analysis_at == clock.now

    @pytest.mark.asyncio
    async def test_insight_kept_when_ingestion_fails(self) -> None:
        outage = Insight(status="DANGER", confidence=0.9, prediction="Node is offline.")
        feeds = _Feeds(lab=_csv())
        analyzer = _ScriptedAnalyzer(outage)
        monitor, client = _monitor(feeds, "lab", analyzer=analyzer)
        async with client:
            await monitor.refresh()
            feeds.bodies["lab"] = 503
            report = await monitor.refresh()

        assert report.synthetic == ["lab"]
        assert report.analyzed == []
        assert monitor.insight_for("lab") == outage
        assert all(r.is_synthetic for r in monitor.series_for("lab"))

    @pytest.mark.asyncio
    async def test_escalates_when_room_goes_down(self) -> None:
        feeds = _Feeds(lab=_csv())
        analyzer = _ScriptedAnalyzer()
        monitor, client = _monitor(feeds, "lab", analyzer=analyzer)
        async with client:
            await monitor.refresh()
            feeds.bodies["lab"] = 503
            report = await monitor.refresh()
        assert report.analyzed == ["lab"]
        assert analyzer.requests[-1].is_stale

    @pytest.mark.asyncio
    async def test_room_failure_does_not_abort_cycle(self) -> None:
        original = RoomIngestor.ingest

        async def _flaky(self, room: RoomConfig, now: datetime | None = None) -> list[SensorReading]:
            if room.id == "a":
                raise RuntimeError("unexpected")
            return await original(self, room, now=now)

        monitor, client = _monitor(_Feeds(a=_csv(), b=_csv()), "a", "b")
        async with client:
            with patch.object(RoomIngestor, "ingest", _flaky):
                report = await monitor.refresh()
        assert report.failed == ["a"]
        assert report.analyzed == ["b"]
        assert "a" not in monitor.series
        assert "b" in monitor.series

    @pytest.mark.asyncio
    async def test_hazard_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        monitor, client = _monitor(_Feeds(lab=_csv(gas=480.0)), "lab")
        async with client:
            with caplog.at_level("WARNING", logger="roomwatch"):
                await monitor.refresh()
        assert any("Hazard in room 'lab'" in rec.getMessage() for rec in caplog.records)

    @pytest.mark.asyncio
    async def test_cycle_listeners(self) -> None:
        seen: list[CycleReport] = []

        async def _async_listener(report: CycleReport) -> None:
            seen.append(report)

        monitor, client = _monitor(_Feeds(lab=_csv()), "lab")
        monitor.add_cycle_listener(seen.append)
        monitor.add_cycle_listener(_async_listener)
        async with client:
            await monitor.refresh()
        assert len(seen) == 2
        assert seen[0] is seen[1]

    @pytest.mark.asyncio
    async def test_failing_listener_is_logged_not_raised(self) -> None:
        def _bad(report: CycleReport) -> None:
            raise ValueError("listener bug")

        monitor, client = _monitor(_Feeds(lab=_csv()), "lab")
        monitor.add_cycle_listener(_bad)
        async with client:
            report = await monitor.refresh()
        assert report.rooms == 1


# -----------------------------------------------------------------------
# Registry wiring
# -----------------------------------------------------------------------


class TestRegistryWiring:
    @pytest.mark.asyncio
    async def test_removed_room_state_dropped(self) -> None:
        monitor, client = _monitor(_Feeds(a=_csv(), b=_csv()), "a", "b")
        async with client:
            await monitor.refresh()
        monitor.registry.remove("a")
        assert "a" not in monitor.series
        assert monitor.insight_for("a") is None
        assert monitor.scheduler.state("a").last_analysis_at is None

    @pytest.mark.asyncio
    async def test_room_removed_mid_cycle_not_resurrected(self) -> None:
        registry_holder: list[RoomRegistry] = []

        class _Remover(_ScriptedAnalyzer):
            async def analyze(self, request: AnalysisRequest) -> Insight:
                if request.room_id == "a":
                    registry_holder[0].remove("a")
                return await super().analyze(request)

        monitor, client = _monitor(_Feeds(a=_csv(), b=_csv()), "a", "b", analyzer=_Remover())
        registry_holder.append(monitor.registry)
        async with client:
            await monitor.refresh()
        assert list(monitor.series) == ["b"]
        assert list(monitor.insights) == ["b"]

    @pytest.mark.asyncio
    async def test_added_room_picked_up_next_cycle(self) -> None:
        monitor, client = _monitor(_Feeds(a=_csv(), b=_csv()), "a")
        async with client:
            await monitor.refresh()
            monitor.registry.add(_room("b"))
            report = await monitor.refresh()
        assert report.rooms == 2
        assert "b" in monitor.series


# -----------------------------------------------------------------------
# Clock tick
# -----------------------------------------------------------------------


class TestClockTick:
    @pytest.mark.asyncio
    async def test_room_turns_down_as_time_passes(self) -> None:
        clock = _Clock()
        monitor, client = _monitor(_Feeds(lab=_csv()), "lab", clock=clock)
        received: list[dict] = []
        monitor.add_status_listener(received.append)
        async with client:
            await monitor.refresh()

        verdicts = await monitor.tick_clock()
        assert verdicts["lab"].state is SignalState.LIVE

        clock.advance(minutes=2)
        assert (await monitor.tick_clock())["lab"].state is SignalState.LAGGING

        clock.advance(minutes=5)
        assert (await monitor.tick_clock())["lab"].state is SignalState.DOWN
        assert len(received) == 3

    @pytest.mark.asyncio
    async def test_room_never_fetched_is_down(self) -> None:
        monitor, client = _monitor(_Feeds(), "lab")
        async with client:
            verdicts = await monitor.tick_clock()
        assert verdicts["lab"].state is SignalState.DOWN
        assert verdicts["lab"].age_minutes == 999.0


# -----------------------------------------------------------------------
# Manual refresh and run
# -----------------------------------------------------------------------


class TestRun:
    @pytest.mark.asyncio
    async def test_request_analysis(self) -> None:
        monitor, client = _monitor(_Feeds(lab=_csv()), "lab")
        async with client:
            report = await monitor.request_analysis("lab")
        assert report.forced_room_id == "lab"
        assert report.analyzed == ["lab"]

    @pytest.mark.asyncio
    async def test_request_analysis_unknown_room(self) -> None:
        monitor, client = _monitor(_Feeds(), "lab")
        async with client:
            with pytest.raises(KeyError):
                monitor.request_analysis("ghost")

    @pytest.mark.asyncio
    async def test_run_async_with_duration(self) -> None:
        analyzer = _ScriptedAnalyzer()
        monitor, client = _monitor(_Feeds(lab=_csv()), "lab", analyzer=analyzer)
        cycles: list[CycleReport] = []
        ticks: list[dict] = []
        monitor.add_cycle_listener(cycles.append)
        monitor.add_status_listener(ticks.append)
        async with client:
            await monitor.run_async(duration_s=0.2)
            assert not client.is_closed

        assert len(cycles) == 1
        assert len(ticks) >= 2
        assert analyzer.closed

    @pytest.mark.asyncio
    async def test_stop(self) -> None:
        monitor, client = _monitor(_Feeds(lab=_csv()), "lab")
        async with client:
            task = asyncio.create_task(monitor.run_async())
            await asyncio.sleep(0.05)
            monitor.stop()
            await asyncio.wait_for(task, timeout=2.0)
        assert task.done()

    @pytest.mark.asyncio
    async def test_owned_client_closed(self) -> None:
        monitor = RoomMonitor(RoomRegistry(), _ScriptedAnalyzer(), fetch_interval_s=60.0, clock_interval_s=0.01)
        await monitor.run_async(duration_s=0.05)
        assert monitor._client is None

    def test_run_blocking(self) -> None:
        monitor = RoomMonitor(RoomRegistry(), _ScriptedAnalyzer(), fetch_interval_s=60.0, clock_interval_s=0.01)
        cycles: list[CycleReport] = []
        monitor.add_cycle_listener(cycles.append)
        monitor.run(duration_s=0.05)
        assert len(cycles) == 1

    @pytest.mark.asyncio
    async def test_run_inside_running_loop_uses_worker_thread(self) -> None:
        monitor = RoomMonitor(RoomRegistry(), _ScriptedAnalyzer(), fetch_interval_s=60.0, clock_interval_s=0.01)
        cycles: list[CycleReport] = []
        monitor.add_cycle_listener(cycles.append)
        monitor.run(duration_s=0.05)
        assert len(cycles) == 1

    @pytest.mark.asyncio
    async def test_run_inside_running_loop_reraises(self) -> None:
        monitor = RoomMonitor(RoomRegistry(), _ScriptedAnalyzer())
        with patch.object(RoomMonitor, "run_async", side_effect=RuntimeError("boom")):
            with pytest.raises(RuntimeError, match="boom"):
                monitor.run(duration_s=0.05)


# -----------------------------------------------------------------------
# from_config
# -----------------------------------------------------------------------


class TestFromConfig:
    def test_builds_monitor(self) -> None:
        cfg = MonitorYAMLConfig(
            fetch_interval_s=15.0,
            rooms=[_room("a"), _room("b")],
            rooms_locked=True,
            analyzer=AnalyzerSettings(type="threshold", trend_tolerance=0.2),
        )
        monitor = RoomMonitor.from_config(cfg)
        assert monitor.registry.ids == ["a", "b"]
        assert monitor.registry.locked
        assert monitor.fetch_interval_s == 15.0
        assert isinstance(monitor.scheduler.analyzer, ThresholdAnalyzer)
        assert monitor.scheduler.analyzer.trend_tolerance == 0.2

    def test_explicit_analyzer_wins(self) -> None:
        analyzer = _ScriptedAnalyzer()
        monitor = RoomMonitor.from_config(MonitorYAMLConfig(), analyzer)
        assert monitor.scheduler.analyzer is analyzer
