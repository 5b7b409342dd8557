"""Insight scheduler - decides when to spend an analyzer call on a room.

Analysis is expensive, so a room is analyzed only when:

1. the user forced a refresh for that room, or
2. the analysis interval elapsed and the room has more than a handful of
   readings (cold-start guard), or
3. the room just slipped into LAGGING/DOWN and its cached insight does
   not already describe an outage.

At most one call per room is outstanding at any time: a trigger arriving
while a call is in flight is skipped, not queued.  A failed call never
leaves the room without a verdict; a conservative fallback insight is
returned instead.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Sequence
from datetime import datetime, timedelta

from pydantic import BaseModel, ConfigDict, Field

from roomwatch.analyzers.base import AnalysisRequest, Analyzer, coerce_insight
from roomwatch.models import Insight, InsightStatus, SensorReading, Trend
from roomwatch.staleness import SignalState, StalenessVerdict

__all__ = [
    "AnalysisDecision",
    "InsightScheduler",
    "SchedulerPolicy",
    "SchedulingState",
    "decide",
    "describes_outage",
    "fallback_insight",
]

logger = logging.getLogger("roomwatch.scheduler")

_DEGRADED = (SignalState.LAGGING, SignalState.DOWN)


class SchedulerPolicy(BaseModel):
    """Scheduling knobs.

    Attributes:
        analysis_interval_s:
            Minimum time between two interval-triggered analyses of a room.
        min_readings:
            A room needs strictly more readings than this before the
            interval trigger applies.
        window:
            Number of most recent readings sent to the analyzer.
        timeout_s:
            Upper bound on one analyzer call.
        outage_keywords:
            Lower-case phrases that mark an insight as already describing
            a down or communication-failure condition.  Matched as whole
            words, so "trending down" or "heartbeat steady" do not count.
    """

    analysis_interval_s: float = 300.0
    min_readings: int = 5
    window: int = Field(default=10, ge=1)
    timeout_s: float = 30.0
    outage_keywords: tuple[str, ...] = (
        "node is down",
        "sensor is down",
        "node down",
        "sensor down",
        "offline",
        "signal lost",
        "lost signal",
        "heartbeat overdue",
        "missed heartbeat",
        "communication failure",
        "communication lost",
        "connection interrupt",
        "connection lost",
        "no fresh data",
    )


class SchedulingState(BaseModel):
    """Per-room scheduling record owned by :class:`InsightScheduler`."""

    room_id: str
    last_analysis_at: datetime | None = None
    in_flight: bool = False
    last_state: SignalState | None = None
    failures: int = 0


class AnalysisDecision(BaseModel):
    """Outcome of :func:`decide` plus the room's updated scheduling record."""

    model_config = ConfigDict(frozen=True)

    run: bool
    reason: str
    state: SchedulingState


def describes_outage(insight: Insight | None, policy: SchedulerPolicy | None = None) -> bool:
    """Return ``True`` when *insight* already diagnoses a signal loss."""
    if insight is None:
        return False
    keywords = (policy or SchedulerPolicy()).outage_keywords
    text = " ".join(f"{insight.prediction} {insight.rationale or ''}".lower().split())
    return any(re.search(rf"\b{re.escape(keyword)}\b", text) for keyword in keywords)


def fallback_insight(is_stale: bool) -> Insight:
    """Conservative verdict used when the analyzer fails."""
    return Insight(
        status=InsightStatus.DANGER if is_stale else InsightStatus.SAFE,
        trend=Trend.STABLE,
        confidence=0.0,
        prediction=(
            "Connection interrupt detected: no fresh data from the sensor node."
            if is_stale
            else "Analysis unavailable; latest readings were received normally."
        ),
        rationale="The analysis service failed, so current conditions could not be assessed.",
    )


def decide(
    state: SchedulingState,
    *,
    series_length: int,
    verdict: StalenessVerdict,
    cached: Insight | None,
    forced: bool,
    now: datetime,
    policy: SchedulerPolicy,
) -> AnalysisDecision:
    """Pure scheduling rule for one room; see the module docstring.

    *state* is not modified; the returned decision carries a copy with
    ``last_state`` updated to the current verdict.
    """
    if state.in_flight:
        return AnalysisDecision(run=False, reason="in_flight", state=state)
    updated = state.model_copy(update={"last_state": verdict.state})
    if forced:
        return AnalysisDecision(run=True, reason="forced", state=updated)

    due = state.last_analysis_at is None or now - state.last_analysis_at >= timedelta(
        seconds=policy.analysis_interval_s
    )
    if due and series_length > policy.min_readings:
        return AnalysisDecision(run=True, reason="interval", state=updated)

    transitioned = verdict.state in _DEGRADED and verdict.state != state.last_state
    if transitioned and not describes_outage(cached, policy):
        return AnalysisDecision(run=True, reason="escalation", state=updated)

    return AnalysisDecision(run=False, reason="not_due", state=updated)


class InsightScheduler:
    """Owns the per-room scheduling records and runs the analyzer.

    Parameters:
        analyzer: The external analysis step.
        policy: Scheduling knobs; defaults to :class:`SchedulerPolicy`.
    """

    def __init__(self, analyzer: Analyzer, policy: SchedulerPolicy | None = None) -> None:
        self.analyzer = analyzer
        self.policy = policy or SchedulerPolicy()
        self._states: dict[str, SchedulingState] = {}

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    def state(self, room_id: str) -> SchedulingState:
        """Return a copy of the room's scheduling record."""
        return self._state_for(room_id).model_copy()

    def forget(self, room_id: str) -> None:
        self._states.pop(room_id, None)

    def next_due_in(self, room_id: str, now: datetime) -> float:
        """Seconds until the interval trigger fires again for *room_id*."""
        last = self._state_for(room_id).last_analysis_at
        if last is None:
            return 0.0
        remaining = self.policy.analysis_interval_s - (now - last).total_seconds()
        return max(0.0, remaining)

    def _state_for(self, room_id: str) -> SchedulingState:
        if room_id not in self._states:
            self._states[room_id] = SchedulingState(room_id=room_id)
        return self._states[room_id]

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    async def process(
        self,
        room_id: str,
        series: Sequence[SensorReading],
        verdict: StalenessVerdict,
        cached: Insight | None,
        *,
        forced: bool = False,
        now: datetime,
    ) -> Insight | None:
        """Analyze *room_id* if due and return the new insight.

        Returns ``None`` when no call was made; the caller keeps its cached
        insight in that case.
        """
        decision = decide(
            self._state_for(room_id),
            series_length=len(series),
            verdict=verdict,
            cached=cached,
            forced=forced,
            now=now,
            policy=self.policy,
        )
        state = self._states[room_id] = decision.state
        if not decision.run:
            if decision.reason == "in_flight":
                logger.debug("Room '%s': analysis already in flight - skipping", room_id)
            return None

        logger.info(
            "Room '%s': running analysis (reason=%s, state=%s, age=%.1f min)",
            room_id,
            decision.reason,
            verdict.state.value,
            verdict.age_minutes,
        )
        request = AnalysisRequest(
            room_id=room_id,
            readings=list(series[-self.policy.window :]),
            is_stale=verdict.is_stale,
            age_minutes=round(verdict.age_minutes),
        )

        state.in_flight = True
        try:
            result = await asyncio.wait_for(self.analyzer.analyze(request), timeout=self.policy.timeout_s)
            insight = coerce_insight(result)
        except Exception as exc:
            state.failures += 1
            logger.error(
                "Room '%s': analysis failed (%s: %s) - using fallback insight",
                room_id,
                type(exc).__name__,
                exc,
            )
            return fallback_insight(verdict.is_stale)
        finally:
            state.in_flight = False

        state.last_analysis_at = now
        state.failures = 0
        logger.info(
            "Room '%s': insight %s (trend=%s, confidence=%.2f)",
            room_id,
            insight.status.value,
            insight.trend.value,
            insight.confidence,
        )
        return insight
