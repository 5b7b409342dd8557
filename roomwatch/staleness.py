"""Staleness classifier - is a room's node still talking to us?

The verdict depends only on the latest reading and the wall clock, so the
monitor recomputes it every second; a room turns DOWN between fetches
purely because time passes.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict

from roomwatch.models import SensorReading

__all__ = [
    "AGE_SENTINEL_MINUTES",
    "LIVE_MINUTES",
    "STALE_THRESHOLD_MINUTES",
    "SignalState",
    "StalenessVerdict",
    "classify",
    "classify_series",
]

STALE_THRESHOLD_MINUTES = 5.0
LIVE_MINUTES = 1.0
AGE_SENTINEL_MINUTES = 999.0


class SignalState(StrEnum):
    LIVE = "live"
    LAGGING = "lagging"
    DOWN = "down"


class StalenessVerdict(BaseModel):
    """Classifier output for one room at one instant."""

    model_config = ConfigDict(frozen=True)

    state: SignalState
    age_minutes: float
    is_synthetic: bool = False

    @property
    def is_stale(self) -> bool:
        return self.state is SignalState.DOWN

    @property
    def age_seconds(self) -> int:
        return int(self.age_minutes * 60)


def classify(
    latest: SensorReading | None,
    now: datetime,
    *,
    threshold_minutes: float = STALE_THRESHOLD_MINUTES,
    live_minutes: float = LIVE_MINUTES,
) -> StalenessVerdict:
    """Classify a room from its latest reading.

    DOWN when there is no reading, the reading is synthetic, or it is at
    least *threshold_minutes* old; LIVE when younger than *live_minutes*;
    LAGGING in between.
    """
    if latest is None:
        return StalenessVerdict(state=SignalState.DOWN, age_minutes=AGE_SENTINEL_MINUTES)

    age_minutes = (now - latest.timestamp).total_seconds() / 60.0
    if age_minutes >= threshold_minutes or latest.is_synthetic:
        state = SignalState.DOWN
    elif age_minutes < live_minutes:
        state = SignalState.LIVE
    else:
        state = SignalState.LAGGING
    return StalenessVerdict(state=state, age_minutes=age_minutes, is_synthetic=latest.is_synthetic)


def classify_series(
    series: Sequence[SensorReading],
    now: datetime,
    *,
    threshold_minutes: float = STALE_THRESHOLD_MINUTES,
    live_minutes: float = LIVE_MINUTES,
) -> StalenessVerdict:
    """Classify a room from the last reading of its (sorted) series."""
    return classify(
        series[-1] if series else None,
        now,
        threshold_minutes=threshold_minutes,
        live_minutes=live_minutes,
    )
