"""Synthetic telemetry for rooms whose source cannot produce real data.

Every reading built here carries ``is_synthetic=True``.  Downstream the
staleness classifier relies on that tag alone to tell "never heard from
this room" apart from "fresh but uneventful" data.
"""

from __future__ import annotations

import logging
import random
from datetime import datetime, timedelta

from pydantic import BaseModel, ConfigDict

from roomwatch.models import SensorReading

__all__ = ["DEFAULT_PROFILES", "ChannelProfile", "MockDataGenerator"]

logger = logging.getLogger("roomwatch.mock_data")


class ChannelProfile(BaseModel):
    """Value range of one synthetic channel: ``base + uniform(0, spread)``."""

    model_config = ConfigDict(frozen=True)

    base: float
    spread: float

    def sample(self, rng: random.Random) -> float:
        return self.base + rng.random() * self.spread


DEFAULT_PROFILES: dict[str, ChannelProfile] = {
    "temperature": ChannelProfile(base=22.0, spread=5.0),
    "humidity": ChannelProfile(base=45.0, spread=10.0),
    "toxic_gas": ChannelProfile(base=80.0, spread=40.0),
    "co2": ChannelProfile(base=380.0, spread=80.0),
}


class MockDataGenerator:
    """Produces a plausible synthetic series, one point per simulated minute.

    Parameters:
        points:
            Number of readings per series.
        offset_minutes:
            Shift the whole series into the past.  ``0`` ends the series
            one minute before *now*; larger values make the placeholder
            look old as well as synthetic.
        profiles:
            Per-channel value ranges, keyed by reading field name.
        rng:
            Random source; pass a seeded ``random.Random`` for repeatable
            values.
    """

    def __init__(
        self,
        points: int = 40,
        offset_minutes: float = 0.0,
        profiles: dict[str, ChannelProfile] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        if points < 1:
            raise ValueError("points must be >= 1")
        self.points = points
        self.offset_minutes = offset_minutes
        self.profiles = {**DEFAULT_PROFILES, **(profiles or {})}
        self._rng = rng or random.Random()

    def generate(self, room_id: str, now: datetime | None = None) -> list[SensorReading]:
        """Return ``points`` synthetic readings for *room_id*, oldest first."""
        now = now or datetime.now().astimezone()
        end = now - timedelta(minutes=self.offset_minutes)

        readings = [
            SensorReading(
                room_id=room_id,
                timestamp=end - timedelta(minutes=self.points - i),
                temperature=self.profiles["temperature"].sample(self._rng),
                humidity=self.profiles["humidity"].sample(self._rng),
                toxic_gas=self.profiles["toxic_gas"].sample(self._rng),
                co2=self.profiles["co2"].sample(self._rng),
                is_synthetic=True,
            )
            for i in range(self.points)
        ]
        logger.debug("Generated %d synthetic readings for room '%s'", len(readings), room_id)
        return readings
