"""Common data models for roomwatch.

Defines the SensorReading (one normalized telemetry sample), the Insight
verdict produced by the analysis step, and the RoomConfig registry entry.
"""

from __future__ import annotations

import time
from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

__all__ = [
    "Insight",
    "InsightStatus",
    "RoomConfig",
    "SensorReading",
    "Trend",
]


class InsightStatus(StrEnum):
    """Health verdict of a room."""

    SAFE = "SAFE"
    WARNING = "WARNING"
    DANGER = "DANGER"


class Trend(StrEnum):
    """Direction the air quality is moving in."""

    STABLE = "STABLE"
    RISING = "RISING"
    FALLING = "FALLING"


class SensorReading(BaseModel):
    """A single normalized telemetry sample for one room.

    Readings are immutable; transforms such as smoothing build new ones.
    ``is_synthetic`` has no default: every producer states whether the
    reading came from a real node or from the mock data generator.

    Attributes:
        room_id: Identifier of the room the node is installed in.
        timestamp: Timezone-aware time the sample was taken (or resolved).
        temperature: Degrees Celsius.
        humidity: Relative humidity, percent.
        toxic_gas: MQ-series gas sensor reading, ppm.
        co2: CO2 sensor reading, ppm.
        is_synthetic: ``True`` when produced by the mock data generator.
    """

    model_config = ConfigDict(frozen=True)

    room_id: str
    timestamp: datetime
    temperature: float = 0.0
    humidity: float = 0.0
    toxic_gas: float = 0.0
    co2: float = 0.0
    is_synthetic: bool

    # ------------------------------------------------------------------
    # Serialisation helpers
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Return a plain ``dict`` representation (JSON-safe types)."""
        return self.model_dump(mode="json")

    def to_json(self) -> str:
        """Return a compact JSON string."""
        return self.model_dump_json()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SensorReading:
        """Construct a ``SensorReading`` from a plain dict."""
        return cls.model_validate(data)


class Insight(BaseModel):
    """Verdict returned by the analysis step for one room.

    The analyzer is untrusted, so the model validates its payload:
    ``status`` and ``trend`` are case-insensitive, ``confidence`` must lie
    in ``[0, 1]`` and the rationale may also be spelled ``thoughtProcess``.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    status: InsightStatus
    trend: Trend = Trend.STABLE
    confidence: float = Field(ge=0.0, le=1.0)
    prediction: str = Field(min_length=1)
    rationale: str | None = Field(
        default=None,
        validation_alias=AliasChoices("rationale", "thoughtProcess", "thought_process"),
    )

    @field_validator("status", "trend", mode="before")
    @classmethod
    def _upper_enum(cls, value: Any) -> Any:
        return value.strip().upper() if isinstance(value, str) else value

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class RoomConfig(BaseModel):
    """A monitored room and the URL its sensor node publishes CSV to."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: f"room-{int(time.time() * 1000)}")
    name: str
    url: str
    description: str = ""
