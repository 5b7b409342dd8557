"""Hazard thresholds, alert history and session statistics for a series."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from pydantic import BaseModel, ConfigDict

from roomwatch.models import SensorReading

__all__ = [
    "CO2_DANGER_PPM",
    "CO2_WARNING_PPM",
    "GAS_DANGER_PPM",
    "GAS_WARNING_PPM",
    "Alert",
    "SeriesSummary",
    "find_alerts",
    "is_hazardous",
    "summarize",
]

GAS_DANGER_PPM = 400.0
GAS_WARNING_PPM = 300.0
CO2_DANGER_PPM = 1000.0
CO2_WARNING_PPM = 800.0


class Alert(BaseModel):
    """A reading that crossed a danger threshold."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    room_id: str
    channel: str
    value: float
    is_synthetic: bool


def is_hazardous(reading: SensorReading) -> bool:
    return reading.toxic_gas > GAS_DANGER_PPM or reading.co2 > CO2_DANGER_PPM


def find_alerts(series: Sequence[SensorReading]) -> list[Alert]:
    """Return one alert per hazardous reading, newest first.

    When both channels are over the limit the toxic gas channel is reported.
    """
    alerts: list[Alert] = []
    for reading in reversed(series):
        if not is_hazardous(reading):
            continue
        if reading.toxic_gas > GAS_DANGER_PPM:
            channel, value = "toxic_gas", reading.toxic_gas
        else:
            channel, value = "co2", reading.co2
        alerts.append(
            Alert(
                timestamp=reading.timestamp,
                room_id=reading.room_id,
                channel=channel,
                value=value,
                is_synthetic=reading.is_synthetic,
            )
        )
    return alerts


class SeriesSummary(BaseModel):
    """Aggregate statistics over the visible window of a room."""

    model_config = ConfigDict(frozen=True)

    count: int
    avg_temperature: float
    avg_humidity: float
    peak_toxic_gas: float
    peak_co2: float
    synthetic: bool


def summarize(series: Sequence[SensorReading]) -> SeriesSummary:
    """Averages of temperature/humidity and peaks of the gas channels.

    An empty series summarizes to zeros.
    """
    count = len(series)
    if not count:
        return SeriesSummary(
            count=0,
            avg_temperature=0.0,
            avg_humidity=0.0,
            peak_toxic_gas=0.0,
            peak_co2=0.0,
            synthetic=False,
        )
    return SeriesSummary(
        count=count,
        avg_temperature=round(sum(r.temperature for r in series) / count, 2),
        avg_humidity=round(sum(r.humidity for r in series) / count, 2),
        peak_toxic_gas=max(r.toxic_gas for r in series),
        peak_co2=max(r.co2 for r in series),
        synthetic=any(r.is_synthetic for r in series),
    )
