"""Trailing moving average for the noisy gas channels.

Only ``toxic_gas`` and ``co2`` are smoothed; temperature and humidity
sensors are stable enough to be shown raw.
"""

from __future__ import annotations

from collections.abc import Sequence

from roomwatch.models import SensorReading

__all__ = ["SMOOTHING_WINDOW", "smooth"]

SMOOTHING_WINDOW = 5


def smooth(readings: Sequence[SensorReading], window: int = SMOOTHING_WINDOW) -> list[SensorReading]:
    """Return a new series with gas channels averaged over *window* samples.

    For index ``i >= window - 1`` the value is the mean of the raw values at
    ``i - window + 1 .. i``, rounded to 2 decimals.  Earlier readings are
    passed through unchanged.  The input is expected to be sorted by time.
    """
    if window < 1:
        raise ValueError("window must be >= 1")

    smoothed: list[SensorReading] = []
    for i, reading in enumerate(readings):
        if i < window - 1:
            smoothed.append(reading)
            continue
        tail = readings[i - window + 1 : i + 1]
        smoothed.append(
            reading.model_copy(
                update={
                    "toxic_gas": round(sum(r.toxic_gas for r in tail) / window, 2),
                    "co2": round(sum(r.co2 for r in tail) / window, 2),
                }
            )
        )
    return smoothed
