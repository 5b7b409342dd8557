"""Tests for roomwatch.smoothing - trailing moving average on gas channels."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from roomwatch.models import SensorReading
from roomwatch.smoothing import SMOOTHING_WINDOW, smooth

T0 = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)


def _series(gas: list[float], co2: list[float] | None = None) -> list[SensorReading]:
    co2 = co2 or [400.0] * len(gas)
    return [
        SensorReading(
            room_id="lab",
            timestamp=T0 + timedelta(minutes=i),
            temperature=20.0 + i,
            humidity=50.0,
            toxic_gas=g,
            co2=c,
            is_synthetic=False,
        )
        for i, (g, c) in enumerate(zip(gas, co2))
    ]


class TestSmooth:
    def test_default_window(self) -> None:
        assert SMOOTHING_WINDOW == 5

    def test_shorter_than_window_unchanged(self) -> None:
        raw = _series([80.0, 85.0])
        assert smooth(raw) == raw

    def test_first_full_window_is_averaged(self) -> None:
        raw = _series([10.0, 20.0, 30.0, 40.0, 50.0, 60.0])
        out = smooth(raw)
        assert [r.toxic_gas for r in out[:4]] == [10.0, 20.0, 30.0, 40.0]
        assert out[4].toxic_gas == 30.0
        assert out[5].toxic_gas == 40.0

    def test_uses_raw_values_not_smoothed_ones(self) -> None:
        raw = _series([0.0, 0.0, 0.0, 0.0, 100.0, 0.0])
        out = smooth(raw)
        assert out[4].toxic_gas == 20.0
        assert out[5].toxic_gas == 20.0

    def test_co2_smoothed_and_rounded(self) -> None:
        raw = _series([1.0] * 3, co2=[400.0, 401.0, 401.0])
        out = smooth(raw, window=3)
        assert out[2].co2 == 400.67

    def test_other_channels_untouched(self) -> None:
        raw = _series([10.0, 20.0, 30.0, 40.0, 50.0])
        out = smooth(raw)
        assert [r.temperature for r in out] == [r.temperature for r in raw]
        assert [r.timestamp for r in out] == [r.timestamp for r in raw]
        assert all(not r.is_synthetic for r in out)

    def test_input_not_mutated(self) -> None:
        raw = _series([10.0, 20.0, 30.0, 40.0, 50.0])
        smooth(raw)
        assert raw[4].toxic_gas == 50.0

    def test_deterministic(self) -> None:
        raw = _series([13.0, 7.5, 99.1, 42.0, 3.3, 18.8, 71.2])
        assert smooth(raw) == smooth(raw)

    def test_window_one_is_identity(self) -> None:
        raw = _series([13.0, 7.5, 99.1])
        assert smooth(raw, window=1) == raw

    def test_invalid_window(self) -> None:
        with pytest.raises(ValueError):
            smooth(_series([1.0]), window=0)

    def test_empty(self) -> None:
        assert smooth([]) == []
