"""Tests for roomwatch.models - SensorReading, Insight and RoomConfig."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from roomwatch.models import Insight, InsightStatus, RoomConfig, SensorReading, Trend

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _make_reading(**overrides) -> SensorReading:
    fields = {
        "room_id": "lab",
        "timestamp": NOW,
        "temperature": 22.5,
        "humidity": 48.0,
        "toxic_gas": 95.0,
        "co2": 410.0,
        "is_synthetic": False,
    }
    fields.update(overrides)
    return SensorReading(**fields)


# -----------------------------------------------------------------------
# SensorReading
# -----------------------------------------------------------------------


class TestSensorReading:
    """SensorReading construction and serialisation."""

    def test_is_synthetic_is_required(self) -> None:
        with pytest.raises(ValidationError):
            SensorReading(room_id="lab", timestamp=NOW)

    def test_channels_default_to_zero(self) -> None:
        r = SensorReading(room_id="lab", timestamp=NOW, is_synthetic=False)
        assert (r.temperature, r.humidity, r.toxic_gas, r.co2) == (0.0, 0.0, 0.0, 0.0)

    def test_frozen(self) -> None:
        r = _make_reading()
        with pytest.raises(ValidationError):
            r.co2 = 900.0

    def test_to_dict_is_json_safe(self) -> None:
        d = _make_reading().to_dict()
        assert d["room_id"] == "lab"
        assert d["is_synthetic"] is False
        assert isinstance(d["timestamp"], str)
        json.dumps(d)

    def test_to_json(self) -> None:
        parsed = json.loads(_make_reading(co2=777.0).to_json())
        assert parsed["co2"] == 777.0

    def test_from_dict(self) -> None:
        original = _make_reading()
        assert SensorReading.from_dict(original.to_dict()) == original


# -----------------------------------------------------------------------
# Insight
# -----------------------------------------------------------------------


class TestInsight:
    """Validation of analyzer verdicts."""

    def test_minimal(self) -> None:
        insight = Insight(status="SAFE", confidence=0.7, prediction="All good")
        assert insight.status is InsightStatus.SAFE
        assert insight.trend is Trend.STABLE
        assert insight.rationale is None

    def test_status_and_trend_case_insensitive(self) -> None:
        insight = Insight(status=" danger ", trend="rising", confidence=0.5, prediction="x")
        assert insight.status is InsightStatus.DANGER
        assert insight.trend is Trend.RISING

    def test_thought_process_alias(self) -> None:
        insight = Insight.model_validate(
            {"status": "WARNING", "confidence": 0.4, "prediction": "p", "thoughtProcess": "because"}
        )
        assert insight.rationale == "because"

    def test_rationale_by_name(self) -> None:
        insight = Insight(status="SAFE", confidence=0.1, prediction="p", rationale="r")
        assert insight.rationale == "r"

    @pytest.mark.parametrize("confidence", [-0.1, 1.01])
    def test_confidence_out_of_range(self, confidence: float) -> None:
        with pytest.raises(ValidationError):
            Insight(status="SAFE", confidence=confidence, prediction="p")

    def test_empty_prediction_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Insight(status="SAFE", confidence=0.5, prediction="")

    def test_unknown_status_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Insight(status="CRITICAL", confidence=0.5, prediction="p")

    def test_to_dict(self) -> None:
        d = Insight(status="DANGER", confidence=1.0, prediction="p").to_dict()
        assert d["status"] == "DANGER"
        assert d["trend"] == "STABLE"


# -----------------------------------------------------------------------
# RoomConfig
# -----------------------------------------------------------------------


class TestRoomConfig:
    def test_generated_id(self) -> None:
        room = RoomConfig(name="Kitchen", url="https://example.com/k.csv")
        assert room.id.startswith("room-")
        assert room.description == ""

    def test_explicit_id(self) -> None:
        room = RoomConfig(id="room-01", name="Living Room", url="https://example.com/a.csv")
        assert room.id == "room-01"
