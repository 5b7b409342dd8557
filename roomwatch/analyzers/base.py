"""Analyzer abstraction - the expensive external step that turns recent
readings into an :class:`~roomwatch.models.Insight`.

Provides:
- ``AnalysisRequest`` - what an analyzer is asked about one room.
- ``Analyzer``        - abstract base class every concrete analyzer implements.
- ``coerce_insight``  - validates untrusted analyzer output into an Insight.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, ValidationError

from roomwatch.errors import AnalyzerError
from roomwatch.models import Insight, SensorReading

__all__ = ["AnalysisRequest", "Analyzer", "coerce_insight"]

logger = logging.getLogger("roomwatch.analyzers")


class AnalysisRequest(BaseModel):
    """Input of one analysis call.

    Attributes:
        room_id: Room being analyzed.
        readings: The most recent readings, oldest first.
        is_stale: ``True`` when the staleness classifier reports DOWN.
        age_minutes: Whole minutes since the latest reading.
    """

    model_config = ConfigDict(frozen=True)

    room_id: str
    readings: list[SensorReading]
    is_stale: bool
    age_minutes: int

    def summary(self) -> list[dict[str, Any]]:
        """Compact per-reading payload: gas, co2, temp, humidity, mock flag."""
        return [
            {"g": r.toxic_gas, "c": r.co2, "t": r.temperature, "h": r.humidity, "m": r.is_synthetic}
            for r in self.readings
        ]

    def to_payload(self) -> dict[str, Any]:
        return {
            "room_id": self.room_id,
            "is_stale": self.is_stale,
            "age_minutes": self.age_minutes,
            "readings": self.summary(),
        }


def _strip_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else text[3:]
    if text.endswith("```"):
        text = text[:-3].rstrip()
    if text.startswith("json"):
        text = text[4:].lstrip()
    return text


def coerce_insight(payload: Any) -> Insight:
    """Validate analyzer output (Insight, dict or JSON text) into an Insight.

    Raises:
        AnalyzerError: The payload is empty or does not match the schema.
    """
    if isinstance(payload, Insight):
        return payload
    if payload is None or payload == "" or payload == {}:
        raise AnalyzerError("analyzer returned an empty payload")

    try:
        if isinstance(payload, (str, bytes)):
            text = _strip_fences(payload.decode() if isinstance(payload, bytes) else payload)
            if not text:
                raise AnalyzerError("analyzer returned an empty payload")
            return Insight.model_validate(json.loads(text))
        return Insight.model_validate(payload)
    except json.JSONDecodeError as exc:
        raise AnalyzerError(f"analyzer returned invalid JSON: {exc}") from exc
    except ValidationError as exc:
        raise AnalyzerError(f"analyzer payload failed validation: {exc.error_count()} errors") from exc


class Analyzer(ABC):
    """Abstract base class for all analyzers.

    ``analyze`` may raise anything; the scheduler treats every exception
    (and every timeout) as a failed call and substitutes a fallback insight.
    """

    #: One-line description shown by ``roomwatch list-analyzers``.
    summary: ClassVar[str] = ""

    @abstractmethod
    async def analyze(self, request: AnalysisRequest) -> Insight:
        """Return a validated verdict for the room in *request*."""

    async def close(self) -> None:
        """Release resources.  The default implementation does nothing."""
