"""Threshold analyzer - local, rule-based verdicts.

Needs no network access, so it is the default when no external analyzer is
configured, and a useful baseline to compare a model-backed analyzer with.
"""

from __future__ import annotations

from roomwatch.alerts import CO2_DANGER_PPM, CO2_WARNING_PPM, GAS_DANGER_PPM, GAS_WARNING_PPM
from roomwatch.analyzers.base import AnalysisRequest, Analyzer
from roomwatch.models import Insight, InsightStatus, Trend

__all__ = ["ThresholdAnalyzer"]


class ThresholdAnalyzer(Analyzer):
    """Classify the latest reading against fixed gas thresholds.

    Parameters:
        trend_tolerance: Relative CO2 change across the window below which
            the trend is reported as STABLE.
    """

    summary = "local gas/co2 rules, no network"

    def __init__(self, *, trend_tolerance: float = 0.05) -> None:
        self.trend_tolerance = trend_tolerance

    async def analyze(self, request: AnalysisRequest) -> Insight:
        readings = request.readings
        if request.is_stale or not readings:
            return Insight(
                status=InsightStatus.DANGER,
                trend=Trend.STABLE,
                confidence=0.9,
                prediction=(
                    f"Sensor node is down: no fresh data for {request.age_minutes} minutes. "
                    "Check power, Wi-Fi and that the sheet is still published."
                ),
                rationale="Heartbeat overdue; last known values cannot be verified.",
            )

        latest = readings[-1]
        if latest.toxic_gas > GAS_DANGER_PPM or latest.co2 > CO2_DANGER_PPM:
            status = InsightStatus.DANGER
            prediction = "Hazardous air: ventilate the room immediately."
        elif latest.toxic_gas > GAS_WARNING_PPM or latest.co2 > CO2_WARNING_PPM:
            status = InsightStatus.WARNING
            prediction = "Air quality is degrading; consider ventilating."
        else:
            status = InsightStatus.SAFE
            prediction = "Air quality is within safe limits and the node is reporting normally."

        return Insight(
            status=status,
            trend=self._trend(request),
            confidence=0.6,
            prediction=prediction,
            rationale=f"Latest gas {latest.toxic_gas:.0f} ppm, CO2 {latest.co2:.0f} ppm.",
        )

    def _trend(self, request: AnalysisRequest) -> Trend:
        first, last = request.readings[0].co2, request.readings[-1].co2
        if first <= 0:
            return Trend.STABLE
        change = (last - first) / first
        if change > self.trend_tolerance:
            return Trend.RISING
        if change < -self.trend_tolerance:
            return Trend.FALLING
        return Trend.STABLE
