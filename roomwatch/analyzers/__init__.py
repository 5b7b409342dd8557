"""Pluggable analyzers for the insight scheduler.

Import any analyzer you need directly from this package::

    from roomwatch.analyzers import ThresholdAnalyzer, WebhookAnalyzer
"""

from __future__ import annotations

from roomwatch.analyzers.base import AnalysisRequest, Analyzer, coerce_insight
from roomwatch.analyzers.callback import CallbackAnalyzer
from roomwatch.analyzers.factory import AnalyzerSettings, available_analyzers, create_analyzer, register_analyzer
from roomwatch.analyzers.threshold import ThresholdAnalyzer
from roomwatch.analyzers.webhook import WebhookAnalyzer

__all__ = [
    "AnalysisRequest",
    "Analyzer",
    "AnalyzerSettings",
    "CallbackAnalyzer",
    "ThresholdAnalyzer",
    "WebhookAnalyzer",
    "available_analyzers",
    "coerce_insight",
    "create_analyzer",
    "register_analyzer",
]
