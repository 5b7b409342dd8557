"""Analyzer factory - builds the configured analyzer from the ``analyzer:``
section of the YAML file.

The section names an analyzer ``type``; every other key is handed to that
analyzer's constructor::

    analyzer:
      type: webhook
      url: https://example.com/analyze
      timeout_s: 20
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

from roomwatch.analyzers.base import Analyzer
from roomwatch.analyzers.callback import CallbackAnalyzer
from roomwatch.analyzers.threshold import ThresholdAnalyzer
from roomwatch.analyzers.webhook import WebhookAnalyzer

__all__ = ["AnalyzerSettings", "available_analyzers", "create_analyzer", "register_analyzer"]

logger = logging.getLogger("roomwatch.analyzers.factory")

_ANALYZERS: dict[str, type[Analyzer]] = {
    "threshold": ThresholdAnalyzer,
    "webhook": WebhookAnalyzer,
    "callback": CallbackAnalyzer,
}


def _normalize_name(name: str) -> str:
    return name.lower().strip()


class AnalyzerSettings(BaseModel):
    """Validated ``analyzer:`` section.

    ``type`` must name a registered analyzer.  Unknown keys are kept as
    constructor options.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    type: str

    @field_validator("type")
    @classmethod
    def _known_type(cls, value: str) -> str:
        name = _normalize_name(value)
        if name not in _ANALYZERS:
            raise ValueError(f"Unknown analyzer type '{name}'; available: {sorted(_ANALYZERS)}")
        return name

    @property
    def options(self) -> dict[str, Any]:
        return dict(self.model_extra or {})


def available_analyzers() -> Mapping[str, type[Analyzer]]:
    """Registered analyzer classes by type name (read-only view)."""
    return MappingProxyType(_ANALYZERS)


def create_analyzer(config: AnalyzerSettings | Mapping[str, Any] | None) -> Analyzer:
    """Instantiate the analyzer described by *config*.

    ``None`` or an empty mapping selects :class:`ThresholdAnalyzer` with
    its defaults.  A mapping is validated as :class:`AnalyzerSettings`
    first, so a missing or unknown ``type`` raises ``ValueError``
    (pydantic's ``ValidationError``).
    """
    if not config:
        return ThresholdAnalyzer()
    settings = config if isinstance(config, AnalyzerSettings) else AnalyzerSettings.model_validate(config)
    cls = _ANALYZERS[settings.type]
    logger.debug("Creating %s analyzer with options %s", settings.type, sorted(settings.options))
    return cls(**settings.options)


def register_analyzer(name: str, cls: type[Analyzer]) -> None:
    """Make *cls* selectable as ``analyzer: {type: <name>}``.

    Example::

        register_analyzer("llm", LlmAnalyzer)
    """
    if not (isinstance(cls, type) and issubclass(cls, Analyzer)):
        raise TypeError(f"{cls!r} is not an Analyzer subclass")
    _ANALYZERS[_normalize_name(name)] = cls
