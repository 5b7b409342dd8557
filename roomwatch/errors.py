"""Exception hierarchy for roomwatch.

Ingestion errors are raised by the low-level fetch / parse functions and
recovered by :class:`~roomwatch.normalizer.CsvNormalizer` and
:class:`~roomwatch.sources.RoomIngestor`, which degrade to synthetic data.
Analyzer errors are recovered by the scheduler with a fallback insight.
"""

from __future__ import annotations

__all__ = [
    "AnalyzerError",
    "EmptyDatasetError",
    "HtmlPayloadError",
    "IngestError",
    "RegistryLockedError",
    "RoomwatchError",
    "TransportError",
]


class RoomwatchError(Exception):
    """Base class for all roomwatch errors."""


class IngestError(RoomwatchError):
    """A room source could not produce real readings."""


class TransportError(IngestError):
    """Network failure, non-success HTTP status or unexpected content type."""


class HtmlPayloadError(IngestError):
    """The source returned an HTML document (error or login page) instead of CSV."""


class EmptyDatasetError(IngestError):
    """The body held no usable data rows."""


class AnalyzerError(RoomwatchError):
    """The external analyzer returned an empty or invalid verdict."""


class RegistryLockedError(RoomwatchError):
    """The room registry is locked against modification."""
