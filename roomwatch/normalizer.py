"""CSV normalizer - turns a node's published CSV into typed readings.

Sensor nodes publish spreadsheets with inconsistent headers ("Temp (DHT22)",
"MQ2 gas", "CO2 MG811", "Timestamp", ...), so column roles are inferred by
substring match on the lower-cased header rather than by position.

Two layers:

* :func:`parse_csv` is strict about the body as a whole and raises an
  :class:`~roomwatch.errors.IngestError` subclass when there is no usable
  data.  Individual cells never raise: bad numbers become ``0`` and bad
  timestamps follow the configured :class:`TimestampFallback`.
* :class:`CsvNormalizer` never raises; it substitutes a synthetic series
  from the :class:`~roomwatch.mock_data.MockDataGenerator` instead.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from enum import StrEnum

from dateutil import parser as dateparser
from pydantic import BaseModel, ConfigDict

from roomwatch.errors import EmptyDatasetError, HtmlPayloadError, IngestError
from roomwatch.mock_data import MockDataGenerator
from roomwatch.models import SensorReading

__all__ = [
    "EPOCH",
    "ColumnMap",
    "CsvNormalizer",
    "TimestampFallback",
    "detect_columns",
    "parse_csv",
    "parse_number",
    "parse_timestamp",
]

logger = logging.getLogger("roomwatch.normalizer")

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Epoch values above this are taken to be milliseconds.
_EPOCH_MS_THRESHOLD = 1e11


class TimestampFallback(StrEnum):
    """What to do with a row whose timestamp cannot be resolved.

    ``NOW`` stamps the row with the current time, which keeps the data
    visible but can hide an outage.  ``EPOCH`` stamps it 1970-01-01 so the
    room is immediately classified as down.  ``DROP`` discards the row.
    """

    NOW = "now"
    EPOCH = "epoch"
    DROP = "drop"


# -----------------------------------------------------------------------
# Column detection
# -----------------------------------------------------------------------


class ColumnMap(BaseModel):
    """Index of the column holding each field, ``None`` when absent."""

    model_config = ConfigDict(frozen=True)

    timestamp: int | None = None
    temperature: int | None = None
    humidity: int | None = None
    toxic_gas: int | None = None
    co2: int | None = None


_ROLE_PREDICATES: list[tuple[str, Callable[[str], bool]]] = [
    ("timestamp", lambda h: "time" in h or "date" in h or "timestamp" in h),
    ("temperature", lambda h: ("temp" in h or "dht" in h) and "gas" not in h),
    ("humidity", lambda h: "hum" in h or "rh" in h),
    ("toxic_gas", lambda h: "mq" in h or "toxic" in h or ("gas" in h and "co2" not in h)),
    ("co2", lambda h: "co2" in h or "mg" in h or "811" in h),
]


def detect_columns(headers: Sequence[str]) -> ColumnMap:
    """Map each field to the first header whose name matches its role."""
    normalized = [h.strip().lower() for h in headers]
    found: dict[str, int] = {}
    for role, predicate in _ROLE_PREDICATES:
        for index, header in enumerate(normalized):
            if predicate(header):
                found[role] = index
                break
    return ColumnMap(**found)


# -----------------------------------------------------------------------
# Cell parsing
# -----------------------------------------------------------------------


def parse_number(cell: str | None) -> float:
    """Parse a numeric cell; anything unparseable or non-finite becomes 0."""
    if cell is None:
        return 0.0
    try:
        value = float(cell.strip())
    except ValueError:
        return 0.0
    return value if math.isfinite(value) else 0.0


def parse_timestamp(raw: str | None, now: datetime) -> datetime | None:
    """Resolve a timestamp cell to an aware ``datetime``, or ``None``.

    Accepts Unix epochs (seconds or milliseconds), anything ``dateutil``
    understands as a date-time, and bare times of day, which are placed on
    *now*'s calendar date.  Naive values are interpreted in *now*'s zone.
    """
    if raw is None:
        return None
    text = raw.strip().strip('"')
    if not text:
        return None

    try:
        number = float(text)
    except ValueError:
        pass
    else:
        if not math.isfinite(number) or number < 0:
            return None
        if number > _EPOCH_MS_THRESHOLD:
            number /= 1000.0
        try:
            return datetime.fromtimestamp(number, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0, tzinfo=None)
    candidates = [text]
    if ":" in text:
        candidates.append(f"{now.date().isoformat()} {text}")

    for candidate in candidates:
        try:
            parsed = dateparser.parse(candidate, default=midnight)
        except (ValueError, OverflowError):
            continue
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=now.tzinfo)
        return parsed
    return None


# -----------------------------------------------------------------------
# Body parsing
# -----------------------------------------------------------------------


def _looks_like_html(text: str) -> bool:
    head = text.lstrip("\ufeff \t\r\n")[:64].lower()
    return head.startswith("<!doctype html") or head.startswith("<html")


def _cell(values: list[str], index: int | None) -> str | None:
    if index is None or index >= len(values):
        return None
    return values[index]


def parse_csv(
    text: str,
    room_id: str,
    *,
    now: datetime | None = None,
    fallback: TimestampFallback | str = TimestampFallback.NOW,
) -> list[SensorReading]:
    """Parse a CSV body into readings sorted by timestamp.

    Raises:
        HtmlPayloadError: The body is an HTML document.
        EmptyDatasetError: No header plus data row, or no row survived.
    """
    now = now or datetime.now().astimezone()
    if now.tzinfo is None:
        now = now.astimezone()
    fallback = TimestampFallback(fallback)
    if _looks_like_html(text):
        raise HtmlPayloadError(f"room '{room_id}': source returned an HTML page instead of CSV")

    lines = [line for line in text.lstrip("\ufeff").splitlines() if line.strip()]
    if len(lines) < 2:
        raise EmptyDatasetError(f"room '{room_id}': no data rows ({len(lines)} non-blank lines)")

    columns = detect_columns(lines[0].split(","))
    logger.debug("Room '%s' column map: %s", room_id, columns)

    readings: list[SensorReading] = []
    unresolved = 0
    for line in lines[1:]:
        values = [v.strip() for v in line.split(",")]

        timestamp = parse_timestamp(_cell(values, columns.timestamp), now)
        if timestamp is None:
            unresolved += 1
            if fallback is TimestampFallback.DROP:
                continue
            timestamp = now if fallback is TimestampFallback.NOW else EPOCH

        readings.append(
            SensorReading(
                room_id=room_id,
                timestamp=timestamp,
                temperature=parse_number(_cell(values, columns.temperature)),
                humidity=parse_number(_cell(values, columns.humidity)),
                toxic_gas=parse_number(_cell(values, columns.toxic_gas)),
                co2=parse_number(_cell(values, columns.co2)),
                is_synthetic=False,
            )
        )

    if unresolved:
        logger.warning(
            "Room '%s': %d rows with unresolvable timestamps (policy=%s)",
            room_id,
            unresolved,
            fallback.value,
        )
    if not readings:
        raise EmptyDatasetError(f"room '{room_id}': no rows left after parsing")

    readings.sort(key=lambda r: r.timestamp)
    return readings


class CsvNormalizer:
    """Fail-soft CSV to readings conversion.

    Parameters:
        fallback:
            Timestamp policy for rows with an unresolvable timestamp.
        mock:
            Generator used whenever the body holds no usable data.
    """

    def __init__(
        self,
        *,
        fallback: TimestampFallback | str = TimestampFallback.NOW,
        mock: MockDataGenerator | None = None,
    ) -> None:
        self.fallback = TimestampFallback(fallback)
        self.mock = mock or MockDataGenerator()

    def normalize(self, text: str, room_id: str, now: datetime | None = None) -> list[SensorReading]:
        """Return real readings parsed from *text*, or a synthetic series."""
        now = now or datetime.now().astimezone()
        try:
            return parse_csv(text, room_id, now=now, fallback=self.fallback)
        except IngestError as exc:
            logger.warning("%s - substituting synthetic data", exc)
            return self.mock.generate(room_id, now=now)
