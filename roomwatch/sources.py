"""Room sources - fetch a node's published CSV and turn it into a series.

``fetch_csv`` is the only place that talks HTTP for ingestion.  Anything
that goes wrong there surfaces as a :class:`~roomwatch.errors.TransportError`,
which :class:`RoomIngestor` turns into synthetic data so a dead node never
takes the monitor down with it.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime

import httpx

from roomwatch.errors import IngestError, TransportError
from roomwatch.mock_data import MockDataGenerator
from roomwatch.models import RoomConfig, SensorReading
from roomwatch.normalizer import TimestampFallback, parse_csv
from roomwatch.smoothing import SMOOTHING_WINDOW, smooth

__all__ = ["ACCEPTED_CONTENT_TYPES", "RoomIngestor", "fetch_csv"]

logger = logging.getLogger("roomwatch.sources")

ACCEPTED_CONTENT_TYPES = (
    "text/csv",
    "application/csv",
    "text/plain",
    "application/octet-stream",
)

_NO_CACHE_HEADERS = {"Cache-Control": "no-cache", "Pragma": "no-cache"}


async def fetch_csv(client: httpx.AsyncClient, url: str) -> str:
    """GET *url* bypassing caches and return the body text.

    Raises:
        TransportError: Network error, non-2xx status, or a content type
            other than CSV / plain text.
    """
    try:
        resp = await client.get(
            url,
            params={"_ts": str(int(time.time() * 1000))},
            headers=_NO_CACHE_HEADERS,
            follow_redirects=True,
        )
    except httpx.HTTPError as exc:
        raise TransportError(f"GET {url} failed: {type(exc).__name__}: {exc}") from exc

    if not resp.is_success:
        raise TransportError(f"GET {url} returned HTTP {resp.status_code}")

    content_type = resp.headers.get("content-type", "").split(";")[0].strip().lower()
    if content_type and content_type not in ACCEPTED_CONTENT_TYPES:
        raise TransportError(f"GET {url} returned unexpected content type '{content_type}'")

    logger.debug("GET %s - HTTP %d - %d bytes", url, resp.status_code, len(resp.content))
    return resp.text


class RoomIngestor:
    """Fetch, normalize and smooth one room's series.

    ``ingest`` never raises for source problems: transport failures, HTML
    error pages and empty sheets all yield the mock generator's synthetic
    series instead.

    Parameters:
        client: Shared ``httpx.AsyncClient``.
        fallback: Timestamp policy for unresolvable timestamps.
        smoothing_window: Trailing window of the gas-channel moving average.
        mock: Generator used when no real data can be produced.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        fallback: TimestampFallback | str = TimestampFallback.NOW,
        smoothing_window: int = SMOOTHING_WINDOW,
        mock: MockDataGenerator | None = None,
    ) -> None:
        self._client = client
        self.fallback = TimestampFallback(fallback)
        self.smoothing_window = smoothing_window
        self.mock = mock or MockDataGenerator()

    async def ingest(self, room: RoomConfig, now: datetime | None = None) -> list[SensorReading]:
        now = now or datetime.now().astimezone()
        try:
            text = await fetch_csv(self._client, room.url)
            readings = parse_csv(text, room.id, now=now, fallback=self.fallback)
        except IngestError as exc:
            logger.warning("Room '%s' (%s): %s - substituting synthetic data", room.id, room.name, exc)
            return self.mock.generate(room.id, now=now)

        logger.debug("Room '%s': ingested %d readings", room.id, len(readings))
        return smooth(readings, window=self.smoothing_window)
