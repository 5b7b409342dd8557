"""Webhook analyzer - POSTs the recent readings of a room to an HTTP
endpoint that answers with a JSON verdict.

The endpoint is typically a thin wrapper around a hosted language model.
Its answer is untrusted and validated with :func:`coerce_insight`.
"""

from __future__ import annotations

import json
import logging

import httpx

from roomwatch.analyzers.base import AnalysisRequest, Analyzer, coerce_insight
from roomwatch.models import Insight

__all__ = ["WebhookAnalyzer"]

logger = logging.getLogger("roomwatch.analyzers.webhook")


class WebhookAnalyzer(Analyzer):
    """POST analysis requests as JSON to an HTTP endpoint.

    The request body is :meth:`AnalysisRequest.to_payload`; the response
    body must be an Insight-shaped JSON object.

    Parameters:
        url: Target endpoint (must accept ``POST``).
        headers: Extra HTTP headers (e.g. ``{"Authorization": "Bearer …"}``).
        timeout_s: Per-request timeout in seconds.
        client: Optional pre-built ``httpx.AsyncClient`` (not closed by us).
    """

    summary = "POST readings to an HTTP endpoint"

    def __init__(
        self,
        *,
        url: str,
        headers: dict[str, str] | None = None,
        timeout_s: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url
        self._headers = {"Content-Type": "application/json", **(headers or {})}
        self._timeout = timeout_s
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                headers=self._headers,
            )
            logger.info("WebhookAnalyzer ready - target: %s", self._url)
        return self._client

    async def analyze(self, request: AnalysisRequest) -> Insight:
        client = self._get_client()
        payload = json.dumps(request.to_payload())
        resp = await client.post(self._url, content=payload, headers=self._headers)
        resp.raise_for_status()

        logger.debug(
            "POST %s - room '%s', %d readings - HTTP %d",
            self._url,
            request.room_id,
            len(request.readings),
            resp.status_code,
        )
        return coerce_insight(resp.text)

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
            logger.info("WebhookAnalyzer closed")
