"""Callback analyzer – delegates to a user-provided Python callable.

This allows users to plug any model or service into the scheduler without
having to subclass :class:`Analyzer`::

    monitor = RoomMonitor(registry, CallbackAnalyzer(my_llm_call))
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Callable

from roomwatch.analyzers.base import AnalysisRequest, Analyzer, coerce_insight
from roomwatch.models import Insight

__all__ = ["CallbackAnalyzer"]


class CallbackAnalyzer(Analyzer):
    """Wraps a user-supplied function as an analyzer.

    The callable receives an :class:`AnalysisRequest` and may return an
    :class:`Insight`, a dict or a JSON string; the result is validated with
    :func:`coerce_insight`.  It can be a regular function, a coroutine
    function, or a lambda.

    Parameters:
        callback: ``(request: AnalysisRequest) -> Insight | dict | str`` or async variant.
    """

    summary = "user-supplied Python callable (API only)"

    def __init__(self, callback: Callable[[AnalysisRequest], Any]) -> None:
        self._callback = callback
        self._is_async = inspect.iscoroutinefunction(callback)

    async def analyze(self, request: AnalysisRequest) -> Insight:
        if self._is_async:
            result = await self._callback(request)
        else:
            # Run sync callback in executor to avoid blocking the event loop
            loop = asyncio.get_running_loop()
            result = await loop.run_in_executor(None, self._callback, request)
        return coerce_insight(result)
