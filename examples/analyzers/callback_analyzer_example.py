#!/usr/bin/env python3
"""CallbackAnalyzer examples -- 3 cases demonstrating a plain function, an
async function returning model-style JSON text, and an analyzer that fails.

Directly runnable (no external services required): the room sources are
served from memory through an ``httpx.MockTransport`` passed to the monitor.

Usage::

    python examples/analyzers/callback_analyzer_example.py           # Case 1 (default)
    python examples/analyzers/callback_analyzer_example.py --case 2   # Async JSON text
    python examples/analyzers/callback_analyzer_example.py --case 3   # Failing analyzer
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from datetime import datetime, timedelta

import httpx

# ---------------------------------------------------------------------------
# In-memory room sources
# ---------------------------------------------------------------------------


def _csv_for(room: str) -> str:
    """A short CSV sheet whose latest row is a few seconds old."""
    now = datetime.now().astimezone()
    gas_base = 380.0 if room == "garage" else 90.0
    lines = ["Timestamp,Temp (DHT22),Humidity,MQ2 gas,CO2 MG811"]
    for i in range(12):
        ts = now - timedelta(seconds=15 * (12 - i))
        lines.append(f"{ts.isoformat()},{22 + i * 0.1:.1f},48,{gas_base + i * 5},{420 + i * 8}")
    return "\n".join(lines)


def _handler(request: httpx.Request) -> httpx.Response:
    room = request.url.path.strip("/").removesuffix(".csv")
    if room == "attic":
        return httpx.Response(502)  # node offline: monitor substitutes synthetic data
    return httpx.Response(200, text=_csv_for(room), headers={"content-type": "text/csv"})


def _monitor(analyzer):
    from roomwatch import RoomConfig, RoomMonitor, RoomRegistry

    registry = RoomRegistry(
        [
            RoomConfig(id="lab", name="Lab", url="https://sheets.local/lab.csv"),
            RoomConfig(id="garage", name="Garage", url="https://sheets.local/garage.csv"),
            RoomConfig(id="attic", name="Attic", url="https://sheets.local/attic.csv"),
        ]
    )
    client = httpx.AsyncClient(transport=httpx.MockTransport(_handler))
    monitor = RoomMonitor(registry, analyzer, client=client, fetch_interval_s=5.0)
    monitor.add_cycle_listener(lambda report: _print_insights(monitor))
    return monitor, client


def _print_insights(monitor) -> None:
    for room in monitor.registry:
        insight = monitor.insight_for(room.id)
        state = monitor.status(room.id).state.value
        if insight is None:
            print(f"  {room.name:<8} {state:<8} (no analysis yet)")
        else:
            print(f"  {room.name:<8} {state:<8} {insight.status.value:<8} {insight.prediction}")
    print()


async def _run(analyzer, duration_s: float) -> None:
    monitor, client = _monitor(analyzer)
    async with client:
        await monitor.run_async(duration_s=duration_s)


# ---------------------------------------------------------------------------
# Case 1: Plain function returning a dict
# ---------------------------------------------------------------------------


def run_case_1() -> None:
    """A synchronous rule written as a plain function.

    Knobs demonstrated:
      - sync callable     -> run in the default executor
      - dict return value -> validated into an Insight
    """
    from roomwatch.analyzers import CallbackAnalyzer

    print("=== Case 1: Plain function ===\n")

    def classify(request):
        if request.is_stale:
            return {"status": "DANGER", "confidence": 0.9, "prediction": "Node is offline."}
        peak = max(r.toxic_gas for r in request.readings)
        status = "WARNING" if peak > 300 else "SAFE"
        return {"status": status, "confidence": 0.7, "prediction": f"Peak gas {peak:.0f} ppm."}

    asyncio.run(_run(CallbackAnalyzer(classify), duration_s=6))


# ---------------------------------------------------------------------------
# Case 2: Async function returning fenced JSON text
# ---------------------------------------------------------------------------


def run_case_2() -> None:
    """An async callable shaped like a language-model call.

    The reply is markdown-fenced JSON using the ``thoughtProcess`` key;
    both are accepted by the validator.
    """
    from roomwatch.analyzers import CallbackAnalyzer

    print("=== Case 2: Async JSON text ===\n")

    async def fake_model(request):
        await asyncio.sleep(0.2)  # network latency
        summary = request.summary()
        verdict = {
            "status": "warning" if summary[-1]["c"] > 500 else "safe",
            "trend": "rising",
            "confidence": 0.65,
            "prediction": "CO2 climbing steadily; open a window within the hour.",
            "thoughtProcess": f"Looked at {len(summary)} readings.",
        }
        return f"```json\n{json.dumps(verdict)}\n```"

    asyncio.run(_run(CallbackAnalyzer(fake_model), duration_s=6))


# ---------------------------------------------------------------------------
# Case 3: Failing analyzer -> fallback insights
# ---------------------------------------------------------------------------


def run_case_3() -> None:
    """Every call raises; each room still gets a conservative verdict."""
    from roomwatch.analyzers import CallbackAnalyzer

    print("=== Case 3: Failing analyzer ===\n")

    def broken(request):
        raise RuntimeError("quota exceeded")

    asyncio.run(_run(CallbackAnalyzer(broken), duration_s=6))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

CASES = {1: run_case_1, 2: run_case_2, 3: run_case_3}


def main() -> None:
    parser = argparse.ArgumentParser(description="CallbackAnalyzer examples")
    parser.add_argument("--case", type=int, default=1, choices=sorted(CASES), help="Case number to run")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s %(name)-30s %(levelname)-7s %(message)s",
        datefmt="%H:%M:%S",
    )
    CASES[args.case]()


if __name__ == "__main__":
    main()
