from __future__ import annotations

from collections import defaultdict, deque
from typing import Deque, Dict, List

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse
from prometheus_client import Counter, Histogram, CONTENT_TYPE_LATEST, generate_latest

router = APIRouter()

REQUEST_COUNTER = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["path", "method", "status"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "Request latency",
    ["path", "method"],
)

# ---------------------------------------------------------------------------
# Sync / feed
# ---------------------------------------------------------------------------

SYNC_RUNS = Counter(
    "event_sync_runs_total",
    "Per-source sync runs by final outcome",
    ["kind", "outcome"],
)
SYNC_ITEMS = Counter(
    "event_sync_items_total",
    "Items processed by sync runs, by merge action",
    ["kind", "action"],
)
SYNC_DURATION = Histogram(
    "event_sync_duration_seconds",
    "Wall time of one per-source sync run",
    ["kind"],
)
FEED_REQUESTS = Counter(
    "calendar_feed_requests_total",
    "Calendar feed requests by outcome",
    ["outcome"],
)

_LATENCY_SAMPLES: Dict[str, Deque[float]] = defaultdict(lambda: deque(maxlen=200))


def record_latency(path: str, duration_ms: float) -> None:
    _LATENCY_SAMPLES[path].append(duration_ms)


def record_sync(kind: str, outcome: str, counts: Dict[str, int], duration_s: float) -> None:
    SYNC_RUNS.labels(kind=kind, outcome=outcome).inc()
    SYNC_DURATION.labels(kind=kind).observe(duration_s)
    for action, n in counts.items():
        if n:
            SYNC_ITEMS.labels(kind=kind, action=action).inc(n)


@router.get("/metrics")
async def metrics_endpoint() -> PlainTextResponse:
    return PlainTextResponse(generate_latest(), media_type=CONTENT_TYPE_LATEST)


@router.get("/api/health/latency")
async def latency_health() -> dict[str, List[dict[str, float | str]]]:
    payload: List[dict[str, float]] = []
    for path, samples in _LATENCY_SAMPLES.items():
        if not samples:
            continue
        ordered = sorted(samples)
        payload.append({
            "path": path,
            "p50_ms": round(_percentile(ordered, 50), 2),
            "p95_ms": round(_percentile(ordered, 95), 2),
            "sample_size": len(samples),
        })
    return {"paths": payload}


def _percentile(ordered: List[float], pct: int) -> float:
    if not ordered:
        return 0.0
    k = (len(ordered) - 1) * (pct / 100)
    f = int(k)
    c = min(f + 1, len(ordered) - 1)
    if f == c:
        return ordered[f]
    return ordered[f] * (c - k) + ordered[c] * (k - f)
