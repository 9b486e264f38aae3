"""In-memory coaching metrics.

Asyncio is single-threaded, so plain dicts are safe without locking.
"""

import time

_start_time = time.monotonic()

_metrics: dict = {
    "evaluations": {},
    "insights": {},
    "fallback_reasons": {},
    "cancellations": 0,
    "generation": {
        "calls": 0,
        "successes": 0,
        "failures": 0,
        "timeouts": 0,
        "total_duration_ms": 0.0,
    },
}


def record_evaluation(action: str) -> None:
    _metrics["evaluations"][action] = _metrics["evaluations"].get(action, 0) + 1


def record_insight(source: str, reason: str | None) -> None:
    """Record an issued insight and, for fallbacks, why it was degraded."""
    _metrics["insights"][source] = _metrics["insights"].get(source, 0) + 1
    if source == "fallback" and reason:
        reasons = _metrics["fallback_reasons"]
        reasons[reason] = reasons.get(reason, 0) + 1


def record_cancellation() -> None:
    _metrics["cancellations"] += 1


def record_generation_call(duration_ms: float, outcome: str) -> None:
    """Record one generation round-trip. outcome: success | timeout | failure."""
    g = _metrics["generation"]
    g["calls"] += 1
    g["total_duration_ms"] += duration_ms
    if outcome == "success":
        g["successes"] += 1
    elif outcome == "timeout":
        g["timeouts"] += 1
    else:
        g["failures"] += 1


def get_metrics() -> dict:
    """Return a snapshot of current metrics."""
    return {
        "uptime_seconds": round(time.monotonic() - _start_time, 1),
        "evaluations": dict(_metrics["evaluations"]),
        "insights": dict(_metrics["insights"]),
        "fallback_reasons": dict(_metrics["fallback_reasons"]),
        "cancellations": _metrics["cancellations"],
        "generation": dict(_metrics["generation"]),
    }


def reset_metrics() -> None:
    _metrics["evaluations"] = {}
    _metrics["insights"] = {}
    _metrics["fallback_reasons"] = {}
    _metrics["cancellations"] = 0
    _metrics["generation"] = {
        "calls": 0,
        "successes": 0,
        "failures": 0,
        "timeouts": 0,
        "total_duration_ms": 0.0,
    }
