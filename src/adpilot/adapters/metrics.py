"""
Prometheus metrics for AdPilot — automation cycles, actions, and advisory output.
Includes helper decorator for latency tracking.
"""
from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any

from prometheus_client import Counter, Gauge, Histogram

# ── Scheduler ──
scheduler_running = Gauge(
    "adpilot_scheduler_running", "1 while the automation scheduler is running"
)
cycles_total = Counter(
    "adpilot_cycles_total", "Automation cycles", ["status"]
)
cycle_duration_seconds = Histogram(
    "adpilot_cycle_duration_seconds", "Automation cycle latency"
)

# ── Rules / actions ──
rules_fired_total = Counter(
    "adpilot_rules_fired_total", "Fired (rule, campaign) pairs", ["rule_type"]
)
actions_total = Counter(
    "adpilot_actions_total", "Action attempts", ["action", "status"]
)
action_duration_seconds = Histogram(
    "adpilot_action_duration_seconds", "Action latency against the ad platform", ["action"]
)

# ── Advisory ──
anomalies_detected_total = Counter(
    "adpilot_anomalies_detected_total", "Anomalies detected", ["type", "severity"]
)
insights_generated_total = Counter(
    "adpilot_insights_generated_total", "Insights generated", ["type"]
)
advisory_errors_total = Counter(
    "adpilot_advisory_errors_total", "Advisory checks that failed internally", ["check"]
)

# ── HTTP ──
http_requests_total = Counter(
    "adpilot_http_requests_total", "HTTP requests", ["method", "path", "status"]
)
http_request_duration = Histogram(
    "adpilot_http_request_duration_seconds", "HTTP request latency", ["method", "path"]
)


def track_latency(histogram: Histogram) -> Callable[..., Any]:
    """Observe the wall time of an async function on `histogram`."""

    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            start = time.perf_counter()
            try:
                return await func(*args, **kwargs)
            finally:
                histogram.observe(time.perf_counter() - start)

        return wrapper

    return decorator
