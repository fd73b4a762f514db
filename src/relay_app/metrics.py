import time
from dataclasses import dataclass

from fastapi import Request
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

from relay_core.types import AttemptOutcome, outcome_name

__all__ = [
    "CONTENT_TYPE_LATEST",
    "RequestTimer",
    "start_timer",
    "observe_http_request",
    "record_attempt",
    "record_turn",
    "get_route_template",
    "metrics_payload",
]


HTTP_REQUESTS_TOTAL = Counter(
    "relay_http_requests_total",
    "HTTP requests handled by the relay",
    labelnames=("method", "route", "status"),
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "relay_http_request_duration_seconds",
    "Time until the response head was sent, in seconds",
    labelnames=("method", "route"),
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10),
)

UPSTREAM_ATTEMPTS_TOTAL = Counter(
    "relay_upstream_attempts_total",
    "Upstream attempts by classified outcome",
    labelnames=("outcome",),
)

CHAT_TURNS_TOTAL = Counter(
    "relay_chat_turns_total",
    "Chat turns by terminal event",
    labelnames=("result",),
)


@dataclass
class RequestTimer:
    start: float


def start_timer() -> RequestTimer:
    return RequestTimer(start=time.perf_counter())


def observe_http_request(method: str, route: str, status: int, elapsed_seconds: float) -> None:
    HTTP_REQUESTS_TOTAL.labels(method=method, route=route, status=str(status)).inc()
    HTTP_REQUEST_DURATION_SECONDS.labels(method=method, route=route).observe(elapsed_seconds)


def record_attempt(outcome: AttemptOutcome) -> None:
    UPSTREAM_ATTEMPTS_TOTAL.labels(outcome=outcome_name(outcome)).inc()


def record_turn(result: str) -> None:
    """result is "done", "error" or "disconnected"."""
    CHAT_TURNS_TOTAL.labels(result=result).inc()


def get_route_template(request: Request) -> str:
    route = request.scope.get("route")
    if route and hasattr(route, "path"):
        return str(route.path)
    return request.url.path


def metrics_payload() -> bytes:
    return generate_latest()
