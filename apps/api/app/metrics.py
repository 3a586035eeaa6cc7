from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.requests import Request


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

integration_webhook_requests_total = Counter(
    "integration_webhook_requests_total",
    "Total inbound webhook calls by outcome",
    ["outcome"],
)

integration_webhook_duration_seconds = Histogram(
    "integration_webhook_duration_seconds",
    "Inbound webhook processing duration in seconds",
    ["outcome"],
)

integration_cascade_step_failures_total = Counter(
    "integration_cascade_step_failures_total",
    "Total failed post-create cascade steps",
    ["step"],
)

integration_rate_limited_total = Counter(
    "integration_rate_limited_total",
    "Total inbound webhook calls rejected by the rate limiter",
    ["scope"],
)


_UUID_RE = re.compile(
    r"\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[1-5][0-9a-fA-F]{3}-[89abAB][0-9a-fA-F]{3}-[0-9a-fA-F]{12}\b"
)
_INT_RE = re.compile(r"/\d+\b")
_PATH_PARAM_RE = re.compile(r"\{[^{}]+\}")


def _sanitize_path(path: str) -> str:
    without_uuids = _UUID_RE.sub("{id}", path)
    return _INT_RE.sub("/{id}", without_uuids)


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    if route is not None:
        path_format = getattr(route, "path_format", None)
        if isinstance(path_format, str) and path_format:
            return _PATH_PARAM_RE.sub("{id}", path_format)
        route_path = getattr(route, "path", None)
        if isinstance(route_path, str) and route_path:
            return _PATH_PARAM_RE.sub("{id}", route_path)
    return _sanitize_path(request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    status_str = str(status)
    http_requests_total.labels(method=method, path=path, status=status_str).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_webhook(outcome: str, duration: float) -> None:
    integration_webhook_requests_total.labels(outcome=outcome).inc()
    integration_webhook_duration_seconds.labels(outcome=outcome).observe(duration)


def observe_cascade_step_failure(step: str) -> None:
    integration_cascade_step_failures_total.labels(step=step).inc()


def observe_rate_limited(scope: str) -> None:
    integration_rate_limited_total.labels(scope=scope).inc()


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
