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

authz_decisions_total = Counter(
    "authz_decisions_total",
    "Access decisions by operation and outcome",
    ["operation", "outcome"],
)

credential_rejections_total = Counter(
    "credential_rejections_total",
    "Rejected credentials by internal reason",
    ["reason"],
)

role_mutations_total = Counter(
    "role_mutations_total",
    "Role change attempts by outcome",
    ["outcome"],
)

audit_write_failures_total = Counter(
    "audit_write_failures_total",
    "Audit entries that could not be persisted",
)


_UUID_RE = re.compile(
    r"\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[1-5][0-9a-fA-F]{3}-[89abAB][0-9a-fA-F]{3}-[0-9a-fA-F]{12}\b"
)
_PATH_PARAM_RE = re.compile(r"\{[^{}]+\}")


def _sanitize_path(path: str) -> str:
    return _UUID_RE.sub("{id}", path)


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    if route is not None:
        route_path = getattr(route, "path_format", None) or getattr(route, "path", None)
        if isinstance(route_path, str) and route_path:
            return _PATH_PARAM_RE.sub("{id}", route_path)
    return _sanitize_path(request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    http_requests_total.labels(method=method, path=path, status=str(status)).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_authz_decision(operation: str, allowed: bool) -> None:
    authz_decisions_total.labels(operation=operation, outcome="allow" if allowed else "deny").inc()


def observe_credential_rejection(reason: str) -> None:
    credential_rejections_total.labels(reason=reason).inc()


def observe_role_mutation(outcome: str) -> None:
    role_mutations_total.labels(outcome=outcome).inc()


def observe_audit_write_failure() -> None:
    audit_write_failures_total.inc()


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
