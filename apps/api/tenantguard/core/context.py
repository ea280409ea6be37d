from __future__ import annotations

import uuid
from contextvars import ContextVar, Token
from dataclasses import dataclass

from opentelemetry import trace
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

CORRELATION_HEADER = "x-correlation-id"
REQUEST_ID_HEADER = "x-request-id"


@dataclass(frozen=True)
class RequestMetadata:
    """Caller details captured once per request and copied onto audit entries."""

    request_id: str
    correlation_id: str
    client_address: str | None
    user_agent: str | None


@dataclass
class RequestScope:
    """Who a request acts as and where, filled in as the auth dependencies resolve it.

    The middleware installs one scope per request in a context variable. Sync
    dependencies run on worker threads with a copy of that context, so they
    mutate the shared instance rather than rebinding the variable.
    """

    correlation_id: str | None
    principal_id: str | None = None
    tenant_id: str | None = None


_request_scope: ContextVar[RequestScope | None] = ContextVar("request_scope", default=None)


def bind_request_scope(correlation_id: str | None) -> Token[RequestScope | None]:
    return _request_scope.set(RequestScope(correlation_id=correlation_id))


def reset_request_scope(token: Token[RequestScope | None]) -> None:
    _request_scope.reset(token)


def current_request_scope() -> RequestScope | None:
    return _request_scope.get()


def get_correlation_id() -> str | None:
    scope = _request_scope.get()
    return scope.correlation_id if scope is not None else None


def bind_principal(principal_id: str) -> None:
    scope = _request_scope.get()
    if scope is not None:
        scope.principal_id = principal_id


def bind_tenant(tenant_id: str) -> None:
    scope = _request_scope.get()
    if scope is not None:
        scope.tenant_id = tenant_id


def resolve_client_address(request: Request) -> str | None:
    forwarded_for = request.headers.get("x-forwarded-for", "")
    first_hop = forwarded_for.split(",")[0].strip()
    if first_hop:
        return first_hop

    real_ip = request.headers.get("x-real-ip", "").strip()
    if real_ip:
        return real_ip

    if request.client is not None:
        return request.client.host
    return None


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        request.state.metadata = RequestMetadata(
            request_id=correlation_id,
            correlation_id=correlation_id,
            client_address=resolve_client_address(request),
            user_agent=request.headers.get("user-agent"),
        )

        span = trace.get_current_span()
        if span.is_recording():
            span.set_attribute("correlation_id", correlation_id)

        token = bind_request_scope(correlation_id)
        scope = current_request_scope()
        try:
            response = await call_next(request)
        finally:
            reset_request_scope(token)

        # the tenant is only known once the auth dependencies have run
        if span.is_recording() and scope is not None and scope.tenant_id:
            span.set_attribute("tenant_id", scope.tenant_id)

        response.headers[CORRELATION_HEADER] = correlation_id
        response.headers[REQUEST_ID_HEADER] = correlation_id
        return response


def get_request_metadata(request: Request) -> RequestMetadata:
    metadata = getattr(request.state, "metadata", None)
    if isinstance(metadata, RequestMetadata):
        return metadata
    return RequestMetadata(
        request_id="",
        correlation_id="",
        client_address=resolve_client_address(request),
        user_agent=request.headers.get("user-agent"),
    )
