from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from fastapi.responses import JSONResponse
from starlette.requests import Request

from tenantguard.core.context import get_correlation_id, get_request_metadata
from tenantguard.platform.security.errors import TenancyError


@dataclass
class ErrorEnvelope:
    code: str
    message: str
    details: Any
    correlation_id: str | None


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: Any = None,
) -> JSONResponse:
    correlation_id = get_correlation_id() or get_request_metadata(request).correlation_id or None
    payload = ErrorEnvelope(
        code=code,
        message=message,
        details=details,
        correlation_id=correlation_id,
    )
    return JSONResponse(status_code=status_code, content=asdict(payload))


async def tenancy_error_handler(request: Request, exc: TenancyError) -> JSONResponse:
    return error_response(
        request,
        status_code=exc.status_code,
        code=exc.code,
        message=exc.message,
        details=exc.details,
    )
