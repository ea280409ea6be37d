from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

import tenantguard.models  # noqa: F401  registers every table on Base.metadata
from tenantguard.api.errors import tenancy_error_handler
from tenantguard.api.routes import router as api_router
from tenantguard.audit import AuditLog, set_audit_log
from tenantguard.core.config import get_settings
from tenantguard.core.context import RequestContextMiddleware
from tenantguard.core.database import SessionLocal
from tenantguard.logging import configure_logging
from tenantguard.middleware.request_logging import RequestLoggingMiddleware
from tenantguard.otel import setup_otel
from tenantguard.platform.security.errors import TenancyError
from tenantguard.platform.security.role_resolver import build_role_resolver, set_role_resolver


configure_logging()
logger = logging.getLogger("tenantguard.lifecycle")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logger.info("system.started", extra={"authz_model": settings.authz_model})
    yield


app = FastAPI(title="TenantGuard API", version="0.1.0", lifespan=lifespan)
app.add_middleware(RequestLoggingMiddleware)
# outermost: every inner layer logs under the correlation id it assigns
app.add_middleware(RequestContextMiddleware)
app.add_exception_handler(TenancyError, tenancy_error_handler)  # type: ignore[arg-type]
app.include_router(api_router)

settings = get_settings()
set_role_resolver(build_role_resolver(settings))
set_audit_log(
    AuditLog(
        SessionLocal,
        default_limit=settings.audit_query_default_limit,
        max_limit=settings.audit_query_max_limit,
    )
)

if settings.otel_enabled:
    setup_otel("tenantguard-api", True)

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app)
