from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response
from sqlalchemy.orm import Session

from tenantguard import audit
from tenantguard.api.schemas import AuditEntryRead, AuditListResponse, MeRead
from tenantguard.core.auth import get_verified_credential, require_privileged, requested_tenant_id
from tenantguard.core.config import get_settings
from tenantguard.core.database import get_db
from tenantguard.crm.api import accounts_router, contacts_router, deals_router, leads_router
from tenantguard.metrics import generate_metrics_payload, metrics_content_type
from tenantguard.platform.security.context import AuthContext
from tenantguard.platform.security.credentials import VerifiedCredential
from tenantguard.platform.security.errors import InvalidArgumentError, NotFoundError
from tenantguard.platform.security.role_resolver import get_role_resolver
from tenantguard.platform.security.roles import Role
from tenantguard.tenancy.api import admin_router, tenants_router

router = APIRouter()
router.include_router(tenants_router)
router.include_router(admin_router)
router.include_router(leads_router)
router.include_router(contacts_router)
router.include_router(accounts_router)
router.include_router(deals_router)


@router.get("/health", tags=["system"])
def health() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.app_env,
    }


@router.get("/me", response_model=MeRead, tags=["auth"])
def me(
    request: Request,
    db: Session = Depends(get_db),
    credential: VerifiedCredential = Depends(get_verified_credential),
) -> MeRead:
    tenant_id = requested_tenant_id(request, credential)
    return MeRead(
        principal_id=credential.principal_id,
        email=credential.email,
        global_role=credential.global_role,
        tenant_id=tenant_id,
        role=get_role_resolver().resolve(db, credential, tenant_id, role_agnostic=True),
        authz_model=get_settings().authz_model,
    )


@router.get("/metrics", tags=["system"])
def metrics(ctx: AuthContext = Depends(require_privileged)) -> Response:
    if not get_settings().metrics_enabled:
        raise NotFoundError("not found")
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())


@router.get("/audit", response_model=AuditListResponse, tags=["audit"])
def list_audit_entries(
    actor_id: str | None = Query(default=None),
    tenant: str | None = Query(default=None),
    action: str | None = Query(default=None),
    since: datetime | None = Query(default=None),
    until: datetime | None = Query(default=None),
    limit: int | None = Query(default=None, ge=1),
    ctx: AuthContext = Depends(require_privileged),
) -> AuditListResponse:
    if action is not None and action not in audit.ACTIONS:
        raise InvalidArgumentError(f"unknown audit action: {action!r}", code="invalid_action")
    # only a global owner may read across tenants
    tenant_filter = tenant if ctx.global_role is Role.OWNER else ctx.tenant_id
    entries = audit.get_audit_log().query(
        actor_id=actor_id,
        tenant_id=tenant_filter,
        action=action,
        since=since,
        until=until,
        limit=limit,
    )
    return AuditListResponse(items=[AuditEntryRead.model_validate(entry) for entry in entries])
