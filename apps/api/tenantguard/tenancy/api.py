from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session

from tenantguard.core.auth import get_auth_context, get_verified_credential
from tenantguard.core.config import get_settings
from tenantguard.core.context import get_request_metadata
from tenantguard.core.database import get_db
from tenantguard.platform.security.context import AuthContext
from tenantguard.platform.security.credentials import VerifiedCredential
from tenantguard.platform.security.errors import ForbiddenError
from tenantguard.platform.security.role_resolver import get_role_resolver
from tenantguard.tenancy.role_mutation import RoleMutationService
from tenantguard.tenancy.schemas import (
    CurrentTenantRead,
    JoinResponse,
    MemberListResponse,
    MemberRead,
    PrincipalListResponse,
    PrincipalRead,
    RoleChangeRequest,
    RoleChangeResponse,
    SwitchResponse,
    TenantCreate,
    TenantDiscoverRead,
    TenantDiscoverResponse,
    TenantListResponse,
    TenantRead,
    TenantRef,
)
from tenantguard.tenancy.service import PrincipalAdminService, TenantService

tenants_router = APIRouter(prefix="/tenants", tags=["tenancy.tenants"])
admin_router = APIRouter(prefix="/admin", tags=["tenancy.admin"])
tenant_service = TenantService()
principal_admin_service = PrincipalAdminService()
role_mutation_service = RoleMutationService()


def reject_reserved_tenant(
    tenant_id: str,
    credential: VerifiedCredential = Depends(get_verified_credential),
) -> None:
    # runs before the role lookup so the reserved workspace is refused for every role
    if tenant_id.strip() == get_settings().reserved_tenant_id:
        raise ForbiddenError("the reserved workspace cannot be deleted", code="reserved_tenant")


@tenants_router.get("", response_model=TenantListResponse)
def list_tenants(
    db: Session = Depends(get_db),
    credential: VerifiedCredential = Depends(get_verified_credential),
) -> TenantListResponse:
    rows = tenant_service.list_visible(db, credential)
    return TenantListResponse(
        items=[
            TenantRead(id=tenant.id, name=tenant.name, created_by=tenant.created_by, created_at=tenant.created_at, role=role)
            for tenant, role in rows
        ]
    )


@tenants_router.get("/current", response_model=CurrentTenantRead)
def current_tenant(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> CurrentTenantRead:
    tenant = tenant_service.get(db, ctx.tenant_id)
    return CurrentTenantRead(
        tenant_id=tenant.id,
        name=tenant.name,
        role=ctx.role,
        global_role=ctx.global_role,
        authz_model=get_settings().authz_model,
    )


@tenants_router.get("/discover", response_model=TenantDiscoverResponse)
def discover_tenants(
    query: str | None = Query(default=None, max_length=200),
    db: Session = Depends(get_db),
    credential: VerifiedCredential = Depends(get_verified_credential),
) -> TenantDiscoverResponse:
    rows = tenant_service.discover(db, credential, query)
    return TenantDiscoverResponse(
        items=[
            TenantDiscoverRead(
                id=tenant.id,
                name=tenant.name,
                created_by=tenant.created_by,
                is_creator=tenant.created_by == credential.principal_id,
                role=role,
            )
            for tenant, role in rows
        ]
    )


@tenants_router.post("", response_model=TenantRead, status_code=status.HTTP_201_CREATED)
def create_tenant(
    request: Request,
    dto: TenantCreate,
    db: Session = Depends(get_db),
    credential: VerifiedCredential = Depends(get_verified_credential),
) -> TenantRead:
    tenant = tenant_service.create(
        db,
        credential,
        tenant_id=dto.id,
        name=dto.name,
        metadata=get_request_metadata(request),
    )
    role = get_role_resolver().resolve(db, credential, tenant.id, role_agnostic=True)
    return TenantRead(id=tenant.id, name=tenant.name, created_by=tenant.created_by, created_at=tenant.created_at, role=role)


@tenants_router.post("/join", response_model=JoinResponse)
def join_tenant(
    request: Request,
    dto: TenantRef,
    db: Session = Depends(get_db),
    credential: VerifiedCredential = Depends(get_verified_credential),
) -> JoinResponse:
    role, joined = tenant_service.join(db, credential, dto.tenant_id, metadata=get_request_metadata(request))
    return JoinResponse(tenant_id=dto.tenant_id.strip(), role=role, joined=joined)


@tenants_router.post("/switch", response_model=SwitchResponse)
def switch_tenant(
    request: Request,
    dto: TenantRef,
    db: Session = Depends(get_db),
    credential: VerifiedCredential = Depends(get_verified_credential),
) -> SwitchResponse:
    role = tenant_service.switch(db, credential, dto.tenant_id, metadata=get_request_metadata(request))
    return SwitchResponse(active_tenant=dto.tenant_id.strip(), role=role)


@tenants_router.get("/{tenant_id}/members", response_model=MemberListResponse)
def list_members(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> MemberListResponse:
    rows = tenant_service.members(db, ctx)
    return MemberListResponse(
        items=[
            MemberRead(
                principal_id=principal.id,
                email=principal.email,
                name=principal.name,
                role=role,
                active=principal.active,
            )
            for principal, role in rows
        ]
    )


@tenants_router.patch("/{tenant_id}/members/{principal_id}", response_model=RoleChangeResponse)
def change_member_role(
    principal_id: str,
    dto: RoleChangeRequest,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> RoleChangeResponse:
    change = role_mutation_service.change_role(db, ctx, principal_id, dto.role)
    return RoleChangeResponse(
        principal_id=change.target_id,
        tenant_id=change.tenant_id,
        previous_role=change.previous_role,
        new_role=change.new_role,
        scope=change.scope,
    )


@tenants_router.delete(
    "/{tenant_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(reject_reserved_tenant)],
)
def delete_tenant(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> Response:
    tenant_service.delete(db, ctx)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@admin_router.get("/principals", response_model=PrincipalListResponse)
def list_principals(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> PrincipalListResponse:
    principals = principal_admin_service.list_principals(db, ctx)
    return PrincipalListResponse(items=[PrincipalRead.model_validate(principal) for principal in principals])


@admin_router.post("/principals/{principal_id}/toggle-active", response_model=PrincipalRead)
def toggle_principal_active(
    principal_id: str,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> PrincipalRead:
    principal = principal_admin_service.toggle_active(db, ctx, principal_id)
    return PrincipalRead.model_validate(principal)
