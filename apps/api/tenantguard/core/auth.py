from __future__ import annotations

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.orm import Session
from starlette.requests import Request

from tenantguard import audit
from tenantguard.core.config import get_settings
from tenantguard.core.context import bind_principal, bind_tenant, get_request_metadata
from tenantguard.core.database import get_db
from tenantguard.platform.security.context import AuthContext
from tenantguard.platform.security.credentials import CredentialVerifier, VerifiedCredential, extract_bearer_token
from tenantguard.platform.security.errors import ForbiddenError, ForbiddenTenantError, NotFoundError
from tenantguard.platform.security.role_resolver import get_role_resolver
from tenantguard.platform.security.tenants import resolve_tenant
from tenantguard.tenancy.models import Tenant

TENANT_HEADER = "x-tenant-id"
TENANT_PATH_PARAM = "tenant_id"


def get_credential_verifier() -> CredentialVerifier:
    return CredentialVerifier(get_settings())


def get_verified_credential(
    request: Request,
    session: Session = Depends(get_db),
    verifier: CredentialVerifier = Depends(get_credential_verifier),
) -> VerifiedCredential:
    credential = verifier.verify(session, extract_bearer_token(request.headers.get("authorization")))
    bind_principal(credential.principal_id)
    return credential


def requested_tenant_id(request: Request, credential: VerifiedCredential) -> str:
    override = request.path_params.get(TENANT_PATH_PARAM) or request.headers.get(TENANT_HEADER)
    tenant_id = resolve_tenant(override, credential.claims.active_tenant, get_settings().default_tenant_id)
    bind_tenant(tenant_id)
    return tenant_id


def get_auth_context(
    request: Request,
    credential: VerifiedCredential = Depends(get_verified_credential),
    session: Session = Depends(get_db),
) -> AuthContext:
    """Resolve the tenant and the caller's effective role in it.

    Path parameters named ``tenant_id`` take precedence over the header so that
    ``/tenants/{tenant_id}/...`` always acts on the tenant in the URL.
    """

    tenant_id = requested_tenant_id(request, credential)
    metadata = get_request_metadata(request)

    try:
        role = get_role_resolver().resolve(session, credential, tenant_id)
    except ForbiddenTenantError:
        audit.get_audit_log().record(
            audit.FORBIDDEN_ACCESS,
            actor_id=credential.principal_id,
            tenant_id=tenant_id,
            resource_type="tenant",
            resource_id=tenant_id,
            details={"reason": "not_a_member"},
        )
        raise

    if session.scalar(select(Tenant.id).where(Tenant.id == tenant_id)) is None:
        raise NotFoundError(f"tenant '{tenant_id}' not found")

    return AuthContext.build(
        principal_id=credential.principal_id,
        tenant_id=tenant_id,
        role=role,
        global_role=credential.global_role,
        email=credential.email,
        metadata=metadata,
    )


def require_privileged(ctx: AuthContext = Depends(get_auth_context)) -> AuthContext:
    if not ctx.is_privileged:
        raise ForbiddenError("admin or owner role required")
    return ctx
