from tenantguard.platform.security.access import (
    AccessDecisionEngine,
    OwnershipFilter,
    apply_ownership_filter,
    apply_tenant_scope,
    decide,
    ownership_filter,
)
from tenantguard.platform.security.context import AuthContext
from tenantguard.platform.security.credentials import CredentialVerifier, VerifiedCredential
from tenantguard.platform.security.errors import (
    ConflictError,
    ForbiddenError,
    ForbiddenTenantError,
    InvalidArgumentError,
    NotFoundError,
    TenancyError,
    UnauthorizedError,
)
from tenantguard.platform.security.repository import BaseRepository
from tenantguard.platform.security.role_resolver import (
    GlobalRoleResolver,
    MembershipRoleResolver,
    RoleResolver,
    build_role_resolver,
    get_role_resolver,
    set_role_resolver,
)
from tenantguard.platform.security.roles import Role, parse_role
from tenantguard.platform.security.tenants import resolve_tenant

__all__ = [
    "AccessDecisionEngine",
    "AuthContext",
    "BaseRepository",
    "ConflictError",
    "CredentialVerifier",
    "ForbiddenError",
    "ForbiddenTenantError",
    "GlobalRoleResolver",
    "InvalidArgumentError",
    "MembershipRoleResolver",
    "NotFoundError",
    "OwnershipFilter",
    "Role",
    "RoleResolver",
    "TenancyError",
    "UnauthorizedError",
    "VerifiedCredential",
    "apply_ownership_filter",
    "apply_tenant_scope",
    "build_role_resolver",
    "decide",
    "get_role_resolver",
    "ownership_filter",
    "parse_role",
    "resolve_tenant",
    "set_role_resolver",
]
