from tenantguard.platform.security import (
    AccessDecisionEngine,
    AuthContext,
    BaseRepository,
    Role,
    RoleResolver,
    TenancyError,
    get_role_resolver,
    set_role_resolver,
)

__all__ = [
    "AccessDecisionEngine",
    "AuthContext",
    "BaseRepository",
    "Role",
    "RoleResolver",
    "TenancyError",
    "get_role_resolver",
    "set_role_resolver",
]
