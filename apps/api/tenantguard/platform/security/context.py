from __future__ import annotations

from dataclasses import dataclass

from tenantguard.core.context import RequestMetadata
from tenantguard.platform.security.roles import Role


@dataclass(frozen=True, slots=True)
class AuthContext:
    """The (principal, tenant, role) triple every authorization decision is made against.

    Built once per request by the auth dependencies and passed explicitly to
    services; never stored at module level.
    """

    principal_id: str
    tenant_id: str
    role: Role
    global_role: Role
    email: str | None = None
    correlation_id: str | None = None
    client_address: str | None = None
    user_agent: str | None = None

    @property
    def is_privileged(self) -> bool:
        return self.role.is_privileged

    @classmethod
    def build(
        cls,
        *,
        principal_id: str,
        tenant_id: str,
        role: Role,
        global_role: Role,
        email: str | None = None,
        metadata: RequestMetadata | None = None,
    ) -> AuthContext:
        if metadata is None:
            return cls(principal_id=principal_id, tenant_id=tenant_id, role=role, global_role=global_role, email=email)
        return cls(
            principal_id=principal_id,
            tenant_id=tenant_id,
            role=role,
            global_role=global_role,
            email=email,
            correlation_id=metadata.correlation_id or None,
            client_address=metadata.client_address,
            user_agent=metadata.user_agent,
        )
