from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from tenantguard import audit
from tenantguard.audit import AuditLog
from tenantguard.metrics import observe_role_mutation
from tenantguard.platform.security.context import AuthContext
from tenantguard.platform.security.errors import ForbiddenError, NotFoundError
from tenantguard.platform.security.role_resolver import RoleResolver, get_role_resolver
from tenantguard.platform.security.roles import Role, parse_role

logger = logging.getLogger("tenantguard.tenancy")


def check_role_transition(
    *,
    actor_id: str,
    actor_role: Role,
    target_id: str,
    target_role: Role | None,
    new_role: object,
) -> Role:
    """Return the parsed ``new_role`` if ``actor`` may move ``target`` to it, else raise.

    Rules are checked in order and the first violation wins:

    1. only owner and admin may change roles;
    2. the requested role must be a known role;
    3. the target must already hold a role in the scope;
    4. an owner may not demote themselves;
    5. an admin may neither touch an owner nor grant ownership;
    6. an owner may make any other transition.
    """

    if not actor_role.is_privileged:
        raise ForbiddenError("admin or owner role required to change roles")

    role = parse_role(new_role)

    if target_role is None:
        raise NotFoundError(f"principal '{target_id}' is not a member of this scope")

    if actor_id == target_id and target_role is Role.OWNER and role is not Role.OWNER:
        raise ForbiddenError("owners cannot demote themselves")

    if actor_role is Role.ADMIN:
        if target_role is Role.OWNER:
            raise ForbiddenError("admins cannot change the role of an owner")
        if role is Role.OWNER:
            raise ForbiddenError("admins cannot grant the owner role")

    return role


@dataclass(frozen=True, slots=True)
class RoleChange:
    target_id: str
    tenant_id: str
    previous_role: Role
    new_role: Role
    scope: str


class RoleMutationService:
    def __init__(self, *, resolver: RoleResolver | None = None, audit_log: AuditLog | None = None) -> None:
        self._resolver = resolver
        self._audit_log = audit_log

    @property
    def resolver(self) -> RoleResolver:
        return self._resolver or get_role_resolver()

    @property
    def audit_log(self) -> AuditLog:
        return self._audit_log or audit.get_audit_log()

    def change_role(self, session: Session, ctx: AuthContext, target_id: str, requested_role: object) -> RoleChange:
        resolver = self.resolver
        target_role = resolver.current_role(session, target_id, ctx.tenant_id)

        try:
            new_role = check_role_transition(
                actor_id=ctx.principal_id,
                actor_role=ctx.role,
                target_id=target_id,
                target_role=target_role,
                new_role=requested_role,
            )
        except ForbiddenError as exc:
            observe_role_mutation("denied")
            self.audit_log.record(
                audit.FORBIDDEN_ACCESS,
                ctx=ctx,
                resource_type="principal",
                resource_id=target_id,
                details={"operation": audit.CHANGE_ROLE, "new_role": str(requested_role), "reason": exc.message},
            )
            raise
        except NotFoundError:
            observe_role_mutation("not_found")
            raise

        resolver.assign_role(session, target_id, ctx.tenant_id, new_role)
        session.commit()
        observe_role_mutation("applied")

        change = RoleChange(
            target_id=target_id,
            tenant_id=ctx.tenant_id,
            previous_role=target_role,
            new_role=new_role,
            scope=resolver.scope,
        )
        logger.info(
            "tenancy.role_changed",
            extra={
                "principal_id": ctx.principal_id,
                "tenant_id": ctx.tenant_id,
                "target_id": target_id,
                "previous_role": target_role.value,
                "new_role": new_role.value,
            },
        )
        self.audit_log.record(
            audit.CHANGE_ROLE,
            ctx=ctx,
            resource_type="principal",
            resource_id=target_id,
            details={
                "previous_role": target_role.value,
                "new_role": new_role.value,
                "target_id": target_id,
                "scope": resolver.scope,
            },
        )
        return change
