from __future__ import annotations

import logging

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tenantguard import audit
from tenantguard.audit import AuditLog
from tenantguard.core.config import get_settings
from tenantguard.core.context import RequestMetadata
from tenantguard.core.database import Base
from tenantguard.platform.security.context import AuthContext
from tenantguard.platform.security.credentials import VerifiedCredential
from tenantguard.platform.security.errors import ConflictError, ForbiddenError, InvalidArgumentError, NotFoundError
from tenantguard.platform.security.role_resolver import RoleResolver, get_role_resolver
from tenantguard.platform.security.roles import Role
from tenantguard.platform.security.tenants import TENANT_ID_MAX_LENGTH, is_valid_tenant_id
from tenantguard.tenancy.models import Membership, Principal, Tenant, utcnow

logger = logging.getLogger("tenantguard.tenancy")

DISCOVER_LIMIT = 20

# audit history outlives the tenant it describes
_RETAINED_TABLES = frozenset({"audit_entries", "tenants"})


class _TenancyServiceBase:
    def __init__(self, *, resolver: RoleResolver | None = None, audit_log: AuditLog | None = None) -> None:
        self._resolver = resolver
        self._audit_log = audit_log

    @property
    def resolver(self) -> RoleResolver:
        return self._resolver or get_role_resolver()

    @property
    def audit_log(self) -> AuditLog:
        return self._audit_log or audit.get_audit_log()


class TenantService(_TenancyServiceBase):
    def list_visible(self, session: Session, credential: VerifiedCredential) -> list[tuple[Tenant, Role | None]]:
        return self.resolver.visible_tenants(session, credential)

    def get(self, session: Session, tenant_id: str) -> Tenant:
        tenant = session.get(Tenant, tenant_id)
        if tenant is None:
            raise NotFoundError(f"tenant '{tenant_id}' not found")
        return tenant

    def create(
        self,
        session: Session,
        credential: VerifiedCredential,
        *,
        tenant_id: str,
        name: str,
        metadata: RequestMetadata | None = None,
    ) -> Tenant:
        if not credential.global_role.is_privileged:
            raise ForbiddenError("admin or owner role required to create a workspace")

        tenant_id = tenant_id.strip()
        if not is_valid_tenant_id(tenant_id):
            raise InvalidArgumentError(
                "tenant id must match ^[A-Za-z0-9_-]+$",
                code="invalid_tenant_id",
                details={"max_length": TENANT_ID_MAX_LENGTH},
            )
        name = name.strip()
        if not name:
            raise InvalidArgumentError("workspace name cannot be blank", code="invalid_tenant_name")
        if session.get(Tenant, tenant_id) is not None:
            raise ConflictError(f"tenant '{tenant_id}' already exists", code="tenant_exists")

        tenant = Tenant(id=tenant_id, name=name, created_by=credential.principal_id)
        session.add(tenant)
        try:
            session.flush()
            self.resolver.on_tenant_created(session, tenant, credential)
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            raise ConflictError(f"tenant '{tenant_id}' already exists", code="tenant_exists") from exc

        logger.info("tenancy.tenant_created", extra={"principal_id": credential.principal_id, "tenant_id": tenant.id})
        self.audit_log.record(
            audit.CREATE_WORKSPACE,
            actor_id=credential.principal_id,
            tenant_id=tenant.id,
            resource_type="tenant",
            resource_id=tenant.id,
            details={"name": tenant.name},
            metadata=metadata,
        )
        return tenant

    def delete(self, session: Session, ctx: AuthContext) -> None:
        if ctx.tenant_id == get_settings().reserved_tenant_id:
            raise ForbiddenError("the reserved workspace cannot be deleted", code="reserved_tenant")
        if not ctx.is_privileged:
            raise ForbiddenError("admin or owner role required to delete a workspace")

        tenant = self.get(session, ctx.tenant_id)
        name = tenant.name

        # foreign keys are not relied on to cascade
        for table in reversed(Base.metadata.sorted_tables):
            if table.name in _RETAINED_TABLES or "tenant_id" not in table.c:
                continue
            session.execute(delete(table).where(table.c.tenant_id == ctx.tenant_id))
        session.execute(delete(Tenant).where(Tenant.id == ctx.tenant_id))
        session.commit()

        logger.info("tenancy.tenant_deleted", extra={"principal_id": ctx.principal_id, "tenant_id": ctx.tenant_id})
        self.audit_log.record(
            audit.DELETE_WORKSPACE,
            ctx=ctx,
            resource_type="tenant",
            resource_id=ctx.tenant_id,
            details={"name": name, "role": ctx.role.value},
        )

    def discover(
        self,
        session: Session,
        credential: VerifiedCredential,
        query: str | None,
    ) -> list[tuple[Tenant, Role | None]]:
        needle = (query or "").strip()
        if not needle:
            return []

        tenants = session.scalars(
            select(Tenant)
            .where(Tenant.id.icontains(needle, autoescape=True) | Tenant.name.icontains(needle, autoescape=True))
            .order_by(func.lower(Tenant.name).asc(), Tenant.id.asc())
            .limit(DISCOVER_LIMIT)
        ).all()
        resolver = self.resolver
        return [(tenant, resolver.resolve(session, credential, tenant.id, role_agnostic=True)) for tenant in tenants]

    def join(
        self,
        session: Session,
        credential: VerifiedCredential,
        tenant_id: str,
        *,
        metadata: RequestMetadata | None = None,
    ) -> tuple[Role, bool]:
        tenant = self.get(session, _required_tenant_id(tenant_id))
        role, joined = self.resolver.join(session, credential, tenant)
        if not joined:
            return role, False

        try:
            session.commit()
        except IntegrityError as exc:
            # a concurrent join landed between the lookup and the insert
            session.rollback()
            existing = self.resolver.current_role(session, credential.principal_id, tenant.id)
            if existing is None:
                raise ConflictError(f"could not join tenant '{tenant.id}'", code="membership_conflict") from exc
            return existing, False

        self.audit_log.record(
            audit.JOIN_WORKSPACE,
            actor_id=credential.principal_id,
            tenant_id=tenant.id,
            resource_type="tenant",
            resource_id=tenant.id,
            details={"role": role.value},
            metadata=metadata,
        )
        return role, True

    def switch(
        self,
        session: Session,
        credential: VerifiedCredential,
        tenant_id: str,
        *,
        metadata: RequestMetadata | None = None,
    ) -> Role:
        tenant = self.get(session, _required_tenant_id(tenant_id))
        role = self.resolver.resolve(session, credential, tenant.id)
        self.audit_log.record(
            audit.SWITCH_WORKSPACE,
            actor_id=credential.principal_id,
            tenant_id=tenant.id,
            resource_type="tenant",
            resource_id=tenant.id,
            metadata=metadata,
        )
        return role

    def members(self, session: Session, ctx: AuthContext) -> list[tuple[Principal, Role]]:
        return self.resolver.list_members(session, ctx.tenant_id)


class PrincipalAdminService(_TenancyServiceBase):
    """Account-wide administration.

    An account spans every workspace, so these operations are gated on the
    caller's global role rather than their role in the current workspace.
    """

    def list_principals(self, session: Session, ctx: AuthContext) -> list[Principal]:
        if not ctx.global_role.is_privileged:
            raise ForbiddenError("global admin or owner role required")
        return list(session.scalars(select(Principal).order_by(func.lower(Principal.email).asc())).all())

    def toggle_active(self, session: Session, ctx: AuthContext, principal_id: str) -> Principal:
        if not ctx.global_role.is_privileged:
            raise ForbiddenError("global admin or owner role required")
        if principal_id == ctx.principal_id:
            raise ForbiddenError("cannot change your own active state")

        target = session.get(Principal, principal_id)
        if target is None:
            raise NotFoundError(f"principal '{principal_id}' not found")

        if ctx.global_role is Role.ADMIN and _owns_anything(session, target):
            raise ForbiddenError("admins cannot change the active state of an owner")

        target.active = not target.active
        target.updated_at = utcnow()
        session.commit()

        logger.info(
            "tenancy.principal_toggled",
            extra={"principal_id": ctx.principal_id, "target_id": target.id, "tenant_id": ctx.tenant_id},
        )
        self.audit_log.record(
            audit.TOGGLE_USER_ACTIVE,
            ctx=ctx,
            resource_type="principal",
            resource_id=target.id,
            details={"target_id": target.id, "active": target.active},
        )
        return target


def _owns_anything(session: Session, principal: Principal) -> bool:
    if principal.global_role == Role.OWNER.value:
        return True
    owned = select(Membership.tenant_id).where(
        Membership.principal_id == principal.id,
        Membership.role == Role.OWNER.value,
    )
    return session.scalar(owned.limit(1)) is not None


def _required_tenant_id(value: str | None) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise InvalidArgumentError("tenant_id is required", code="tenant_id_required")
    return cleaned
