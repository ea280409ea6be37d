from __future__ import annotations

from threading import Lock
from typing import Protocol

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from tenantguard.core.config import Settings
from tenantguard.platform.security.credentials import VerifiedCredential
from tenantguard.platform.security.errors import ForbiddenTenantError
from tenantguard.platform.security.roles import Role, parse_role
from tenantguard.tenancy.models import Membership, Principal, Tenant, utcnow


class RoleResolver(Protocol):
    """Pluggable authorization model.

    Exactly one implementation is installed at startup. Besides computing the
    effective role it owns every read and write of the role store, so callers
    never need to know which model is active.
    """

    scope: str

    def resolve(
        self,
        session: Session,
        principal: VerifiedCredential,
        tenant_id: str,
        *,
        role_agnostic: bool = False,
    ) -> Role | None:
        ...

    def current_role(self, session: Session, principal_id: str, tenant_id: str) -> Role | None:
        ...

    def assign_role(self, session: Session, principal_id: str, tenant_id: str, role: Role) -> None:
        ...

    def on_tenant_created(self, session: Session, tenant: Tenant, creator: VerifiedCredential) -> None:
        ...

    def join(self, session: Session, principal: VerifiedCredential, tenant: Tenant) -> tuple[Role, bool]:
        ...

    def visible_tenants(self, session: Session, principal: VerifiedCredential) -> list[tuple[Tenant, Role | None]]:
        ...

    def list_members(self, session: Session, tenant_id: str) -> list[tuple[Principal, Role]]:
        ...


def _by_rank(rows: list[tuple[Principal, Role]]) -> list[tuple[Principal, Role]]:
    return sorted(rows, key=lambda row: (row[1].rank, (row[0].name or row[0].email).lower()))


class GlobalRoleResolver:
    """The principal's global role is authoritative in every tenant.

    Tenants only scope data; the membership table is never consulted.
    """

    scope = "global"

    def resolve(
        self,
        session: Session,
        principal: VerifiedCredential,
        tenant_id: str,
        *,
        role_agnostic: bool = False,
    ) -> Role | None:
        return principal.global_role

    def current_role(self, session: Session, principal_id: str, tenant_id: str) -> Role | None:
        stored = session.scalar(select(Principal.global_role).where(Principal.id == principal_id))
        return parse_role(stored) if stored is not None else None

    def assign_role(self, session: Session, principal_id: str, tenant_id: str, role: Role) -> None:
        session.execute(
            update(Principal)
            .where(Principal.id == principal_id)
            .values(global_role=role.value, updated_at=utcnow())
        )

    def on_tenant_created(self, session: Session, tenant: Tenant, creator: VerifiedCredential) -> None:
        return None

    def join(self, session: Session, principal: VerifiedCredential, tenant: Tenant) -> tuple[Role, bool]:
        return principal.global_role, False

    def visible_tenants(self, session: Session, principal: VerifiedCredential) -> list[tuple[Tenant, Role | None]]:
        stmt = select(Tenant)
        if not principal.global_role.is_privileged:
            stmt = stmt.where(Tenant.created_by == principal.principal_id)
        tenants = session.scalars(stmt.order_by(func.lower(Tenant.name).asc(), Tenant.id.asc())).all()
        return [(tenant, principal.global_role) for tenant in tenants]

    def list_members(self, session: Session, tenant_id: str) -> list[tuple[Principal, Role]]:
        principals = session.scalars(select(Principal).where(Principal.active.is_(True))).all()
        return _by_rank([(principal, parse_role(principal.global_role)) for principal in principals])


class MembershipRoleResolver:
    """Per-tenant membership roles govern access; the global role only gates workspace lifecycle.

    The configured super principal resolves to owner everywhere so no tenant is
    ever left without a reachable owner.
    """

    scope = "tenant"

    def __init__(self, super_principal_email: str | None = None) -> None:
        self._super_principal_email = super_principal_email.strip().lower() if super_principal_email else None

    def is_super_principal(self, email: str | None) -> bool:
        return self._super_principal_email is not None and (email or "").strip().lower() == self._super_principal_email

    def resolve(
        self,
        session: Session,
        principal: VerifiedCredential,
        tenant_id: str,
        *,
        role_agnostic: bool = False,
    ) -> Role | None:
        if self.is_super_principal(principal.email):
            return Role.OWNER

        role = self.current_role(session, principal.principal_id, tenant_id)
        if role is None and not role_agnostic:
            raise ForbiddenTenantError(f"not a member of tenant '{tenant_id}'")
        return role

    def current_role(self, session: Session, principal_id: str, tenant_id: str) -> Role | None:
        stored = session.scalar(
            select(Membership.role).where(Membership.principal_id == principal_id, Membership.tenant_id == tenant_id)
        )
        return parse_role(stored) if stored is not None else None

    def assign_role(self, session: Session, principal_id: str, tenant_id: str, role: Role) -> None:
        session.execute(
            update(Membership)
            .where(Membership.principal_id == principal_id, Membership.tenant_id == tenant_id)
            .values(role=role.value, updated_at=utcnow())
        )

    def on_tenant_created(self, session: Session, tenant: Tenant, creator: VerifiedCredential) -> None:
        session.add(Membership(principal_id=creator.principal_id, tenant_id=tenant.id, role=Role.OWNER.value))
        if self._super_principal_email is None or self.is_super_principal(creator.email):
            return

        super_principal_id = session.scalar(
            select(Principal.id).where(func.lower(Principal.email) == self._super_principal_email)
        )
        if super_principal_id is not None and super_principal_id != creator.principal_id:
            session.add(Membership(principal_id=super_principal_id, tenant_id=tenant.id, role=Role.OWNER.value))

    def join(self, session: Session, principal: VerifiedCredential, tenant: Tenant) -> tuple[Role, bool]:
        existing = self.current_role(session, principal.principal_id, tenant.id)
        if existing is not None:
            return existing, False

        role = Role.OWNER if tenant.created_by == principal.principal_id else Role.MEMBER
        session.add(Membership(principal_id=principal.principal_id, tenant_id=tenant.id, role=role.value))
        return role, True

    def visible_tenants(self, session: Session, principal: VerifiedCredential) -> list[tuple[Tenant, Role | None]]:
        rows = session.execute(
            select(Tenant, Membership.role)
            .join(Membership, Membership.tenant_id == Tenant.id)
            .where(Membership.principal_id == principal.principal_id)
            .order_by(func.lower(Tenant.name).asc(), Tenant.id.asc())
        ).all()
        return [(tenant, parse_role(role)) for tenant, role in rows]

    def list_members(self, session: Session, tenant_id: str) -> list[tuple[Principal, Role]]:
        rows = session.execute(
            select(Principal, Membership.role)
            .join(Membership, Membership.principal_id == Principal.id)
            .where(Membership.tenant_id == tenant_id)
        ).all()
        return _by_rank([(principal, parse_role(role)) for principal, role in rows])


def build_role_resolver(settings: Settings) -> RoleResolver:
    if settings.authz_model == "global":
        return GlobalRoleResolver()
    return MembershipRoleResolver(super_principal_email=settings.super_principal_email)


_ROLE_RESOLVER: RoleResolver = MembershipRoleResolver()
_ROLE_RESOLVER_LOCK = Lock()


def get_role_resolver() -> RoleResolver:
    """Get the authorization model installed at startup."""

    return _ROLE_RESOLVER


def set_role_resolver(resolver: RoleResolver) -> None:
    """Install the authorization model; called once during application startup."""

    global _ROLE_RESOLVER
    with _ROLE_RESOLVER_LOCK:
        _ROLE_RESOLVER = resolver
