from __future__ import annotations

from collections.abc import Generator

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from tenantguard.core.config import Settings
from tenantguard.core.database import Base
from tenantguard.platform.security.credentials import CredentialClaims, VerifiedCredential
from tenantguard.platform.security.errors import ForbiddenTenantError
from tenantguard.platform.security.role_resolver import (
    GlobalRoleResolver,
    MembershipRoleResolver,
    build_role_resolver,
)
from tenantguard.platform.security.roles import Role
from tenantguard.tenancy.models import Membership, Principal, Tenant


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def seeded(db_session: Session) -> Session:
    db_session.add_all(
        [
            Principal(id="alice", email="alice@example.com", name="Alice", global_role="member"),
            Principal(id="bob", email="bob@example.com", name="Bob", global_role="admin"),
            Principal(id="root", email="Root@Example.com", name="Root", global_role="member"),
            Tenant(id="acme", name="Acme", created_by="bob"),
            Tenant(id="globex", name="Globex", created_by="alice"),
        ]
    )
    db_session.flush()
    db_session.add_all(
        [
            Membership(principal_id="alice", tenant_id="acme", role="member"),
            Membership(principal_id="bob", tenant_id="acme", role="owner"),
        ]
    )
    db_session.commit()
    return db_session


def _credential(principal_id: str, email: str, global_role: Role) -> VerifiedCredential:
    return VerifiedCredential(
        principal_id=principal_id,
        email=email,
        global_role=global_role,
        claims=CredentialClaims(subject=principal_id),
    )


ALICE = _credential("alice", "alice@example.com", Role.MEMBER)
BOB = _credential("bob", "bob@example.com", Role.ADMIN)
ROOT = _credential("root", "root@example.com", Role.MEMBER)


def test_build_role_resolver_follows_settings() -> None:
    assert isinstance(build_role_resolver(Settings(authz_model="global")), GlobalRoleResolver)
    assert isinstance(build_role_resolver(Settings(authz_model="membership")), MembershipRoleResolver)


def test_global_resolver_uses_global_role_everywhere(seeded: Session) -> None:
    resolver = GlobalRoleResolver()

    assert resolver.resolve(seeded, ALICE, "acme") is Role.MEMBER
    assert resolver.resolve(seeded, BOB, "acme") is Role.ADMIN
    # tenants only scope data under this model
    assert resolver.resolve(seeded, BOB, "globex") is Role.ADMIN


def test_global_resolver_assigns_global_role(seeded: Session) -> None:
    resolver = GlobalRoleResolver()

    resolver.assign_role(seeded, "alice", "acme", Role.ADMIN)
    seeded.commit()

    assert resolver.current_role(seeded, "alice", "globex") is Role.ADMIN
    assert resolver.current_role(seeded, "nobody", "acme") is None


def test_membership_resolver_returns_membership_role(seeded: Session) -> None:
    resolver = MembershipRoleResolver()

    assert resolver.resolve(seeded, ALICE, "acme") is Role.MEMBER
    # global admin, but the membership says owner
    assert resolver.resolve(seeded, BOB, "acme") is Role.OWNER


def test_membership_resolver_rejects_non_members(seeded: Session) -> None:
    resolver = MembershipRoleResolver()

    with pytest.raises(ForbiddenTenantError) as exc_info:
        resolver.resolve(seeded, BOB, "globex")
    assert exc_info.value.code == "forbidden_tenant"


def test_membership_resolver_role_agnostic_returns_none(seeded: Session) -> None:
    resolver = MembershipRoleResolver()

    assert resolver.resolve(seeded, BOB, "globex", role_agnostic=True) is None


def test_super_principal_is_owner_everywhere(seeded: Session) -> None:
    resolver = MembershipRoleResolver(super_principal_email="root@example.com")

    assert resolver.resolve(seeded, ROOT, "acme") is Role.OWNER
    assert resolver.resolve(seeded, ROOT, "globex") is Role.OWNER


def test_tenant_creation_grants_owner_to_creator_and_super_principal(seeded: Session) -> None:
    resolver = MembershipRoleResolver(super_principal_email="root@example.com")
    tenant = Tenant(id="initech", name="Initech", created_by="alice")
    seeded.add(tenant)
    seeded.flush()

    resolver.on_tenant_created(seeded, tenant, ALICE)
    seeded.commit()

    rows = seeded.execute(
        select(Membership.principal_id, Membership.role).where(Membership.tenant_id == "initech")
    ).all()
    assert sorted(tuple(row) for row in rows) == [("alice", "owner"), ("root", "owner")]


def test_join_adds_member_once(seeded: Session) -> None:
    resolver = MembershipRoleResolver()
    tenant = seeded.get(Tenant, "acme")
    carol = _credential("carol", "carol@example.com", Role.MEMBER)
    seeded.add(Principal(id="carol", email="carol@example.com"))
    seeded.commit()

    assert resolver.join(seeded, carol, tenant) == (Role.MEMBER, True)
    seeded.commit()
    assert resolver.join(seeded, carol, tenant) == (Role.MEMBER, False)


def test_join_by_creator_grants_owner(seeded: Session) -> None:
    resolver = MembershipRoleResolver()
    tenant = seeded.get(Tenant, "globex")

    assert resolver.join(seeded, ALICE, tenant) == (Role.OWNER, True)


def test_members_are_listed_owner_first(seeded: Session) -> None:
    resolver = MembershipRoleResolver()

    members = resolver.list_members(seeded, "acme")

    assert [(principal.id, role) for principal, role in members] == [("bob", Role.OWNER), ("alice", Role.MEMBER)]


def test_visible_tenants_differ_by_model(seeded: Session) -> None:
    membership = MembershipRoleResolver()
    global_model = GlobalRoleResolver()

    assert [tenant.id for tenant, _ in membership.visible_tenants(seeded, ALICE)] == ["acme"]
    # global members see the tenants they created; admins see all
    assert [tenant.id for tenant, _ in global_model.visible_tenants(seeded, ALICE)] == ["globex"]
    assert [tenant.id for tenant, _ in global_model.visible_tenants(seeded, BOB)] == ["acme", "globex"]
