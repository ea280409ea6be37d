from __future__ import annotations

from collections.abc import Generator
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from tenantguard import audit
from tenantguard.audit import AuditLog, get_audit_log, set_audit_log
from tenantguard.core.config import get_settings
from tenantguard.core.database import Base, get_db
from tenantguard.main import app
from tenantguard.models.audit import AuditEntry
from tenantguard.platform.security.role_resolver import MembershipRoleResolver, get_role_resolver, set_role_resolver
from tenantguard.tenancy.models import Membership, Principal, Tenant

SECRET = "crm-api-secret"

RECORD_PAYLOADS = {
    "leads": {"name": "Lead One", "company": "Initech"},
    "contacts": {"first_name": "Jane", "last_name": "Doe"},
    "accounts": {"name": "Initech", "industry": "Software"},
    "deals": {"title": "Renewal", "amount": "1200.50"},
}


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


@pytest.fixture(autouse=True)
def configure_env(monkeypatch: pytest.MonkeyPatch, db_session: Session) -> Generator[None, None, None]:
    monkeypatch.setenv("JWT_SECRET", SECRET)
    monkeypatch.setenv("AUTHZ_MODEL", "membership")
    monkeypatch.setenv("DEV_AUTH_BYPASS", "false")
    monkeypatch.setenv("DEFAULT_TENANT_ID", "acme")
    get_settings.cache_clear()
    previous_resolver = get_role_resolver()
    previous_audit_log = get_audit_log()
    set_role_resolver(MembershipRoleResolver())
    set_audit_log(AuditLog(sessionmaker(bind=db_session.bind)))
    yield
    set_role_resolver(previous_resolver)
    set_audit_log(previous_audit_log)
    get_settings.cache_clear()


@pytest.fixture()
def seeded(db_session: Session) -> Session:
    db_session.add_all(
        [
            Principal(id="user-a", email="a@example.com", global_role="member"),
            Principal(id="user-b", email="b@example.com", global_role="member"),
            Principal(id="user-c", email="c@example.com", global_role="member"),
            Tenant(id="acme", name="Acme", created_by="user-c"),
            Tenant(id="globex", name="Globex", created_by="user-c"),
        ]
    )
    db_session.flush()
    db_session.add_all(
        [
            Membership(principal_id="user-a", tenant_id="acme", role="member"),
            Membership(principal_id="user-b", tenant_id="acme", role="member"),
            Membership(principal_id="user-c", tenant_id="acme", role="admin"),
            Membership(principal_id="user-c", tenant_id="globex", role="admin"),
        ]
    )
    db_session.commit()
    return db_session


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _headers(principal_id: str, tenant_id: str | None = None, *, active_tenant: str | None = None) -> dict[str, str]:
    claims: dict[str, object] = {"sub": principal_id, "exp": datetime.now(timezone.utc) + timedelta(hours=1)}
    if active_tenant is not None:
        claims["active_tenant"] = active_tenant
    headers = {"Authorization": f"Bearer {jwt.encode(claims, SECRET, algorithm='HS256')}"}
    if tenant_id is not None:
        headers["X-Tenant-Id"] = tenant_id
    return headers


def _create(client: TestClient, resource: str, principal_id: str, **overrides: object) -> dict:
    payload = {**RECORD_PAYLOADS[resource], **overrides}
    response = client.post(f"/api/crm/{resource}", json=payload, headers=_headers(principal_id))
    assert response.status_code == 201
    return response.json()


def _audit_rows(session: Session, action: str) -> list[AuditEntry]:
    return list(session.scalars(select(AuditEntry).where(AuditEntry.action == action)).all())


def test_record_access_follows_role_changes(client: TestClient, seeded: Session) -> None:
    lead = _create(client, "leads", "user-a")
    path = f"/api/crm/leads/{lead['id']}"

    assert lead["created_by"] == "user-a"
    assert lead["tenant_id"] == "acme"
    assert client.get(path, headers=_headers("user-b")).status_code == 403
    assert client.get(path, headers=_headers("user-c")).status_code == 200

    promoted = client.patch("/tenants/acme/members/user-b", json={"role": "admin"}, headers=_headers("user-c"))
    assert promoted.status_code == 200

    assert client.get(path, headers=_headers("user-b")).status_code == 200

    escalation = client.patch("/tenants/acme/members/user-c", json={"role": "owner"}, headers=_headers("user-b"))
    assert escalation.status_code == 403
    assert seeded.scalar(
        select(Membership.role).where(Membership.principal_id == "user-c", Membership.tenant_id == "acme")
    ) == "admin"

    [change] = _audit_rows(seeded, audit.CHANGE_ROLE)
    assert change.details["previous_role"] == "member"
    assert change.details["new_role"] == "admin"
    assert change.details["target_id"] == "user-b"


@pytest.mark.parametrize("resource", list(RECORD_PAYLOADS))
def test_members_only_touch_their_own_records(client: TestClient, seeded: Session, resource: str) -> None:
    record = _create(client, resource, "user-a")
    path = f"/api/crm/{resource}/{record['id']}"

    assert client.patch(path, json={}, headers=_headers("user-b")).status_code == 403
    assert client.delete(path, headers=_headers("user-b")).status_code == 403
    assert client.patch(path, json={}, headers=_headers("user-a")).status_code == 200
    assert client.delete(path, headers=_headers("user-a")).status_code == 204
    assert client.get(path, headers=_headers("user-a")).status_code == 404


def test_denied_access_is_audited(client: TestClient, seeded: Session) -> None:
    lead = _create(client, "leads", "user-a")

    client.get(f"/api/crm/leads/{lead['id']}", headers=_headers("user-b"))

    [entry] = _audit_rows(seeded, audit.FORBIDDEN_ACCESS)
    assert entry.actor_id == "user-b"
    assert entry.resource_type == "crm.lead"
    assert entry.resource_id == lead["id"]
    assert entry.details == {"operation": "read", "role": "member"}


def test_mutations_are_audited(client: TestClient, seeded: Session) -> None:
    lead = _create(client, "leads", "user-a")
    path = f"/api/crm/leads/{lead['id']}"

    updated = client.patch(path, json={"status": "qualified"}, headers=_headers("user-a"))
    client.delete(path, headers=_headers("user-a"))

    assert updated.json()["status"] == "qualified"
    assert len(_audit_rows(seeded, audit.CREATE_RECORD)) == 1
    [update] = _audit_rows(seeded, audit.UPDATE_RECORD)
    assert update.details == {"fields": ["status"]}
    assert len(_audit_rows(seeded, audit.DELETE_RECORD)) == 1


def test_payload_cannot_reassign_ownership(client: TestClient, seeded: Session) -> None:
    lead = _create(client, "leads", "user-a", created_by="user-b", tenant_id="globex")

    assert lead["created_by"] == "user-a"
    assert lead["tenant_id"] == "acme"


@pytest.mark.parametrize(
    ("resource", "field"),
    [
        ("leads", "name"),
        ("leads", "status"),
        ("contacts", "first_name"),
        ("accounts", "name"),
        ("deals", "title"),
        ("deals", "stage"),
    ],
)
def test_update_cannot_clear_required_fields(client: TestClient, seeded: Session, resource: str, field: str) -> None:
    record = _create(client, resource, "user-a")
    path = f"/api/crm/{resource}/{record['id']}"

    response = client.patch(path, json={field: None}, headers=_headers("user-a"))

    assert response.status_code == 422
    assert client.get(path, headers=_headers("user-a")).json()[field] == record[field]
    assert _audit_rows(seeded, audit.UPDATE_RECORD) == []


def test_update_may_clear_optional_fields(client: TestClient, seeded: Session) -> None:
    lead = _create(client, "leads", "user-a")

    response = client.patch(f"/api/crm/leads/{lead['id']}", json={"company": None}, headers=_headers("user-a"))

    assert response.status_code == 200
    assert response.json()["company"] is None


def test_list_applies_ownership_filter(client: TestClient, seeded: Session) -> None:
    mine = {_create(client, "accounts", "user-a")["id"] for _ in range(2)}
    theirs = _create(client, "accounts", "user-b")["id"]

    member_view = client.get("/api/crm/accounts", headers=_headers("user-a"))
    admin_view = client.get("/api/crm/accounts", headers=_headers("user-c"))

    assert {item["id"] for item in member_view.json()["items"]} == mine
    assert {item["id"] for item in admin_view.json()["items"]} == mine | {theirs}


def test_list_pages_with_cursor(client: TestClient, seeded: Session) -> None:
    created = {_create(client, "contacts", "user-a")["id"] for _ in range(5)}
    _create(client, "contacts", "user-b")

    seen: list[str] = []
    cursor: str | None = None
    pages = 0
    while True:
        params = {"limit": 2}
        if cursor is not None:
            params["cursor"] = cursor
        response = client.get("/api/crm/contacts", params=params, headers=_headers("user-a"))
        assert response.status_code == 200
        body = response.json()
        seen.extend(item["id"] for item in body["items"])
        pages += 1
        cursor = body["next_cursor"]
        if cursor is None:
            break

    assert pages == 3
    assert len(seen) == 5
    assert set(seen) == created


def test_invalid_cursor_is_rejected(client: TestClient, seeded: Session) -> None:
    response = client.get("/api/crm/deals", params={"cursor": "abc"}, headers=_headers("user-a"))

    assert response.status_code == 400
    assert response.json()["code"] == "invalid_cursor"


def test_records_are_invisible_from_other_tenants(client: TestClient, seeded: Session) -> None:
    deal = _create(client, "deals", "user-c")

    same_tenant = client.get(f"/api/crm/deals/{deal['id']}", headers=_headers("user-c", "acme"))
    other_tenant = client.get(f"/api/crm/deals/{deal['id']}", headers=_headers("user-c", "globex"))
    listing = client.get("/api/crm/deals", headers=_headers("user-c", "globex"))

    assert same_tenant.status_code == 200
    assert other_tenant.status_code == 404
    assert listing.json()["items"] == []


def test_active_tenant_claim_selects_tenant(client: TestClient, seeded: Session) -> None:
    response = client.post(
        "/api/crm/leads",
        json=RECORD_PAYLOADS["leads"],
        headers=_headers("user-c", active_tenant="globex"),
    )

    assert response.status_code == 201
    assert response.json()["tenant_id"] == "globex"


def test_non_member_tenant_is_forbidden(client: TestClient, seeded: Session) -> None:
    response = client.get("/api/crm/leads", headers=_headers("user-a", "globex"))

    assert response.status_code == 403
    assert response.json()["code"] == "forbidden_tenant"
