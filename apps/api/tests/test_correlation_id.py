from __future__ import annotations

import uuid
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

SECRET = "correlation-secret"


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
            Principal(id="user-1", email="user-1@example.com", global_role="member"),
            Tenant(id="acme", name="Acme", created_by="user-1"),
        ]
    )
    db_session.flush()
    db_session.add(Membership(principal_id="user-1", tenant_id="acme", role="owner"))
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


def _headers(principal_id: str = "user-1", **extra: str) -> dict[str, str]:
    token = jwt.encode(
        {"sub": principal_id, "exp": datetime.now(timezone.utc) + timedelta(hours=1)},
        SECRET,
        algorithm="HS256",
    )
    return {"Authorization": f"Bearer {token}", **extra}


def test_generated_correlation_id_returned_in_header_and_error_envelope(client: TestClient, seeded: Session) -> None:
    response = client.get(f"/api/crm/accounts/{uuid.uuid4()}", headers=_headers())
    assert response.status_code == 404
    header_value = response.headers.get("x-correlation-id")
    assert header_value
    body = response.json()
    assert body["correlation_id"] == header_value
    assert body["code"] == "not_found"


def test_correlation_id_respected_when_provided(client: TestClient, seeded: Session) -> None:
    response = client.get(
        f"/api/crm/accounts/{uuid.uuid4()}",
        headers=_headers(**{"X-Correlation-Id": "abc-123"}),
    )
    assert response.status_code == 404
    assert response.headers.get("x-correlation-id") == "abc-123"
    assert response.headers.get("x-request-id") == "abc-123"
    assert response.json()["correlation_id"] == "abc-123"


def test_audit_uses_request_correlation_id_and_client_details(client: TestClient, seeded: Session) -> None:
    response = client.post(
        "/api/crm/accounts",
        json={"name": "Corr Account"},
        headers=_headers(
            **{
                "X-Correlation-Id": "corr-audit-1",
                "X-Forwarded-For": "203.0.113.7, 10.0.0.1",
                "User-Agent": "corr-agent/1.0",
            }
        ),
    )
    assert response.status_code == 201

    entry = seeded.scalar(select(AuditEntry).where(AuditEntry.action == audit.CREATE_RECORD))
    assert entry is not None
    assert entry.correlation_id == "corr-audit-1"
    assert entry.client_address == "203.0.113.7"
    assert entry.user_agent == "corr-agent/1.0"


def test_unauthorized_response_includes_correlation_id(client: TestClient, seeded: Session) -> None:
    response = client.get("/api/crm/accounts", headers={"X-Correlation-Id": "corr-401"})

    assert response.status_code == 401
    assert response.json()["correlation_id"] == "corr-401"
    assert response.headers.get("x-correlation-id") == "corr-401"
