from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict

from tenantguard.platform.security.roles import Role


class MeRead(BaseModel):
    principal_id: str
    email: str
    global_role: Role
    tenant_id: str
    role: Role | None
    authz_model: str


class AuditEntryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    actor_id: str | None
    tenant_id: str | None
    action: str
    resource_type: str | None
    resource_id: str | None
    details: dict[str, Any]
    client_address: str | None
    user_agent: str | None
    correlation_id: str | None
    created_at: datetime


class AuditListResponse(BaseModel):
    items: list[AuditEntryRead]
