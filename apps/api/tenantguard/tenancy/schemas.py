from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from tenantguard.platform.security.roles import Role


class TenantCreate(BaseModel):
    id: str
    name: str = Field(min_length=1, max_length=200)


class TenantRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    created_by: str | None
    created_at: datetime
    role: Role | None = None


class TenantDiscoverRead(BaseModel):
    id: str
    name: str
    created_by: str | None
    is_creator: bool
    role: Role | None


class TenantListResponse(BaseModel):
    items: list[TenantRead]


class TenantDiscoverResponse(BaseModel):
    items: list[TenantDiscoverRead]


class CurrentTenantRead(BaseModel):
    tenant_id: str
    name: str
    role: Role
    global_role: Role
    authz_model: str


class TenantRef(BaseModel):
    tenant_id: str


class JoinResponse(BaseModel):
    tenant_id: str
    role: Role
    joined: bool


class SwitchResponse(BaseModel):
    active_tenant: str
    role: Role


class MemberRead(BaseModel):
    principal_id: str
    email: str
    name: str | None
    role: Role
    active: bool


class MemberListResponse(BaseModel):
    items: list[MemberRead]


class RoleChangeRequest(BaseModel):
    role: str


class RoleChangeResponse(BaseModel):
    principal_id: str
    tenant_id: str
    previous_role: Role
    new_role: Role
    scope: str


class PrincipalRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    name: str | None
    global_role: Role
    active: bool
    created_at: datetime


class PrincipalListResponse(BaseModel):
    items: list[PrincipalRead]
