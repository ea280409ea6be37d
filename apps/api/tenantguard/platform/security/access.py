from __future__ import annotations

from dataclasses import dataclass
from typing import Any, TypeVar

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

from tenantguard.metrics import observe_authz_decision
from tenantguard.platform.security.context import AuthContext
from tenantguard.platform.security.errors import ForbiddenError, NotFoundError
from tenantguard.platform.security.roles import Role


RecordT = TypeVar("RecordT")


def decide(role: Role, principal_id: str, owner_id: str | None) -> bool:
    """Owner and admin may act on any record in the tenant; members only on their own."""

    if role.is_privileged:
        return True
    return owner_id is not None and owner_id == principal_id


@dataclass(frozen=True, slots=True)
class OwnershipFilter:
    """Row restriction for list queries. ``owner_id`` of ``None`` means unrestricted."""

    owner_id: str | None = None

    @classmethod
    def unrestricted(cls) -> OwnershipFilter:
        return cls(owner_id=None)

    @classmethod
    def owned_by(cls, principal_id: str) -> OwnershipFilter:
        return cls(owner_id=principal_id)

    @property
    def is_unrestricted(self) -> bool:
        return self.owner_id is None


def ownership_filter(ctx: AuthContext) -> OwnershipFilter:
    if ctx.role.is_privileged:
        return OwnershipFilter.unrestricted()
    return OwnershipFilter.owned_by(ctx.principal_id)


def apply_ownership_filter(query: Select[Any], restriction: OwnershipFilter) -> Select[Any]:
    """Conjoin ``created_by = :principal`` on every selected entity that tracks a creator.

    Must be applied while the query is built, before offset/limit. Applying the
    same filter twice selects the same rows.
    """

    if restriction.is_unrestricted:
        return query

    for description in query.column_descriptions:
        model = description.get("entity")
        if model is None or not hasattr(model, "created_by"):
            continue
        query = query.where(getattr(model, "created_by") == restriction.owner_id)
    return query


def apply_tenant_scope(query: Select[Any], tenant_id: str) -> Select[Any]:
    for description in query.column_descriptions:
        model = description.get("entity")
        if model is None or not hasattr(model, "tenant_id"):
            continue
        query = query.where(getattr(model, "tenant_id") == tenant_id)
    return query


class AccessDecisionEngine:
    """Record-level read/write/delete decisions inside the request's tenant.

    A record that does not exist, or exists in another tenant, is reported as
    not found. A record that exists but is not owned by a member is forbidden.
    """

    def can_read(self, session: Session, ctx: AuthContext, model: type[RecordT], resource_id: str) -> RecordT:
        return self._check(session, ctx, model, resource_id, operation="read")

    def can_write(
        self,
        session: Session,
        ctx: AuthContext,
        model: type[RecordT],
        resource_id: str | None = None,
    ) -> RecordT | None:
        if resource_id is None:
            # creation: every role may create, the creator becomes the owner
            observe_authz_decision("create", True)
            return None
        return self._check(session, ctx, model, resource_id, operation="write")

    def can_delete(self, session: Session, ctx: AuthContext, model: type[RecordT], resource_id: str) -> RecordT:
        return self._check(session, ctx, model, resource_id, operation="delete")

    def _check(
        self,
        session: Session,
        ctx: AuthContext,
        model: type[RecordT],
        resource_id: str,
        *,
        operation: str,
    ) -> RecordT:
        record = session.scalar(
            select(model).where(
                getattr(model, "id") == resource_id,
                getattr(model, "tenant_id") == ctx.tenant_id,
            )
        )
        if record is None:
            raise NotFoundError(f"{_resource_name(model)} not found")

        allowed = decide(ctx.role, ctx.principal_id, getattr(record, "created_by"))
        observe_authz_decision(operation, allowed)
        if not allowed:
            raise ForbiddenError(
                f"not permitted to {operation} this {_resource_name(model)}",
                details={"resource": _resource_name(model), "resource_id": resource_id, "operation": operation},
            )
        return record


def _resource_name(model: type[Any]) -> str:
    return getattr(model, "__resource__", None) or getattr(model, "__tablename__", model.__name__)
