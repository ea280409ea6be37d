from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Generic, TypeVar

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.orm import Session

from tenantguard import audit
from tenantguard.audit import AuditLog
from tenantguard.crm.models import CRMAccount, CRMContact, CRMDeal, CRMLead
from tenantguard.crm.repositories import AccountRepository, ContactRepository, DealRepository, LeadRepository
from tenantguard.platform.security.access import AccessDecisionEngine
from tenantguard.platform.security.context import AuthContext
from tenantguard.platform.security.errors import ForbiddenError, InvalidArgumentError
from tenantguard.platform.security.repository import BaseRepository

logger = logging.getLogger("tenantguard.crm")

ModelT = TypeVar("ModelT", CRMLead, CRMContact, CRMAccount, CRMDeal)

# never writable through a payload
_PROTECTED_FIELDS = frozenset({"id", "tenant_id", "created_by", "created_at", "updated_at"})


def decode_cursor(cursor: str | None) -> int:
    if cursor is None or cursor == "":
        return 0
    try:
        offset = int(cursor)
    except ValueError as exc:
        raise InvalidArgumentError("invalid cursor", code="invalid_cursor") from exc
    if offset < 0:
        raise InvalidArgumentError("invalid cursor", code="invalid_cursor")
    return offset


class RecordService(Generic[ModelT]):
    """Tenant-scoped CRUD for one business record type, guarded by the access engine."""

    def __init__(
        self,
        model: type[ModelT],
        repository: BaseRepository,
        *,
        engine: AccessDecisionEngine | None = None,
        audit_log: AuditLog | None = None,
    ) -> None:
        self.model = model
        self.repository = repository
        self.engine = engine or AccessDecisionEngine()
        self._audit_log = audit_log

    @property
    def audit_log(self) -> AuditLog:
        return self._audit_log or audit.get_audit_log()

    @property
    def resource(self) -> str:
        return self.repository.resource

    def list_records(self, session: Session, ctx: AuthContext, *, cursor: str | None, limit: int) -> tuple[list[ModelT], str | None]:
        offset = decode_cursor(cursor)
        query = self.repository.apply_scope_query(select(self.model), ctx)
        query = query.order_by(self.model.created_at.desc(), self.model.id.asc())
        # one extra row tells whether another page exists
        rows = list(session.scalars(self.repository.apply_page(query, offset=offset, limit=limit + 1)).all())
        next_cursor = str(offset + limit) if len(rows) > limit else None
        return rows[:limit], next_cursor

    def get(self, session: Session, ctx: AuthContext, record_id: str) -> ModelT:
        with self._denials_audited(ctx, record_id, "read"):
            return self.engine.can_read(session, ctx, self.model, record_id)

    def create(self, session: Session, ctx: AuthContext, dto: BaseModel) -> ModelT:
        self.engine.can_write(session, ctx, self.model)
        record = self.model(
            **_writable(dto.model_dump()),
            tenant_id=ctx.tenant_id,
            created_by=ctx.principal_id,
        )
        session.add(record)
        session.commit()
        session.refresh(record)

        self.audit_log.record(
            audit.CREATE_RECORD,
            ctx=ctx,
            resource_type=self.resource,
            resource_id=record.id,
        )
        return record

    def update(self, session: Session, ctx: AuthContext, record_id: str, dto: BaseModel) -> ModelT:
        with self._denials_audited(ctx, record_id, "write"):
            record = self.engine.can_write(session, ctx, self.model, record_id)

        changes = _writable(dto.model_dump(exclude_unset=True))
        for field_name, value in changes.items():
            setattr(record, field_name, value)
        session.commit()
        session.refresh(record)

        self.audit_log.record(
            audit.UPDATE_RECORD,
            ctx=ctx,
            resource_type=self.resource,
            resource_id=record_id,
            details={"fields": sorted(changes)},
        )
        return record

    def delete(self, session: Session, ctx: AuthContext, record_id: str) -> None:
        with self._denials_audited(ctx, record_id, "delete"):
            record = self.engine.can_delete(session, ctx, self.model, record_id)

        session.delete(record)
        session.commit()

        self.audit_log.record(
            audit.DELETE_RECORD,
            ctx=ctx,
            resource_type=self.resource,
            resource_id=record_id,
        )

    @contextmanager
    def _denials_audited(self, ctx: AuthContext, record_id: str, operation: str) -> Iterator[None]:
        try:
            yield
        except ForbiddenError:
            logger.info(
                "crm.access_denied",
                extra={
                    "principal_id": ctx.principal_id,
                    "tenant_id": ctx.tenant_id,
                    "resource": self.resource,
                    "resource_id": record_id,
                    "operation": operation,
                },
            )
            self.audit_log.record(
                audit.FORBIDDEN_ACCESS,
                ctx=ctx,
                resource_type=self.resource,
                resource_id=record_id,
                details={"operation": operation, "role": ctx.role.value},
            )
            raise


def _writable(payload: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in payload.items() if key not in _PROTECTED_FIELDS}


lead_service = RecordService(CRMLead, LeadRepository())
contact_service = RecordService(CRMContact, ContactRepository())
account_service = RecordService(CRMAccount, AccountRepository())
deal_service = RecordService(CRMDeal, DealRepository())
