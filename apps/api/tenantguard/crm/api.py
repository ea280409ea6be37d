from typing import Any

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from tenantguard.core.auth import get_auth_context
from tenantguard.core.database import get_db
from tenantguard.crm.schemas import (
    AccountCreate,
    AccountRead,
    AccountUpdate,
    ContactCreate,
    ContactRead,
    ContactUpdate,
    DealCreate,
    DealRead,
    DealUpdate,
    LeadCreate,
    LeadRead,
    LeadUpdate,
    Page,
)
from tenantguard.crm.service import RecordService, account_service, contact_service, deal_service, lead_service
from tenantguard.platform.security.context import AuthContext


def build_record_router(
    *,
    path: str,
    tag: str,
    service: RecordService[Any],
    create_schema: type[BaseModel],
    update_schema: type[BaseModel],
    read_schema: type[BaseModel],
) -> APIRouter:
    """List/create/read/update/delete routes for one record type under ``/api/crm/{path}``."""

    router = APIRouter(prefix=f"/api/crm/{path}", tags=[tag])
    page_schema = Page[read_schema]  # type: ignore[valid-type]

    @router.get("", response_model=page_schema)
    def list_records(
        cursor: str | None = Query(default=None),
        limit: int = Query(default=50, ge=1, le=200),
        db: Session = Depends(get_db),
        ctx: AuthContext = Depends(get_auth_context),
    ) -> Any:
        rows, next_cursor = service.list_records(db, ctx, cursor=cursor, limit=limit)
        return page_schema(
            items=[read_schema.model_validate(row) for row in rows],
            next_cursor=next_cursor,
            limit=limit,
        )

    @router.post("", response_model=read_schema, status_code=status.HTTP_201_CREATED)
    def create_record(
        dto: create_schema,  # type: ignore[valid-type]
        db: Session = Depends(get_db),
        ctx: AuthContext = Depends(get_auth_context),
    ) -> Any:
        return read_schema.model_validate(service.create(db, ctx, dto))

    @router.get("/{record_id}", response_model=read_schema)
    def get_record(
        record_id: str,
        db: Session = Depends(get_db),
        ctx: AuthContext = Depends(get_auth_context),
    ) -> Any:
        return read_schema.model_validate(service.get(db, ctx, record_id))

    @router.patch("/{record_id}", response_model=read_schema)
    def update_record(
        record_id: str,
        dto: update_schema,  # type: ignore[valid-type]
        db: Session = Depends(get_db),
        ctx: AuthContext = Depends(get_auth_context),
    ) -> Any:
        return read_schema.model_validate(service.update(db, ctx, record_id, dto))

    @router.delete("/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
    def delete_record(
        record_id: str,
        db: Session = Depends(get_db),
        ctx: AuthContext = Depends(get_auth_context),
    ) -> Response:
        service.delete(db, ctx, record_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return router


leads_router = build_record_router(
    path="leads",
    tag="crm.leads",
    service=lead_service,
    create_schema=LeadCreate,
    update_schema=LeadUpdate,
    read_schema=LeadRead,
)
contacts_router = build_record_router(
    path="contacts",
    tag="crm.contacts",
    service=contact_service,
    create_schema=ContactCreate,
    update_schema=ContactUpdate,
    read_schema=ContactRead,
)
accounts_router = build_record_router(
    path="accounts",
    tag="crm.accounts",
    service=account_service,
    create_schema=AccountCreate,
    update_schema=AccountUpdate,
    read_schema=AccountRead,
)
deals_router = build_record_router(
    path="deals",
    tag="crm.deals",
    service=deal_service,
    create_schema=DealCreate,
    update_schema=DealUpdate,
    read_schema=DealRead,
)
