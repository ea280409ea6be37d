from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from tenantguard.core.database import Base
from tenantguard.tenancy.models import utcnow


def _new_id() -> str:
    return str(uuid.uuid4())


class TenantOwnedMixin:
    """Columns every business record carries; ``created_by`` never changes after insert."""

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    created_by: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class CRMLead(TenantOwnedMixin, Base):
    __tablename__ = "crm_lead"
    __resource__ = "lead"

    name: Mapped[str] = mapped_column(Text, nullable=False)
    company: Mapped[str | None] = mapped_column(Text, nullable=True)
    email: Mapped[str | None] = mapped_column(Text, nullable=True)
    phone: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="new", server_default="new")
    source: Mapped[str | None] = mapped_column(String(64), nullable=True)


class CRMContact(TenantOwnedMixin, Base):
    __tablename__ = "crm_contact"
    __resource__ = "contact"

    first_name: Mapped[str] = mapped_column(Text, nullable=False)
    last_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    email: Mapped[str | None] = mapped_column(Text, nullable=True)
    phone: Mapped[str | None] = mapped_column(Text, nullable=True)
    account_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)


class CRMAccount(TenantOwnedMixin, Base):
    __tablename__ = "crm_account"
    __resource__ = "account"

    name: Mapped[str] = mapped_column(Text, nullable=False)
    industry: Mapped[str | None] = mapped_column(String(128), nullable=True)
    website: Mapped[str | None] = mapped_column(Text, nullable=True)


class CRMDeal(TenantOwnedMixin, Base):
    __tablename__ = "crm_deal"
    __resource__ = "deal"

    title: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    stage: Mapped[str] = mapped_column(String(32), nullable=False, default="prospecting", server_default="prospecting")
    account_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    contact_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
