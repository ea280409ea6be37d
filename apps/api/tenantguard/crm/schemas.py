from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import ClassVar, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator

RecordT = TypeVar("RecordT")


class RecordRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    created_by: str
    created_at: datetime
    updated_at: datetime


class RecordUpdate(BaseModel):
    # columns that may be left out of a patch but never cleared
    required_fields: ClassVar[tuple[str, ...]] = ()

    @model_validator(mode="after")
    def reject_cleared_required_fields(self) -> "RecordUpdate":
        cleared = [name for name in self.required_fields if name in self.model_fields_set and getattr(self, name) is None]
        if cleared:
            raise ValueError(f"fields cannot be null: {', '.join(cleared)}")
        return self


class LeadCreate(BaseModel):
    name: str = Field(min_length=1)
    company: str | None = None
    email: str | None = None
    phone: str | None = None
    status: str = "new"
    source: str | None = None


class LeadUpdate(RecordUpdate):
    required_fields: ClassVar[tuple[str, ...]] = ("name", "status")

    name: str | None = Field(default=None, min_length=1)
    company: str | None = None
    email: str | None = None
    phone: str | None = None
    status: str | None = None
    source: str | None = None


class LeadRead(RecordRead):
    name: str
    company: str | None
    email: str | None
    phone: str | None
    status: str
    source: str | None


class ContactCreate(BaseModel):
    first_name: str = Field(min_length=1)
    last_name: str | None = None
    email: str | None = None
    phone: str | None = None
    account_id: str | None = None


class ContactUpdate(RecordUpdate):
    required_fields: ClassVar[tuple[str, ...]] = ("first_name",)

    first_name: str | None = Field(default=None, min_length=1)
    last_name: str | None = None
    email: str | None = None
    phone: str | None = None
    account_id: str | None = None


class ContactRead(RecordRead):
    first_name: str
    last_name: str | None
    email: str | None
    phone: str | None
    account_id: str | None


class AccountCreate(BaseModel):
    name: str = Field(min_length=1)
    industry: str | None = None
    website: str | None = None


class AccountUpdate(RecordUpdate):
    required_fields: ClassVar[tuple[str, ...]] = ("name",)

    name: str | None = Field(default=None, min_length=1)
    industry: str | None = None
    website: str | None = None


class AccountRead(RecordRead):
    name: str
    industry: str | None
    website: str | None


class DealCreate(BaseModel):
    title: str = Field(min_length=1)
    amount: Decimal | None = Field(default=None, ge=0)
    stage: str = "prospecting"
    account_id: str | None = None
    contact_id: str | None = None


class DealUpdate(RecordUpdate):
    required_fields: ClassVar[tuple[str, ...]] = ("title", "stage")

    title: str | None = Field(default=None, min_length=1)
    amount: Decimal | None = Field(default=None, ge=0)
    stage: str | None = None
    account_id: str | None = None
    contact_id: str | None = None


class DealRead(RecordRead):
    title: str
    amount: Decimal | None
    stage: str
    account_id: str | None
    contact_id: str | None


class Page(BaseModel, Generic[RecordT]):
    items: list[RecordT]
    next_cursor: str | None
    limit: int
