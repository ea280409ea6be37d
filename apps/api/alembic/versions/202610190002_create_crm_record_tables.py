"""create tenant-owned crm record tables

Revision ID: 202610190002
Revises: 202610190001
Create Date: 2026-10-19 00:00:01
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "202610190002"
down_revision: str | None = "202610190001"
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def _owned_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("created_by", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def _create_owned_indexes(table: str) -> None:
    op.create_index(op.f(f"ix_{table}_tenant_id"), table, ["tenant_id"], unique=False)
    op.create_index(op.f(f"ix_{table}_created_by"), table, ["created_by"], unique=False)


def upgrade() -> None:
    op.create_table(
        "crm_lead",
        *_owned_columns(),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("company", sa.Text(), nullable=True),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("phone", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=32), server_default="new", nullable=False),
        sa.Column("source", sa.String(length=64), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    _create_owned_indexes("crm_lead")

    op.create_table(
        "crm_contact",
        *_owned_columns(),
        sa.Column("first_name", sa.Text(), nullable=False),
        sa.Column("last_name", sa.Text(), nullable=True),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("phone", sa.Text(), nullable=True),
        sa.Column("account_id", sa.String(length=36), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    _create_owned_indexes("crm_contact")
    op.create_index(op.f("ix_crm_contact_account_id"), "crm_contact", ["account_id"], unique=False)

    op.create_table(
        "crm_account",
        *_owned_columns(),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("industry", sa.String(length=128), nullable=True),
        sa.Column("website", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    _create_owned_indexes("crm_account")

    op.create_table(
        "crm_deal",
        *_owned_columns(),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("amount", sa.Numeric(precision=14, scale=2), nullable=True),
        sa.Column("stage", sa.String(length=32), server_default="prospecting", nullable=False),
        sa.Column("account_id", sa.String(length=36), nullable=True),
        sa.Column("contact_id", sa.String(length=36), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    _create_owned_indexes("crm_deal")
    op.create_index(op.f("ix_crm_deal_account_id"), "crm_deal", ["account_id"], unique=False)


def downgrade() -> None:
    for table in ("crm_deal", "crm_account", "crm_contact", "crm_lead"):
        op.drop_table(table)
