"""seed the reserved workspace and the development principal

Revision ID: 202610190003
Revises: 202610190002
Create Date: 2026-10-19 00:20:00
"""

from collections.abc import Sequence

from alembic import op
from sqlalchemy.orm import Session

from tenantguard.tenancy.seed import seed_reserved_tenant


revision: str = "202610190003"
down_revision: str | None = "202610190002"
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    session = Session(bind=op.get_bind())
    try:
        seed_reserved_tenant(session)
    finally:
        session.close()


def downgrade() -> None:
    # seeded rows may already own data; they are left in place
    pass
