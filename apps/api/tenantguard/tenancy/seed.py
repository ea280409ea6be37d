from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from tenantguard.core.config import Settings, get_settings
from tenantguard.platform.security.roles import Role
from tenantguard.tenancy.models import Membership, Principal, Tenant

logger = logging.getLogger("tenantguard.tenancy")

DEV_PRINCIPAL_EMAIL = "admin@demo.local"


def seed_reserved_tenant(session: Session, settings: Settings | None = None) -> Tenant:
    """Ensure the reserved workspace exists, plus the development principal outside production.

    Safe to run repeatedly; existing rows are left untouched.
    """

    settings = settings or get_settings()
    with_dev_principal = not settings.is_production

    tenant = session.get(Tenant, settings.reserved_tenant_id)
    if tenant is None:
        tenant = Tenant(
            id=settings.reserved_tenant_id,
            name="Demo",
            created_by=settings.dev_principal_id if with_dev_principal else None,
        )
        session.add(tenant)

    if with_dev_principal:
        _seed_dev_principal(session, settings, tenant)

    session.commit()
    logger.info("tenancy.seeded", extra={"tenant_id": tenant.id})
    return tenant


def _seed_dev_principal(session: Session, settings: Settings, tenant: Tenant) -> None:
    principal = session.get(Principal, settings.dev_principal_id)
    if principal is None:
        principal = Principal(
            id=settings.dev_principal_id,
            email=DEV_PRINCIPAL_EMAIL,
            name="Demo Admin",
            global_role=Role.OWNER.value,
        )
        session.add(principal)

    session.flush()
    if session.get(Membership, (principal.id, tenant.id)) is None:
        session.add(Membership(principal_id=principal.id, tenant_id=tenant.id, role=Role.OWNER.value))
