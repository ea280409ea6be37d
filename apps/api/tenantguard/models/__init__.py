from tenantguard.crm.models import CRMAccount, CRMContact, CRMDeal, CRMLead
from tenantguard.models.audit import AuditEntry
from tenantguard.tenancy.models import Membership, Principal, Tenant

__all__ = [
    "AuditEntry",
    "CRMAccount",
    "CRMContact",
    "CRMDeal",
    "CRMLead",
    "Membership",
    "Principal",
    "Tenant",
]
