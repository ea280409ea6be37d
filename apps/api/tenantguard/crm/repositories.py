from __future__ import annotations

from tenantguard.platform.security.repository import BaseRepository


class LeadRepository(BaseRepository):
    resource = "crm.lead"


class ContactRepository(BaseRepository):
    resource = "crm.contact"


class AccountRepository(BaseRepository):
    resource = "crm.account"


class DealRepository(BaseRepository):
    resource = "crm.deal"
