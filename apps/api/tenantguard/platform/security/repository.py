from __future__ import annotations

from typing import Any

from sqlalchemy.sql import Select

from tenantguard.platform.security.access import apply_ownership_filter, apply_tenant_scope, ownership_filter
from tenantguard.platform.security.context import AuthContext


class BaseRepository:
    resource = ""

    def apply_scope_query(self, query: Select[Any], ctx: AuthContext) -> Select[Any]:
        scoped = apply_tenant_scope(query, ctx.tenant_id)
        return apply_ownership_filter(scoped, ownership_filter(ctx))

    def apply_page(self, query: Select[Any], *, offset: int, limit: int) -> Select[Any]:
        # scope predicates are already part of the WHERE clause here
        return query.offset(offset).limit(limit)
