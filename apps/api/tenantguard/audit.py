from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from threading import Lock
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from tenantguard.core.context import RequestMetadata, get_correlation_id
from tenantguard.metrics import observe_audit_write_failure
from tenantguard.models.audit import AuditEntry
from tenantguard.platform.security.context import AuthContext

logger = logging.getLogger("tenantguard.audit")

LOGIN = "login"
LOGOUT = "logout"
REGISTER = "register"
LOGIN_FAILED = "login_failed"
CREATE_WORKSPACE = "create_workspace"
DELETE_WORKSPACE = "delete_workspace"
JOIN_WORKSPACE = "join_workspace"
SWITCH_WORKSPACE = "switch_workspace"
CHANGE_ROLE = "change_role"
INVITE_USER = "invite_user"
REMOVE_USER = "remove_user"
ACCESS_ADMIN_PANEL = "access_admin_panel"
TOGGLE_USER_ACTIVE = "toggle_user_active"
CREATE_RECORD = "create_record"
UPDATE_RECORD = "update_record"
DELETE_RECORD = "delete_record"
UNAUTHORIZED_ACCESS = "unauthorized_access"
FORBIDDEN_ACCESS = "forbidden_access"

ACTIONS = frozenset(
    {
        LOGIN,
        LOGOUT,
        REGISTER,
        LOGIN_FAILED,
        CREATE_WORKSPACE,
        DELETE_WORKSPACE,
        JOIN_WORKSPACE,
        SWITCH_WORKSPACE,
        CHANGE_ROLE,
        INVITE_USER,
        REMOVE_USER,
        ACCESS_ADMIN_PANEL,
        TOGGLE_USER_ACTIVE,
        CREATE_RECORD,
        UPDATE_RECORD,
        DELETE_RECORD,
        UNAUTHORIZED_ACCESS,
        FORBIDDEN_ACCESS,
    }
)


class AuditLog:
    """Append-only audit trail.

    Writes go through a dedicated session so they never share a transaction
    with the business change they describe; callers record after committing.
    A failed write is logged and counted, and never propagates.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        default_limit: int = 100,
        max_limit: int = 500,
    ) -> None:
        self._session_factory = session_factory
        self._default_limit = default_limit
        self._max_limit = max_limit

    def record(
        self,
        action: str,
        *,
        ctx: AuthContext | None = None,
        actor_id: str | None = None,
        tenant_id: str | None = None,
        resource_type: str | None = None,
        resource_id: str | None = None,
        details: dict[str, Any] | None = None,
        metadata: RequestMetadata | None = None,
    ) -> bool:
        # an explicit ctx carries the same request metadata it was built from
        source: AuthContext | RequestMetadata | None = ctx if ctx is not None else metadata
        entry = AuditEntry(
            actor_id=actor_id if actor_id is not None else (ctx.principal_id if ctx else None),
            tenant_id=tenant_id if tenant_id is not None else (ctx.tenant_id if ctx else None),
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            details=dict(details or {}),
            client_address=source.client_address if source else None,
            user_agent=source.user_agent if source else None,
            correlation_id=(source.correlation_id if source else None) or get_correlation_id(),
        )
        try:
            with self._session_factory() as session:
                session.add(entry)
                session.commit()
        except Exception as exc:
            observe_audit_write_failure()
            logger.exception(
                "audit.write_failed",
                extra={"action": action, "principal_id": entry.actor_id, "tenant_id": entry.tenant_id, "error": str(exc)[:500]},
            )
            return False
        return True

    def query(
        self,
        *,
        actor_id: str | None = None,
        tenant_id: str | None = None,
        action: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        limit: int | None = None,
    ) -> list[AuditEntry]:
        stmt = select(AuditEntry)
        if actor_id is not None:
            stmt = stmt.where(AuditEntry.actor_id == actor_id)
        if tenant_id is not None:
            stmt = stmt.where(AuditEntry.tenant_id == tenant_id)
        if action is not None:
            stmt = stmt.where(AuditEntry.action == action)
        if since is not None:
            stmt = stmt.where(AuditEntry.created_at >= since)
        if until is not None:
            stmt = stmt.where(AuditEntry.created_at <= until)
        stmt = stmt.order_by(AuditEntry.created_at.desc()).limit(self.clamp_limit(limit))

        with self._session_factory() as session:
            return list(session.scalars(stmt).all())

    def clamp_limit(self, limit: int | None) -> int:
        if limit is None:
            return self._default_limit
        return max(1, min(limit, self._max_limit))


_AUDIT_LOG: AuditLog | None = None
_AUDIT_LOCK = Lock()


def get_audit_log() -> AuditLog:
    if _AUDIT_LOG is None:
        raise RuntimeError("audit log has not been configured")
    return _AUDIT_LOG


def set_audit_log(audit_log: AuditLog) -> None:
    global _AUDIT_LOG
    with _AUDIT_LOCK:
        _AUDIT_LOG = audit_log
