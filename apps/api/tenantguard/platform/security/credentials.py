from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, NoReturn

from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy import select
from sqlalchemy.orm import Session

from tenantguard.core.config import Settings
from tenantguard.metrics import observe_credential_rejection
from tenantguard.platform.security.errors import ForbiddenError, UnauthorizedError
from tenantguard.platform.security.roles import Role, parse_role
from tenantguard.tenancy.models import Principal


logger = logging.getLogger("tenantguard.auth")

# One message for every verification failure; the reason is only logged.
INVALID_CREDENTIALS = "invalid credentials"
ACCESS_DENIED = "access denied"


@dataclass(frozen=True, slots=True)
class CredentialClaims:
    subject: str
    email: str | None = None
    active_tenant: str | None = None
    roles: dict[str, bool] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class VerifiedCredential:
    """A credential whose signature checked out and whose principal is currently active."""

    principal_id: str
    email: str
    global_role: Role
    claims: CredentialClaims


def extract_bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = token.strip()
    return token or None


def _normalize_role_claims(raw: Any) -> dict[str, bool]:
    if isinstance(raw, dict):
        return {str(key): bool(value) for key, value in raw.items()}
    if isinstance(raw, list):
        return {str(item): True for item in raw}
    return {}


class CredentialVerifier:
    def __init__(self, settings: Settings) -> None:
        self._secret = settings.jwt_secret
        self._algorithm = settings.jwt_algorithm
        self._bypass_principal_id = settings.dev_principal_id if settings.dev_auth_bypass_active else None

    def decode(self, token: str) -> CredentialClaims:
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require_exp": True, "require_sub": True},
            )
        except ExpiredSignatureError:
            self._reject("expired")
        except JWTError:
            self._reject("invalid_token")

        subject = payload.get("sub")
        if not isinstance(subject, str) or not subject.strip():
            self._reject("missing_subject")

        email = payload.get("email")
        active_tenant = payload.get("active_tenant")
        return CredentialClaims(
            subject=subject.strip(),
            email=email if isinstance(email, str) else None,
            active_tenant=active_tenant if isinstance(active_tenant, str) else None,
            roles=_normalize_role_claims(payload.get("roles")),
        )

    def verify(self, session: Session, token: str | None) -> VerifiedCredential:
        if token is None:
            if self._bypass_principal_id is None:
                self._reject("missing_bearer")
            claims = CredentialClaims(subject=self._bypass_principal_id)
            logger.warning("auth.dev_bypass", extra={"principal_id": claims.subject})
        else:
            claims = self.decode(token)

        # Always re-read: an admin may have disabled the account after the token was issued.
        principal = session.scalar(select(Principal).where(Principal.id == claims.subject))
        if principal is None:
            self._reject("unknown_principal", principal_id=claims.subject)
        if not principal.active:
            observe_credential_rejection("disabled")
            logger.info("auth.credential_rejected", extra={"reason": "disabled", "principal_id": principal.id})
            raise ForbiddenError(ACCESS_DENIED)

        return VerifiedCredential(
            principal_id=principal.id,
            email=principal.email,
            global_role=parse_role(principal.global_role),
            claims=claims,
        )

    @staticmethod
    def _reject(reason: str, *, principal_id: str | None = None) -> NoReturn:
        observe_credential_rejection(reason)
        logger.info("auth.credential_rejected", extra={"reason": reason, "principal_id": principal_id})
        raise UnauthorizedError(INVALID_CREDENTIALS)
