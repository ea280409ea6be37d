from __future__ import annotations

from enum import StrEnum

from tenantguard.platform.security.errors import InvalidArgumentError


class Role(StrEnum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"

    @property
    def is_privileged(self) -> bool:
        return self in PRIVILEGED_ROLES

    @property
    def rank(self) -> int:
        return _RANKS[self]


PRIVILEGED_ROLES = frozenset({Role.OWNER, Role.ADMIN})

# owner sorts first in member listings
_RANKS = {Role.OWNER: 0, Role.ADMIN: 1, Role.MEMBER: 2}


def parse_role(value: object) -> Role:
    if isinstance(value, Role):
        return value
    if isinstance(value, str):
        try:
            return Role(value.strip().lower())
        except ValueError:
            pass
    raise InvalidArgumentError(
        f"invalid role: {value!r}",
        code="invalid_role",
        details={"valid_roles": [role.value for role in Role]},
    )
