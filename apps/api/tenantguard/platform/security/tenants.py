from __future__ import annotations

import re


TENANT_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")
TENANT_ID_MAX_LENGTH = 64


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def resolve_tenant(override: str | None, fallback: str | None, default: str) -> str:
    """Pick the tenant a request applies to.

    An explicit override (header or path parameter) wins over the hint carried
    by the credential, which wins over the configured default. Existence and
    membership are checked later by whoever needs the tenant row.
    """

    return _clean(override) or _clean(fallback) or default


def is_valid_tenant_id(value: str) -> bool:
    return len(value) <= TENANT_ID_MAX_LENGTH and TENANT_ID_RE.fullmatch(value) is not None
