from __future__ import annotations

import pytest

from tenantguard.platform.security.tenants import is_valid_tenant_id, resolve_tenant


def test_override_wins_over_hint_and_default() -> None:
    assert resolve_tenant("acme", "globex", "demo") == "acme"


def test_hint_used_when_no_override() -> None:
    assert resolve_tenant(None, "globex", "demo") == "globex"


def test_default_used_when_nothing_supplied() -> None:
    assert resolve_tenant(None, None, "demo") == "demo"


@pytest.mark.parametrize("blank", ["", "   ", "\t"])
def test_blank_values_count_as_absent(blank: str) -> None:
    assert resolve_tenant(blank, "globex", "demo") == "globex"
    assert resolve_tenant(blank, blank, "demo") == "demo"


def test_values_are_trimmed() -> None:
    assert resolve_tenant("  acme ", None, "demo") == "acme"


def test_resolution_does_not_check_existence() -> None:
    assert resolve_tenant("no-such-tenant", None, "demo") == "no-such-tenant"


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("acme", True),
        ("Acme_Corp-2", True),
        ("acme corp", False),
        ("acme/evil", False),
        ("", False),
        ("x" * 64, True),
        ("x" * 65, False),
    ],
)
def test_tenant_id_format(value: str, expected: bool) -> None:
    assert is_valid_tenant_id(value) is expected
