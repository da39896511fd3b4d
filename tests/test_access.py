"""Tests for roles, capabilities and the session store."""

from __future__ import annotations

import pytest

from shipledger.access import (
    CAPABILITIES,
    Capability,
    Identity,
    Role,
    SessionStore,
    authorize,
    require_capability,
)
from shipledger.errors import AuthorizationError


def test_admin_holds_every_capability() -> None:
    admin = Identity("root", Role.ADMIN)
    assert all(authorize(admin, c) for c in Capability)


def test_every_role_can_query() -> None:
    for role in Role:
        assert Capability.SHIPMENT_QUERY in CAPABILITIES[role]


def test_only_customs_and_admin_clear() -> None:
    holders = {role for role, caps in CAPABILITIES.items() if Capability.CUSTOMS_CLEARANCE in caps}
    assert holders == {Role.ADMIN, Role.CUSTOMS_OFFICER}


def test_insurance_claims_need_their_own_capability() -> None:
    holders = {role for role, caps in CAPABILITIES.items() if Capability.INSURANCE_CLAIM in caps}
    assert holders == {Role.ADMIN, Role.AUDITOR}
    assert Capability.INSURANCE_CLAIM is not Capability.AUDIT_READ


def test_anonymous_is_denied() -> None:
    assert not authorize(None, Capability.SHIPMENT_QUERY)
    with pytest.raises(AuthorizationError) as excinfo:
        require_capability(None, Capability.SHIPMENT_QUERY)
    assert excinfo.value.username == "<anonymous>"
    assert isinstance(excinfo.value, PermissionError)


def test_role_parse() -> None:
    assert Role.parse("Customs-Officer") is Role.CUSTOMS_OFFICER
    assert Role.parse("logistics provider") is Role.CARRIER
    assert Role.parse(Role.BUYER) is Role.BUYER
    with pytest.raises(ValueError):
        Role.parse("pirate")


def test_session_store_resolve() -> None:
    alice = Identity("alice", Role.SHIPPER, email="alice@example.com")
    sessions = SessionStore([alice])

    assert sessions.resolve("alice") is alice
    assert sessions.resolve("alice", "shipper") is alice

    bob = sessions.resolve("bob", "buyer")
    assert bob.role is Role.BUYER
    assert sessions.get("bob") == bob
    assert len(sessions) == 2


def test_session_store_rejects_unknown_user_without_role() -> None:
    with pytest.raises(AuthorizationError):
        SessionStore().resolve("mallory")


def test_session_store_rejects_role_switch() -> None:
    sessions = SessionStore([Identity("alice", Role.SHIPPER)])
    with pytest.raises(AuthorizationError):
        sessions.resolve("alice", "admin")


def test_session_store_lifecycle() -> None:
    with SessionStore([Identity("alice", Role.SHIPPER)]) as sessions:
        assert sessions.is_open
        assert [i.username for i in sessions] == ["alice"]

    assert not sessions.is_open
    assert len(sessions) == 0
    with pytest.raises(RuntimeError):
        sessions.register(Identity("bob", Role.BUYER))
