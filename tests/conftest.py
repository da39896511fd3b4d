"""Pytest configuration and fixtures."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from shipledger.access import Identity, Role
from shipledger.compliance import ComplianceService
from shipledger.documents import InMemoryDocumentStore
from shipledger.ledger.locks import ShipmentLocks
from shipledger.ledger.store import InMemoryLedgerStore
from shipledger.lifecycle import LifecycleService
from shipledger.payments import RecordingPaymentGateway

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Deterministic clock that advances one second per reading."""

    def __init__(self, start: datetime = T0, step: timedelta = timedelta(seconds=1)):
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = current + self.step
        return current

    def advance(self, delta: timedelta) -> None:
        self.now += delta


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryLedgerStore:
    return InMemoryLedgerStore()


@pytest.fixture
def documents() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def gateway() -> RecordingPaymentGateway:
    return RecordingPaymentGateway(amount=250.0, currency="CAD")


@pytest.fixture
def locks() -> ShipmentLocks:
    return ShipmentLocks()


@pytest.fixture
def lifecycle(store, documents, gateway, locks, clock) -> LifecycleService:
    return LifecycleService(store, documents, gateway, locks=locks, clock=clock)


@pytest.fixture
def compliance(store, documents, locks, clock) -> ComplianceService:
    return ComplianceService(store, documents, locks=locks, clock=clock)


@pytest.fixture
def users() -> dict[Role, Identity]:
    """One identity per role, keyed by role."""
    return {role: Identity(username=f"{role.value}-user", role=role) for role in Role}


@pytest.fixture
def shipper(users) -> Identity:
    return users[Role.SHIPPER]


@pytest.fixture
def carrier(users) -> Identity:
    return users[Role.CARRIER]


@pytest.fixture
def buyer(users) -> Identity:
    return users[Role.BUYER]


@pytest.fixture
def customs(users) -> Identity:
    return users[Role.CUSTOMS_OFFICER]


@pytest.fixture
def auditor(users) -> Identity:
    return users[Role.AUDITOR]


@pytest.fixture
def shipment(lifecycle, shipper):
    """A fresh Toronto -> Vancouver shipment in CREATED status."""
    return lifecycle.create_shipment(shipper, "Toronto", "Vancouver", "Maple syrup, 40 crates")
