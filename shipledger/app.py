"""Wire stores, gateway and services together from Settings."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from rich.console import Console
from rich.logging import RichHandler

from .access import SessionStore
from .compliance import ComplianceService
from .config import Settings
from .documents import FileDocumentStore
from .ledger.locks import ShipmentLocks
from .ledger.store import JsonlLedgerStore
from .lifecycle import LifecycleService
from .payments import RecordingPaymentGateway, TimeoutPaymentGateway


@dataclass
class ShipLedger:
    """Process-scoped application: services plus the session store they are used with."""

    settings: Settings
    sessions: SessionStore
    lifecycle: LifecycleService
    compliance: ComplianceService
    gateway: RecordingPaymentGateway

    def close(self) -> None:
        self.sessions.clear()


def build_app(settings: Settings) -> ShipLedger:
    """File-backed application rooted at settings.data_dir."""
    store = JsonlLedgerStore(settings.ledger_dir)
    documents = FileDocumentStore(settings.documents_dir)
    gateway = RecordingPaymentGateway(
        amount=settings.payment.amount,
        currency=settings.payment.currency,
        ledger_path=settings.payments_path,
    )
    locks = ShipmentLocks()

    lifecycle = LifecycleService(
        store,
        documents,
        TimeoutPaymentGateway(gateway, timeout_seconds=settings.payment.timeout_seconds),
        locks=locks,
    )
    compliance = ComplianceService(store, documents, locks=locks)

    return ShipLedger(
        settings=settings,
        sessions=SessionStore(settings.users),
        lifecycle=lifecycle,
        compliance=compliance,
        gateway=gateway,
    )


def configure_logging(level: str) -> None:
    """Route log records through rich on stderr."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
