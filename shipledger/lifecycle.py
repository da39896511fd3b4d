"""
Shipment lifecycle service: create, update, upload, schedule, confirm.

Every write follows the same path:
    capability check → load shipment → rule engine → record event → persist

Key invariants:
- Authorization is checked before any state is read
- A rule deny is a result, not an exception, and changes nothing
- Payment fires once, on the transition into DELIVERED
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from .access import Capability, Identity, require_capability
from .contract import SmartContract
from .documents import DocumentStore, content_size
from .errors import PaymentGatewayError, ShipmentNotFoundError
from .ledger.events import (
    DELIVERY_CONFIRMED,
    DELIVERY_SCHEDULED,
    DOCUMENT_ADDED,
    SHIPMENT_CREATED,
    STATUS_UPDATED,
)
from .ledger.locks import ShipmentLocks
from .ledger.recorder import Clock, ShipmentRecorder
from .ledger.store import LedgerStore
from .models import Document, Shipment
from .payments import PaymentGateway, PaymentReceipt
from .status import ShipmentStatus
from .util import new_ulid

logger = logging.getLogger(__name__)


@dataclass
class TransitionResult:
    """Result of a status transition request."""

    success: bool
    shipment_id: str
    status: ShipmentStatus
    message: str
    event_id: str | None = None
    receipt: PaymentReceipt | None = None

    @property
    def payment_triggered(self) -> bool:
        return self.receipt is not None


class LifecycleService:
    """
    Orchestrates shipment writes.

    Collaborators are injected; `locks` should be shared with the
    ComplianceService so both serialize writes to the same shipment.
    """

    def __init__(
        self,
        store: LedgerStore,
        documents: DocumentStore,
        payments: PaymentGateway,
        *,
        locks: ShipmentLocks | None = None,
        contract: SmartContract | None = None,
        clock: Clock | None = None,
    ):
        self.store = store
        self.documents = documents
        self.payments = payments
        self.locks = locks or ShipmentLocks()
        self.contract = contract or SmartContract()
        self.recorder = ShipmentRecorder(store, clock=clock)

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def find_shipment(self, shipment_id: str) -> Shipment | None:
        return self.store.get(shipment_id)

    def get_shipment(self, shipment_id: str) -> Shipment:
        shipment = self.store.get(shipment_id)
        if shipment is None:
            raise ShipmentNotFoundError(shipment_id)
        return shipment

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def create_shipment(
        self,
        actor: Identity,
        origin: str,
        destination: str,
        description: str,
        *,
        expected_delivery_at: datetime | None = None,
    ) -> Shipment:
        """
        Create a shipment in CREATED status.

        Raises:
            AuthorizationError: actor lacks SHIPMENT_CREATE
        """
        require_capability(actor, Capability.SHIPMENT_CREATE)

        shipment_id = new_ulid()
        with self.locks.hold(shipment_id):
            shipment = Shipment(
                shipment_id=shipment_id,
                origin=origin,
                destination=destination,
                description=description,
                created_at=self.recorder.clock(),
                status=ShipmentStatus.CREATED,
                expected_delivery_at=expected_delivery_at,
            )
            self.recorder.record(
                shipment,
                SHIPMENT_CREATED,
                f"Shipment created by {actor.username}: {origin} -> {destination}",
                actor.username,
                status=ShipmentStatus.CREATED,
                payload={"origin": origin, "destination": destination},
            )

        logger.info("created shipment %s (%s -> %s)", shipment_id, origin, destination)
        return shipment

    def update_status(
        self,
        actor: Identity,
        shipment_id: str,
        new_status: str | ShipmentStatus,
        description: str = "",
    ) -> TransitionResult:
        """
        Move a shipment to `new_status` if the rule engine allows it.

        Raises:
            AuthorizationError: actor lacks SHIPMENT_UPDATE
            ShipmentNotFoundError: unknown shipment id
            PaymentGatewayError: payout failed after the DELIVERED transition was recorded
        """
        require_capability(actor, Capability.SHIPMENT_UPDATE)
        return self._transition(actor, shipment_id, new_status, description)

    def confirm_delivery(
        self,
        actor: Identity,
        shipment_id: str,
        description: str = "",
    ) -> TransitionResult:
        """
        Buyer confirmation of delivery. Same rule path as an update to DELIVERED,
        recorded as a delivery-confirmed event.

        Raises:
            AuthorizationError: actor lacks DELIVERY_CONFIRM
            ShipmentNotFoundError: unknown shipment id
            PaymentGatewayError: payout failed after the transition was recorded
        """
        require_capability(actor, Capability.DELIVERY_CONFIRM)
        return self._transition(
            actor,
            shipment_id,
            ShipmentStatus.DELIVERED,
            description or f"Delivery confirmed by {actor.username}",
            event_type=DELIVERY_CONFIRMED,
        )

    def schedule_delivery(
        self,
        actor: Identity,
        shipment_id: str,
        expected_at: datetime,
    ) -> TransitionResult:
        """Set the expected delivery time. Not allowed once delivered."""
        require_capability(actor, Capability.SHIPMENT_UPDATE)

        with self.locks.hold(shipment_id):
            shipment = self.get_shipment(shipment_id)
            if shipment.is_delivered:
                logger.warning("schedule rejected for delivered shipment %s", shipment_id)
                return TransitionResult(
                    success=False,
                    shipment_id=shipment_id,
                    status=shipment.status,
                    message="Smart contract rejected: shipment already delivered",
                )
            shipment.expected_delivery_at = expected_at
            event = self.recorder.record(
                shipment,
                DELIVERY_SCHEDULED,
                f"Expected delivery set to {expected_at.isoformat()}",
                actor.username,
                payload={"expected_delivery_at": expected_at.isoformat()},
            )

        return TransitionResult(
            success=True,
            shipment_id=shipment_id,
            status=shipment.status,
            message=f"Expected delivery scheduled for {expected_at.isoformat()}",
            event_id=event.event_id,
        )

    def upload_document(
        self,
        actor: Identity,
        shipment_id: str,
        name: str,
        content: str | bytes,
    ) -> Document:
        """
        Store document content off-ledger and attach its digest to the shipment.

        Raises:
            AuthorizationError: actor lacks DOCUMENT_UPLOAD
            ShipmentNotFoundError: unknown shipment id
        """
        require_capability(actor, Capability.DOCUMENT_UPLOAD)

        with self.locks.hold(shipment_id):
            shipment = self.get_shipment(shipment_id)

            document_id = new_ulid()
            digest = self.documents.compute_hash(content)
            if not self.documents.store(document_id, content):
                raise ValueError(f"Document store refused {name!r}")

            document = Document(
                document_id=document_id,
                shipment_id=shipment_id,
                name=name,
                digest=digest,
                size=content_size(content),
                uploaded_at=self.recorder.clock(),
                uploaded_by=actor.username,
            )
            shipment.documents.append(document)
            self.recorder.record(
                shipment,
                DOCUMENT_ADDED,
                f"Document added: {name}",
                actor.username,
                payload={"document_id": document_id, "name": name, "digest": digest},
            )

        logger.info("uploaded %s to shipment %s (sha256=%s)", name, shipment_id, digest[:12])
        return document

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _transition(
        self,
        actor: Identity,
        shipment_id: str,
        new_status: str | ShipmentStatus,
        description: str,
        *,
        event_type: str = STATUS_UPDATED,
    ) -> TransitionResult:
        with self.locks.hold(shipment_id):
            shipment = self.get_shipment(shipment_id)
            previous = shipment.status
            target = ShipmentStatus.parse(new_status)

            if target is None or not self.contract.can_update_status(shipment, new_status):
                logger.warning(
                    "transition rejected for %s: %s -> %s",
                    shipment_id,
                    previous.value,
                    new_status,
                )
                return TransitionResult(
                    success=False,
                    shipment_id=shipment_id,
                    status=previous,
                    message=(
                        f"Smart contract rejected this status transition: "
                        f"{previous.value} -> {str(getattr(new_status, 'value', new_status)).upper()}"
                    ),
                )

            label = str(getattr(new_status, "value", new_status))
            if target is ShipmentStatus.UNKNOWN:
                logger.warning("unrecognized status label %r recorded as UNKNOWN", label)

            if target is ShipmentStatus.DELIVERED and shipment.actual_delivery_at is None:
                shipment.actual_delivery_at = self.recorder.clock()

            event = self.recorder.record(
                shipment,
                event_type,
                description or f"Status updated to {label}",
                actor.username,
                status=target,
                payload={"previous_status": previous.value, "requested_status": label},
            )

        logger.info("shipment %s: %s -> %s", shipment_id, previous.value, target.value)

        receipt = None
        entered_delivered = previous is not ShipmentStatus.DELIVERED
        if entered_delivered and self.contract.can_trigger_payment(shipment):
            receipt = self._release_payment(shipment)

        return TransitionResult(
            success=True,
            shipment_id=shipment_id,
            status=target,
            message=f"Shipment {shipment_id} status updated to {target.value}",
            event_id=event.event_id,
            receipt=receipt,
        )

    def _release_payment(self, shipment: Shipment) -> PaymentReceipt:
        try:
            receipt = self.payments.process_payment(shipment)
        except PaymentGatewayError:
            logger.error("payment failed for delivered shipment %s", shipment.shipment_id)
            raise
        logger.info(
            "payment released for %s: %s %.2f (txn %s)",
            shipment.shipment_id,
            receipt.currency,
            receipt.amount,
            receipt.transaction_id,
        )
        return receipt
