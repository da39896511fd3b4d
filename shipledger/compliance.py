"""
Compliance service: audit trails, disputes, customs, verification, reporting.

Queries never raise for an unknown shipment; they answer with a
"not found" message instead. Writes (disputes, clearance, alerts,
insurance claims) go through the same recorder and locks as the
lifecycle service.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import datetime

from .access import Capability, Identity, require_capability
from .contract import CLEARANCE_APPROVE, RuleCheck, SmartContract, normalize_decision
from .documents import DocumentStore
from .ledger.events import (
    CLEARANCE_RECORDED,
    CUSTOMS_ALERT,
    DISPUTE_RAISED,
    INSURANCE_CLAIM,
)
from .ledger.locks import ShipmentLocks
from .ledger.recorder import Clock, ShipmentRecorder
from .ledger.store import LedgerStore
from .models import Report, Shipment
from .risk import FraudAssessment, RiskLevel, assess
from .status import ShipmentStatus

logger = logging.getLogger(__name__)

NO_EVENTS_MESSAGE = "No events recorded."

# Status a shipment takes after a customs decision.
CLEARANCE_OUTCOMES = {
    "APPROVE": ShipmentStatus.IN_TRANSIT,  # released to continue transit
    "REJECT": ShipmentStatus.AT_BORDER,  # held at the border
}


def not_found_message(shipment_id: str) -> str:
    return f"Shipment not found: {shipment_id}"


def escape_line(text: str) -> str:
    """Fold line breaks into backslash escapes so one event stays one line."""
    return text.replace("\\", "\\\\").replace("\r", "\\r").replace("\n", "\\n")


def format_event_line(event) -> str:
    ts = event.timestamp.isoformat() if event.timestamp else "-"
    return f"{ts} | {event.status.value} | {escape_line(event.description)}"


@dataclass(frozen=True)
class ShipmentFilter:
    """Selects shipments for the compliance summary. Unset fields match everything."""

    status: ShipmentStatus | None = None
    origin: str | None = None
    destination: str | None = None
    created_after: datetime | None = None

    def matches(self, shipment: Shipment) -> bool:
        if self.status is not None and shipment.status is not self.status:
            return False
        if self.origin and shipment.origin.lower() != self.origin.lower():
            return False
        if self.destination and shipment.destination.lower() != self.destination.lower():
            return False
        if self.created_after is not None and shipment.created_at < self.created_after:
            return False
        return True

    def describe(self) -> str:
        parts = []
        if self.status is not None:
            parts.append(f"status={self.status.value}")
        if self.origin:
            parts.append(f"origin={self.origin}")
        if self.destination:
            parts.append(f"destination={self.destination}")
        if self.created_after is not None:
            parts.append(f"created_after={self.created_after.isoformat()}")
        return ", ".join(parts) or "all shipments"


class ComplianceService:
    def __init__(
        self,
        store: LedgerStore,
        documents: DocumentStore,
        *,
        locks: ShipmentLocks | None = None,
        contract: SmartContract | None = None,
        clock: Clock | None = None,
    ):
        self.store = store
        self.documents = documents
        self.locks = locks or ShipmentLocks()
        self.contract = contract or SmartContract()
        self.recorder = ShipmentRecorder(store, clock=clock)

    # -------------------------------------------------------------------------
    # Read side
    # -------------------------------------------------------------------------

    def query_status(self, actor: Identity, shipment_id: str) -> str:
        """Human-readable projection of a shipment's current state."""
        require_capability(actor, Capability.SHIPMENT_QUERY)

        shipment = self.store.get(shipment_id)
        if shipment is None:
            return not_found_message(shipment_id)

        lines = [
            f"Shipment ID: {shipment.shipment_id}",
            f"Origin: {shipment.origin}",
            f"Destination: {shipment.destination}",
            f"Description: {escape_line(shipment.description)}",
            f"Current Status: {shipment.status.value}",
        ]
        if shipment.expected_delivery_at:
            lines.append(f"Expected Delivery: {shipment.expected_delivery_at.isoformat()}")
        if shipment.actual_delivery_at:
            lines.append(f"Delivered At: {shipment.actual_delivery_at.isoformat()}")
        lines.append(f"Documents: {', '.join(d.name for d in shipment.documents) or 'none'}")
        lines.append("")
        lines.append("Events:")
        for event in shipment.events:
            lines.append(f"- {format_event_line(event)}")
        return "\n".join(lines)

    def list_shipments(
        self,
        actor: Identity,
        shipment_filter: ShipmentFilter | None = None,
    ) -> list[Shipment]:
        require_capability(actor, Capability.SHIPMENT_QUERY)

        flt = shipment_filter or ShipmentFilter()
        return sorted(
            (s for s in self.store.all_shipments().values() if flt.matches(s)),
            key=lambda s: (s.created_at, s.shipment_id),
        )

    def check_rules(self, actor: Identity, shipment_id: str) -> list[RuleCheck] | None:
        """Evaluate every registered rule; None when the shipment is unknown."""
        require_capability(actor, Capability.SHIPMENT_QUERY)

        shipment = self.store.get(shipment_id)
        if shipment is None:
            return None
        return self.contract.evaluate_rules(shipment, self.recorder.clock())

    def generate_audit_trail(self, actor: Identity, shipment_id: str) -> Report:
        """
        Chronological audit trail: one `timestamp | status | description`
        line per recorded event, in ledger order.
        """
        require_capability(actor, Capability.AUDIT_READ)

        title = f"Audit Trail for Shipment {shipment_id}"
        shipment = self.store.get(shipment_id)
        if shipment is None:
            return Report(title=title, body=not_found_message(shipment_id))

        events = self.store.events_for(shipment_id)
        if not events:
            return Report(title=title, body=NO_EVENTS_MESSAGE)
        return Report(title=title, body="\n".join(format_event_line(e) for e in events))

    def verify_document(self, actor: Identity, shipment_id: str, document_name: str) -> str:
        """Recompute a document's digest from stored content and compare."""
        require_capability(actor, Capability.AUDIT_READ)

        shipment = self.store.get(shipment_id)
        if shipment is None:
            return not_found_message(shipment_id)

        document = shipment.find_document(document_name)
        if document is None:
            return f"Document not found: {document_name}"

        content = self.documents.fetch(document.document_id)
        if content is None:
            logger.warning("document %s missing from store", document.document_id)
            return f"Document {document_name}: FAILED verification (content missing)"

        if self.documents.compute_hash(content) == document.digest:
            return f"Document {document_name}: VALID"
        logger.warning("digest mismatch for %s on shipment %s", document_name, shipment_id)
        return f"Document {document_name}: FAILED verification (digest mismatch)"

    def verify_ledger(self, actor: Identity, shipment_id: str) -> str:
        require_capability(actor, Capability.AUDIT_READ)

        shipment = self.store.get(shipment_id)
        if shipment is None:
            return not_found_message(shipment_id)
        if self.contract.verify_ledger_integrity(shipment):
            return f"Ledger for {shipment_id}: VERIFIED ({len(shipment.events)} events)"
        return f"Ledger for {shipment_id}: FAILED integrity check"

    def assess_fraud_risk(self, actor: Identity, shipment_id: str) -> FraudAssessment | None:
        """Fraud heuristic; None when the shipment is unknown."""
        require_capability(actor, Capability.AUDIT_READ)

        shipment = self.store.get(shipment_id)
        if shipment is None:
            return None
        return assess(shipment)

    def generate_compliance_summary(
        self,
        actor: Identity,
        shipment_filter: ShipmentFilter | None = None,
    ) -> Report:
        """Read-only aggregation over every shipment matching the filter."""
        require_capability(actor, Capability.AUDIT_READ)

        flt = shipment_filter or ShipmentFilter()
        now = self.recorder.clock()
        shipments = self.list_shipments(actor, flt)

        title = "Compliance Summary"
        if not shipments:
            return Report(title=title, body=f"Filter: {flt.describe()}\nNo shipments match.")

        status_counts = Counter(s.status.value for s in shipments)
        risk_counts: Counter[str] = Counter()
        disputed: list[str] = []
        integrity_failures: list[str] = []
        insurance_due: list[str] = []

        for s in shipments:
            risk_counts[assess(s).level.value] += 1
            if any(e.event_type == DISPUTE_RAISED for e in s.events):
                disputed.append(s.shipment_id)
            if not self.contract.verify_ledger_integrity(s):
                integrity_failures.append(s.shipment_id)
            if self.contract.trigger_insurance_claim(s, now):
                insurance_due.append(s.shipment_id)

        lines = [
            f"Filter: {flt.describe()}",
            f"Total shipments: {len(shipments)}",
            "",
            "Status counts:",
        ]
        for status, count in sorted(status_counts.items()):
            lines.append(f"  {status}: {count}")
        lines.append("")
        lines.append("Fraud risk:")
        for level in RiskLevel:
            lines.append(f"  {level.value.upper()}: {risk_counts.get(level.value, 0)}")
        lines.append("")
        lines.append(f"Disputed: {len(disputed)}")
        lines.extend(f"  - {sid}" for sid in disputed)
        lines.append(f"Integrity failures: {len(integrity_failures)}")
        lines.extend(f"  - {sid}" for sid in integrity_failures)
        lines.append(f"Insurance claims due: {len(insurance_due)}")
        lines.extend(f"  - {sid}" for sid in insurance_due)
        return Report(title=title, body="\n".join(lines))

    # -------------------------------------------------------------------------
    # Write side
    # -------------------------------------------------------------------------

    def log_dispute(self, actor: Identity, shipment_id: str, description: str) -> str:
        """Record a dispute. Never changes the shipment's status."""
        require_capability(actor, Capability.DISPUTE_RAISE)

        with self.locks.hold(shipment_id):
            shipment = self.store.get(shipment_id)
            if shipment is None:
                return not_found_message(shipment_id)
            if not self.contract.can_raise_dispute(shipment):
                logger.warning("dispute rejected for delivered shipment %s", shipment_id)
                return "Dispute rejected: shipment already delivered"
            self.recorder.record(
                shipment,
                DISPUTE_RAISED,
                f"Dispute raised by {actor.username}: {description}",
                actor.username,
                payload={"reason": description},
            )

        logger.info("dispute logged for %s by %s", shipment_id, actor.username)
        return f"Dispute logged for shipment {shipment_id}"

    def approve_clearance(self, actor: Identity, shipment_id: str, decision: str) -> str:
        """Record a customs decision; APPROVE releases, REJECT holds at the border."""
        require_capability(actor, Capability.CUSTOMS_CLEARANCE)

        normalized = normalize_decision(decision)
        with self.locks.hold(shipment_id):
            shipment = self.store.get(shipment_id)
            if shipment is None:
                return not_found_message(shipment_id)
            outcome = CLEARANCE_OUTCOMES.get(normalized or "")
            if outcome is None or not self.contract.validate_customs_clearance(shipment, decision):
                logger.warning(
                    "clearance %r rejected for %s in status %s",
                    decision,
                    shipment_id,
                    shipment.status.value,
                )
                return (
                    f"Clearance rejected: {decision!r} not permitted "
                    f"while shipment is {shipment.status.value}"
                )
            self.recorder.record(
                shipment,
                CLEARANCE_RECORDED,
                f"Customs clearance decision: {normalized} by officer {actor.username}",
                actor.username,
                status=outcome,
                payload={"decision": normalized},
            )

        verb = "approved" if normalized == CLEARANCE_APPROVE else "rejected"
        logger.info("clearance %s for %s", verb, shipment_id)
        return f"Clearance {verb} for shipment {shipment_id}; status is now {outcome.value}"

    def raise_customs_alert(self, actor: Identity, shipment_id: str, issue: str) -> str:
        require_capability(actor, Capability.CUSTOMS_CLEARANCE)

        with self.locks.hold(shipment_id):
            shipment = self.store.get(shipment_id)
            if shipment is None:
                return not_found_message(shipment_id)
            self.recorder.record(
                shipment,
                CUSTOMS_ALERT,
                f"Customs alert: {issue}",
                actor.username,
                payload={"issue": issue},
            )
        return f"Customs alert recorded for shipment {shipment_id}"

    def check_insurance_claim(self, actor: Identity, shipment_id: str) -> str:
        """Evaluate the insurance rule and record a claim the first time it holds."""
        require_capability(actor, Capability.INSURANCE_CLAIM)

        with self.locks.hold(shipment_id):
            shipment = self.store.get(shipment_id)
            if shipment is None:
                return not_found_message(shipment_id)
            if not self.contract.trigger_insurance_claim(shipment, self.recorder.clock()):
                return f"No insurance claim for shipment {shipment_id}"
            if any(e.event_type == INSURANCE_CLAIM for e in shipment.events):
                return f"Insurance claim already filed for shipment {shipment_id}"
            self.recorder.record(
                shipment,
                INSURANCE_CLAIM,
                "Insurance claim triggered automatically",
                "system",
                payload={"triggered_by": actor.username},
            )

        logger.info("insurance claim triggered for %s", shipment_id)
        return f"Insurance claim triggered for shipment {shipment_id}"
