"""Tests for ComplianceService: audit, disputes, customs, verification, reporting."""

from __future__ import annotations

from dataclasses import replace
from datetime import timedelta

import pytest

from shipledger.access import Identity, Role
from shipledger.compliance import NO_EVENTS_MESSAGE, ShipmentFilter
from shipledger.errors import AuthorizationError
from shipledger.ledger.events import (
    CLEARANCE_RECORDED,
    CUSTOMS_ALERT,
    DISPUTE_RAISED,
    INSURANCE_CLAIM,
)
from shipledger.models import Report
from shipledger.risk import RiskLevel
from shipledger.status import ShipmentStatus


def _tamper_order(store, shipment_id: str) -> None:
    """Rewrite the in-memory event list so the last event predates the first."""
    events = store._events[shipment_id]
    events[-1] = replace(events[-1], timestamp=events[0].timestamp - timedelta(seconds=1))


# -----------------------------------------------------------------------------
# query_status / audit trail
# -----------------------------------------------------------------------------


def test_query_status(compliance, lifecycle, shipment, carrier, buyer) -> None:
    lifecycle.update_status(carrier, shipment.shipment_id, "IN_TRANSIT", "Left hub")

    text = compliance.query_status(buyer, shipment.shipment_id)

    assert f"Shipment ID: {shipment.shipment_id}" in text
    assert "Origin: Toronto" in text
    assert "Destination: Vancouver" in text
    assert "Current Status: IN_TRANSIT" in text
    assert "| IN_TRANSIT | Left hub" in text


def test_query_status_not_found(compliance, buyer) -> None:
    assert compliance.query_status(buyer, "nope") == "Shipment not found: nope"


def test_audit_trail_lists_every_event_in_order(compliance, lifecycle, shipment, carrier, auditor) -> None:
    lifecycle.update_status(carrier, shipment.shipment_id, "IN_TRANSIT", "Departed")
    lifecycle.update_status(carrier, shipment.shipment_id, "AT_BORDER", "Reached border")

    report = compliance.generate_audit_trail(auditor, shipment.shipment_id)

    assert report.title == f"Audit Trail for Shipment {shipment.shipment_id}"
    assert len(report.lines) == 3
    assert report.lines[1].endswith("| IN_TRANSIT | Departed")
    assert report.lines[2].endswith("| AT_BORDER | Reached border")
    timestamps = [line.split(" | ")[0] for line in report.lines]
    assert timestamps == sorted(timestamps)


def test_audit_trail_one_line_per_event_with_multiline_note(
    compliance, lifecycle, store, shipment, carrier, auditor
) -> None:
    lifecycle.update_status(carrier, shipment.shipment_id, "IN_TRANSIT", "left depot\nsealed\\ok")

    report = compliance.generate_audit_trail(auditor, shipment.shipment_id)

    assert len(report.lines) == len(store.events_for(shipment.shipment_id))
    assert report.lines[-1].endswith("| IN_TRANSIT | left depot\\nsealed\\\\ok")
    assert Report.parse(report.render()) == report


def test_audit_trail_empty_history(compliance, store, shipment, auditor) -> None:
    store._events[shipment.shipment_id] = []
    report = compliance.generate_audit_trail(auditor, shipment.shipment_id)
    assert report.body == NO_EVENTS_MESSAGE


def test_audit_trail_not_found(compliance, auditor) -> None:
    report = compliance.generate_audit_trail(auditor, "nope")
    assert report.body == "Shipment not found: nope"


def test_audit_trail_requires_audit_capability(compliance, shipment, carrier) -> None:
    with pytest.raises(AuthorizationError):
        compliance.generate_audit_trail(carrier, shipment.shipment_id)


def test_audit_trail_survives_render_and_parse(compliance, shipment, auditor) -> None:
    report = compliance.generate_audit_trail(auditor, shipment.shipment_id)
    assert Report.parse(report.render()) == report
    assert str(report).startswith("Audit Trail for Shipment ")


def test_report_parse_requires_separator() -> None:
    with pytest.raises(ValueError):
        Report.parse("just a title")


# -----------------------------------------------------------------------------
# Disputes
# -----------------------------------------------------------------------------


def test_dispute_does_not_change_status(compliance, lifecycle, store, shipment, carrier, buyer) -> None:
    lifecycle.update_status(carrier, shipment.shipment_id, "AT_WAREHOUSE")

    text = compliance.log_dispute(buyer, shipment.shipment_id, "Crates damaged on arrival")

    assert text == f"Dispute logged for shipment {shipment.shipment_id}"
    stored = store.get(shipment.shipment_id)
    assert stored.status is ShipmentStatus.AT_WAREHOUSE
    assert stored.last_event.event_type == DISPUTE_RAISED
    assert stored.last_event.status is ShipmentStatus.AT_WAREHOUSE


def test_dispute_rejected_after_delivery(compliance, lifecycle, store, shipment, carrier, buyer) -> None:
    lifecycle.update_status(carrier, shipment.shipment_id, "DELIVERED")
    before = len(store.events_for(shipment.shipment_id))

    text = compliance.log_dispute(buyer, shipment.shipment_id, "Too late")

    assert text == "Dispute rejected: shipment already delivered"
    assert len(store.events_for(shipment.shipment_id)) == before


def test_dispute_unknown_shipment(compliance, buyer, locks) -> None:
    assert compliance.log_dispute(buyer, "nope", "x") == "Shipment not found: nope"
    assert len(locks) == 0


@pytest.mark.parametrize(
    ("role", "allowed"),
    [
        (Role.ADMIN, True),
        (Role.SHIPPER, True),
        (Role.BUYER, True),
        (Role.CARRIER, False),
        (Role.WAREHOUSE, False),
        (Role.CUSTOMS_OFFICER, False),
        (Role.AUDITOR, False),
    ],
)
def test_dispute_authorization_per_role(compliance, store, shipment, role, allowed) -> None:
    actor = Identity(username="u", role=role)
    if allowed:
        compliance.log_dispute(actor, shipment.shipment_id, "short count")
        assert store.get(shipment.shipment_id).last_event.event_type == DISPUTE_RAISED
    else:
        with pytest.raises(AuthorizationError):
            compliance.log_dispute(actor, shipment.shipment_id, "short count")
        assert store.get(shipment.shipment_id).last_event.event_type != DISPUTE_RAISED


# -----------------------------------------------------------------------------
# Customs
# -----------------------------------------------------------------------------


def test_clearance_allowed_fresh_denied_delivered(compliance, lifecycle, store, shipper, carrier, customs) -> None:
    fresh = lifecycle.create_shipment(shipper, "Toronto", "Vancouver", "fresh")
    delivered = lifecycle.create_shipment(shipper, "Toronto", "Vancouver", "delivered")
    lifecycle.update_status(carrier, delivered.shipment_id, "DELIVERED")

    approved = compliance.approve_clearance(customs, fresh.shipment_id, "APPROVE")
    denied = compliance.approve_clearance(customs, delivered.shipment_id, "APPROVE")

    assert approved.startswith("Clearance approved")
    assert store.get(fresh.shipment_id).status is ShipmentStatus.IN_TRANSIT
    assert store.get(fresh.shipment_id).last_event.event_type == CLEARANCE_RECORDED
    assert denied.startswith("Clearance rejected:")
    assert store.get(delivered.shipment_id).status is ShipmentStatus.DELIVERED


def test_clearance_reject_holds_at_border(compliance, lifecycle, store, shipment, carrier, customs) -> None:
    lifecycle.update_status(carrier, shipment.shipment_id, "DAMAGED")

    text = compliance.approve_clearance(customs, shipment.shipment_id, "reject")

    assert text == f"Clearance rejected for shipment {shipment.shipment_id}; status is now AT_BORDER"
    last = store.get(shipment.shipment_id).last_event
    assert last.status is ShipmentStatus.AT_BORDER
    assert last.payload == {"decision": "REJECT"}


def test_clearance_invalid_decision(compliance, store, shipment, customs) -> None:
    before = len(store.events_for(shipment.shipment_id))
    text = compliance.approve_clearance(customs, shipment.shipment_id, "MAYBE")
    assert text.startswith("Clearance rejected:")
    assert len(store.events_for(shipment.shipment_id)) == before


def test_clearance_requires_customs_officer(compliance, shipment, buyer) -> None:
    with pytest.raises(AuthorizationError):
        compliance.approve_clearance(buyer, shipment.shipment_id, "APPROVE")


def test_customs_alert(compliance, store, shipment, customs) -> None:
    text = compliance.raise_customs_alert(customs, shipment.shipment_id, "Undeclared lithium batteries")

    assert text == f"Customs alert recorded for shipment {shipment.shipment_id}"
    last = store.get(shipment.shipment_id).last_event
    assert last.event_type == CUSTOMS_ALERT
    assert last.description == "Customs alert: Undeclared lithium batteries"
    assert last.status is ShipmentStatus.CREATED


# -----------------------------------------------------------------------------
# Verification
# -----------------------------------------------------------------------------


def test_document_tamper_flips_verification(compliance, lifecycle, documents, shipment, shipper, auditor) -> None:
    doc = lifecycle.upload_document(shipper, shipment.shipment_id, "invoice.pdf", "X")

    assert compliance.verify_document(auditor, shipment.shipment_id, "invoice.pdf") == "Document invoice.pdf: VALID"

    documents.store(doc.document_id, "Y")

    result = compliance.verify_document(auditor, shipment.shipment_id, "invoice.pdf")
    assert result.startswith("Document invoice.pdf: FAILED")


def test_verify_latest_upload_wins(compliance, lifecycle, documents, shipment, shipper, auditor) -> None:
    first = lifecycle.upload_document(shipper, shipment.shipment_id, "invoice.pdf", "v1")
    lifecycle.upload_document(shipper, shipment.shipment_id, "invoice.pdf", "v2")

    # Tampering with the superseded upload does not affect verification.
    documents.store(first.document_id, "forged")
    assert compliance.verify_document(auditor, shipment.shipment_id, "invoice.pdf").endswith("VALID")


def test_verify_missing_document(compliance, shipment, auditor) -> None:
    assert compliance.verify_document(auditor, shipment.shipment_id, "ghost.pdf") == "Document not found: ghost.pdf"
    assert compliance.verify_document(auditor, "nope", "ghost.pdf") == "Shipment not found: nope"


def test_verify_ledger(compliance, store, lifecycle, shipment, carrier, auditor) -> None:
    lifecycle.update_status(carrier, shipment.shipment_id, "IN_TRANSIT")
    assert "VERIFIED" in compliance.verify_ledger(auditor, shipment.shipment_id)

    _tamper_order(store, shipment.shipment_id)
    assert "FAILED" in compliance.verify_ledger(auditor, shipment.shipment_id)


# -----------------------------------------------------------------------------
# Fraud risk
# -----------------------------------------------------------------------------


def test_fraud_risk_medium_without_documents(compliance, shipment, auditor) -> None:
    assessment = compliance.assess_fraud_risk(auditor, shipment.shipment_id)
    assert assessment.level is RiskLevel.MEDIUM
    assert assessment.label == "MEDIUM RISK"
    assert assessment.reasons == ["no documents attached"]


def test_fraud_risk_low(compliance, lifecycle, shipment, shipper, auditor) -> None:
    lifecycle.upload_document(shipper, shipment.shipment_id, "invoice.pdf", "X")
    assert compliance.assess_fraud_risk(auditor, shipment.shipment_id).level is RiskLevel.LOW


def test_fraud_risk_integrity_failure_dominates(compliance, lifecycle, store, shipment, carrier, auditor) -> None:
    lifecycle.update_status(carrier, shipment.shipment_id, "IN_TRANSIT")
    _tamper_order(store, shipment.shipment_id)

    assessment = compliance.assess_fraud_risk(auditor, shipment.shipment_id)

    # Both conditions hold; integrity failure wins.
    assert assessment.level is RiskLevel.HIGH
    assert assessment.reasons == ["ledger integrity check failed", "no documents attached"]


def test_fraud_risk_unknown_shipment(compliance, auditor) -> None:
    assert compliance.assess_fraud_risk(auditor, "nope") is None


# -----------------------------------------------------------------------------
# Insurance
# -----------------------------------------------------------------------------


def test_overdue_shipment_triggers_claim(compliance, lifecycle, store, shipment, shipper, auditor, clock) -> None:
    lifecycle.schedule_delivery(shipper, shipment.shipment_id, clock.now + timedelta(hours=1))
    clock.advance(timedelta(days=2))

    text = compliance.check_insurance_claim(auditor, shipment.shipment_id)

    assert text == f"Insurance claim triggered for shipment {shipment.shipment_id}"
    last = store.get(shipment.shipment_id).last_event
    assert last.event_type == INSURANCE_CLAIM
    assert last.actor == "system"


def test_insurance_claim_recorded_once(compliance, lifecycle, store, shipment, carrier, auditor) -> None:
    lifecycle.update_status(carrier, shipment.shipment_id, "DAMAGED")

    compliance.check_insurance_claim(auditor, shipment.shipment_id)
    second = compliance.check_insurance_claim(auditor, shipment.shipment_id)

    assert second.startswith("Insurance claim already filed")
    claims = [e for e in store.events_for(shipment.shipment_id) if e.event_type == INSURANCE_CLAIM]
    assert len(claims) == 1


def test_no_insurance_claim_when_on_schedule(compliance, shipment, auditor) -> None:
    assert compliance.check_insurance_claim(auditor, shipment.shipment_id).startswith("No insurance claim")


def test_insurance_claim_requires_claim_capability(compliance, lifecycle, store, shipment, carrier) -> None:
    lifecycle.update_status(carrier, shipment.shipment_id, "DAMAGED")

    with pytest.raises(AuthorizationError):
        compliance.check_insurance_claim(carrier, shipment.shipment_id)
    assert store.get(shipment.shipment_id).last_event.event_type != INSURANCE_CLAIM


# -----------------------------------------------------------------------------
# Listing, rules and summary
# -----------------------------------------------------------------------------


def test_list_shipments_filters(compliance, lifecycle, shipper, carrier, buyer) -> None:
    a = lifecycle.create_shipment(shipper, "Toronto", "Vancouver", "a")
    b = lifecycle.create_shipment(shipper, "Lagos", "Rotterdam", "b")
    lifecycle.update_status(carrier, b.shipment_id, "IN_TRANSIT")

    everything = compliance.list_shipments(buyer)
    in_transit = compliance.list_shipments(buyer, ShipmentFilter(status=ShipmentStatus.IN_TRANSIT))
    from_toronto = compliance.list_shipments(buyer, ShipmentFilter(origin="toronto"))

    assert [s.shipment_id for s in everything] == [a.shipment_id, b.shipment_id]
    assert [s.shipment_id for s in in_transit] == [b.shipment_id]
    assert [s.shipment_id for s in from_toronto] == [a.shipment_id]


def test_check_rules(compliance, shipment, buyer) -> None:
    checks = {c.rule: c.passed for c in compliance.check_rules(buyer, shipment.shipment_id)}
    assert checks == {
        "ledger-integrity": True,
        "status-updatable": True,
        "dispute-open": True,
        "payment-releasable": False,
        "insurance-claim": True,
    }
    assert compliance.check_rules(buyer, "nope") is None


def test_compliance_summary(compliance, lifecycle, store, shipper, carrier, buyer, auditor) -> None:
    clean = lifecycle.create_shipment(shipper, "Toronto", "Vancouver", "clean")
    lifecycle.upload_document(shipper, clean.shipment_id, "invoice.pdf", "X")
    lifecycle.update_status(carrier, clean.shipment_id, "DELIVERED")

    disputed = lifecycle.create_shipment(shipper, "Toronto", "Montreal", "disputed")
    compliance.log_dispute(buyer, disputed.shipment_id, "wrong goods")

    damaged = lifecycle.create_shipment(shipper, "Lagos", "Rotterdam", "damaged")
    lifecycle.update_status(carrier, damaged.shipment_id, "DAMAGED")
    _tamper_order(store, damaged.shipment_id)

    events_before = sum(len(store.events_for(s)) for s in store.all_shipments())
    report = compliance.generate_compliance_summary(auditor)
    events_after = sum(len(store.events_for(s)) for s in store.all_shipments())

    body = report.body
    assert report.title == "Compliance Summary"
    assert "Total shipments: 3" in body
    assert "  DELIVERED: 1" in body
    assert "  CREATED: 1" in body
    assert "  DAMAGED: 1" in body
    assert "  LOW: 1" in body
    assert "  MEDIUM: 1" in body
    assert "  HIGH: 1" in body
    assert "Disputed: 1" in body
    assert f"  - {disputed.shipment_id}" in body
    assert "Integrity failures: 1" in body
    assert "Insurance claims due: 1" in body
    # Read-only
    assert events_after == events_before


def test_compliance_summary_with_filter(compliance, lifecycle, shipper, auditor) -> None:
    lifecycle.create_shipment(shipper, "Toronto", "Vancouver", "a")
    lifecycle.create_shipment(shipper, "Lagos", "Rotterdam", "b")

    report = compliance.generate_compliance_summary(auditor, ShipmentFilter(destination="Rotterdam"))

    assert "Filter: destination=Rotterdam" in report.body
    assert "Total shipments: 1" in report.body


def test_compliance_summary_no_match(compliance, auditor) -> None:
    report = compliance.generate_compliance_summary(auditor, ShipmentFilter(origin="Nowhere"))
    assert report.lines[-1] == "No shipments match."
