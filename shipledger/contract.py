"""
Smart-contract rule engine.

Every rule is a pure predicate over a Shipment: no side effects, no
exceptions. A missing shipment (or missing argument) is always a deny.
Callers turn a deny into a user-facing rejection.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from .models import Shipment
from .status import CLEARANCE_APPROVABLE, ShipmentStatus
from .util import utcnow

CLEARANCE_APPROVE = "APPROVE"
CLEARANCE_REJECT = "REJECT"
CLEARANCE_DECISIONS = frozenset({CLEARANCE_APPROVE, CLEARANCE_REJECT})


def normalize_decision(decision: str | None) -> str | None:
    if decision is None:
        return None
    return str(decision).strip().upper()


def can_update_status(shipment: Shipment | None, new_status: str | ShipmentStatus | None) -> bool:
    """
    DELIVERED is absorbing: once delivered, only DELIVERED may follow.
    A blank label is never a status.
    """
    if shipment is None:
        return False
    if isinstance(new_status, str) and not new_status.strip():
        return False
    target = ShipmentStatus.parse(new_status)
    if target is None:
        return False
    if shipment.status.is_terminal and target is not shipment.status:
        return False
    return True


def can_trigger_payment(shipment: Shipment | None) -> bool:
    """Payment is released only for delivered shipments."""
    if shipment is None:
        return False
    return shipment.status is ShipmentStatus.DELIVERED


def can_raise_dispute(shipment: Shipment | None) -> bool:
    if shipment is None:
        return False
    return shipment.status is not ShipmentStatus.DELIVERED


def validate_customs_clearance(shipment: Shipment | None, decision: str | None) -> bool:
    """
    Customs clearance validation rule.

    - Decision must be APPROVE or REJECT.
    - Nothing is cleared after delivery.
    - REJECT is always allowed before delivery.
    - APPROVE only from a customs-relevant status.
    """
    if shipment is None:
        return False
    normalized = normalize_decision(decision)
    if normalized not in CLEARANCE_DECISIONS:
        return False
    if shipment.status is ShipmentStatus.DELIVERED:
        return False
    if normalized == CLEARANCE_REJECT:
        return True
    return shipment.status in CLEARANCE_APPROVABLE


def trigger_insurance_claim(shipment: Shipment | None, now: datetime | None = None) -> bool:
    """
    Automatic insurance claim rule, first match wins:

    1. shipment is DAMAGED
    2. delivered after the expected delivery time
    3. not delivered and the expected delivery time has passed
    """
    if shipment is None:
        return False

    if shipment.status is ShipmentStatus.DAMAGED:
        return True

    expected = shipment.expected_delivery_at
    actual = shipment.actual_delivery_at
    if expected is not None and actual is not None:
        if actual > expected:
            return True
    elif expected is not None and actual is None:
        if (now or utcnow()) > expected:
            return True

    return False


def verify_ledger_integrity(shipment: Shipment | None) -> bool:
    """
    Ledger-integrity check over the shipment's event history:
    - every event has a timestamp
    - timestamps strictly increase (no duplicates, no going backwards)
    """
    if shipment is None:
        return False
    previous: datetime | None = None
    for event in shipment.events:
        ts = event.timestamp
        if ts is None:
            return False
        if previous is not None and not ts > previous:
            return False
        previous = ts
    return True


# -----------------------------------------------------------------------------
# Rule registry
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class RuleCheck:
    """Outcome of evaluating one registered rule against a shipment."""

    rule: str
    passed: bool
    message: str

    def to_dict(self) -> dict[str, object]:
        return {"rule": self.rule, "passed": self.passed, "message": self.message}


RuleFn = Callable[[Shipment, datetime], bool]

# Shipment-only rules that can be evaluated without a proposed action.
# The message describes the outcome when the predicate holds / does not hold.
RULES: dict[str, tuple[RuleFn, str, str]] = {
    "ledger-integrity": (
        lambda s, now: verify_ledger_integrity(s),
        "event timestamps strictly increase",
        "event history is out of order or missing timestamps",
    ),
    "status-updatable": (
        lambda s, now: not s.is_delivered,
        "status may still change",
        "shipment is delivered; status is final",
    ),
    "dispute-open": (
        lambda s, now: can_raise_dispute(s),
        "disputes may be raised",
        "disputes are closed after delivery",
    ),
    "payment-releasable": (
        lambda s, now: can_trigger_payment(s),
        "payment may be released",
        "payment held until delivery",
    ),
    "insurance-claim": (
        lambda s, now: not trigger_insurance_claim(s, now),
        "no insurance condition met",
        "insurance claim conditions met (damage or late delivery)",
    ),
}


def evaluate_rules(shipment: Shipment, now: datetime | None = None) -> list[RuleCheck]:
    """Evaluate every registered rule; `passed` is the predicate result."""
    at = now or utcnow()
    checks: list[RuleCheck] = []
    for name, (fn, ok_message, fail_message) in RULES.items():
        passed = bool(fn(shipment, at))
        checks.append(RuleCheck(rule=name, passed=passed, message=ok_message if passed else fail_message))
    return checks


class SmartContract:
    """Bundles the rule functions so services can take one injectable object."""

    can_update_status = staticmethod(can_update_status)
    can_trigger_payment = staticmethod(can_trigger_payment)
    can_raise_dispute = staticmethod(can_raise_dispute)
    validate_customs_clearance = staticmethod(validate_customs_clearance)
    trigger_insurance_claim = staticmethod(trigger_insurance_claim)
    verify_ledger_integrity = staticmethod(verify_ledger_integrity)
    evaluate_rules = staticmethod(evaluate_rules)
