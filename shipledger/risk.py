"""
Fraud risk classification for shipments.

Risk is computed from ledger state, never claimed by a participant.
Precedence is fixed: a ledger-integrity failure is HIGH regardless of any
other finding; missing documents alone are MEDIUM.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from .contract import verify_ledger_integrity
from .models import Shipment


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class FraudAssessment:
    shipment_id: str
    level: RiskLevel
    reasons: list[str] = field(default_factory=list)

    @property
    def label(self) -> str:
        return f"{self.level.value.upper()} RISK"

    def to_dict(self) -> dict[str, object]:
        return {
            "shipment_id": self.shipment_id,
            "level": self.level.value,
            "reasons": list(self.reasons),
        }


def compute_fraud_risk(shipment: Shipment) -> tuple[RiskLevel, list[str]]:
    """Compute risk level and a short explanation list."""
    reasons: list[str] = []

    integrity_failed = not verify_ledger_integrity(shipment)
    if integrity_failed:
        reasons.append("ledger integrity check failed")

    missing_documents = not shipment.documents
    if missing_documents:
        reasons.append("no documents attached")

    # --- Decision ---------------------------------------------------------
    if integrity_failed:
        return (RiskLevel.HIGH, reasons)
    if missing_documents:
        return (RiskLevel.MEDIUM, reasons)
    return (RiskLevel.LOW, ["ledger consistent and documents present"])


def assess(shipment: Shipment) -> FraudAssessment:
    level, reasons = compute_fraud_risk(shipment)
    return FraudAssessment(shipment_id=shipment.shipment_id, level=level, reasons=reasons)
