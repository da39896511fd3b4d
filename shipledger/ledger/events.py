"""
Immutable event types for the shipment ledger.

Events are the atomic unit of the ledger - each line in events.jsonl is one event.
A shipment's current status is the status of its last event; prior entries are
never mutated.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..status import ShipmentStatus
from ..util import new_ulid, parse_timestamp, utcnow

# Event type constants
SHIPMENT_CREATED = "shipment.created"
STATUS_UPDATED = "shipment.status_updated"
DELIVERY_CONFIRMED = "shipment.delivery_confirmed"
DELIVERY_SCHEDULED = "shipment.delivery_scheduled"
DOCUMENT_ADDED = "document.added"

# Compliance event types
DISPUTE_RAISED = "dispute.raised"
CLEARANCE_RECORDED = "customs.clearance_recorded"
CUSTOMS_ALERT = "customs.alert_raised"
INSURANCE_CLAIM = "insurance.claim_triggered"

# All valid event types
EVENT_TYPES = frozenset({
    SHIPMENT_CREATED,
    STATUS_UPDATED,
    DELIVERY_CONFIRMED,
    DELIVERY_SCHEDULED,
    DOCUMENT_ADDED,
    DISPUTE_RAISED,
    CLEARANCE_RECORDED,
    CUSTOMS_ALERT,
    INSURANCE_CLAIM,
})

# Event types that may change a shipment's status
STATUS_CHANGING_TYPES = frozenset({
    SHIPMENT_CREATED,
    STATUS_UPDATED,
    DELIVERY_CONFIRMED,
    CLEARANCE_RECORDED,
})


@dataclass(frozen=True)
class ShipmentEvent:
    """
    Immutable event in the shipment ledger.

    Holds the shipment id as a weak back-reference only; the ledger store,
    not the shipment, owns the event.
    """

    event_id: str
    event_type: str  # One of EVENT_TYPES
    shipment_id: str
    status: ShipmentStatus  # Status after this event
    description: str
    timestamp: datetime | None
    actor: str  # username, or "system"

    payload: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate event structure."""
        if self.event_type not in EVENT_TYPES:
            raise ValueError(f"Invalid event_type: {self.event_type}")
        if not isinstance(self.status, ShipmentStatus):
            raise ValueError(f"Invalid status: {self.status!r}")

    def to_dict(self) -> dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        result: dict[str, Any] = {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "shipment_id": self.shipment_id,
            "status": self.status.value,
            "description": self.description,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "actor": self.actor,
        }
        if self.payload:
            result["payload"] = self.payload
        return result

    def to_json(self) -> str:
        """Serialize to JSON string (single line)."""
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ShipmentEvent:
        """Reconstruct from JSON dict."""
        return cls(
            event_id=data["event_id"],
            event_type=data["event_type"],
            shipment_id=data["shipment_id"],
            status=ShipmentStatus(data["status"]),
            description=data.get("description", ""),
            timestamp=parse_timestamp(data.get("timestamp")),
            actor=data.get("actor", "system"),
            payload=data.get("payload", {}),
        )

    @classmethod
    def from_json(cls, line: str) -> ShipmentEvent:
        """Parse from JSON string."""
        return cls.from_dict(json.loads(line))


def create_event(
    event_type: str,
    shipment_id: str,
    status: ShipmentStatus,
    description: str,
    actor: str,
    *,
    payload: dict[str, Any] | None = None,
    timestamp: datetime | None = None,
) -> ShipmentEvent:
    """
    Factory function for creating events.

    Ensures consistent id and timestamp handling and validation.
    """
    return ShipmentEvent(
        event_id=new_ulid(),
        event_type=event_type,
        shipment_id=shipment_id,
        status=status,
        description=description,
        timestamp=timestamp or utcnow(),
        actor=actor,
        payload=payload or {},
    )
