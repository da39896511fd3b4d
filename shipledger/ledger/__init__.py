"""
Shipment ledger: immutable events and the stores that hold them.

Components:
- events: ShipmentEvent and the canonical event type names
- store: LedgerStore contract with in-memory and JSON Lines implementations
- locks: per-shipment write serialization
- recorder: the single write path (timestamp ordering, event-before-status)

Design principles:
- Append-only: events are never rewritten
- Ordered: per shipment, timestamps strictly increase
- Event first: a status change is durable in the log before the shipment moves

Import the stores from `shipledger.ledger.store`; this package only
re-exports the event vocabulary so `shipledger.models` can depend on it.
"""

from .events import (
    CLEARANCE_RECORDED,
    CUSTOMS_ALERT,
    DELIVERY_CONFIRMED,
    DELIVERY_SCHEDULED,
    DISPUTE_RAISED,
    DOCUMENT_ADDED,
    EVENT_TYPES,
    INSURANCE_CLAIM,
    SHIPMENT_CREATED,
    STATUS_UPDATED,
    ShipmentEvent,
    create_event,
)

__all__ = [
    "CLEARANCE_RECORDED",
    "CUSTOMS_ALERT",
    "DELIVERY_CONFIRMED",
    "DELIVERY_SCHEDULED",
    "DISPUTE_RAISED",
    "DOCUMENT_ADDED",
    "EVENT_TYPES",
    "INSURANCE_CLAIM",
    "SHIPMENT_CREATED",
    "STATUS_UPDATED",
    "ShipmentEvent",
    "create_event",
]
