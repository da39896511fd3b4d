"""
Single write path for shipment events.

Every service mutation goes through ShipmentRecorder.record(), which:
1. assigns a timestamp strictly after the shipment's last event
2. appends the event to the ledger store
3. only then applies the status to the shipment and persists it

Callers must hold the shipment's lock (see ShipmentLocks).
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable

from ..models import Shipment
from ..status import ShipmentStatus
from ..util import next_timestamp, utcnow
from .events import STATUS_CHANGING_TYPES, ShipmentEvent, create_event
from .store import LedgerStore

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class ShipmentRecorder:
    def __init__(self, store: LedgerStore, *, clock: Clock | None = None):
        self.store = store
        self.clock = clock or utcnow

    def record(
        self,
        shipment: Shipment,
        event_type: str,
        description: str,
        actor: str,
        *,
        status: ShipmentStatus | None = None,
        payload: dict[str, Any] | None = None,
    ) -> ShipmentEvent:
        """
        Append an event for `shipment` and apply its resulting status.

        Args:
            shipment: Shipment being written (mutated in place)
            event_type: One of the ledger EVENT_TYPES
            description: Free-text description for the audit trail
            actor: Username of the acting identity, or "system"
            status: Resulting status; defaults to the current status
            payload: Optional structured detail stored with the event

        Returns:
            The appended event

        Raises:
            ValueError: a status change requested for an event type that
                never changes status (disputes, alerts, documents, ...)
        """
        resulting = status or shipment.status
        if resulting is not shipment.status and event_type not in STATUS_CHANGING_TYPES:
            raise ValueError(f"{event_type} events cannot change shipment status")
        previous = shipment.last_event.timestamp if shipment.last_event else None
        event = create_event(
            event_type,
            shipment.shipment_id,
            resulting,
            description,
            actor,
            payload=payload,
            timestamp=next_timestamp(previous, self.clock()),
        )

        # Event must be durable before the shipment reflects it.
        self.store.append_event(event)
        shipment.events.append(event)
        shipment.status = resulting
        self.store.put(shipment)

        logger.debug(
            "recorded %s for %s (status=%s, actor=%s)",
            event_type,
            shipment.shipment_id,
            resulting.value,
            actor,
        )
        return event
