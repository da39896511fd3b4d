"""Shipment status vocabulary."""

from __future__ import annotations

from enum import Enum


class ShipmentStatus(str, Enum):
    """Closed status vocabulary.

    The six recognized values carry rule-engine semantics; UNKNOWN is the
    catch-all for any other label so rule comparisons stay exhaustive.
    """

    CREATED = "CREATED"
    IN_TRANSIT = "IN_TRANSIT"
    AT_BORDER = "AT_BORDER"
    AT_WAREHOUSE = "AT_WAREHOUSE"
    DAMAGED = "DAMAGED"
    DELIVERED = "DELIVERED"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value: "str | ShipmentStatus | None") -> "ShipmentStatus | None":
        """Case-insensitive parse. Returns None for None, UNKNOWN for unrecognized labels."""
        if value is None:
            return None
        if isinstance(value, ShipmentStatus):
            return value
        label = str(value).strip().upper().replace("-", "_").replace(" ", "_")
        try:
            return cls(label)
        except ValueError:
            return cls.UNKNOWN

    @property
    def is_terminal(self) -> bool:
        return self is ShipmentStatus.DELIVERED


# Statuses from which customs may approve clearance.
CLEARANCE_APPROVABLE = frozenset({
    ShipmentStatus.CREATED,
    ShipmentStatus.IN_TRANSIT,
    ShipmentStatus.AT_BORDER,
    ShipmentStatus.AT_WAREHOUSE,
})
