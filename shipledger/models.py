"""Data models for shipments, documents and reports."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .ledger.events import ShipmentEvent
from .status import ShipmentStatus
from .util import parse_timestamp


@dataclass(frozen=True)
class Document:
    """A document attached to a shipment.

    Content lives off-ledger in the document store under document_id;
    only the digest captured at upload time is kept here.
    """

    document_id: str
    shipment_id: str
    name: str
    digest: str  # sha256 hex of content at upload
    size: int = 0
    uploaded_at: datetime | None = None
    uploaded_by: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "document_id": self.document_id,
            "shipment_id": self.shipment_id,
            "name": self.name,
            "digest": self.digest,
            "size": self.size,
            "uploaded_at": self.uploaded_at.isoformat() if self.uploaded_at else None,
            "uploaded_by": self.uploaded_by,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Document:
        return cls(
            document_id=data["document_id"],
            shipment_id=data["shipment_id"],
            name=data["name"],
            digest=data["digest"],
            size=int(data.get("size", 0)),
            uploaded_at=parse_timestamp(data.get("uploaded_at")),
            uploaded_by=data.get("uploaded_by"),
        )


@dataclass
class Shipment:
    """
    Mutable shipment aggregate.

    Only the lifecycle and compliance services write shipments, and only
    after the corresponding event is in the ledger. `events` is loaded from
    the ledger store and is not part of the persisted shipment record.
    """

    shipment_id: str
    origin: str
    destination: str
    description: str
    created_at: datetime
    status: ShipmentStatus = ShipmentStatus.CREATED

    expected_delivery_at: datetime | None = None
    actual_delivery_at: datetime | None = None

    documents: list[Document] = field(default_factory=list)
    events: list[ShipmentEvent] = field(default_factory=list)

    @property
    def is_delivered(self) -> bool:
        return self.status is ShipmentStatus.DELIVERED

    @property
    def last_event(self) -> ShipmentEvent | None:
        return self.events[-1] if self.events else None

    def find_document(self, name: str) -> Document | None:
        """Latest document uploaded under `name`, if any."""
        for doc in reversed(self.documents):
            if doc.name == name:
                return doc
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict (events excluded)."""
        return {
            "shipment_id": self.shipment_id,
            "origin": self.origin,
            "destination": self.destination,
            "description": self.description,
            "created_at": self.created_at.isoformat(),
            "status": self.status.value,
            "expected_delivery_at": (
                self.expected_delivery_at.isoformat() if self.expected_delivery_at else None
            ),
            "actual_delivery_at": (
                self.actual_delivery_at.isoformat() if self.actual_delivery_at else None
            ),
            "documents": [d.to_dict() for d in self.documents],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], events: list[ShipmentEvent] | None = None) -> Shipment:
        """
        Reconstruct from JSON dict, attaching the given event history.

        The last event's status wins over the stored record's, so a record
        write that failed after its event was appended cannot drift from
        the ledger.
        """
        created_at = parse_timestamp(data.get("created_at"))
        if created_at is None:
            raise ValueError(f"Shipment record {data.get('shipment_id')!r} has no created_at")
        if events:
            status = events[-1].status
        else:
            status = ShipmentStatus.parse(data.get("status")) or ShipmentStatus.UNKNOWN
        return cls(
            shipment_id=data["shipment_id"],
            origin=data.get("origin", ""),
            destination=data.get("destination", ""),
            description=data.get("description", ""),
            created_at=created_at,
            status=status,
            expected_delivery_at=parse_timestamp(data.get("expected_delivery_at")),
            actual_delivery_at=parse_timestamp(data.get("actual_delivery_at")),
            documents=[Document.from_dict(d) for d in data.get("documents", [])],
            events=list(events or []),
        )


REPORT_SEPARATOR = "\n\n"


@dataclass(frozen=True)
class Report:
    """Title + body text pair; the only externally consumed output format."""

    title: str
    body: str

    def render(self) -> str:
        return f"{self.title}{REPORT_SEPARATOR}{self.body}"

    def __str__(self) -> str:
        return self.render()

    @property
    def lines(self) -> list[str]:
        return self.body.splitlines()

    @classmethod
    def parse(cls, text: str) -> Report:
        """Inverse of render(). Titles never contain a blank line."""
        title, sep, body = text.partition(REPORT_SEPARATOR)
        if not sep:
            raise ValueError("Report text has no title separator")
        return cls(title=title, body=body)
