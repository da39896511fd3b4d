"""
Ledger stores: shipment records plus an append-only event log per shipment.

Two implementations share the LedgerStore contract:
- InMemoryLedgerStore: process-local, used by tests and embedding callers
- JsonlLedgerStore: events.jsonl (append-only) + shipments.json (overwrite)

INVARIANT: neither store ever modifies or deletes an appended event.
"""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any, Iterator, Protocol

from ..models import Shipment
from .events import ShipmentEvent


class LedgerStore(Protocol):
    """Persistence contract consumed by the services."""

    def put(self, shipment: Shipment) -> None:
        """Insert or overwrite a shipment record."""
        ...

    def get(self, shipment_id: str) -> Shipment | None:
        """Load a shipment with its event history, or None."""
        ...

    def append_event(self, event: ShipmentEvent) -> None:
        """Append an event. The store does not deduplicate."""
        ...

    def events_for(self, shipment_id: str) -> list[ShipmentEvent]:
        """Events for one shipment in append order."""
        ...

    def all_shipments(self) -> dict[str, Shipment]:
        """Read-only snapshot of every shipment, keyed by id."""
        ...


class InMemoryLedgerStore:
    """
    Dict-backed ledger store.

    Records are kept in serialized form and rebuilt on every read, so a
    caller mutating a returned Shipment never changes stored state.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._shipments: dict[str, dict[str, Any]] = {}
        self._events: dict[str, list[ShipmentEvent]] = {}

    def put(self, shipment: Shipment) -> None:
        with self._lock:
            self._shipments[shipment.shipment_id] = shipment.to_dict()

    def get(self, shipment_id: str) -> Shipment | None:
        with self._lock:
            data = self._shipments.get(shipment_id)
            if data is None:
                return None
            return Shipment.from_dict(data, list(self._events.get(shipment_id, [])))

    def append_event(self, event: ShipmentEvent) -> None:
        with self._lock:
            self._events.setdefault(event.shipment_id, []).append(event)

    def events_for(self, shipment_id: str) -> list[ShipmentEvent]:
        with self._lock:
            return list(self._events.get(shipment_id, []))

    def all_shipments(self) -> dict[str, Shipment]:
        with self._lock:
            return {
                sid: Shipment.from_dict(data, list(self._events.get(sid, [])))
                for sid, data in self._shipments.items()
            }

    def event_count(self) -> int:
        with self._lock:
            return sum(len(events) for events in self._events.values())


class JsonlLedgerStore:
    """File-backed ledger store.

    Storage format:
    - <data_dir>/events.jsonl: one event per line, append-only
    - <data_dir>/shipments.json: {shipment_id: record}, rewritten atomically
    """

    def __init__(self, data_dir: Path):
        """
        Initialize store.

        Args:
            data_dir: Directory holding the ledger files (created on first write)
        """
        self.data_dir = data_dir
        self.events_path = data_dir / "events.jsonl"
        self.shipments_path = data_dir / "shipments.json"
        self._lock = threading.Lock()

    def _ensure_dir(self) -> None:
        """Ensure data directory exists."""
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def _read_shipments(self) -> dict[str, dict[str, Any]]:
        if not self.shipments_path.exists():
            return {}
        data = json.loads(self.shipments_path.read_text(encoding="utf-8"))
        return data if isinstance(data, dict) else {}

    def _write_shipments(self, records: dict[str, dict[str, Any]]) -> None:
        self._ensure_dir()
        # Write atomically (write to temp, then rename)
        temp_path = self.shipments_path.with_suffix(".tmp")
        temp_path.write_text(json.dumps(records, indent=2, sort_keys=True), encoding="utf-8")
        temp_path.replace(self.shipments_path)

    def iter_events(self) -> Iterator[ShipmentEvent]:
        """
        Iterate over all events in the ledger.

        Events are returned in append order.
        """
        if not self.events_path.exists():
            return
        with self.events_path.open("r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line:
                    yield ShipmentEvent.from_json(line)

    def _events_by_shipment(self) -> dict[str, list[ShipmentEvent]]:
        grouped: dict[str, list[ShipmentEvent]] = {}
        for event in self.iter_events():
            grouped.setdefault(event.shipment_id, []).append(event)
        return grouped

    def put(self, shipment: Shipment) -> None:
        with self._lock:
            records = self._read_shipments()
            records[shipment.shipment_id] = shipment.to_dict()
            self._write_shipments(records)

    def get(self, shipment_id: str) -> Shipment | None:
        with self._lock:
            data = self._read_shipments().get(shipment_id)
            if data is None:
                return None
            events = [e for e in self.iter_events() if e.shipment_id == shipment_id]
        return Shipment.from_dict(data, events)

    def append_event(self, event: ShipmentEvent) -> None:
        """
        Append an event to the ledger.

        This is the ONLY event write operation. Events are never modified
        or deleted once written.
        """
        with self._lock:
            self._ensure_dir()
            with self.events_path.open("a", encoding="utf-8") as f:
                f.write(event.to_json() + "\n")

    def events_for(self, shipment_id: str) -> list[ShipmentEvent]:
        with self._lock:
            return [e for e in self.iter_events() if e.shipment_id == shipment_id]

    def all_shipments(self) -> dict[str, Shipment]:
        with self._lock:
            records = self._read_shipments()
            grouped = self._events_by_shipment()
        return {sid: Shipment.from_dict(data, grouped.get(sid, [])) for sid, data in records.items()}

    def event_count(self) -> int:
        """Count total events in ledger."""
        if not self.events_path.exists():
            return 0
        count = 0
        with self.events_path.open("r", encoding="utf-8") as f:
            for line in f:
                if line.strip():
                    count += 1
        return count
