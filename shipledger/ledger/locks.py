"""Per-shipment write serialization."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator


@dataclass
class _Entry:
    lock: threading.Lock = field(default_factory=threading.Lock)
    users: int = 0  # holders plus waiters


class ShipmentLocks:
    """
    Hands out one lock per shipment id.

    Holding a shipment's lock makes read -> decide -> append -> mutate
    atomic with respect to other writers on the same id. Different ids
    never contend. An entry lives only while someone holds or waits on
    it, so lookups of unknown ids leave nothing behind.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: dict[str, _Entry] = {}

    @contextmanager
    def hold(self, shipment_id: str) -> Iterator[None]:
        with self._guard:
            entry = self._entries.get(shipment_id)
            if entry is None:
                entry = self._entries[shipment_id] = _Entry()
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._entries[shipment_id]

    def is_held(self, shipment_id: str) -> bool:
        with self._guard:
            entry = self._entries.get(shipment_id)
            return entry is not None and entry.lock.locked()

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)
