"""
Identities, roles and capabilities.

Authorization is a table lookup: each Role maps to the set of Capabilities
it holds. Services check the capability before consulting the rule engine,
so an unauthorized call never reads or writes shipment state.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator

from .errors import AuthorizationError

logger = logging.getLogger(__name__)


class Role(str, Enum):
    ADMIN = "admin"
    SHIPPER = "shipper"
    CARRIER = "carrier"  # logistics provider
    WAREHOUSE = "warehouse"
    CUSTOMS_OFFICER = "customs_officer"
    BUYER = "buyer"
    AUDITOR = "auditor"

    @classmethod
    def parse(cls, value: "str | Role") -> "Role":
        if isinstance(value, Role):
            return value
        label = str(value).strip().lower().replace("-", "_").replace(" ", "_")
        if label == "logistics_provider":
            return cls.CARRIER
        return cls(label)


class Capability(str, Enum):
    SHIPMENT_CREATE = "shipment.create"
    SHIPMENT_UPDATE = "shipment.update"
    SHIPMENT_QUERY = "shipment.query"
    DOCUMENT_UPLOAD = "document.upload"
    DELIVERY_CONFIRM = "delivery.confirm"
    DISPUTE_RAISE = "dispute.raise"
    CUSTOMS_CLEARANCE = "customs.clearance"
    AUDIT_READ = "audit.read"
    INSURANCE_CLAIM = "insurance.claim"  # appends a claim event


# (role, capability) -> allowed. Anything absent is denied.
CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.ADMIN: frozenset(Capability),
    Role.SHIPPER: frozenset({
        Capability.SHIPMENT_CREATE,
        Capability.SHIPMENT_UPDATE,
        Capability.SHIPMENT_QUERY,
        Capability.DOCUMENT_UPLOAD,
        Capability.DISPUTE_RAISE,
    }),
    Role.CARRIER: frozenset({
        Capability.SHIPMENT_UPDATE,
        Capability.SHIPMENT_QUERY,
        Capability.DOCUMENT_UPLOAD,
    }),
    Role.WAREHOUSE: frozenset({
        Capability.SHIPMENT_UPDATE,
        Capability.SHIPMENT_QUERY,
        Capability.DOCUMENT_UPLOAD,
    }),
    Role.CUSTOMS_OFFICER: frozenset({
        Capability.SHIPMENT_QUERY,
        Capability.DOCUMENT_UPLOAD,
        Capability.CUSTOMS_CLEARANCE,
    }),
    Role.BUYER: frozenset({
        Capability.SHIPMENT_QUERY,
        Capability.DELIVERY_CONFIRM,
        Capability.DISPUTE_RAISE,
    }),
    Role.AUDITOR: frozenset({
        Capability.SHIPMENT_QUERY,
        Capability.AUDIT_READ,
        Capability.INSURANCE_CLAIM,
    }),
}


@dataclass(frozen=True)
class Identity:
    """A participant: one username, one role."""

    username: str
    role: Role
    email: str | None = None

    def __str__(self) -> str:
        return f"{self.username} ({self.role.value})"


def authorize(identity: Identity | None, capability: Capability) -> bool:
    """True if the identity's role holds the capability."""
    if identity is None:
        return False
    return capability in CAPABILITIES.get(identity.role, frozenset())


def require_capability(identity: Identity | None, capability: Capability) -> None:
    """Raise AuthorizationError unless the identity holds the capability."""
    if authorize(identity, capability):
        return
    username = identity.username if identity else "<anonymous>"
    logger.warning("authorization denied: %s lacks %s", username, capability.value)
    raise AuthorizationError(username, capability.value)


class SessionStore:
    """
    Process-scoped registry of known identities.

    Created explicitly at startup, passed to whoever needs to resolve a
    username, and cleared at shutdown. Usable as a context manager.
    """

    def __init__(self, identities: Iterable[Identity] = ()):
        self._lock = threading.Lock()
        self._identities: dict[str, Identity] = {}
        self._open = True
        for identity in identities:
            self.register(identity)

    @property
    def is_open(self) -> bool:
        return self._open

    def register(self, identity: Identity) -> Identity:
        with self._lock:
            if not self._open:
                raise RuntimeError("session store is closed")
            self._identities[identity.username] = identity
        return identity

    def get(self, username: str) -> Identity | None:
        with self._lock:
            return self._identities.get(username)

    def resolve(self, username: str, role: str | Role | None = None) -> Identity:
        """
        Look up a known identity, or register an ad-hoc one when a role is given.

        Raises:
            AuthorizationError: unknown username and no role to register it with,
                or a known username claiming a different role
        """
        known = self.get(username)
        if role is None:
            if known is None:
                raise AuthorizationError(username, "login")
            return known
        parsed = Role.parse(role)
        if known is not None:
            if known.role != parsed:
                raise AuthorizationError(username, f"role {parsed.value}")
            return known
        return self.register(Identity(username=username, role=parsed))

    def clear(self) -> None:
        with self._lock:
            self._identities.clear()
            self._open = False

    def __iter__(self) -> Iterator[Identity]:
        with self._lock:
            return iter(list(self._identities.values()))

    def __len__(self) -> int:
        return len(self._identities)

    def __enter__(self) -> SessionStore:
        return self

    def __exit__(self, *exc: object) -> None:
        self.clear()
