"""
Error taxonomy for shipment operations.

Rule rejections are not exceptions: the services return them as results.
Everything here is either fatal to a single operation (authorization),
a lookup miss, or a collaborator failure that propagates to the caller.
"""

from __future__ import annotations


class ShipLedgerError(Exception):
    """Base class for all shipledger errors."""


class AuthorizationError(ShipLedgerError, PermissionError):
    """Actor lacks the capability required for an operation."""

    def __init__(self, username: str, capability: str):
        self.username = username
        self.capability = capability
        super().__init__(f"User {username!r} is not authorized for {capability}")


class ShipmentNotFoundError(ShipLedgerError, LookupError):
    """No shipment is recorded under the given id."""

    def __init__(self, shipment_id: str):
        self.shipment_id = shipment_id
        super().__init__(f"Shipment not found: {shipment_id}")


class PaymentGatewayError(ShipLedgerError):
    """The payment gateway failed or did not answer in time."""


class ConfigError(ShipLedgerError, ValueError):
    """Configuration file or environment override is malformed."""
