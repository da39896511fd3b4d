"""
Payment gateway contract and implementations.

The core fires a payout once a shipment enters DELIVERED and does not
retry. TimeoutPaymentGateway bounds the call, since the gateway is the one
collaborator with real external latency.
"""

from __future__ import annotations

import json
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

from .errors import PaymentGatewayError
from .models import Shipment
from .util import new_ulid, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentReceipt:
    transaction_id: str
    shipment_id: str
    amount: float
    currency: str
    processed_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "transaction_id": self.transaction_id,
            "shipment_id": self.shipment_id,
            "amount": self.amount,
            "currency": self.currency,
            "processed_at": self.processed_at.isoformat(),
        }


class PaymentGateway(Protocol):
    def process_payment(self, shipment: Shipment) -> PaymentReceipt:
        """Release payment for a delivered shipment. Raises on failure."""
        ...


class RecordingPaymentGateway:
    """
    Payment gateway that records payouts instead of moving money.

    Receipts are kept in memory and, when `ledger_path` is given, appended
    to a JSON Lines file.
    """

    def __init__(
        self,
        *,
        amount: float = 100.0,
        currency: str = "USD",
        ledger_path: Path | None = None,
    ):
        self.amount = amount
        self.currency = currency
        self.ledger_path = ledger_path
        self._lock = threading.Lock()
        self.receipts: list[PaymentReceipt] = []

    def process_payment(self, shipment: Shipment) -> PaymentReceipt:
        if self.amount <= 0:
            raise PaymentGatewayError(f"Invalid payout amount: {self.amount}")

        receipt = PaymentReceipt(
            transaction_id=new_ulid(),
            shipment_id=shipment.shipment_id,
            amount=self.amount,
            currency=self.currency,
            processed_at=utcnow(),
        )
        with self._lock:
            self.receipts.append(receipt)
            if self.ledger_path is not None:
                self.ledger_path.parent.mkdir(parents=True, exist_ok=True)
                with self.ledger_path.open("a", encoding="utf-8") as f:
                    f.write(json.dumps(receipt.to_dict(), separators=(",", ":")) + "\n")
        return receipt

    def receipts_for(self, shipment_id: str) -> list[PaymentReceipt]:
        with self._lock:
            return [r for r in self.receipts if r.shipment_id == shipment_id]


class TimeoutPaymentGateway:
    """Wrap a gateway so a call fails with PaymentGatewayError after `timeout_seconds`."""

    def __init__(self, inner: PaymentGateway, *, timeout_seconds: float = 5.0):
        self.inner = inner
        self.timeout_seconds = timeout_seconds

    def process_payment(self, shipment: Shipment) -> PaymentReceipt:
        # Not a context manager: leaving it would block on a hung call.
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="payment")
        try:
            future = executor.submit(self.inner.process_payment, shipment)
            try:
                return future.result(timeout=self.timeout_seconds)
            except FutureTimeoutError as e:
                raise PaymentGatewayError(
                    f"Payment gateway timed out after {self.timeout_seconds}s "
                    f"for shipment {shipment.shipment_id}"
                ) from e
            except PaymentGatewayError:
                raise
            except Exception as e:
                raise PaymentGatewayError(f"Payment gateway failed: {e}") from e
        finally:
            executor.shutdown(wait=False)
