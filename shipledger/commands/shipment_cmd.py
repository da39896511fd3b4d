"""Shipment CLI commands.

Every `run_*` function returns a process exit code:

    0  success
    1  rule rejection, unknown shipment/document, failed verification,
       payment failure
    2  authorization failure
"""

from __future__ import annotations

import functools
import json
from datetime import datetime
from pathlib import Path
from typing import Callable

from rich.console import Console
from rich.table import Table

from ..access import Identity
from ..app import ShipLedger
from ..compliance import ShipmentFilter, not_found_message
from ..errors import AuthorizationError, PaymentGatewayError, ShipLedgerError
from ..lifecycle import TransitionResult
from ..status import ShipmentStatus

EXIT_OK = 0
EXIT_REJECTED = 1
EXIT_UNAUTHORIZED = 2


def _guarded(fn: Callable[..., int]) -> Callable[..., int]:
    """Turn ShipLedgerError into a red stderr line and an exit code."""

    @functools.wraps(fn)
    def wrapper(*args, **kwargs) -> int:
        err = Console(stderr=True)
        try:
            return fn(*args, **kwargs)
        except AuthorizationError as e:
            err.print(str(e), style="bold red", markup=False, highlight=False)
            return EXIT_UNAUTHORIZED
        except ShipLedgerError as e:
            err.print(str(e), style="bold red", markup=False, highlight=False)
            return EXIT_REJECTED

    return wrapper


def _actor(app: ShipLedger, user: str | None, role: str | None) -> Identity:
    if not user:
        raise AuthorizationError("<anonymous>", "login")
    return app.sessions.resolve(user, role)


def _say(console: Console, text: str, style: str | None = None) -> None:
    # Shipment text is data, never rich markup; keep long lines intact.
    console.print(text, style=style, markup=False, highlight=False, soft_wrap=True)


def _fail(text: str) -> int:
    _say(Console(stderr=True), text, style="bold red")
    return EXIT_REJECTED


def _exists(app: ShipLedger, shipment_id: str) -> bool:
    return app.lifecycle.find_shipment(shipment_id) is not None


def _print_transition(result: TransitionResult) -> int:
    if not result.success:
        return _fail(result.message)
    console = Console()
    _say(console, result.message)
    if result.receipt is not None:
        r = result.receipt
        _say(console, f"Payment released: {r.currency} {r.amount:.2f} (txn {r.transaction_id})", style="green")
    return EXIT_OK


# -----------------------------------------------------------------------------
# Lifecycle
# -----------------------------------------------------------------------------


@_guarded
def run_create(
    app: ShipLedger,
    user: str | None,
    role: str | None,
    *,
    origin: str,
    destination: str,
    description: str,
    expected: datetime | None = None,
) -> int:
    actor = _actor(app, user, role)
    shipment = app.lifecycle.create_shipment(
        actor, origin, destination, description, expected_delivery_at=expected
    )
    _say(Console(), shipment.shipment_id)
    return EXIT_OK


@_guarded
def run_update(
    app: ShipLedger,
    user: str | None,
    role: str | None,
    shipment_id: str,
    status: str,
    *,
    note: str = "",
) -> int:
    actor = _actor(app, user, role)
    try:
        result = app.lifecycle.update_status(actor, shipment_id, status, note)
    except PaymentGatewayError as e:
        return _fail(f"Status recorded, but payment failed: {e}")
    return _print_transition(result)


@_guarded
def run_confirm(
    app: ShipLedger,
    user: str | None,
    role: str | None,
    shipment_id: str,
    *,
    note: str = "",
) -> int:
    actor = _actor(app, user, role)
    try:
        result = app.lifecycle.confirm_delivery(actor, shipment_id, note)
    except PaymentGatewayError as e:
        return _fail(f"Delivery recorded, but payment failed: {e}")
    return _print_transition(result)


@_guarded
def run_schedule(
    app: ShipLedger,
    user: str | None,
    role: str | None,
    shipment_id: str,
    expected: datetime,
) -> int:
    actor = _actor(app, user, role)
    return _print_transition(app.lifecycle.schedule_delivery(actor, shipment_id, expected))


@_guarded
def run_upload(
    app: ShipLedger,
    user: str | None,
    role: str | None,
    shipment_id: str,
    path: Path,
    *,
    name: str | None = None,
) -> int:
    actor = _actor(app, user, role)
    try:
        document = app.lifecycle.upload_document(actor, shipment_id, name or path.name, path.read_bytes())
    except ValueError as e:
        return _fail(str(e))

    console = Console()
    _say(console, f"Uploaded {document.name} to shipment {shipment_id}")
    _say(console, f"  sha256: {document.digest}", style="dim")
    return EXIT_OK


# -----------------------------------------------------------------------------
# Queries
# -----------------------------------------------------------------------------


@_guarded
def run_status(app: ShipLedger, user: str | None, role: str | None, shipment_id: str) -> int:
    actor = _actor(app, user, role)
    text = app.compliance.query_status(actor, shipment_id)
    if not _exists(app, shipment_id):
        return _fail(text)
    _say(Console(), text)
    return EXIT_OK


@_guarded
def run_audit(app: ShipLedger, user: str | None, role: str | None, shipment_id: str) -> int:
    actor = _actor(app, user, role)
    report = app.compliance.generate_audit_trail(actor, shipment_id)
    if not _exists(app, shipment_id):
        return _fail(report.body)
    _say(Console(), report.render())
    return EXIT_OK


@_guarded
def run_verify(
    app: ShipLedger,
    user: str | None,
    role: str | None,
    shipment_id: str,
    document_name: str,
) -> int:
    actor = _actor(app, user, role)
    text = app.compliance.verify_document(actor, shipment_id, document_name)
    if not text.endswith(": VALID"):
        return _fail(text)
    _say(Console(), text, style="green")
    return EXIT_OK


@_guarded
def run_verify_ledger(app: ShipLedger, user: str | None, role: str | None, shipment_id: str) -> int:
    actor = _actor(app, user, role)
    text = app.compliance.verify_ledger(actor, shipment_id)
    if "VERIFIED" not in text:
        return _fail(text)
    _say(Console(), text, style="green")
    return EXIT_OK


@_guarded
def run_risk(
    app: ShipLedger,
    user: str | None,
    role: str | None,
    shipment_id: str,
    *,
    output_json: bool = False,
) -> int:
    actor = _actor(app, user, role)
    assessment = app.compliance.assess_fraud_risk(actor, shipment_id)
    if assessment is None:
        return _fail(not_found_message(shipment_id))

    if output_json:
        print(json.dumps(assessment.to_dict(), indent=2, sort_keys=True))
        return EXIT_OK

    style = {"low": "green", "medium": "yellow", "high": "bold red"}[assessment.level.value]
    console = Console()
    _say(console, f"{shipment_id}: {assessment.label}", style=style)
    for reason in assessment.reasons:
        _say(console, f"  - {reason}", style="dim")
    return EXIT_OK


@_guarded
def run_check(app: ShipLedger, user: str | None, role: str | None, shipment_id: str) -> int:
    actor = _actor(app, user, role)
    checks = app.compliance.check_rules(actor, shipment_id)
    if checks is None:
        return _fail(not_found_message(shipment_id))

    table = Table(title=f"Rules for {shipment_id}")
    table.add_column("rule", style="cyan", no_wrap=True)
    table.add_column("result", no_wrap=True)
    table.add_column("message")
    for check in checks:
        table.add_row(
            check.rule,
            "[green]pass[/green]" if check.passed else "[red]fail[/red]",
            check.message,
        )
    Console().print(table)
    return EXIT_OK


def _shipment_filter(
    status: str | None,
    origin: str | None,
    destination: str | None,
    since: datetime | None,
) -> ShipmentFilter:
    return ShipmentFilter(
        status=ShipmentStatus.parse(status),
        origin=origin,
        destination=destination,
        created_after=since,
    )


@_guarded
def run_summary(
    app: ShipLedger,
    user: str | None,
    role: str | None,
    *,
    status: str | None = None,
    origin: str | None = None,
    destination: str | None = None,
    since: datetime | None = None,
) -> int:
    actor = _actor(app, user, role)
    report = app.compliance.generate_compliance_summary(
        actor, _shipment_filter(status, origin, destination, since)
    )
    _say(Console(), report.render())
    return EXIT_OK


@_guarded
def run_list(
    app: ShipLedger,
    user: str | None,
    role: str | None,
    *,
    status: str | None = None,
    origin: str | None = None,
    destination: str | None = None,
    since: datetime | None = None,
) -> int:
    actor = _actor(app, user, role)
    shipments = app.compliance.list_shipments(
        actor, _shipment_filter(status, origin, destination, since)
    )

    table = Table(title="Shipments")
    table.add_column("shipment_id", style="cyan", no_wrap=True)
    table.add_column("status")
    table.add_column("origin")
    table.add_column("destination")
    table.add_column("docs", justify="right")
    table.add_column("created", style="dim")
    for s in shipments:
        table.add_row(
            s.shipment_id,
            s.status.value,
            s.origin,
            s.destination,
            str(len(s.documents)),
            s.created_at.strftime("%Y-%m-%d %H:%M"),
        )
    Console().print(table)
    return EXIT_OK


# -----------------------------------------------------------------------------
# Compliance writes
# -----------------------------------------------------------------------------


@_guarded
def run_dispute(
    app: ShipLedger,
    user: str | None,
    role: str | None,
    shipment_id: str,
    reason: str,
) -> int:
    actor = _actor(app, user, role)
    text = app.compliance.log_dispute(actor, shipment_id, reason)
    if not text.startswith("Dispute logged"):
        return _fail(text)
    _say(Console(), text)
    return EXIT_OK


@_guarded
def run_clearance(
    app: ShipLedger,
    user: str | None,
    role: str | None,
    shipment_id: str,
    decision: str,
) -> int:
    actor = _actor(app, user, role)
    text = app.compliance.approve_clearance(actor, shipment_id, decision)
    if not _exists(app, shipment_id) or text.startswith("Clearance rejected:"):
        return _fail(text)
    _say(Console(), text)
    return EXIT_OK


@_guarded
def run_alert(
    app: ShipLedger,
    user: str | None,
    role: str | None,
    shipment_id: str,
    issue: str,
) -> int:
    actor = _actor(app, user, role)
    text = app.compliance.raise_customs_alert(actor, shipment_id, issue)
    if not _exists(app, shipment_id):
        return _fail(text)
    _say(Console(), text, style="yellow")
    return EXIT_OK


@_guarded
def run_insurance(app: ShipLedger, user: str | None, role: str | None, shipment_id: str) -> int:
    actor = _actor(app, user, role)
    text = app.compliance.check_insurance_claim(actor, shipment_id)
    if not _exists(app, shipment_id):
        return _fail(text)
    _say(Console(), text)
    return EXIT_OK
