"""CLI entrypoint for shipledger."""

import sys
from dataclasses import replace
from datetime import datetime
from pathlib import Path

import click

from . import __version__
from .access import Role
from .status import ShipmentStatus
from .util import parse_timestamp

STATUS_CHOICES = [s.value for s in ShipmentStatus if s is not ShipmentStatus.UNKNOWN]


def _when(ctx: click.Context, param: click.Parameter, value: str | None) -> datetime | None:
    try:
        return parse_timestamp(value)
    except ValueError as e:
        raise click.BadParameter(f"not an ISO-8601 timestamp: {value!r}") from e


def _filter_options(fn):
    fn = click.option("--since", callback=_when, default=None, help="Only shipments created at or after (ISO-8601)")(fn)
    fn = click.option("--destination", default=None, help="Filter by destination")(fn)
    fn = click.option("--origin", default=None, help="Filter by origin")(fn)
    fn = click.option(
        "--status",
        type=click.Choice(STATUS_CHOICES, case_sensitive=False),
        default=None,
        help="Filter by current status",
    )(fn)
    return fn


@click.group()
@click.version_option(__version__, prog_name="shipledger")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Settings file (defaults to ./shipledger.toml when present)",
)
@click.option(
    "--data-dir",
    type=click.Path(file_okay=False, dir_okay=True, path_type=Path),
    default=None,
    help="Data directory for ledger, documents and payments",
)
@click.option("--user", "-u", envvar="SHIPLEDGER_USER", default=None, help="Acting username")
@click.option(
    "--role",
    "-r",
    type=click.Choice([r.value for r in Role], case_sensitive=False),
    envvar="SHIPLEDGER_ROLE",
    default=None,
    help="Role for a user not listed in the settings file",
)
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: Path | None,
    data_dir: Path | None,
    user: str | None,
    role: str | None,
    verbose: bool,
) -> None:
    """shipledger - Shipment ledger with rule-checked transitions.

    Track shipments, documents, customs decisions and disputes on an
    append-only event ledger.
    """
    from .app import build_app, configure_logging
    from .config import load_settings
    from .errors import ConfigError

    ctx.ensure_object(dict)
    try:
        settings = load_settings(config_path)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e
    if data_dir is not None:
        settings = replace(settings, data_dir=data_dir)

    configure_logging("DEBUG" if verbose else settings.log_level)

    app = build_app(settings)
    ctx.call_on_close(app.close)
    ctx.obj["app"] = app
    ctx.obj["user"] = user
    ctx.obj["role"] = role


def _who(ctx: click.Context) -> tuple:
    return ctx.obj["app"], ctx.obj["user"], ctx.obj["role"]


# -----------------------------------------------------------------------------
# Lifecycle
# -----------------------------------------------------------------------------


@cli.command()
@click.option("--origin", required=True, help="Origin location")
@click.option("--destination", required=True, help="Destination location")
@click.option("--description", default="", help="Goods description")
@click.option("--expected", callback=_when, default=None, help="Expected delivery (ISO-8601)")
@click.pass_context
def create(
    ctx: click.Context,
    origin: str,
    destination: str,
    description: str,
    expected: datetime | None,
) -> None:
    """Create a shipment and print its id.

    Examples:

        shipledger -u alice -r shipper create --origin Lagos --destination Rotterdam
    """
    from .commands.shipment_cmd import run_create

    sys.exit(
        run_create(
            *_who(ctx),
            origin=origin,
            destination=destination,
            description=description,
            expected=expected,
        )
    )


@cli.command()
@click.argument("shipment_id")
@click.argument("status")
@click.option("--note", default="", help="Event description")
@click.pass_context
def update(ctx: click.Context, shipment_id: str, status: str, note: str) -> None:
    """Move a shipment to STATUS (e.g. IN_TRANSIT, AT_BORDER, DELIVERED)."""
    from .commands.shipment_cmd import run_update

    sys.exit(run_update(*_who(ctx), shipment_id, status, note=note))


@cli.command()
@click.argument("shipment_id")
@click.argument("expected", callback=_when)
@click.pass_context
def schedule(ctx: click.Context, shipment_id: str, expected: datetime) -> None:
    """Set the expected delivery time (ISO-8601)."""
    from .commands.shipment_cmd import run_schedule

    sys.exit(run_schedule(*_who(ctx), shipment_id, expected))


@cli.command()
@click.argument("shipment_id")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--name", default=None, help="Document name (defaults to the file name)")
@click.pass_context
def upload(ctx: click.Context, shipment_id: str, path: Path, name: str | None) -> None:
    """Attach a document to a shipment."""
    from .commands.shipment_cmd import run_upload

    sys.exit(run_upload(*_who(ctx), shipment_id, path, name=name))


@cli.command()
@click.argument("shipment_id")
@click.option("--note", default="", help="Event description")
@click.pass_context
def confirm(ctx: click.Context, shipment_id: str, note: str) -> None:
    """Confirm delivery as the buyer; releases payment."""
    from .commands.shipment_cmd import run_confirm

    sys.exit(run_confirm(*_who(ctx), shipment_id, note=note))


# -----------------------------------------------------------------------------
# Queries
# -----------------------------------------------------------------------------


@cli.command()
@click.argument("shipment_id")
@click.pass_context
def status(ctx: click.Context, shipment_id: str) -> None:
    """Show a shipment's current state and events."""
    from .commands.shipment_cmd import run_status

    sys.exit(run_status(*_who(ctx), shipment_id))


@cli.command()
@click.argument("shipment_id")
@click.pass_context
def audit(ctx: click.Context, shipment_id: str) -> None:
    """Print the audit trail for a shipment."""
    from .commands.shipment_cmd import run_audit

    sys.exit(run_audit(*_who(ctx), shipment_id))


@cli.command()
@click.argument("shipment_id")
@click.argument("document_name")
@click.pass_context
def verify(ctx: click.Context, shipment_id: str, document_name: str) -> None:
    """Check a stored document against its recorded digest."""
    from .commands.shipment_cmd import run_verify

    sys.exit(run_verify(*_who(ctx), shipment_id, document_name))


@cli.command("verify-ledger")
@click.argument("shipment_id")
@click.pass_context
def verify_ledger(ctx: click.Context, shipment_id: str) -> None:
    """Check that a shipment's event history is in strict time order."""
    from .commands.shipment_cmd import run_verify_ledger

    sys.exit(run_verify_ledger(*_who(ctx), shipment_id))


@cli.command()
@click.argument("shipment_id")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def risk(ctx: click.Context, shipment_id: str, output_json: bool) -> None:
    """Fraud risk assessment for a shipment."""
    from .commands.shipment_cmd import run_risk

    sys.exit(run_risk(*_who(ctx), shipment_id, output_json=output_json))


@cli.command()
@click.argument("shipment_id")
@click.pass_context
def check(ctx: click.Context, shipment_id: str) -> None:
    """Evaluate every contract rule against a shipment."""
    from .commands.shipment_cmd import run_check

    sys.exit(run_check(*_who(ctx), shipment_id))


@cli.command()
@_filter_options
@click.pass_context
def summary(
    ctx: click.Context,
    status: str | None,
    origin: str | None,
    destination: str | None,
    since: datetime | None,
) -> None:
    """Compliance summary over matching shipments."""
    from .commands.shipment_cmd import run_summary

    sys.exit(
        run_summary(*_who(ctx), status=status, origin=origin, destination=destination, since=since)
    )


@cli.command("list")
@_filter_options
@click.pass_context
def list_shipments(
    ctx: click.Context,
    status: str | None,
    origin: str | None,
    destination: str | None,
    since: datetime | None,
) -> None:
    """List shipments."""
    from .commands.shipment_cmd import run_list

    sys.exit(
        run_list(*_who(ctx), status=status, origin=origin, destination=destination, since=since)
    )


# -----------------------------------------------------------------------------
# Compliance writes
# -----------------------------------------------------------------------------


@cli.command()
@click.argument("shipment_id")
@click.argument("reason")
@click.pass_context
def dispute(ctx: click.Context, shipment_id: str, reason: str) -> None:
    """Raise a dispute on an undelivered shipment."""
    from .commands.shipment_cmd import run_dispute

    sys.exit(run_dispute(*_who(ctx), shipment_id, reason))


@cli.command()
@click.argument("shipment_id")
@click.argument("decision", type=click.Choice(["APPROVE", "REJECT"], case_sensitive=False))
@click.pass_context
def clearance(ctx: click.Context, shipment_id: str, decision: str) -> None:
    """Record a customs decision for a shipment at the border."""
    from .commands.shipment_cmd import run_clearance

    sys.exit(run_clearance(*_who(ctx), shipment_id, decision))


@cli.command()
@click.argument("shipment_id")
@click.argument("issue")
@click.pass_context
def alert(ctx: click.Context, shipment_id: str, issue: str) -> None:
    """Record a customs alert."""
    from .commands.shipment_cmd import run_alert

    sys.exit(run_alert(*_who(ctx), shipment_id, issue))


@cli.command()
@click.argument("shipment_id")
@click.pass_context
def insurance(ctx: click.Context, shipment_id: str) -> None:
    """File an insurance claim if the shipment is damaged or late."""
    from .commands.shipment_cmd import run_insurance

    sys.exit(run_insurance(*_who(ctx), shipment_id))


if __name__ == "__main__":
    cli()
