import json
from datetime import date

import click
from flask import Blueprint

from nannygold.services import InvoiceService, ReconciliationService

billing_cli = Blueprint("billing", __name__, cli_group="billing")

as_of_option = click.option(
    "--as-of",
    "as_of",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    default=None,
    help="Run as if today were this date (YYYY-MM-DD).",
)


def _as_date(value):
    return value.date() if value is not None else date.today()


def _emit(summary):
    click.echo(json.dumps(summary, indent=2, default=str))


@billing_cli.cli.command("generate-invoices")
@as_of_option
def generate_invoices(as_of):
    """Create this month's invoice for every billable booking that lacks one."""
    _emit(ReconciliationService.generate_all_missing_invoices(_as_date(as_of)))


@billing_cli.cli.command("authorize")
@as_of_option
def authorize(as_of):
    """Authorize every payment schedule whose authorization date has passed."""
    _emit(ReconciliationService.run_authorizations(_as_date(as_of)))


@billing_cli.cli.command("capture")
@as_of_option
def capture(as_of):
    """Capture every authorized payment whose capture date has passed."""
    _emit(ReconciliationService.run_captures(_as_date(as_of)))


@billing_cli.cli.command("mark-overdue")
@as_of_option
def mark_overdue(as_of):
    count = InvoiceService.mark_overdue(_as_date(as_of))
    click.echo(f"{count} invoice(s) marked overdue.")
