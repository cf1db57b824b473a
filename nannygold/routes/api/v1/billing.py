from flask import Blueprint, current_app, jsonify, request

from nannygold.decorators import admin_required
from nannygold.errors import AppError, InvalidInputError
from nannygold.extensions import cache, limiter
from nannygold.models import Invoice, PaymentSchedule
from nannygold.routes.api.v1.params import parse_as_of
from nannygold.services import InvoiceService, ReconciliationService, ScheduleService

api_billing_bp = Blueprint("api_billing", __name__)


def _automation_limit():
    return current_app.config.get("RATELIMIT_AUTOMATION", "10 per minute")


@api_billing_bp.get("/overview")
@admin_required
@cache.cached(timeout=60, query_string=True)
def overview():
    return jsonify(InvoiceService.missing_invoice_overview(parse_as_of(request.args)))


@api_billing_bp.post("/invoices/generate-missing")
@admin_required
@limiter.limit(_automation_limit)
def generate_missing_invoices():
    payload = request.get_json(silent=True) or {}
    return jsonify(ReconciliationService.generate_all_missing_invoices(parse_as_of(payload)))


@api_billing_bp.post("/payments/authorize")
@admin_required
@limiter.limit(_automation_limit)
def authorize_payments():
    payload = request.get_json(silent=True) or {}
    return jsonify(ReconciliationService.run_authorizations(parse_as_of(payload)))


@api_billing_bp.post("/payments/capture")
@admin_required
@limiter.limit(_automation_limit)
def capture_payments():
    payload = request.get_json(silent=True) or {}
    return jsonify(ReconciliationService.run_captures(parse_as_of(payload)))


@api_billing_bp.post("/bookings/<int:booking_id>/invoice")
@admin_required
def generate_booking_invoice(booking_id):
    payload = request.get_json(silent=True) or {}
    invoice = InvoiceService.generate_invoice(booking_id, as_of=parse_as_of(payload))
    return jsonify(invoice.to_dict()), 201


@api_billing_bp.post("/invoices/<int:invoice_id>/mark-paid")
@admin_required
def mark_invoice_paid(invoice_id):
    payload = request.get_json(silent=True) or {}
    invoice = InvoiceService.mark_paid(
        invoice_id,
        payment_reference=(payload.get("payment_reference") or "").strip(),
        paid_date=parse_as_of({"as_of": payload.get("payment_date")}),
        payment_method=payload.get("payment_method") or "eft",
    )
    return jsonify(invoice.to_dict())


@api_billing_bp.get("/bookings/<int:booking_id>/invoices")
@admin_required
def booking_invoices(booking_id):
    rows = Invoice.query.filter_by(booking_id=booking_id).order_by(Invoice.issue_date.desc()).all()
    return jsonify([row.to_dict() for row in rows])


@api_billing_bp.get("/schedules/<int:schedule_id>")
@admin_required
def schedule_state(schedule_id):
    schedule = PaymentSchedule.query.get_or_404(schedule_id)
    as_of = parse_as_of(request.args)
    return jsonify(
        {
            "id": schedule.id,
            "booking_id": schedule.booking_id,
            "status": schedule.status,
            "cycle_state": ScheduleService.cycle_state(schedule, as_of),
            "billing_cycle": schedule.billing_cycle,
            "amount": str(schedule.amount),
            "next_authorization_date": schedule.next_authorization_date.isoformat(),
            "next_capture_date": schedule.next_capture_date.isoformat(),
        }
    )


@api_billing_bp.post("/schedules/<int:schedule_id>/status")
@admin_required
def update_schedule_status(schedule_id):
    payload = request.get_json(silent=True) or {}
    schedule = ScheduleService.set_status(schedule_id, (payload.get("status") or "").strip().lower())
    return jsonify({"id": schedule.id, "status": schedule.status})


@api_billing_bp.post("/invoices/<int:invoice_id>/regenerate")
@admin_required
def regenerate_invoice(invoice_id):
    payload = request.get_json(silent=True) or {}
    invoice = InvoiceService.regenerate_invoice(invoice_id, as_of=parse_as_of(payload))
    return jsonify(invoice.to_dict())


@api_billing_bp.post("/invoices/regenerate")
@admin_required
def regenerate_invoices():
    payload = request.get_json(silent=True) or {}
    invoice_ids = payload.get("invoice_ids")
    if not isinstance(invoice_ids, list) or not all(isinstance(item, int) for item in invoice_ids):
        raise InvalidInputError("invoice_ids must be a list of invoice ids.")
    return jsonify(InvoiceService.regenerate_invoices(invoice_ids, as_of=parse_as_of(payload)))


@api_billing_bp.post("/bookings/<int:booking_id>/schedule/<action>")
@admin_required
def booking_schedule_action(booking_id, action):
    """Pause or cancel billing when the booking subsystem pauses or cancels a booking."""
    handlers = {"pause": ScheduleService.pause_for_booking, "cancel": ScheduleService.cancel_for_booking}
    if action not in handlers:
        raise InvalidInputError(f"Unknown schedule action: {action}.")
    schedule = handlers[action](booking_id)
    if schedule is None:
        raise AppError(f"Booking {booking_id} has no payment schedule.", 404)
    return jsonify({"id": schedule.id, "booking_id": schedule.booking_id, "status": schedule.status})
