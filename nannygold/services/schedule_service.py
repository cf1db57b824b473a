from datetime import date, datetime, timezone

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from nannygold.errors import AppError, GatewayError
from nannygold.extensions import db
from nannygold.models import Booking, PaymentAuthorization, PaymentSchedule, User
from nannygold.models.booking import BILLABLE_STATUSES
from nannygold.services.billing_dates import shift_month
from nannygold.services.invoice_service import PAYABLE_INVOICE_STATUSES, InvoiceService
from nannygold.services.payment_gateway import get_payment_gateway, new_reference
from nannygold.services.payment_service import PaymentService
from nannygold.services.referral_service import ReferralService

# Persisted position of a schedule inside its current billing cycle.
CYCLE_TRANSITIONS = {
    "scheduled": {"authorized", "authorization_failed"},
    "authorization_failed": {"authorized", "authorization_failed"},
    "authorized": {"captured", "capture_failed"},
    "capture_failed": {"captured", "capture_failed"},
    "captured": {"scheduled"},
}

SCHEDULE_STATUS_TRANSITIONS = {
    "active": {"paused", "cancelled"},
    "paused": {"active", "cancelled"},
    "cancelled": set(),
}


def _detail(schedule, status, message, **extra):
    row = {"schedule_id": schedule.id, "booking_id": schedule.booking_id, "status": status, "message": message}
    row.update(extra)
    return row


class ScheduleService:
    @staticmethod
    def _transition(schedule, new_state):
        current = schedule.cycle_status or "scheduled"
        if new_state not in CYCLE_TRANSITIONS.get(current, set()):
            raise AppError(f"Invalid billing cycle transition from {current} to {new_state}.", 409)
        schedule.cycle_status = new_state

    @staticmethod
    def cycle_state(schedule, as_of=None):
        """Where the schedule sits in its cycle on ``as_of``, including the date-driven due states."""
        as_of = as_of or date.today()
        if schedule.status != "active":
            return schedule.status
        state = schedule.cycle_status or "scheduled"
        if state == "scheduled" and schedule.next_authorization_date <= as_of:
            return "authorization_due"
        if state == "authorized" and schedule.next_capture_date <= as_of:
            return "capture_due"
        return state

    @staticmethod
    def _cycle_authorization(schedule, statuses):
        return (
            PaymentAuthorization.query.filter_by(booking_id=schedule.booking_id, billing_cycle=schedule.billing_cycle)
            .filter(PaymentAuthorization.status.in_(statuses))
            .order_by(PaymentAuthorization.id.desc())
            .first()
        )

    @staticmethod
    def _lock(schedule_id):
        schedule = PaymentSchedule.query.filter_by(id=schedule_id).with_for_update().first()
        if schedule is None:
            raise AppError(f"Payment schedule {schedule_id} not found.", 404)
        return schedule

    @staticmethod
    def _advance(schedule):
        schedule.next_authorization_date = shift_month(schedule.next_authorization_date, 1, schedule.authorization_day)
        schedule.next_capture_date = shift_month(schedule.next_capture_date, 1, schedule.capture_day)
        ScheduleService._transition(schedule, "scheduled")

    @staticmethod
    def _record_failure(schedule, stage, amount, error, authorization_code=None, reference=None, as_of=None):
        db.session.add(
            PaymentAuthorization(
                user_id=schedule.client_id,
                booking_id=schedule.booking_id,
                schedule_id=schedule.id,
                billing_cycle=schedule.billing_cycle,
                amount=amount,
                authorization_code=authorization_code,
                status="failed",
                paystack_reference=error.reference or reference,
                failure_reason=error.message,
                authorization_date=as_of if stage == "authorization" else None,
            )
        )
        ScheduleService._transition(schedule, f"{stage}_failed")
        db.session.commit()
        current_app.logger.warning(
            "Payment %s failed for schedule %s (cycle %s): %s", stage, schedule.id, schedule.billing_cycle, error.message
        )

    @staticmethod
    def _authorize(schedule_id, as_of, gateway):
        schedule = ScheduleService._lock(schedule_id)
        if schedule.status != "active":
            db.session.rollback()
            return _detail(schedule, "skipped", f"Schedule is {schedule.status}")
        if schedule.next_authorization_date > as_of:
            db.session.rollback()
            return _detail(schedule, "skipped", f"Authorization not due until {schedule.next_authorization_date}")
        booking = db.session.get(Booking, schedule.booking_id)
        if booking is None or booking.status not in BILLABLE_STATUSES:
            db.session.rollback()
            return _detail(schedule, "skipped", "Booking is not billable")
        existing = ScheduleService._cycle_authorization(schedule, ("authorized", "captured"))
        if existing is not None:
            db.session.rollback()
            return _detail(schedule, "skipped", f"Cycle {schedule.billing_cycle} already {existing.status}")

        client = db.session.get(User, schedule.client_id)
        invoice = InvoiceService.oldest_payable_invoice(schedule.booking_id, as_of)
        amount = invoice.amount if invoice is not None else schedule.amount
        code = PaymentService.stored_authorization_code(schedule.client_id)
        reference = new_reference(f"auth_{schedule.booking_id}")

        try:
            if code is None:
                raise GatewayError("No payment method on file. Client needs to make an initial payment.")
            result = gateway.charge_authorization(
                code,
                client.email,
                amount,
                current_app.config["BILLING_CURRENCY"],
                reference,
                metadata={
                    "booking_id": schedule.booking_id,
                    "user_id": schedule.client_id,
                    "billing_cycle": schedule.billing_cycle,
                    "type": "monthly_authorization",
                },
            )
        except GatewayError as exc:
            ScheduleService._record_failure(schedule, "authorization", amount, exc, code, reference, as_of)
            raise

        authorization = PaymentAuthorization(
            user_id=schedule.client_id,
            booking_id=schedule.booking_id,
            schedule_id=schedule.id,
            invoice_id=invoice.id if invoice is not None else None,
            billing_cycle=schedule.billing_cycle,
            amount=amount,
            authorization_code=code,
            status="authorized",
            paystack_reference=result.reference or reference,
            paystack_transaction_id=result.transaction_id,
            authorization_date=as_of,
        )
        db.session.add(authorization)
        schedule.last_authorization_date = as_of
        ScheduleService._transition(schedule, "authorized")
        db.session.commit()
        current_app.logger.info("Authorized %s for schedule %s (cycle %s)", amount, schedule.id, schedule.billing_cycle)
        return _detail(schedule, "authorized", "Payment authorized", authorization_id=authorization.id)

    @staticmethod
    def _capture(schedule_id, as_of, gateway):
        schedule = ScheduleService._lock(schedule_id)
        if schedule.status != "active":
            db.session.rollback()
            return _detail(schedule, "skipped", f"Schedule is {schedule.status}")
        if schedule.next_capture_date > as_of:
            db.session.rollback()
            return _detail(schedule, "skipped", f"Capture not due until {schedule.next_capture_date}")
        authorization = ScheduleService._cycle_authorization(schedule, ("authorized",))
        if authorization is None:
            db.session.rollback()
            return _detail(schedule, "skipped", f"No authorization for cycle {schedule.billing_cycle}")

        cycle = schedule.billing_cycle
        try:
            result = gateway.verify(authorization.paystack_reference)
            if not result.succeeded:
                raise GatewayError(result.message or f"Transaction {result.status}.", reference=authorization.paystack_reference)
        except GatewayError as exc:
            ScheduleService._record_failure(
                schedule, "capture", authorization.amount, exc, authorization.authorization_code,
                authorization.paystack_reference,
            )
            raise

        authorization.status = "captured"
        authorization.capture_date = as_of
        if result.transaction_id:
            authorization.paystack_transaction_id = result.transaction_id

        invoice = authorization.invoice
        if invoice is None or invoice.status not in PAYABLE_INVOICE_STATUSES:
            invoice = InvoiceService.oldest_payable_invoice(schedule.booking_id, as_of)
        if invoice is not None:
            InvoiceService.apply_payment(invoice, authorization.paystack_reference, as_of, "card")

        schedule.last_capture_date = as_of
        ScheduleService._transition(schedule, "captured")
        ScheduleService._advance(schedule)
        db.session.commit()
        current_app.logger.info("Captured %s for schedule %s (cycle %s)", authorization.amount, schedule.id, cycle)

        detail = _detail(
            schedule,
            "captured",
            "Payment captured",
            authorization_id=authorization.id,
            invoice_number=invoice.invoice_number if invoice is not None else None,
        )
        booking = db.session.get(Booking, schedule.booking_id)
        if booking is not None and booking.is_long_term:
            detail["referral"] = ScheduleService._track_referral(booking)
        return detail

    @staticmethod
    def _track_referral(booking):
        try:
            result = ReferralService.track_referral_reward(booking.id, booking.client_id)
        except (AppError, SQLAlchemyError) as exc:
            db.session.rollback()
            current_app.logger.warning("Referral tracking failed for booking %s: %s", booking.id, exc)
            return {"success": False, "message": str(exc)}
        if "reward_amount" in result:
            result = dict(result, reward_amount=str(result["reward_amount"]))
        return result

    @staticmethod
    def authorize_schedule(schedule_id, as_of=None):
        return ScheduleService._authorize(schedule_id, as_of or date.today(), get_payment_gateway())

    @staticmethod
    def capture_schedule(schedule_id, as_of=None):
        return ScheduleService._capture(schedule_id, as_of or date.today(), get_payment_gateway())

    @staticmethod
    def _sweep(action, schedule_ids, handler, as_of):
        gateway = get_payment_gateway()
        summary = {
            "action": action,
            "as_of": as_of.isoformat(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "processed": 0,
            "successful": 0,
            "skipped": 0,
            "errors": 0,
            "details": [],
        }
        for schedule_id in schedule_ids:
            try:
                detail = handler(schedule_id, as_of, gateway)
            except AppError as exc:
                db.session.rollback()
                detail = {"schedule_id": schedule_id, "status": "failed", "message": exc.message}
            except Exception as exc:
                db.session.rollback()
                current_app.logger.exception("Unexpected error during %s of schedule %s", action, schedule_id)
                detail = {"schedule_id": schedule_id, "status": "error", "message": str(exc)}

            if detail["status"] == "skipped":
                summary["skipped"] += 1
            else:
                summary["processed"] += 1
                if detail["status"] in ("failed", "error"):
                    summary["errors"] += 1
                else:
                    summary["successful"] += 1
            summary["details"].append(detail)

        current_app.logger.info(
            "Payment %s sweep as of %s: processed=%s successful=%s skipped=%s errors=%s",
            action, as_of, summary["processed"], summary["successful"], summary["skipped"], summary["errors"],
        )
        return summary

    @staticmethod
    def run_authorizations(as_of=None):
        as_of = as_of or date.today()
        schedule_ids = [
            row.id
            for row in PaymentSchedule.query.join(Booking, Booking.id == PaymentSchedule.booking_id)
            .filter(PaymentSchedule.status == "active")
            .filter(PaymentSchedule.next_authorization_date <= as_of)
            .filter(Booking.status.in_(BILLABLE_STATUSES))
            .order_by(PaymentSchedule.id.asc())
            .with_entities(PaymentSchedule.id)
        ]
        return ScheduleService._sweep("authorize", schedule_ids, ScheduleService._authorize, as_of)

    @staticmethod
    def run_captures(as_of=None):
        as_of = as_of or date.today()
        schedule_ids = [
            row.id
            for row in PaymentSchedule.query.filter(PaymentSchedule.status == "active")
            .filter(PaymentSchedule.next_capture_date <= as_of)
            .order_by(PaymentSchedule.id.asc())
            .with_entities(PaymentSchedule.id)
        ]
        return ScheduleService._sweep("capture", schedule_ids, ScheduleService._capture, as_of)

    @staticmethod
    def set_status(schedule_id, new_status):
        schedule = ScheduleService._lock(schedule_id)
        if new_status not in SCHEDULE_STATUS_TRANSITIONS.get(schedule.status, set()):
            db.session.rollback()
            raise AppError(f"Invalid schedule status transition from {schedule.status} to {new_status}.", 409)
        schedule.status = new_status
        db.session.commit()
        current_app.logger.info("Payment schedule %s is now %s", schedule.id, new_status)
        return schedule

    @staticmethod
    def resume(schedule_id):
        return ScheduleService.set_status(schedule_id, "active")

    @staticmethod
    def pause_for_booking(booking_id):
        """Stop charging while a booking is on hold.

        Entry point for the booking subsystem, exposed to it as
        ``POST /api/v1/billing/bookings/<id>/schedule/pause``.
        """
        schedule = PaymentSchedule.query.filter_by(booking_id=booking_id).first()
        if schedule is None or schedule.status != "active":
            return schedule
        return ScheduleService.set_status(schedule.id, "paused")

    @staticmethod
    def cancel_for_booking(booking_id):
        """Stop billing a cancelled booking. Past authorizations are left as they are.

        Called through ``POST /api/v1/billing/bookings/<id>/schedule/cancel``.
        """
        schedule = PaymentSchedule.query.filter_by(booking_id=booking_id).first()
        if schedule is None or schedule.status == "cancelled":
            return schedule
        return ScheduleService.set_status(schedule.id, "cancelled")
