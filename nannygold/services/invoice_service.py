from datetime import date, timedelta
from decimal import Decimal

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from nannygold.errors import AppError, InvalidInputError, InvoiceGenerationError
from nannygold.extensions import db
from nannygold.models import Booking, BookingFinancials, Invoice, PaymentSchedule
from nannygold.models.booking import BILLABLE_STATUSES
from nannygold.services.billing_dates import first_cycle_dates, month_bounds, month_key
from nannygold.services.notification_service import NotificationService
from nannygold.services.revenue_service import RevenueService

PAYABLE_INVOICE_STATUSES = ("pending", "overdue")

# A unique-constraint failure with no winning invoice is an invoice number
# collision; the write is retried once with a fresh number.
INVOICE_WRITE_ATTEMPTS = 2


class InvoiceService:
    @staticmethod
    def _generate_invoice_number(issue_date):
        prefix = f"{current_app.config['INVOICE_NUMBER_PREFIX']}-{issue_date:%y%m}-"
        last = (
            Invoice.query.with_entities(Invoice.invoice_number)
            .filter(Invoice.invoice_number.like(f"{prefix}%"))
            .order_by(db.func.length(Invoice.invoice_number).desc(), Invoice.invoice_number.desc())
            .first()
        )
        sequence = 1
        if last is not None:
            suffix = last[0][len(prefix):]
            sequence = int(suffix) + 1 if suffix.isdigit() else sequence
        return f"{prefix}{sequence:04d}"

    @staticmethod
    def invoice_for_month(booking_id, as_of):
        month_start, month_end = month_bounds(as_of)
        return (
            Invoice.query.filter(Invoice.booking_id == booking_id)
            .filter(Invoice.issue_date >= month_start, Invoice.issue_date <= month_end)
            .order_by(Invoice.id.asc())
            .first()
        )

    @staticmethod
    def existing_invoice(booking, as_of):
        """The invoice that already covers ``booking`` on ``as_of``.

        Long-term bookings are billed once per calendar month. Short-term
        bookings are billed once in total, whatever month that happened in.
        """
        if booking.is_long_term:
            return InvoiceService.invoice_for_month(booking.id, as_of)
        return Invoice.query.filter(Invoice.booking_id == booking.id).order_by(Invoice.id.asc()).first()

    @staticmethod
    def billable_bookings(as_of):
        """Bookings that may need an invoice in the month of ``as_of``."""
        month_start, _ = month_bounds(as_of)
        return (
            Booking.query.filter(Booking.status.in_(BILLABLE_STATUSES))
            .filter(Booking.start_date <= as_of)
            .filter(db.or_(Booking.end_date.is_(None), Booking.end_date >= month_start))
        )

    @staticmethod
    def billable_amount(booking, split, is_first_invoice):
        if is_first_invoice or not booking.is_long_term:
            return split.gross_amount
        return split.monthly_rate

    @staticmethod
    def _line_items(booking, split, is_first_invoice):
        if booking.is_long_term:
            items = []
            if is_first_invoice:
                arrangement = "Live-In" if booking.living_arrangement == "live_in" else "Live-Out"
                items.append({"description": f"{arrangement} Nanny Placement Fee", "amount": str(split.fixed_fee)})
            items.append({"description": "Monthly Nanny Service", "amount": str(split.monthly_rate)})
            return items
        return [
            {"description": "Short-term Service Charges", "amount": str(split.gross_amount - split.fixed_fee)},
            {"description": "Booking Fee", "amount": str(split.fixed_fee)},
        ]

    @staticmethod
    def _upsert_financials(booking, split):
        financials = BookingFinancials.query.filter_by(booking_id=booking.id).first()
        if financials is None:
            financials = BookingFinancials(booking_id=booking.id)
            db.session.add(financials)
        for field, value in split.as_financials().items():
            setattr(financials, field, value)
        financials.currency = current_app.config["BILLING_CURRENCY"]
        return financials

    @staticmethod
    def _refresh_schedule(booking, split, as_of):
        schedule = PaymentSchedule.query.filter_by(booking_id=booking.id).first()
        if schedule is not None:
            # Dates belong to the cycle state machine; only the amount follows the booking.
            schedule.amount = split.monthly_rate
            return schedule

        authorization_day = current_app.config["AUTHORIZATION_DAY"]
        capture_day = current_app.config["CAPTURE_DAY"]
        next_authorization, next_capture = first_cycle_dates(as_of, authorization_day, capture_day)
        schedule = PaymentSchedule(
            booking_id=booking.id,
            client_id=booking.client_id,
            amount=split.monthly_rate,
            authorization_day=authorization_day,
            capture_day=capture_day,
            next_authorization_date=next_authorization,
            next_capture_date=next_capture,
            status="active",
            cycle_status="scheduled",
        )
        db.session.add(schedule)
        return schedule

    @staticmethod
    def _write_invoice(booking, split, amount, is_first_invoice, as_of):
        InvoiceService._upsert_financials(booking, split)
        invoice = Invoice(
            booking_id=booking.id,
            client_id=booking.client_id,
            invoice_number=InvoiceService._generate_invoice_number(as_of),
            billing_month=month_key(as_of),
            amount=amount,
            issue_date=as_of,
            due_date=as_of + timedelta(days=current_app.config["INVOICE_DUE_DAYS"]),
            status="pending",
            line_items=InvoiceService._line_items(booking, split, is_first_invoice),
        )
        db.session.add(invoice)
        if booking.is_long_term:
            InvoiceService._refresh_schedule(booking, split, as_of)
        db.session.flush()
        NotificationService.push(
            booking.client_id,
            "Invoice Generated",
            f"Your invoice {invoice.invoice_number} for R{amount:.2f} is ready.",
            kind="invoice_created",
            data={"invoice_id": invoice.id, "booking_id": booking.id, "amount": str(amount)},
        )
        db.session.commit()
        return invoice

    @staticmethod
    def generate_invoice(booking_id, as_of=None):
        """Create this month's invoice for a booking, or return the one that exists.

        Financials, invoice and payment schedule are written in one transaction;
        a failure leaves none of them behind.
        """
        as_of = as_of or date.today()
        booking = db.session.get(Booking, booking_id)
        if booking is None:
            raise InvalidInputError(f"Booking {booking_id} not found.", 404)
        existing = InvoiceService.existing_invoice(booking, as_of)
        if existing is not None:
            current_app.logger.info(
                "Invoice %s already covers booking %s in %s", existing.invoice_number, booking_id, month_key(as_of)
            )
            return existing
        if booking.status == "cancelled":
            raise InvalidInputError(f"Booking {booking_id} is cancelled and cannot be invoiced.")

        split = RevenueService.compute_for_booking(booking)
        is_first_invoice = booking.invoices.count() == 0
        amount = InvoiceService.billable_amount(booking, split, is_first_invoice)

        for attempt in range(1, INVOICE_WRITE_ATTEMPTS + 1):
            try:
                invoice = InvoiceService._write_invoice(booking, split, amount, is_first_invoice, as_of)
            except IntegrityError as exc:
                db.session.rollback()
                winner = InvoiceService.existing_invoice(booking, as_of)
                if winner is not None:
                    current_app.logger.info(
                        "Concurrent invoice generation for booking %s resolved to %s", booking_id, winner.invoice_number
                    )
                    return winner
                if attempt == INVOICE_WRITE_ATTEMPTS:
                    raise InvoiceGenerationError(f"Failed to generate invoice for booking {booking_id}.") from exc
                current_app.logger.warning("Invoice number collision for booking %s, retrying", booking_id)
            except SQLAlchemyError as exc:
                db.session.rollback()
                current_app.logger.exception("Invoice generation failed for booking %s", booking_id)
                raise InvoiceGenerationError(f"Failed to generate invoice for booking {booking_id}.") from exc
            else:
                break

        current_app.logger.info("Invoice %s generated for booking %s (%s)", invoice.invoice_number, booking.id, amount)
        return invoice

    @staticmethod
    def regenerate_invoice(invoice_id, as_of=None):
        """Rebuild an invoice from the booking's current data.

        Number, issue date and payment state are kept; amount, line items,
        financials and the schedule amount follow the booking.
        """
        invoice = db.session.get(Invoice, invoice_id)
        if invoice is None:
            raise AppError("Invoice not found.", 404)
        if invoice.status == "cancelled":
            raise AppError(f"Invoice {invoice.invoice_number} is cancelled and cannot be regenerated.", 409)
        booking = db.session.get(Booking, invoice.booking_id)

        split = RevenueService.compute_for_booking(booking)
        is_first_invoice = (
            Invoice.query.filter(Invoice.booking_id == booking.id, Invoice.id < invoice.id).count() == 0
        )
        amount = InvoiceService.billable_amount(booking, split, is_first_invoice)
        previous = Decimal(invoice.amount)

        try:
            InvoiceService._upsert_financials(booking, split)
            invoice.amount = amount
            invoice.line_items = InvoiceService._line_items(booking, split, is_first_invoice)
            if booking.is_long_term:
                InvoiceService._refresh_schedule(booking, split, as_of or invoice.issue_date)
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.exception("Invoice regeneration failed for %s", invoice_id)
            raise InvoiceGenerationError(f"Failed to regenerate invoice {invoice_id}.") from exc

        current_app.logger.info(
            "Invoice %s regenerated for booking %s (%s -> %s)", invoice.invoice_number, booking.id, previous, amount
        )
        return invoice

    @staticmethod
    def regenerate_invoices(invoice_ids, as_of=None):
        results = {"success": 0, "errors": 0, "details": []}
        for invoice_id in invoice_ids:
            try:
                invoice = InvoiceService.regenerate_invoice(invoice_id, as_of)
            except AppError as exc:
                db.session.rollback()
                results["errors"] += 1
                results["details"].append({"invoice_id": invoice_id, "status": "error", "message": exc.message})
                continue
            results["success"] += 1
            results["details"].append(
                {"invoice_id": invoice_id, "status": "success", "amount": str(invoice.amount)}
            )
        return results

    @staticmethod
    def oldest_payable_invoice(booking_id, as_of=None):
        query = Invoice.query.filter(Invoice.booking_id == booking_id).filter(
            Invoice.status.in_(PAYABLE_INVOICE_STATUSES)
        )
        if as_of is not None:
            query = query.filter(Invoice.issue_date <= as_of)
        return query.order_by(Invoice.issue_date.asc(), Invoice.id.asc()).first()

    @staticmethod
    def apply_payment(invoice, payment_reference, paid_date, payment_method):
        """Flag an invoice as paid inside the caller's transaction."""
        invoice.status = "paid"
        invoice.paid_date = paid_date
        invoice.payment_reference = payment_reference
        invoice.payment_method = payment_method
        NotificationService.push(
            invoice.client_id,
            "Payment Confirmed",
            f"Your payment of R{Decimal(invoice.amount):.2f} for invoice {invoice.invoice_number} has been confirmed.",
            kind="payment_confirmed",
            data={"invoice_id": invoice.id, "booking_id": invoice.booking_id, "payment_reference": payment_reference},
        )
        return invoice

    @staticmethod
    def mark_paid(invoice_id, payment_reference, paid_date=None, payment_method="eft"):
        if not payment_reference:
            raise InvalidInputError("Payment reference is required.")
        invoice = db.session.get(Invoice, invoice_id)
        if invoice is None:
            raise AppError("Invoice not found.", 404)
        if invoice.status not in PAYABLE_INVOICE_STATUSES:
            raise AppError(f"Invoice {invoice.invoice_number} is {invoice.status} and cannot be paid.", 409)
        InvoiceService.apply_payment(invoice, payment_reference, paid_date or date.today(), payment_method)
        db.session.commit()
        current_app.logger.info("Invoice %s marked paid (%s)", invoice.invoice_number, payment_reference)
        return invoice

    @staticmethod
    def mark_overdue(as_of=None):
        as_of = as_of or date.today()
        count = (
            Invoice.query.filter(Invoice.status == "pending")
            .filter(Invoice.due_date < as_of)
            .update({"status": "overdue"}, synchronize_session=False)
        )
        db.session.commit()
        if count:
            current_app.logger.info("Marked %s invoice(s) overdue as of %s", count, as_of)
        return count

    @staticmethod
    def missing_invoice_overview(as_of=None):
        as_of = as_of or date.today()
        missing = 0
        unpriceable = 0
        outstanding = Decimal("0.00")
        for booking in InvoiceService.billable_bookings(as_of).order_by(Booking.id.asc()):
            if InvoiceService.existing_invoice(booking, as_of) is not None:
                continue
            missing += 1
            try:
                split = RevenueService.compute_for_booking(booking)
            except InvalidInputError:
                unpriceable += 1
                continue
            outstanding += InvoiceService.billable_amount(booking, split, booking.invoices.count() == 0)
        return {
            "as_of": as_of.isoformat(),
            "missing_invoices": missing,
            "unpriceable_bookings": unpriceable,
            "total_outstanding_revenue": str(outstanding),
        }
