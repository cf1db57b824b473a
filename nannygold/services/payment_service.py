from datetime import date

from flask import current_app

from nannygold.errors import AppError, GatewayError, InvalidInputError
from nannygold.extensions import db
from nannygold.models import Booking, PaymentAuthorization, User
from nannygold.services.invoice_service import InvoiceService
from nannygold.services.payment_gateway import get_payment_gateway, new_reference


class PaymentService:
    @staticmethod
    def stored_authorization_code(user_id):
        """Card authorization from the client's most recent settled payment, if any."""
        row = (
            PaymentAuthorization.query.filter_by(user_id=user_id, status="captured")
            .filter(PaymentAuthorization.authorization_code.isnot(None))
            .order_by(PaymentAuthorization.capture_date.desc(), PaymentAuthorization.id.desc())
            .first()
        )
        return row.authorization_code if row else None

    @staticmethod
    def initialize_card_payment(user, booking_id, amount=None):
        booking = db.session.get(Booking, booking_id)
        if booking is None or booking.client_id != user.id:
            raise AppError("Booking not found.", 404)
        if amount is None:
            invoice = InvoiceService.oldest_payable_invoice(booking.id)
            if invoice is None:
                raise InvalidInputError("No outstanding invoice for this booking.")
            amount = invoice.amount

        reference = new_reference(f"ng_{booking.id}")
        return get_payment_gateway().initialize(
            email=user.email,
            amount=amount,
            currency=current_app.config["BILLING_CURRENCY"],
            reference=reference,
            metadata={"user_id": user.id, "booking_id": booking.id, "is_recurring": booking.is_long_term},
        )

    @staticmethod
    def record_initial_payment(reference, user_id=None, booking_id=None, as_of=None):
        """Verify a checkout and keep its card authorization for recurring charges."""
        existing = PaymentAuthorization.query.filter_by(paystack_reference=reference, status="captured").first()
        if existing is not None:
            return existing

        result = get_payment_gateway().verify(reference)
        if not result.succeeded:
            raise GatewayError(f"Transaction {result.status}.", reference=reference)
        if not result.authorization_code:
            raise AppError("Transaction carries no reusable card authorization.", 422)

        metadata = result.metadata or {}
        owner = metadata.get("user_id")
        if user_id is not None and owner is not None and str(owner) != str(user_id):
            raise AppError("Payment belongs to another client.", 403)
        try:
            user_id = int(user_id or metadata.get("user_id"))
            booking_id = booking_id or metadata.get("booking_id")
            booking_id = int(booking_id) if booking_id is not None else None
        except (TypeError, ValueError) as exc:
            raise AppError("Payment is not linked to a known client.", 422) from exc
        if db.session.get(User, user_id) is None:
            raise AppError("Payment is not linked to a known client.", 422)

        as_of = as_of or date.today()
        authorization = PaymentAuthorization(
            user_id=user_id,
            booking_id=booking_id,
            amount=result.amount or 0,
            authorization_code=result.authorization_code,
            status="captured",
            paystack_reference=result.reference or reference,
            paystack_transaction_id=result.transaction_id,
            authorization_date=as_of,
            capture_date=as_of,
        )
        db.session.add(authorization)

        if booking_id is not None:
            invoice = InvoiceService.oldest_payable_invoice(booking_id)
            if invoice is not None and result.amount is not None and result.amount >= invoice.amount:
                authorization.invoice_id = invoice.id
                InvoiceService.apply_payment(invoice, authorization.paystack_reference, as_of, "card")

        db.session.commit()
        current_app.logger.info("Stored card authorization for user %s from %s", user_id, reference)
        return authorization

    @staticmethod
    def history_for_user(user_id, limit=50):
        return (
            PaymentAuthorization.query.filter_by(user_id=user_id)
            .order_by(PaymentAuthorization.created_at.desc(), PaymentAuthorization.id.desc())
            .limit(limit)
            .all()
        )
