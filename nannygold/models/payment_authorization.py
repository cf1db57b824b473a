from nannygold.extensions import db
from nannygold.models.base import PKType, TimestampMixin


class PaymentAuthorization(TimestampMixin, db.Model):
    __tablename__ = "payment_authorizations"

    id = db.Column(PKType, primary_key=True, autoincrement=True)
    user_id = db.Column(PKType, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    booking_id = db.Column(PKType, db.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=True, index=True)
    schedule_id = db.Column(PKType, db.ForeignKey("payment_schedules.id", ondelete="SET NULL"), nullable=True)
    invoice_id = db.Column(PKType, db.ForeignKey("invoices.id", ondelete="SET NULL"), nullable=True)
    billing_cycle = db.Column(db.String(7), nullable=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    authorization_code = db.Column(db.String(120), nullable=True)
    status = db.Column(db.String(24), nullable=False, index=True)
    paystack_reference = db.Column(db.String(120), nullable=True, index=True)
    paystack_transaction_id = db.Column(db.String(120), nullable=True)
    failure_reason = db.Column(db.Text, nullable=True)
    authorization_date = db.Column(db.Date, nullable=True)
    capture_date = db.Column(db.Date, nullable=True)

    schedule = db.relationship("PaymentSchedule", back_populates="authorizations")
    invoice = db.relationship("Invoice")

    __table_args__ = (
        db.Index("ix_payment_auth_booking_cycle", "booking_id", "billing_cycle", "status"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "booking_id": self.booking_id,
            "billing_cycle": self.billing_cycle,
            "amount": str(self.amount),
            "status": self.status,
            "reference": self.paystack_reference,
            "failure_reason": self.failure_reason,
            "authorization_date": self.authorization_date.isoformat() if self.authorization_date else None,
            "capture_date": self.capture_date.isoformat() if self.capture_date else None,
        }
