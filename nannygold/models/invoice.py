from nannygold.extensions import db
from nannygold.models.base import PKType, TimestampMixin

INVOICE_STATUSES = ("pending", "paid", "overdue", "cancelled")


class Invoice(TimestampMixin, db.Model):
    __tablename__ = "invoices"

    id = db.Column(PKType, primary_key=True, autoincrement=True)
    booking_id = db.Column(PKType, db.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    client_id = db.Column(PKType, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    invoice_number = db.Column(db.String(32), nullable=False, unique=True, index=True)
    billing_month = db.Column(db.String(7), nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    issue_date = db.Column(db.Date, nullable=False, index=True)
    due_date = db.Column(db.Date, nullable=False)
    status = db.Column(db.String(24), nullable=False, default="pending", index=True)
    paid_date = db.Column(db.Date, nullable=True)
    payment_reference = db.Column(db.String(120), nullable=True)
    payment_method = db.Column(db.String(24), nullable=True)
    line_items = db.Column(db.JSON, nullable=False, default=list)

    booking = db.relationship("Booking", back_populates="invoices")

    __table_args__ = (
        db.UniqueConstraint("booking_id", "billing_month", name="uq_invoice_booking_month"),
        db.CheckConstraint("amount >= 0", name="ck_invoice_amount_non_negative"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "booking_id": self.booking_id,
            "invoice_number": self.invoice_number,
            "billing_month": self.billing_month,
            "amount": str(self.amount),
            "issue_date": self.issue_date.isoformat(),
            "due_date": self.due_date.isoformat(),
            "status": self.status,
            "paid_date": self.paid_date.isoformat() if self.paid_date else None,
            "payment_reference": self.payment_reference,
            "line_items": self.line_items or [],
        }
