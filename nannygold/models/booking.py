from nannygold.extensions import db
from nannygold.models.base import PKType, TimestampMixin

LONG_TERM = "long_term"
SHORT_TERM_TYPES = frozenset({"short_term", "emergency", "date_day", "date_night"})
BILLABLE_STATUSES = ("confirmed", "active")


class Booking(TimestampMixin, db.Model):
    __tablename__ = "bookings"

    id = db.Column(PKType, primary_key=True, autoincrement=True)
    client_id = db.Column(PKType, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    nanny_id = db.Column(PKType, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    booking_type = db.Column(db.String(24), nullable=False, default=LONG_TERM, index=True)
    status = db.Column(db.String(24), nullable=False, default="pending", index=True)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=True)
    home_size = db.Column(db.String(40), nullable=True)
    living_arrangement = db.Column(db.String(24), nullable=True)
    total_monthly_cost = db.Column(db.Numeric(12, 2), nullable=True)
    total_amount = db.Column(db.Numeric(12, 2), nullable=True)

    client = db.relationship("User", back_populates="bookings", foreign_keys=[client_id])
    nanny = db.relationship("User", foreign_keys=[nanny_id])
    financials = db.relationship("BookingFinancials", back_populates="booking", uselist=False)
    invoices = db.relationship("Invoice", back_populates="booking", lazy="dynamic")
    payment_schedule = db.relationship("PaymentSchedule", back_populates="booking", uselist=False)

    __table_args__ = (
        db.Index("ix_bookings_status_start", "status", "start_date"),
    )

    @property
    def is_long_term(self):
        return self.booking_type == LONG_TERM

    @property
    def duration_days(self):
        if not self.start_date or not self.end_date:
            return None
        return (self.end_date - self.start_date).days + 1
