from nannygold.extensions import db
from nannygold.models.base import PKType, TimestampMixin


class BookingFinancials(TimestampMixin, db.Model):
    __tablename__ = "booking_financials"

    id = db.Column(PKType, primary_key=True, autoincrement=True)
    booking_id = db.Column(PKType, db.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, unique=True)
    booking_type = db.Column(db.String(24), nullable=False)
    fixed_fee = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    commission_percent = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    commission_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    admin_total_revenue = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    nanny_earnings = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    gross_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=False, default="ZAR")

    booking = db.relationship("Booking", back_populates="financials")

    __table_args__ = (
        db.CheckConstraint("nanny_earnings >= 0", name="ck_financials_nanny_earnings_non_negative"),
    )
