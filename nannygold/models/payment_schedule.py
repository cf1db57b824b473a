from nannygold.extensions import db
from nannygold.models.base import PKType, TimestampMixin


class PaymentSchedule(TimestampMixin, db.Model):
    __tablename__ = "payment_schedules"

    id = db.Column(PKType, primary_key=True, autoincrement=True)
    booking_id = db.Column(PKType, db.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, unique=True)
    client_id = db.Column(PKType, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    authorization_day = db.Column(db.SmallInteger, nullable=False, default=25)
    capture_day = db.Column(db.SmallInteger, nullable=False, default=1)
    next_authorization_date = db.Column(db.Date, nullable=False, index=True)
    next_capture_date = db.Column(db.Date, nullable=False, index=True)
    status = db.Column(db.String(24), nullable=False, default="active", index=True)
    cycle_status = db.Column(db.String(24), nullable=False, default="scheduled")
    last_authorization_date = db.Column(db.Date, nullable=True)
    last_capture_date = db.Column(db.Date, nullable=True)

    booking = db.relationship("Booking", back_populates="payment_schedule")
    authorizations = db.relationship("PaymentAuthorization", back_populates="schedule", lazy="dynamic")

    __table_args__ = (
        db.CheckConstraint("authorization_day BETWEEN 1 AND 28", name="ck_schedule_authorization_day"),
        db.CheckConstraint("capture_day BETWEEN 1 AND 28", name="ck_schedule_capture_day"),
    )

    @property
    def billing_cycle(self):
        return self.next_capture_date.strftime("%Y-%m")
