from flask_login import UserMixin

from nannygold.extensions import db
from nannygold.models.base import PKType, TimestampMixin


class User(UserMixin, TimestampMixin, db.Model):
    """Profile row owned by the auth subsystem; billing only reads it."""

    __tablename__ = "users"

    id = db.Column(PKType, primary_key=True, autoincrement=True)
    full_name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    role = db.Column(db.String(24), nullable=False, index=True, default="client")
    is_active_user = db.Column(db.Boolean, nullable=False, default=True)

    # Client-only fields.
    referral_code_used = db.Column(db.String(32), nullable=True, index=True)
    placement_fee_original = db.Column(db.Numeric(12, 2), nullable=True)

    bookings = db.relationship("Booking", back_populates="client", lazy="dynamic", foreign_keys="Booking.client_id")
    notifications = db.relationship("Notification", back_populates="user", lazy="dynamic")

    @property
    def is_active(self):
        return bool(self.is_active_user)
