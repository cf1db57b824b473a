from nannygold.extensions import db
from nannygold.models.base import PKType, TimestampMixin


class ReferralParticipant(TimestampMixin, db.Model):
    __tablename__ = "referral_participants"

    id = db.Column(PKType, primary_key=True, autoincrement=True)
    user_id = db.Column(PKType, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    referral_code = db.Column(db.String(32), nullable=False, unique=True, index=True)
    active = db.Column(db.Boolean, nullable=False, default=True)
    is_influencer = db.Column(db.Boolean, nullable=False, default=False)


class ReferralLog(TimestampMixin, db.Model):
    __tablename__ = "referral_logs"

    id = db.Column(PKType, primary_key=True, autoincrement=True)
    referrer_id = db.Column(PKType, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    referred_user_id = db.Column(PKType, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    booking_id = db.Column(PKType, db.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, unique=True)
    placement_fee = db.Column(db.Numeric(12, 2), nullable=False)
    reward_percentage = db.Column(db.Numeric(5, 2), nullable=False)
    reward_amount = db.Column(db.Numeric(12, 2), nullable=False)
    status = db.Column(db.String(24), nullable=False, default="Pending")
    referrer_type = db.Column(db.String(24), nullable=False, default="client")


class RewardBalance(TimestampMixin, db.Model):
    __tablename__ = "reward_balances"

    id = db.Column(PKType, primary_key=True, autoincrement=True)
    user_id = db.Column(PKType, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    total_earned = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_redeemed = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    available_balance = db.Column(db.Numeric(12, 2), nullable=False, default=0)
