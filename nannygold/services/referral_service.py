from decimal import Decimal

from flask import current_app
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError

from nannygold.errors import AppError, ReferrerNotFoundError
from nannygold.extensions import db
from nannygold.models import Booking, BookingFinancials, ReferralLog, ReferralParticipant, RewardBalance, User
from nannygold.models.base import utcnow
from nannygold.services.revenue_service import RevenueService

REFERRAL_REWARD_PCT = Decimal("20")

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class ReferralService:
    @staticmethod
    def _placement_fee(client, booking_id):
        if client.placement_fee_original is not None:
            return Decimal(str(client.placement_fee_original))
        financials = BookingFinancials.query.filter_by(booking_id=booking_id).first()
        if financials is not None:
            return Decimal(str(financials.fixed_fee))
        booking = db.session.get(Booking, booking_id)
        if booking is None:
            raise AppError(f"Booking {booking_id} not found.", 404)
        return RevenueService.compute_for_booking(booking).fixed_fee

    @staticmethod
    def credit_reward_balance(user_id, amount):
        """Add ``amount`` to a referrer's balance with one INSERT .. ON CONFLICT statement.

        The increment happens in SQL so concurrent rewards for the same
        referrer never overwrite each other.
        """
        now = utcnow()
        insert = _UPSERT_DIALECTS.get(db.engine.dialect.name)
        if insert is None:
            updated = (
                RewardBalance.query.filter_by(user_id=user_id).update(
                    {
                        RewardBalance.total_earned: RewardBalance.total_earned + amount,
                        RewardBalance.available_balance: RewardBalance.available_balance + amount,
                        RewardBalance.updated_at: now,
                    },
                    synchronize_session=False,
                )
            )
            if not updated:
                db.session.add(
                    RewardBalance(user_id=user_id, total_earned=amount, total_redeemed=0, available_balance=amount)
                )
            return

        stmt = insert(RewardBalance.__table__).values(
            user_id=user_id,
            total_earned=amount,
            total_redeemed=Decimal("0.00"),
            available_balance=amount,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id"],
            set_={
                "total_earned": RewardBalance.__table__.c.total_earned + stmt.excluded.total_earned,
                "available_balance": RewardBalance.__table__.c.available_balance + stmt.excluded.available_balance,
                "updated_at": now,
            },
        )
        db.session.execute(stmt)

    @staticmethod
    def track_referral_reward(booking_id, client_id):
        client = db.session.get(User, client_id)
        if client is None:
            raise AppError(f"Client {client_id} not found.", 404)
        if not client.referral_code_used:
            return {"success": False, "message": "No referral code used"}

        referrer = ReferralParticipant.query.filter_by(referral_code=client.referral_code_used, active=True).first()
        if referrer is None:
            raise ReferrerNotFoundError(f"Referrer not found for code {client.referral_code_used}.")

        if ReferralLog.query.filter_by(booking_id=booking_id).first() is not None:
            return {"success": False, "message": "Referral reward already tracked"}

        placement_fee = ReferralService._placement_fee(client, booking_id)
        reward_amount = (placement_fee * REFERRAL_REWARD_PCT / Decimal("100")).quantize(Decimal("0.01"))

        try:
            db.session.add(
                ReferralLog(
                    referrer_id=referrer.user_id,
                    referred_user_id=client.id,
                    booking_id=booking_id,
                    placement_fee=placement_fee,
                    reward_percentage=REFERRAL_REWARD_PCT,
                    reward_amount=reward_amount,
                    status="Pending",
                    referrer_type="influencer" if referrer.is_influencer else "client",
                )
            )
            db.session.flush()
            ReferralService.credit_reward_balance(referrer.user_id, reward_amount)
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            current_app.logger.info("Referral reward for booking %s was tracked concurrently", booking_id)
            return {"success": False, "message": "Referral reward already tracked"}

        current_app.logger.info(
            "Referral reward %s credited to user %s for booking %s", reward_amount, referrer.user_id, booking_id
        )
        return {"success": True, "reward_amount": reward_amount, "referrer_id": referrer.user_id}

    @staticmethod
    def balance_for(user_id):
        return RewardBalance.query.filter_by(user_id=user_id).first()
