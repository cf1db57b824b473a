from datetime import date
from decimal import Decimal

from sqlalchemy import text

from nannygold.errors import ReferrerNotFoundError
from nannygold.extensions import db
from nannygold.models import ReferralLog, RewardBalance
from nannygold.services import InvoiceService, ReferralService
from tests.base import BillingTestCase


class TrackReferralRewardTest(BillingTestCase):
    def setUp(self):
        super().setUp()
        self.referrer = self.make_referrer("GOLD20")

    def referred_booking(self, code="GOLD20", placement_fee=Decimal("2500.00")):
        client = self.make_user(referral_code_used=code, placement_fee_original=placement_fee)
        return self.make_booking(client)

    def test_client_without_code(self):
        booking = self.make_booking()

        result = ReferralService.track_referral_reward(booking.id, booking.client_id)

        self.assertEqual(result, {"success": False, "message": "No referral code used"})
        self.assertEqual(ReferralLog.query.count(), 0)

    def test_reward_is_twenty_percent_of_placement_fee(self):
        booking = self.referred_booking()

        result = ReferralService.track_referral_reward(booking.id, booking.client_id)

        self.assertTrue(result["success"])
        self.assertEqual(result["reward_amount"], Decimal("500.00"))
        self.assertEqual(result["referrer_id"], self.referrer.id)

        log = ReferralLog.query.filter_by(booking_id=booking.id).one()
        self.assertEqual(log.status, "Pending")
        self.assertEqual(log.referrer_type, "client")
        self.assertEqual(log.reward_percentage, Decimal("20"))

        balance = ReferralService.balance_for(self.referrer.id)
        self.assertEqual(balance.total_earned, Decimal("500.00"))
        self.assertEqual(balance.available_balance, Decimal("500.00"))
        self.assertEqual(balance.total_redeemed, Decimal("0.00"))

    def test_placement_fee_falls_back_to_booking_financials(self):
        client = self.make_user(referral_code_used="GOLD20")
        booking = self.make_booking(client, home_size="grand_retreat")
        InvoiceService.generate_invoice(booking.id, as_of=date(2026, 3, 10))

        result = ReferralService.track_referral_reward(booking.id, client.id)

        self.assertEqual(result["reward_amount"], Decimal("1200.00"))

    def test_unknown_code(self):
        booking = self.referred_booking(code="NOPE")
        with self.assertRaises(ReferrerNotFoundError):
            ReferralService.track_referral_reward(booking.id, booking.client_id)
        self.assertEqual(ReferralLog.query.count(), 0)

    def test_inactive_code(self):
        self.make_referrer("RETIRED", active=False)
        booking = self.referred_booking(code="RETIRED")
        with self.assertRaises(ReferrerNotFoundError):
            ReferralService.track_referral_reward(booking.id, booking.client_id)

    def test_influencer_referrer_type(self):
        self.make_referrer("STAR", is_influencer=True)
        booking = self.referred_booking(code="STAR")

        ReferralService.track_referral_reward(booking.id, booking.client_id)

        self.assertEqual(ReferralLog.query.filter_by(booking_id=booking.id).one().referrer_type, "influencer")

    def test_booking_is_rewarded_once(self):
        booking = self.referred_booking()

        ReferralService.track_referral_reward(booking.id, booking.client_id)
        again = ReferralService.track_referral_reward(booking.id, booking.client_id)

        self.assertFalse(again["success"])
        self.assertEqual(ReferralLog.query.count(), 1)
        self.assertEqual(ReferralService.balance_for(self.referrer.id).total_earned, Decimal("500.00"))

    def test_rewards_accumulate_per_referrer(self):
        bookings = [self.referred_booking() for _ in range(5)]

        for booking in bookings:
            ReferralService.track_referral_reward(booking.id, booking.client_id)

        db.session.expire_all()
        balance = ReferralService.balance_for(self.referrer.id)
        self.assertEqual(balance.total_earned, Decimal("2500.00"))
        self.assertEqual(balance.available_balance, Decimal("2500.00"))
        self.assertEqual(RewardBalance.query.count(), 1)

    def test_increment_keeps_concurrent_writes(self):
        first, second = self.referred_booking(), self.referred_booking()
        ReferralService.track_referral_reward(first.id, first.client_id)
        stale = ReferralService.balance_for(self.referrer.id)
        self.assertEqual(stale.total_earned, Decimal("500.00"))

        # Another worker credits the same referrer outside this session's view.
        db.session.execute(
            text(
                "UPDATE reward_balances SET total_earned = total_earned + 50, "
                "available_balance = available_balance + 50 WHERE user_id = :user_id"
            ),
            {"user_id": self.referrer.id},
        )
        ReferralService.track_referral_reward(second.id, second.client_id)

        db.session.expire_all()
        balance = ReferralService.balance_for(self.referrer.id)
        self.assertEqual(balance.total_earned, Decimal("1050.00"))
        self.assertEqual(balance.available_balance, Decimal("1050.00"))
