from nannygold.models.booking import Booking
from nannygold.models.booking_financials import BookingFinancials
from nannygold.models.invoice import Invoice
from nannygold.models.notification import Notification
from nannygold.models.payment_authorization import PaymentAuthorization
from nannygold.models.payment_schedule import PaymentSchedule
from nannygold.models.referral import ReferralLog, ReferralParticipant, RewardBalance
from nannygold.models.user import User

__all__ = [
    "User",
    "Booking",
    "BookingFinancials",
    "Invoice",
    "PaymentSchedule",
    "PaymentAuthorization",
    "ReferralParticipant",
    "ReferralLog",
    "RewardBalance",
    "Notification",
]
