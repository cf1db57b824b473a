from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import NamedTuple, Optional

from nannygold.errors import InvalidInputError, NegativeEarningsError
from nannygold.models.booking import LONG_TERM, SHORT_TERM_TYPES

CENTS = Decimal("0.01")

# The checkout breakdown (RevenueBreakdown.tsx) bills grand_estate and
# monumental_manor at 50%; the placement fee audit (PlacementFeeValidator.tsx:58)
# bills epic_estates and monumental_manor at 50% and grand_estate flat.
# grand_retreat is the premium tier named on booking forms. A size either
# source bills at 50% is premium here.
STANDARD_HOME_SIZES = frozenset({"pocket_palace", "family_hub"})
PREMIUM_HOME_SIZES = frozenset({"grand_estate", "grand_retreat", "epic_estates", "monumental_manor"})

LONG_TERM_FLAT_PLACEMENT_FEE = Decimal("2500.00")
PREMIUM_PLACEMENT_FEE_RATE = Decimal("0.50")
HIGH_RATE_THRESHOLD = Decimal("10000")
LOW_RATE_THRESHOLD = Decimal("5000")
HIGH_RATE_COMMISSION_PCT = Decimal("25")
LOW_RATE_COMMISSION_PCT = Decimal("10")
DEFAULT_COMMISSION_PCT = Decimal("15")

SHORT_TERM_DAILY_BOOKING_FEE = Decimal("35.00")
SHORT_TERM_COMMISSION_PCT = Decimal("20")


class FeeSplit(NamedTuple):
    booking_type: str
    gross_amount: Decimal
    fixed_fee: Decimal
    commission_percent: Decimal
    commission_amount: Decimal
    admin_total_revenue: Decimal
    nanny_earnings: Decimal
    monthly_rate: Optional[Decimal] = None

    def as_financials(self):
        return {
            "booking_type": self.booking_type,
            "gross_amount": self.gross_amount,
            "fixed_fee": self.fixed_fee,
            "commission_percent": self.commission_percent,
            "commission_amount": self.commission_amount,
            "admin_total_revenue": self.admin_total_revenue,
            "nanny_earnings": self.nanny_earnings,
        }


def _money(value):
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def _amount(value, field):
    if value is None or isinstance(value, bool):
        raise InvalidInputError(f"{field} must be a number.")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise InvalidInputError(f"{field} must be a number.") from exc
    if not amount.is_finite():
        raise InvalidInputError(f"{field} must be a finite number.")
    if amount < 0:
        raise InvalidInputError(f"{field} cannot be negative.")
    return amount


def normalize_home_size(home_size):
    if home_size is None or str(home_size).strip() == "":
        return None
    key = str(home_size).strip().lower().replace("-", "_").replace(" ", "_")
    if key not in STANDARD_HOME_SIZES and key not in PREMIUM_HOME_SIZES:
        raise InvalidInputError(f"Unknown home size: {home_size!r}.")
    return key


def commission_percent_for(monthly_rate):
    if monthly_rate >= HIGH_RATE_THRESHOLD:
        return HIGH_RATE_COMMISSION_PCT
    if monthly_rate <= LOW_RATE_THRESHOLD:
        return LOW_RATE_COMMISSION_PCT
    return DEFAULT_COMMISSION_PCT


class RevenueService:
    """Fee split rules shared by invoicing, scheduling and referrals.

    Every method is pure: no database or config access, so identical inputs
    always give identical splits.
    """

    @staticmethod
    def compute_revenue(
        booking_type,
        total_amount,
        monthly_rate_estimate=None,
        home_size=None,
        booking_duration_days=None,
    ) -> FeeSplit:
        if booking_type == LONG_TERM:
            return RevenueService._long_term_split(total_amount, monthly_rate_estimate, home_size)
        if booking_type in SHORT_TERM_TYPES:
            return RevenueService._short_term_split(booking_type, total_amount, booking_duration_days)
        raise InvalidInputError(f"Unrecognized booking type: {booking_type!r}.")

    @staticmethod
    def compute_for_booking(booking) -> FeeSplit:
        if booking.booking_type == LONG_TERM:
            total = booking.total_monthly_cost if booking.total_monthly_cost is not None else booking.total_amount
            return RevenueService.compute_revenue(
                LONG_TERM,
                total,
                monthly_rate_estimate=booking.total_monthly_cost,
                home_size=booking.home_size,
            )
        total = booking.total_amount if booking.total_amount is not None else booking.total_monthly_cost
        return RevenueService.compute_revenue(
            booking.booking_type,
            total,
            booking_duration_days=booking.duration_days,
        )

    @staticmethod
    def _long_term_split(total_amount, monthly_rate_estimate, home_size):
        if monthly_rate_estimate is not None:
            monthly_rate = _amount(monthly_rate_estimate, "monthly_rate_estimate")
        else:
            monthly_rate = _amount(total_amount, "total_amount")
        size = normalize_home_size(home_size)

        if size in PREMIUM_HOME_SIZES:
            fixed_fee = _money(monthly_rate * PREMIUM_PLACEMENT_FEE_RATE)
        else:
            fixed_fee = LONG_TERM_FLAT_PLACEMENT_FEE

        commission_pct = commission_percent_for(monthly_rate)
        commission_amount = _money(monthly_rate * commission_pct / Decimal("100"))
        # The placement fee is billed on top of the monthly rate, so it never
        # reduces the nanny's share.
        nanny_earnings = _money(monthly_rate) - commission_amount
        return FeeSplit(
            booking_type=LONG_TERM,
            gross_amount=_money(monthly_rate) + fixed_fee,
            fixed_fee=fixed_fee,
            commission_percent=commission_pct,
            commission_amount=commission_amount,
            admin_total_revenue=fixed_fee + commission_amount,
            nanny_earnings=nanny_earnings,
            monthly_rate=_money(monthly_rate),
        )

    @staticmethod
    def _short_term_split(booking_type, total_amount, booking_duration_days):
        total = _money(_amount(total_amount, "total_amount"))
        days = RevenueService._duration(booking_duration_days)

        fixed_fee = _money(SHORT_TERM_DAILY_BOOKING_FEE * days)
        if total < fixed_fee:
            raise NegativeEarningsError(
                f"Booking fee {fixed_fee} for {days} day(s) exceeds the booking total {total}."
            )
        commission_amount = _money((total - fixed_fee) * SHORT_TERM_COMMISSION_PCT / Decimal("100"))
        admin_total = fixed_fee + commission_amount
        return FeeSplit(
            booking_type=booking_type,
            gross_amount=total,
            fixed_fee=fixed_fee,
            commission_percent=SHORT_TERM_COMMISSION_PCT,
            commission_amount=commission_amount,
            admin_total_revenue=admin_total,
            nanny_earnings=total - admin_total,
        )

    @staticmethod
    def _duration(booking_duration_days):
        if booking_duration_days is None:
            return 1
        if isinstance(booking_duration_days, bool):
            raise InvalidInputError("booking_duration_days must be a whole number of days.")
        try:
            days = int(booking_duration_days)
        except (TypeError, ValueError) as exc:
            raise InvalidInputError("booking_duration_days must be a whole number of days.") from exc
        if days != booking_duration_days or days <= 0:
            raise InvalidInputError("booking_duration_days must be a positive whole number.")
        return days
