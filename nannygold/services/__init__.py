from nannygold.services.invoice_service import InvoiceService
from nannygold.services.notification_service import NotificationService
from nannygold.services.payment_service import PaymentService
from nannygold.services.reconciliation_service import ReconciliationService
from nannygold.services.referral_service import ReferralService
from nannygold.services.revenue_service import FeeSplit, RevenueService
from nannygold.services.schedule_service import ScheduleService

__all__ = [
    "FeeSplit",
    "InvoiceService",
    "NotificationService",
    "PaymentService",
    "ReconciliationService",
    "ReferralService",
    "RevenueService",
    "ScheduleService",
]
