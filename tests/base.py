import unittest
from datetime import date
from decimal import Decimal
from itertools import count

from flask_login import FlaskLoginClient

from nannygold import create_app
from nannygold.errors import GatewayError
from nannygold.extensions import db
from nannygold.models import Booking, PaymentAuthorization, ReferralParticipant, User
from nannygold.services.payment_gateway import GatewayResult

_emails = count(1)


class FakeGateway:
    """In-memory stand-in for the Paystack client."""

    def __init__(self):
        self.initialized = []
        self.charges = []
        self.verifications = []
        self.declined_emails = set()
        self.failed_references = set()
        self.verify_results = {}

    def initialize(self, email, amount, currency, reference, metadata=None):
        self.initialized.append({"email": email, "amount": amount, "reference": reference, "metadata": metadata})
        return {"authorization_url": f"https://checkout.test/{reference}", "reference": reference}

    def charge_authorization(self, code, email, amount, currency, reference, metadata=None):
        self.charges.append({"code": code, "email": email, "amount": Decimal(str(amount)), "reference": reference})
        if email in self.declined_emails:
            raise GatewayError("Insufficient funds", reference=reference)
        return GatewayResult(
            status="success",
            reference=reference,
            transaction_id=f"txn_{len(self.charges)}",
            authorization_code=code,
            amount=Decimal(str(amount)),
        )

    def verify(self, reference):
        self.verifications.append(reference)
        if reference in self.verify_results:
            return self.verify_results[reference]
        if reference in self.failed_references:
            return GatewayResult(status="failed", reference=reference, message="Declined")
        return GatewayResult(status="success", reference=reference, transaction_id=f"txn_{reference}")


class BillingTestCase(unittest.TestCase):
    def setUp(self):
        self.app = create_app("testing")
        self.app.test_client_class = FlaskLoginClient
        self.ctx = self.app.app_context()
        self.ctx.push()
        db.create_all()
        self.gateway = FakeGateway()
        self.app.extensions["payment_gateway"] = self.gateway

    def tearDown(self):
        db.session.remove()
        db.drop_all()
        self.ctx.pop()

    def make_user(self, role="client", **kwargs):
        n = next(_emails)
        user = User(full_name=kwargs.pop("full_name", f"User {n}"), email=f"user{n}@example.com", role=role, **kwargs)
        db.session.add(user)
        db.session.commit()
        return user

    def make_booking(self, client=None, **kwargs):
        client = client or self.make_user()
        values = {
            "booking_type": "long_term",
            "status": "confirmed",
            "start_date": date(2026, 3, 1),
            "home_size": "family_hub",
            "total_monthly_cost": Decimal("12000.00"),
        }
        values.update(kwargs)
        booking = Booking(client_id=client.id, **values)
        db.session.add(booking)
        db.session.commit()
        return booking

    def store_card(self, client, code="AUTH_card"):
        row = PaymentAuthorization(
            user_id=client.id,
            amount=Decimal("100.00"),
            authorization_code=code,
            status="captured",
            paystack_reference=f"init_{client.id}",
            authorization_date=date(2026, 2, 1),
            capture_date=date(2026, 2, 1),
        )
        db.session.add(row)
        db.session.commit()
        return row

    def make_referrer(self, code="GOLD20", active=True, is_influencer=False):
        referrer = self.make_user()
        db.session.add(
            ReferralParticipant(user_id=referrer.id, referral_code=code, active=active, is_influencer=is_influencer)
        )
        db.session.commit()
        return referrer
