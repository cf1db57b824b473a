import unittest
from decimal import Decimal
from unittest.mock import MagicMock

import requests

from nannygold.errors import GatewayError
from nannygold.services.payment_gateway import PaystackGateway, from_minor_units, to_minor_units


def _response(body, ok=True, status_code=200):
    response = MagicMock()
    response.ok = ok
    response.status_code = status_code
    response.json.return_value = body
    return response


class PaystackGatewayTest(unittest.TestCase):
    def setUp(self):
        self.session = MagicMock()
        self.gateway = PaystackGateway("sk_test_123", base_url="https://paystack.test/", timeout=5, session=self.session)

    def test_charge_authorization_sends_minor_units(self):
        self.session.request.return_value = _response(
            {
                "status": True,
                "data": {"status": "success", "reference": "auth_1_abc", "id": 991, "amount": 1450000},
            }
        )

        result = self.gateway.charge_authorization("AUTH_x", "a@example.com", Decimal("14500.00"), "ZAR", "auth_1_abc")

        self.assertTrue(result.succeeded)
        self.assertEqual(result.transaction_id, "991")
        self.assertEqual(result.amount, Decimal("14500.00"))
        method, url = self.session.request.call_args[0]
        kwargs = self.session.request.call_args[1]
        self.assertEqual((method, url), ("POST", "https://paystack.test/transaction/charge_authorization"))
        self.assertEqual(kwargs["json"]["amount"], 1450000)
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer sk_test_123")
        self.assertEqual(kwargs["timeout"], 5)

    def test_failed_charge_raises(self):
        self.session.request.return_value = _response(
            {"status": True, "data": {"status": "failed", "reference": "r1", "gateway_response": "Declined"}}
        )
        with self.assertRaises(GatewayError) as ctx:
            self.gateway.charge_authorization("AUTH_x", "a@example.com", 100, "ZAR", "r1")
        self.assertEqual(ctx.exception.message, "Declined")
        self.assertEqual(ctx.exception.reference, "r1")

    def test_verify_reads_card_authorization(self):
        self.session.request.return_value = _response(
            {
                "status": True,
                "data": {
                    "status": "success",
                    "reference": "ng_1",
                    "amount": 50000,
                    "authorization": {"authorization_code": "AUTH_new"},
                    "metadata": {"user_id": 7},
                },
            }
        )

        result = self.gateway.verify("ng_1")

        self.assertEqual(result.authorization_code, "AUTH_new")
        self.assertEqual(result.amount, Decimal("500.00"))
        self.assertEqual(result.metadata, {"user_id": 7})
        self.assertEqual(self.session.request.call_args[0][1], "https://paystack.test/transaction/verify/ng_1")

    def test_initialize_returns_checkout_url(self):
        self.session.request.return_value = _response(
            {"status": True, "data": {"authorization_url": "https://checkout.paystack.com/x", "reference": "ng_2"}}
        )
        result = self.gateway.initialize("a@example.com", 250, "ZAR", "ng_2")
        self.assertEqual(result, {"authorization_url": "https://checkout.paystack.com/x", "reference": "ng_2"})

    def test_timeout_becomes_gateway_error(self):
        self.session.request.side_effect = requests.exceptions.Timeout()
        with self.assertRaises(GatewayError):
            self.gateway.verify("ng_1")

    def test_connection_error_becomes_gateway_error(self):
        self.session.request.side_effect = requests.exceptions.ConnectionError("refused")
        with self.assertRaises(GatewayError):
            self.gateway.verify("ng_1")

    def test_rejected_request(self):
        self.session.request.return_value = _response(
            {"status": False, "message": "Invalid key"}, ok=False, status_code=401
        )
        with self.assertRaises(GatewayError) as ctx:
            self.gateway.verify("ng_1")
        self.assertEqual(ctx.exception.message, "Invalid key")

    def test_non_json_response(self):
        response = _response(None, ok=False, status_code=502)
        response.json.side_effect = ValueError("no json")
        self.session.request.return_value = response
        with self.assertRaises(GatewayError):
            self.gateway.verify("ng_1")

    def test_missing_secret_key(self):
        gateway = PaystackGateway("", session=self.session)
        with self.assertRaises(GatewayError):
            gateway.verify("ng_1")
        self.session.request.assert_not_called()

    def test_minor_unit_conversion(self):
        self.assertEqual(to_minor_units(Decimal("123.45")), 12345)
        self.assertEqual(from_minor_units(12345), Decimal("123.45"))
        self.assertIsNone(from_minor_units(None))
