from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from nannygold.errors import InvalidInputError
from nannygold.services import PaymentService

api_payment_bp = Blueprint("api_payment", __name__)


@api_payment_bp.get("/me")
@login_required
def my_payments():
    return jsonify([row.to_dict() for row in PaymentService.history_for_user(current_user.id)])


@api_payment_bp.post("/initialize")
@login_required
def initialize_payment():
    payload = request.get_json(silent=True) or {}
    booking_id = payload.get("booking_id")
    if not isinstance(booking_id, int):
        raise InvalidInputError("booking_id is required.")
    return jsonify(PaymentService.initialize_card_payment(current_user, booking_id, payload.get("amount")))


@api_payment_bp.post("/verify")
@login_required
def verify_payment():
    payload = request.get_json(silent=True) or {}
    reference = (payload.get("reference") or "").strip()
    if not reference:
        raise InvalidInputError("reference is required.")
    authorization = PaymentService.record_initial_payment(reference, user_id=current_user.id)
    return jsonify(authorization.to_dict()), 201
