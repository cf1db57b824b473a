from flask import Blueprint, jsonify
from flask_login import current_user, login_required

from nannygold.models import Invoice

api_invoice_bp = Blueprint("api_invoice", __name__)


@api_invoice_bp.get("/me")
@login_required
def my_invoices():
    rows = (
        Invoice.query.filter_by(client_id=current_user.id)
        .order_by(Invoice.issue_date.desc(), Invoice.id.desc())
        .all()
    )
    return jsonify([row.to_dict() for row in rows])


@api_invoice_bp.get("/<int:invoice_id>")
@login_required
def invoice_detail(invoice_id):
    invoice = Invoice.query.get_or_404(invoice_id)
    if invoice.client_id != current_user.id and current_user.role not in ("admin", "super_admin"):
        return jsonify({"error": "Forbidden"}), 403
    return jsonify(invoice.to_dict())
