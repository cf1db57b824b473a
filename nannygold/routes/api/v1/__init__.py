from flask import Blueprint

from nannygold.routes.api.v1.billing import api_billing_bp
from nannygold.routes.api.v1.invoices import api_invoice_bp
from nannygold.routes.api.v1.payments import api_payment_bp

api_v1_bp = Blueprint("api_v1", __name__)
api_v1_bp.register_blueprint(api_billing_bp, url_prefix="/billing")
api_v1_bp.register_blueprint(api_invoice_bp, url_prefix="/invoices")
api_v1_bp.register_blueprint(api_payment_bp, url_prefix="/payments")
