from flask import jsonify
from sqlalchemy.exc import IntegrityError


class AppError(Exception):
    status_code = 400

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class InvalidInputError(AppError):
    """Booking data the revenue calculator cannot price."""

    status_code = 400


class NegativeEarningsError(InvalidInputError):
    """A split would leave the nanny with a negative share."""

    status_code = 422


class InvoiceGenerationError(AppError):
    status_code = 500


class GatewayError(AppError):
    status_code = 502

    def __init__(self, message, status_code=None, reference=None):
        super().__init__(message, status_code)
        self.reference = reference


class ReferrerNotFoundError(AppError):
    status_code = 404


def register_error_handlers(app):
    @app.errorhandler(AppError)
    def handle_app_error(err):
        if err.status_code >= 500:
            app.logger.warning("%s: %s", type(err).__name__, err.message)
        return jsonify({"error": err.message}), err.status_code

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(_err):
        app.logger.warning("Database integrity error")
        return jsonify({"error": "Conflict. Resource already exists."}), 409

    @app.errorhandler(400)
    def bad_request(_err):
        return jsonify({"error": "Bad request"}), 400

    @app.errorhandler(401)
    def unauthorized(_err):
        return jsonify({"error": "Unauthorized"}), 401

    @app.errorhandler(403)
    def forbidden(_err):
        return jsonify({"error": "Forbidden"}), 403

    @app.errorhandler(404)
    def not_found(_err):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(429)
    def too_many_requests(_err):
        return jsonify({"error": "Too many requests"}), 429

    @app.errorhandler(500)
    def server_error(_err):
        app.logger.exception("Internal server error")
        return jsonify({"error": "Internal server error"}), 500
