from datetime import date, datetime, timezone

from flask import current_app

from nannygold.errors import AppError
from nannygold.extensions import db
from nannygold.models import Booking
from nannygold.services.billing_dates import month_key
from nannygold.services.invoice_service import InvoiceService
from nannygold.services.notification_service import NotificationService
from nannygold.services.schedule_service import ScheduleService


class ReconciliationService:
    """Bulk sweeps behind the admin automation controls and the CLI."""

    @staticmethod
    def generate_all_missing_invoices(as_of=None):
        as_of = as_of or date.today()
        booking_ids = [
            row.id
            for row in InvoiceService.billable_bookings(as_of).order_by(Booking.id.asc()).with_entities(Booking.id)
        ]
        current_app.logger.info("Generating invoices for %s billable booking(s) as of %s", len(booking_ids), as_of)

        results = {"generated": 0, "skipped": 0, "errors": 0, "details": []}
        for booking_id in booking_ids:
            try:
                existing = InvoiceService.existing_invoice(db.session.get(Booking, booking_id), as_of)
                if existing is not None:
                    results["skipped"] += 1
                    results["details"].append(
                        {
                            "booking_id": booking_id,
                            "status": "skipped",
                            "message": f"Invoice {existing.invoice_number} already exists",
                        }
                    )
                    continue
                invoice = InvoiceService.generate_invoice(booking_id, as_of=as_of)
            except AppError as exc:
                db.session.rollback()
                current_app.logger.warning("Invoice generation failed for booking %s: %s", booking_id, exc.message)
                results["errors"] += 1
                results["details"].append({"booking_id": booking_id, "status": "error", "message": exc.message})
                continue
            except Exception as exc:
                db.session.rollback()
                current_app.logger.exception("Unexpected error generating invoice for booking %s", booking_id)
                results["errors"] += 1
                results["details"].append({"booking_id": booking_id, "status": "error", "message": str(exc)})
                continue

            results["generated"] += 1
            results["details"].append(
                {"booking_id": booking_id, "status": "success", "message": f"Invoice {invoice.invoice_number} generated"}
            )

        current_app.logger.info(
            "Invoice sweep as of %s: generated=%s skipped=%s errors=%s",
            as_of, results["generated"], results["skipped"], results["errors"],
        )
        if results["errors"]:
            NotificationService.notify_admins(
                "Invoice Generation Errors",
                f"{results['errors']} booking(s) could not be invoiced for {month_key(as_of)}.",
                data={"as_of": as_of.isoformat(), "errors": results["errors"]},
            )
            db.session.commit()
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "as_of": as_of.isoformat(),
            "total_bookings": len(booking_ids),
            **results,
        }

    @staticmethod
    def run_authorizations(as_of=None):
        return ScheduleService.run_authorizations(as_of)

    @staticmethod
    def run_captures(as_of=None):
        return ScheduleService.run_captures(as_of)
