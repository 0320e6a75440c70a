from flask_smorest import Blueprint
from flask.views import MethodView

from bakery.schemas import AdminReservationQuerySchema, DateQuerySchema, StatusChangeSchema
from bakery.services import aggregator, reservations
from bakery.services.auth import require_admin
from bakery.services.helper import shop_today


blp = Blueprint("AdminReservations", __name__, url_prefix="/api/admin",
                description="Reservation management and reports for staff")


@blp.route("/reservations")
class AdminReservationList(MethodView):
    @blp.arguments(AdminReservationQuerySchema, location="query")
    def get(self, args):
        """Filter by status (or active/history scope), pickup date range and text."""
        require_admin()
        status = args.get("status")
        items = reservations.list_reservations(
            status=status.value if status else None,
            scope=args.get("scope"),
            date_from=args.get("date_from"),
            date_to=args.get("date_to"),
            text=args.get("q"),
        )
        return {"reservations": [r.to_dict() for r in items], "total": len(items)}, 200


@blp.route("/reservations/<int:reservation_id>/status")
class AdminReservationStatus(MethodView):
    @blp.arguments(StatusChangeSchema)
    def patch(self, status_data, reservation_id):
        require_admin()
        reservation = reservations.advance_status(reservation_id, status_data["status"])
        return {"message": "Status updated", "reservation": reservation.to_dict()}, 200


@blp.route("/reports/reconciliation")
class ReconciliationReport(MethodView):
    @blp.arguments(DateQuerySchema, location="query")
    def get(self, args):
        """Ledger remaining against reserved totals, plus partial commits found."""
        require_admin()
        return aggregator.reconciliation_report(args.get("date") or shop_today()), 200
