from flask_smorest import Blueprint
from flask.views import MethodView

from bakery.schemas import ReservationSubmitSchema, ScopeQuerySchema
from bakery.services.auth import current_profile
from bakery.services import reservations


blp = Blueprint("Reservations", __name__, url_prefix="/api/reservations",
                description="Customer pickup reservations")


@blp.route("")
class ReservationSubmit(MethodView):
    @blp.arguments(ReservationSubmitSchema)
    def post(self, reservation_data):
        """Commit a cart as a reservation.

        Resending the same ``code`` returns the reservation created by the
        first request with status 200 instead of booking twice.
        """
        reservation, created = reservations.submit_reservation(
            current_profile(),
            reservation_data["pickup_date"],
            reservation_data["items"],
            pickup_timeslot=reservation_data.get("pickup_timeslot"),
            notes=reservation_data.get("notes"),
            code=reservation_data.get("code"),
        )
        message = "Reservation created successfully" if created else "Reservation already submitted"
        return {
            "message": message,
            "created": created,
            "reservation": reservation.to_dict(),
        }, 201 if created else 200


@blp.route("/mine")
class MyReservations(MethodView):
    @blp.arguments(ScopeQuerySchema, location="query")
    def get(self, args):
        items = reservations.list_user_reservations(current_profile(), scope=args["scope"])
        return {"scope": args["scope"], "reservations": [r.to_dict() for r in items]}, 200


@blp.route("/code/<string:code>")
class ReservationByCode(MethodView):
    def get(self, code):
        reservation = reservations.get_by_code(current_profile(), code)
        return {"reservation": reservation.to_dict()}, 200


@blp.route("/<int:reservation_id>/cancel")
class ReservationCancel(MethodView):
    def patch(self, reservation_id):
        """Cancel a PENDING reservation you own."""
        reservation = reservations.cancel_reservation(current_profile(), reservation_id)
        return {"message": "Reservation cancelled", "reservation": reservation.to_dict()}, 200
