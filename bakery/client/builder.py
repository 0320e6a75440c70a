import logging

from bakery.errors import (
    AlreadyBooked, AuthRequired, BakeryError, NotFound, Oversold, UncertainOutcome,
    ValidationError,
)
from bakery.services.reservations import generate_reservation_code
from .cart import Cart

logger = logging.getLogger(__name__)


def _quantities(lines):
    return {line["product_id"]: line["quantity"] for line in lines}


class ReservationBuilder:
    """Builds one reservation for a pickup date against a live client.

    The cart is bounded by the availability last loaded. A submission code
    is fixed together with the cart it was issued for. It survives only an
    ``UncertainOutcome``, so resending the same cart cannot create a second
    reservation, and a changed cart is checked against the server first.
    """

    def __init__(self, client, pickup_date, cart=None):
        self.client = client
        self.pickup_date = pickup_date
        self.cart = cart if cart is not None else Cart()
        self.products = []
        self.submission_code = None
        self.submitted_payload = None

    def refresh(self):
        """Reload availability and re-bound every cart line against it."""
        self.products = self.client.availability(self.pickup_date)
        remaining = {p["product_id"]: p["remaining"] for p in self.products}
        for line in self.cart.lines:
            self.cart.update_remaining(line.product_id, remaining.get(line.product_id, 0))
        return self.products

    def product(self, product_id):
        for product in self.products:
            if product["product_id"] == product_id:
                return product
        raise NotFound(f"Product {product_id} is not available on {self.pickup_date}.")

    def add(self, product_id):
        return self.cart.increment(self.product(product_id))

    def remove(self, product_id):
        return self.cart.decrement(product_id)

    def set_quantity(self, product_id, quantity):
        return self.cart.set_quantity(self.product(product_id), quantity)

    def _forget_code(self):
        self.submission_code = None
        self.submitted_payload = None

    def _already_booked(self, reservation):
        """Take the booked lines out of the cart and report the booking."""
        code = self.submission_code
        self._forget_code()
        for product_id, quantity in _quantities(reservation["items"]).items():
            if product_id is not None:
                self.cart.set_quantity(product_id, self.cart.quantity_of(product_id) - quantity)
        logger.info(f"Submission {code} was already booked; "
                    f"{self.cart.count()} unit(s) left in the cart")
        return AlreadyBooked(f"Reservation {reservation['code']} was already booked.",
                             details=reservation)

    def _check_pending_code(self):
        """The cart changed since an uncertain submit: did that submit land?"""
        try:
            reservation = self.client.reservation_by_code(self.submission_code)
        except NotFound:
            self._forget_code()
            return
        raise self._already_booked(reservation)

    def submit(self, pickup_timeslot=None, notes=None):
        """Send the cart; on success clear it, then reload availability.

        On ``Oversold`` every short line is lowered to what the server said
        is left and the error is raised again so the user can re-confirm.
        A product that is no longer offered drops out of the cart the same
        way. ``AlreadyBooked`` means an earlier uncertain submit went
        through with a different cart; the cart keeps only what it did not
        cover.
        """
        if self.client.current_user() is None:
            raise AuthRequired("Log in to place a reservation.")
        if self.cart.is_empty():
            raise ValidationError("The cart is empty.", details={"items": "must not be empty"})

        payload = self.cart.to_payload()
        if self.submission_code is not None and self.submitted_payload != payload:
            self._check_pending_code()
        if self.submission_code is None:
            self.submission_code = generate_reservation_code()
            self.submitted_payload = payload

        try:
            result = self.client.submit_reservation(
                self.pickup_date, payload,
                pickup_timeslot=pickup_timeslot, notes=notes, code=self.submission_code)
        except UncertainOutcome:
            logger.warning(f"Submission {self.submission_code} has an unknown outcome")
            raise
        except Oversold as e:
            logger.info(f"Cart adjusted after oversold submission {self.submission_code}")
            self._forget_code()
            for shortage in e.shortages:
                self.cart.update_remaining(shortage["product_id"], shortage["available"])
            raise
        except NotFound:
            self._forget_code()
            self.refresh()
            raise
        except BakeryError:
            self._forget_code()
            raise

        reservation = result["reservation"]
        if not result.get("created", True) and \
                _quantities(reservation["items"]) != _quantities(payload):
            raise self._already_booked(reservation)

        self.cart.clear()
        self._forget_code()
        self.refresh()
        return reservation
