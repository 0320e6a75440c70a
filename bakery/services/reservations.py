"""Turning a cart into a persisted reservation, and what happens after.

``submit_reservation`` writes the header, its items and every ledger
decrement inside one database transaction. Any failure rolls the whole
transaction back, so readers never see a header without items or items
without their stock taken.
"""
import logging
import secrets
import string
from datetime import datetime, timedelta
from decimal import Decimal

from flask import current_app
from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from bakery import db
from bakery.errors import (
    AuthRequired, BakeryError, Forbidden, InvalidTransition, NotFound,
    Oversold, StorageError, ValidationError,
)
from bakery.middleware.utils import log_function_call
from bakery.models import (
    ACTIVE_STATUSES, HISTORY_STATUSES, Product, Profile, Reservation,
    ReservationItem, ReservationStatus, money,
)
from bakery.services import stock_ledger
from bakery.services.helper import shop_today

logger = logging.getLogger(__name__)

CODE_PREFIX = "PAN-"
CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 8
CODE_ATTEMPTS = 5

NEXT_STATUS = {
    ReservationStatus.PENDING: ReservationStatus.PREPARED,
    ReservationStatus.PREPARED: ReservationStatus.PICKED_UP,
}

SCOPES = {
    "active": ACTIVE_STATUSES,
    "history": HISTORY_STATUSES,
    "all": tuple(ReservationStatus),
}


def generate_reservation_code():
    """Random customer-facing code such as ``PAN-7K2QX9MB``."""
    return CODE_PREFIX + "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


def _merge_lines(items):
    """Validate cart lines and merge repeated products, keeping first-seen order."""
    if not items:
        raise ValidationError("A reservation needs at least one item.",
                              details={"items": "must not be empty"})
    merged = {}
    for line in items:
        try:
            product_id = int(line["product_id"])
            quantity = int(line["quantity"])
        except (KeyError, TypeError, ValueError):
            raise ValidationError("Each item needs a product_id and a quantity.",
                                  details={"items": "malformed line"})
        if quantity <= 0:
            raise ValidationError("Quantities must be greater than zero.",
                                  details={"items": {str(product_id): "quantity must be > 0"}})
        merged[product_id] = merged.get(product_id, 0) + quantity
    return merged


def _check_pickup_date(pickup_date):
    today = shop_today()
    if pickup_date < today:
        raise ValidationError("Pickup date cannot be in the past.",
                              details={"pickup_date": "in the past"})
    horizon = current_app.config.get("MAX_RESERVATION_DAYS_AHEAD", 14)
    if pickup_date > today + timedelta(days=horizon):
        raise ValidationError(f"Pickup date must be within {horizon} days.",
                              details={"pickup_date": "too far ahead"})


def _existing_for_code(profile, code):
    existing = Reservation.query.filter_by(code=code).first()
    if existing is None:
        return None
    if existing.user_id != profile.id:
        raise ValidationError("Reservation code is already taken.",
                              details={"code": "duplicate"})
    logger.info(f"Duplicate submission of {code} returned the existing reservation",
                extra={'event': 'reservation_deduplicated', 'code': code,
                       'reservation_id': existing.id, 'user_id': profile.id})
    return existing


def _write_reservation(profile, pickup_date, lines, pickup_timeslot, notes, code):
    """Header, items and decrements; the caller commits or rolls back."""
    priced = []
    for product_id, quantity in lines.items():
        product = db.session.get(Product, product_id)
        if product is None or not product.active:
            raise NotFound(f"Product {product_id} is not available.",
                           details={"product_id": product_id})
        unit_price = money(product.price)
        priced.append((product, quantity, unit_price, money(unit_price * quantity)))

    reservation = Reservation(
        code=code,
        user_id=profile.id,
        pickup_date=pickup_date,
        pickup_timeslot=pickup_timeslot,
        status=ReservationStatus.PENDING,
        notes=notes,
        total=sum((subtotal for _, _, _, subtotal in priced), Decimal("0.00")),
    )
    db.session.add(reservation)
    db.session.flush()

    for product, quantity, unit_price, subtotal in priced:
        reservation.items.append(ReservationItem(
            product_id=product.id,
            product_name=product.name,
            quantity=quantity,
            unit_price=unit_price,
            subtotal=subtotal,
        ))
    db.session.flush()

    shortages = []
    for product, quantity, _, _ in priced:
        try:
            stock_ledger.decrement(product.id, pickup_date, quantity, commit=False)
        except Oversold as e:
            shortages.extend(e.shortages)
        except NotFound:
            # Not offered that day
            shortages.append({"product_id": product.id, "requested": quantity, "available": 0})
    if shortages:
        raise Oversold("Some items no longer have enough stock.", details=shortages)

    return reservation


@log_function_call
def submit_reservation(profile, pickup_date, items, pickup_timeslot=None, notes=None, code=None):
    """Commit a reservation. Returns ``(reservation, created)``.

    ``created`` is False when ``code`` matched a reservation the same user
    already submitted, so a retried request never books twice.
    """
    if profile is None:
        raise AuthRequired("Log in to place a reservation.")

    lines = _merge_lines(items)
    _check_pickup_date(pickup_date)
    pickup_timeslot = pickup_timeslot or current_app.config.get("DEFAULT_PICKUP_TIMESLOT", "08:00")

    client_code = (code or "").strip().upper() or None
    if client_code is not None:
        existing = _existing_for_code(profile, client_code)
        if existing is not None:
            return existing, False

    for attempt in range(CODE_ATTEMPTS):
        reservation_code = client_code or generate_reservation_code()
        try:
            reservation = _write_reservation(
                profile, pickup_date, lines, pickup_timeslot, notes, reservation_code)
            db.session.commit()
        except BakeryError:
            db.session.rollback()
            raise
        except IntegrityError as e:
            db.session.rollback()
            if client_code is not None:
                # Same code committed concurrently by the same user
                existing = _existing_for_code(profile, client_code)
                if existing is not None:
                    return existing, False
                raise StorageError(f"Could not save the reservation: {e.__class__.__name__}") from e
            logger.warning(f"Reservation code collision on attempt {attempt + 1}",
                           extra={'event': 'reservation_code_collision'})
            continue
        except SQLAlchemyError as e:
            db.session.rollback()
            raise StorageError(f"Could not save the reservation: {e.__class__.__name__}") from e

        logger.info(
            f"Reservation {reservation.code} committed for {pickup_date} "
            f"with {len(lines)} product(s), total {reservation.total}",
            extra={'event': 'reservation_committed', 'reservation_id': reservation.id,
                   'code': reservation.code, 'user_id': profile.id,
                   'date': pickup_date.isoformat()},
        )
        return reservation, True

    raise StorageError("Could not allocate a unique reservation code.")


def _get_reservation(reservation_id):
    reservation = db.session.get(Reservation, reservation_id)
    if reservation is None:
        raise NotFound(f"Reservation {reservation_id} not found.")
    return reservation


def _transition(reservation, expected, new_status):
    """Conditional status update; loses cleanly to a concurrent change."""
    result = db.session.execute(
        update(Reservation)
        .where(Reservation.id == reservation.id, Reservation.status == expected)
        .values(status=new_status, updated_at=datetime.utcnow())
    )
    if result.rowcount != 1:
        db.session.rollback()
        db.session.refresh(reservation)
        raise InvalidTransition(
            f"Reservation {reservation.code} is {reservation.status.value} "
            f"and cannot become {new_status.value}.")


@log_function_call
def cancel_reservation(profile, reservation_id):
    """Owner cancels a reservation that is still PENDING."""
    if profile is None:
        raise AuthRequired("Log in to cancel a reservation.")
    reservation = _get_reservation(reservation_id)
    if reservation.user_id != profile.id:
        raise Forbidden("Only the owner can cancel this reservation.")
    if reservation.status != ReservationStatus.PENDING:
        raise InvalidTransition(
            f"Reservation {reservation.code} is {reservation.status.value} "
            f"and can no longer be cancelled.")

    try:
        _transition(reservation, ReservationStatus.PENDING, ReservationStatus.CANCELLED)
        restocked = _restock(reservation) if current_app.config.get("RESTOCK_ON_CANCEL") else 0
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise StorageError(f"Could not cancel the reservation: {e.__class__.__name__}") from e

    db.session.refresh(reservation)
    logger.info(f"Reservation {reservation.code} cancelled",
                extra={'event': 'reservation_cancelled', 'reservation_id': reservation.id,
                       'code': reservation.code, 'user_id': profile.id})
    if restocked:
        logger.info(f"Returned {restocked} unit(s) from {reservation.code} to stock",
                    extra={'event': 'reservation_restocked', 'reservation_id': reservation.id,
                           'quantity': restocked})
    return reservation


def _restock(reservation):
    returned = 0
    for item in reservation.items:
        if item.product_id is None:
            continue
        try:
            stock_ledger.increment(item.product_id, reservation.pickup_date,
                                   item.quantity, commit=False)
        except NotFound:
            logger.warning(
                f"No stock entry to restock product {item.product_id} "
                f"on {reservation.pickup_date}",
                extra={'event': 'restock_skipped', 'product_id': item.product_id})
            continue
        returned += item.quantity
    return returned


@log_function_call
def advance_status(reservation_id, new_status):
    """Staff moves a reservation PENDING -> PREPARED -> PICKED_UP."""
    try:
        new_status = ReservationStatus(new_status)
    except ValueError:
        raise ValidationError(f"Unknown status '{new_status}'.",
                              details={"status": [s.value for s in ReservationStatus]})

    reservation = _get_reservation(reservation_id)
    current = reservation.status
    if NEXT_STATUS.get(current) != new_status:
        raise InvalidTransition(
            f"Reservation {reservation.code} cannot go from {current.value} to {new_status.value}.")

    try:
        _transition(reservation, current, new_status)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise StorageError(f"Could not update the reservation: {e.__class__.__name__}") from e

    db.session.refresh(reservation)
    logger.info(f"Reservation {reservation.code} moved to {new_status.value}",
                extra={'event': 'reservation_status_changed',
                       'reservation_id': reservation.id, 'code': reservation.code})
    return reservation


def list_user_reservations(profile, scope="active"):
    if profile is None:
        raise AuthRequired("Log in to see your reservations.")
    if scope not in SCOPES:
        raise ValidationError(f"Unknown scope '{scope}'.", details={"scope": list(SCOPES)})

    query = Reservation.query.filter(
        Reservation.user_id == profile.id,
        Reservation.status.in_(SCOPES[scope]),
    )
    if scope == "active":
        query = query.order_by(Reservation.pickup_date.asc(), Reservation.id.asc())
    else:
        query = query.order_by(Reservation.pickup_date.desc(), Reservation.id.desc())
    return query.all()


def get_by_code(profile, code):
    """Lookup by customer-facing code; owner or admin only."""
    if profile is None:
        raise AuthRequired("Log in to look up a reservation.")
    reservation = Reservation.query.filter_by(code=(code or "").strip().upper()).first()
    if reservation is None:
        raise NotFound(f"Reservation {code} not found.")
    if reservation.user_id != profile.id and not profile.is_admin:
        raise Forbidden("This reservation belongs to another customer.")
    return reservation


def list_reservations(status=None, scope=None, date_from=None, date_to=None, text=None):
    """Admin panel listing, soonest pickup first."""
    query = Reservation.query.join(Profile, Profile.id == Reservation.user_id)
    if status:
        try:
            query = query.filter(Reservation.status == ReservationStatus(status))
        except ValueError:
            raise ValidationError(f"Unknown status '{status}'.",
                                  details={"status": [s.value for s in ReservationStatus]})
    elif scope:
        if scope not in SCOPES:
            raise ValidationError(f"Unknown scope '{scope}'.", details={"scope": list(SCOPES)})
        query = query.filter(Reservation.status.in_(SCOPES[scope]))
    if date_from:
        query = query.filter(Reservation.pickup_date >= date_from)
    if date_to:
        query = query.filter(Reservation.pickup_date <= date_to)
    if text:
        pattern = f"%{text.strip()}%"
        query = query.filter(or_(
            Reservation.code.ilike(pattern),
            Profile.email.ilike(pattern),
            Profile.name.ilike(pattern),
        ))
    return query.order_by(
        Reservation.pickup_date.asc(), Reservation.pickup_timeslot.asc(), Reservation.id.asc()
    ).all()
