"""Sum of reserved units per product, used as an audit next to the ledger.

Live availability comes from the ledger alone. These totals feed the
reconciliation report, which staff read to spot reservations that were
committed without their items or with a total that no longer adds up.
"""
import logging
from decimal import Decimal

from sqlalchemy import func

from bakery import db
from bakery.models import (
    DailyStock, Product, Reservation, ReservationItem, ReservationStatus, money
)

logger = logging.getLogger(__name__)


def reserved_totals(day, include_cancelled=False):
    """Mapping product_id -> units reserved for pickups on ``day``."""
    query = (
        db.session.query(ReservationItem.product_id, func.sum(ReservationItem.quantity))
        .join(Reservation, Reservation.id == ReservationItem.reservation_id)
        .filter(Reservation.pickup_date == day, ReservationItem.product_id.isnot(None))
    )
    if not include_cancelled:
        query = query.filter(Reservation.status != ReservationStatus.CANCELLED)
    rows = query.group_by(ReservationItem.product_id).all()
    return {product_id: int(total) for product_id, total in rows}


def find_partial_commits(day=None):
    """Reservations left in a state a single commit can never produce.

    A header with no items, or a stored total that differs from the sum of
    its item subtotals. Every finding is logged at ERROR level.
    """
    query = Reservation.query
    if day is not None:
        query = query.filter(Reservation.pickup_date == day)

    findings = []
    for reservation in query.order_by(Reservation.id).all():
        items_total = sum((money(item.subtotal) for item in reservation.items), Decimal("0.00"))
        if not reservation.items:
            kind = "no_items"
        elif money(reservation.total) != items_total:
            kind = "total_mismatch"
        else:
            continue

        finding = {
            "reservation_id": reservation.id,
            "code": reservation.code,
            "kind": kind,
            "stored_total": str(money(reservation.total)),
            "items_total": str(items_total),
        }
        logger.error(
            f"Partial commit detected on reservation {reservation.code}: {kind}",
            extra={'event': 'partial_commit_detected', 'reservation_id': reservation.id,
                   'code': reservation.code},
        )
        findings.append(finding)
    return findings


def reconciliation_report(day):
    """Ledger remaining next to reserved totals for every product touched on ``day``."""
    ledger = {entry.product_id: entry.available_quantity
              for entry in DailyStock.query.filter(DailyStock.date == day).all()}
    reserved = reserved_totals(day)
    cancelled = {
        product_id: total - reserved.get(product_id, 0)
        for product_id, total in reserved_totals(day, include_cancelled=True).items()
    }

    product_ids = sorted(set(ledger) | set(reserved))
    names = {}
    if product_ids:
        names = dict(db.session.query(Product.id, Product.name)
                     .filter(Product.id.in_(product_ids)).all())

    rows = []
    for product_id in product_ids:
        rows.append({
            "product_id": product_id,
            "product_name": names.get(product_id),
            "remaining": ledger.get(product_id),
            "reserved": reserved.get(product_id, 0),
            "cancelled": cancelled.get(product_id, 0),
            # Units that started the day on the ledger, assuming no admin edits since
            "implied_capacity": (ledger[product_id] + reserved.get(product_id, 0))
            if product_id in ledger else None,
        })

    return {
        "date": day.isoformat(),
        "rows": rows,
        "partial_commits": find_partial_commits(day),
    }
