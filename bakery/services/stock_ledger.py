"""Per product, per day count of units not yet claimed by a reservation.

The ledger row is the only shared mutable resource customers contend for, so
it is never written from a value read earlier: upserts are a single
``INSERT ... ON CONFLICT`` and decrements a single conditional ``UPDATE``.
"""
import logging
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from bakery import db
from bakery.errors import NotFound, Oversold, StorageError, ValidationError
from bakery.models import DailyStock, Product

logger = logging.getLogger(__name__)

stock_table = DailyStock.__table__
quantity_column = stock_table.c.cantidad_disponible


def _row_filter(product_id, day):
    return (stock_table.c.product_id == product_id) & (stock_table.c.date == day)


def _storage_error(action, error, commit):
    if commit:
        db.session.rollback()
    logger.error(f"Stock ledger {action} failed: {error}",
                 extra={'event': 'stock_storage_error'})
    return StorageError(f"Could not {action} the stock ledger: {error.__class__.__name__}")


def get_entry(product_id, day):
    """Ledger row for a product and day, or None when it is not offered that day."""
    try:
        return DailyStock.query.filter_by(product_id=product_id, date=day).first()
    except SQLAlchemyError as e:
        raise _storage_error("read", e, commit=False) from e


def current_quantity(product_id, day):
    """Fresh read of the stored value, bypassing any loaded instance."""
    return db.session.execute(
        select(quantity_column).where(_row_filter(product_id, day))
    ).scalar()


def list_for_date(day, positive_only=False):
    try:
        query = DailyStock.query.filter(DailyStock.date == day)
        if positive_only:
            query = query.filter(DailyStock.available_quantity > 0)
        return query.order_by(DailyStock.product_id).all()
    except SQLAlchemyError as e:
        raise _storage_error("read", e, commit=False) from e


def _dialect_insert():
    dialect = db.session.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
        return insert
    if dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
        return insert
    return None


def upsert(product_id, day, quantity, commit=True):
    """Set the absolute available quantity for a day.

    Negative input is clamped to 0. Calling it twice with the same
    arguments leaves the same row behind.
    """
    quantity = max(0, int(quantity))
    if db.session.get(Product, product_id) is None:
        raise NotFound(f"Product {product_id} not found.")

    now = datetime.utcnow()
    try:
        insert = _dialect_insert()
        if insert is not None:
            stmt = insert(stock_table).values(
                product_id=product_id,
                date=day,
                cantidad_disponible=quantity,
                created_at=now,
                updated_at=now,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[stock_table.c.product_id, stock_table.c.date],
                set_={"cantidad_disponible": quantity, "updated_at": now},
            )
            db.session.execute(stmt)
        else:
            entry = DailyStock.query.filter_by(product_id=product_id, date=day).first()
            if entry is None:
                entry = DailyStock(product_id=product_id, date=day)
                db.session.add(entry)
            entry.available_quantity = quantity
            entry.updated_at = now
        if commit:
            db.session.commit()
    except SQLAlchemyError as e:
        raise _storage_error("update", e, commit) from e

    logger.info(f"Stock for product {product_id} on {day} set to {quantity}",
                extra={'event': 'stock_upserted', 'product_id': product_id,
                       'date': day.isoformat(), 'quantity': quantity})

    entry = DailyStock.query.filter_by(product_id=product_id, date=day) \
        .execution_options(populate_existing=True).first()
    return entry


def decrement(product_id, day, amount, commit=True):
    """Atomically take ``amount`` units from the ledger.

    Returns the remaining quantity. Raises NotFound when the product has no
    row for the day and Oversold, leaving the row untouched, when fewer than
    ``amount`` units remain.
    """
    amount = int(amount)
    if amount <= 0:
        raise ValidationError("Quantity must be greater than zero.",
                              details={"quantity": "must be greater than zero"})

    stmt = (
        update(stock_table)
        .where(_row_filter(product_id, day), quantity_column >= amount)
        .values({quantity_column: quantity_column - amount,
                 stock_table.c.updated_at: datetime.utcnow()})
    )
    try:
        result = db.session.execute(stmt)
        if result.rowcount != 1:
            remaining = current_quantity(product_id, day)
            if remaining is None:
                raise NotFound(f"No stock entry for product {product_id} on {day.isoformat()}.")
            logger.warning(
                f"Oversold: product {product_id} on {day} has {remaining}, {amount} requested",
                extra={'event': 'stock_oversold', 'product_id': product_id,
                       'date': day.isoformat(), 'quantity': amount})
            raise Oversold(
                f"Only {remaining} units left for product {product_id}.",
                details=[{"product_id": product_id, "requested": amount,
                          "available": remaining}],
            )
        remaining = current_quantity(product_id, day)
        if commit:
            db.session.commit()
    except SQLAlchemyError as e:
        raise _storage_error("decrement", e, commit) from e

    logger.info(f"Stock for product {product_id} on {day} decremented by {amount}",
                extra={'event': 'stock_decremented', 'product_id': product_id,
                       'date': day.isoformat(), 'quantity': amount})
    return remaining


def increment(product_id, day, amount, commit=True):
    """Atomically return ``amount`` units to the ledger."""
    amount = int(amount)
    if amount <= 0:
        return current_quantity(product_id, day)

    stmt = (
        update(stock_table)
        .where(_row_filter(product_id, day))
        .values({quantity_column: quantity_column + amount,
                 stock_table.c.updated_at: datetime.utcnow()})
    )
    try:
        result = db.session.execute(stmt)
        if result.rowcount != 1:
            raise NotFound(f"No stock entry for product {product_id} on {day.isoformat()}.")
        remaining = current_quantity(product_id, day)
        if commit:
            db.session.commit()
    except SQLAlchemyError as e:
        raise _storage_error("increment", e, commit) from e
    return remaining
