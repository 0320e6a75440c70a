from bakery import db
from datetime import datetime
from decimal import Decimal
from enum import Enum


class UserRole(str, Enum):
    GUEST = "guest"
    CUSTOMER = "customer"
    ADMIN = "admin"


class ProductCategory(str, Enum):
    BREAD = "BREAD"
    PASTRY = "PASTRY"
    CAKE = "CAKE"
    SPECIAL = "SPECIAL"


class ReservationStatus(str, Enum):
    PENDING = "PENDING"
    PREPARED = "PREPARED"
    PICKED_UP = "PICKED_UP"
    CANCELLED = "CANCELLED"


# Statuses grouped the way customers and staff browse reservations
ACTIVE_STATUSES = (ReservationStatus.PENDING, ReservationStatus.PREPARED)
HISTORY_STATUSES = (ReservationStatus.PICKED_UP, ReservationStatus.CANCELLED)


def money(value):
    """Quantize a price-like value to cents."""
    return Decimal(str(value)).quantize(Decimal("0.01"))


class Profile(db.Model):
    __tablename__ = 'profiles'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), nullable=False, unique=True)
    name = db.Column(db.String(100), nullable=False)
    phone = db.Column(db.String(20), nullable=True)
    password = db.Column(db.String(200), nullable=False)
    role = db.Column(db.Enum(UserRole, name='user_role'), nullable=False,
                     default=UserRole.CUSTOMER)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def is_admin(self):
        return self.role == UserRole.ADMIN

    def to_dict(self):
        return {
            "user_id": self.id,
            "email": self.email,
            "name": self.name,
            "phone": self.phone,
            "role": self.role.value,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class Product(db.Model):
    __tablename__ = 'products'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    slug = db.Column(db.String(140), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)
    price = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    category = db.Column(db.Enum(ProductCategory, name='product_category'),
                         nullable=False)
    tags = db.Column(db.JSON, nullable=False, default=list)
    active = db.Column(db.Boolean, nullable=False, default=True)
    featured = db.Column(db.Boolean, nullable=False, default=False)
    image_url = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    stock_entries = db.relationship(
        "DailyStock", backref="product", cascade="all, delete-orphan")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "price": str(money(self.price)),
            "category": self.category.value,
            "tags": list(self.tags or []),
            "active": self.active,
            "featured": self.featured,
            "image_url": self.image_url,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class DailyStock(db.Model):
    """Units of a product still unclaimed for one calendar date."""
    __tablename__ = 'daily_stock'

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey(
        'products.id', ondelete='CASCADE'), nullable=False)
    date = db.Column(db.Date, nullable=False)
    available_quantity = db.Column(
        'cantidad_disponible', db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # One ledger row per product and day; upserts conflict on this pair
    __table_args__ = (
        db.UniqueConstraint('product_id', 'date', name='unique_product_date'),
        db.CheckConstraint('cantidad_disponible >= 0',
                           name='available_quantity_not_negative'),
    )

    def to_dict(self):
        return {
            "product_id": self.product_id,
            "date": self.date.isoformat(),
            "available_quantity": self.available_quantity,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class Reservation(db.Model):
    __tablename__ = 'reservations'

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(20), nullable=False, unique=True)
    user_id = db.Column(db.Integer, db.ForeignKey('profiles.id'), nullable=False)
    pickup_date = db.Column(db.Date, nullable=False)
    pickup_timeslot = db.Column(db.String(20), nullable=False)
    status = db.Column(
        db.Enum(ReservationStatus, name='reservation_status'),
        nullable=False,
        default=ReservationStatus.PENDING
    )
    notes = db.Column(db.Text, nullable=True)
    total = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal("0.00"))

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    items = db.relationship(
        "ReservationItem", back_populates="reservation",
        cascade="all, delete-orphan", order_by="ReservationItem.id")
    user = db.relationship("Profile", backref="reservations")

    def to_dict(self, with_items=True):
        data = {
            "id": self.id,
            "code": self.code,
            "user_id": self.user_id,
            "pickup_date": self.pickup_date.isoformat(),
            "pickup_timeslot": self.pickup_timeslot,
            "status": self.status.value,
            "notes": self.notes,
            "total": str(money(self.total)),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if with_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class ReservationItem(db.Model):
    __tablename__ = 'reservation_items'

    id = db.Column(db.Integer, primary_key=True)
    reservation_id = db.Column(db.Integer, db.ForeignKey(
        'reservations.id', ondelete='CASCADE'), nullable=False)
    # Survives product deletion; name and price are snapshots
    product_id = db.Column(db.Integer, db.ForeignKey(
        'products.id', ondelete='SET NULL'), nullable=True)
    product_name = db.Column(db.String(120), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(10, 2), nullable=False)
    subtotal = db.Column(db.Numeric(10, 2), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.CheckConstraint('quantity > 0', name='item_quantity_positive'),
    )

    reservation = db.relationship("Reservation", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self):
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price": str(money(self.unit_price)),
            "subtotal": str(money(self.subtotal)),
        }


class TokenBlocklist(db.Model):
    __tablename__ = "token_blocklist"

    id = db.Column(db.Integer, primary_key=True)
    jti = db.Column(db.String(36), nullable=False, unique=True)
    created_at = db.Column(
        db.DateTime, default=datetime.utcnow, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
