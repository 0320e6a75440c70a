import logging
import re
import unicodedata
from datetime import datetime

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from bakery import db
from bakery.errors import NotFound, StorageError, ValidationError
from bakery.models import Product, ProductCategory, ReservationItem, money

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = (
    "name", "slug", "description", "price", "category", "tags",
    "active", "featured", "image_url",
)


def strip_diacritics(value):
    """Decompose to NFD and drop the combining marks: 'Ñ' -> 'N'."""
    decomposed = unicodedata.normalize("NFD", value or "")
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def slugify(value):
    """URL-safe identifier derived from a display name.

    Examples: "Pan de Centeno" -> "pan-de-centeno", "Ñoquis!" -> "noquis".
    """
    ascii_text = strip_diacritics(value).lower()
    return re.sub(r"[^a-z0-9]+", "-", ascii_text).strip("-")


def coerce_category(value):
    if isinstance(value, ProductCategory):
        return value
    try:
        return ProductCategory(str(value).upper())
    except ValueError:
        raise ValidationError(
            f"Unknown category '{value}'.",
            details={"category": [c.value for c in ProductCategory]},
        )


def _clean(fields, auto_slug, current=None):
    """Validate and normalise a create/update payload."""
    data = {key: fields[key] for key in EDITABLE_FIELDS if key in fields}

    if "name" in data:
        data["name"] = (data["name"] or "").strip()
        if not data["name"]:
            raise ValidationError("Product name is required.", details={"name": "required"})

    if auto_slug:
        source = data.get("name", current.name if current is not None else "")
        data["slug"] = slugify(source)
    if "slug" in data:
        data["slug"] = (data["slug"] or "").strip()
        if not data["slug"]:
            raise ValidationError("Product slug is required.", details={"slug": "required"})

    if "price" in data:
        if data["price"] is None:
            raise ValidationError("Price is required.", details={"price": "required"})
        data["price"] = money(data["price"])
        if data["price"] < 0:
            raise ValidationError("Price cannot be negative.",
                                  details={"price": "must be zero or greater"})

    if "category" in data:
        data["category"] = coerce_category(data["category"])

    if "tags" in data:
        data["tags"] = [str(tag).strip() for tag in (data["tags"] or []) if str(tag).strip()]

    return data


def _ensure_unique_slug(slug, product_id=None):
    query = Product.query.filter(Product.slug == slug)
    if product_id is not None:
        query = query.filter(Product.id != product_id)
    if query.first() is not None:
        raise ValidationError(f"Slug '{slug}' is already in use.",
                              details={"slug": "duplicate"})


def list_products(active_only=False, category=None, text_query=None, featured=None):
    """Products ordered by most recently updated first."""
    query = Product.query
    if active_only:
        query = query.filter(Product.active.is_(True))
    if category:
        query = query.filter(Product.category == coerce_category(category))
    if featured is not None:
        query = query.filter(Product.featured.is_(bool(featured)))
    if text_query:
        pattern = f"%{text_query.strip()}%"
        query = query.filter(or_(Product.name.ilike(pattern), Product.slug.ilike(pattern)))
    try:
        return query.order_by(Product.updated_at.desc(), Product.id.desc()).all()
    except SQLAlchemyError as e:
        raise StorageError(f"Could not list products: {e.__class__.__name__}") from e


def get_product(product_id, active_only=False):
    product = db.session.get(Product, product_id)
    if product is None or (active_only and not product.active):
        raise NotFound(f"Product {product_id} not found.")
    return product


def create_product(fields, auto_slug=True):
    data = _clean(fields, auto_slug)
    for required in ("name", "slug", "price", "category"):
        if required not in data:
            raise ValidationError(f"Field '{required}' is required.",
                                  details={required: "required"})
    _ensure_unique_slug(data["slug"])

    product = Product(**data)
    try:
        db.session.add(product)
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        raise ValidationError(f"Slug '{data['slug']}' is already in use.",
                              details={"slug": "duplicate"}) from e
    except SQLAlchemyError as e:
        db.session.rollback()
        raise StorageError(f"Could not create product: {e.__class__.__name__}") from e

    logger.info(f"Product {product.id} created with slug {product.slug}",
                extra={'event': 'product_created', 'product_id': product.id})
    return product


def update_product(product_id, fields, auto_slug=False):
    """Apply a partial update. With ``auto_slug`` the slug follows the name."""
    product = get_product(product_id)
    data = _clean(fields, auto_slug, current=product)
    if "slug" in data and data["slug"] != product.slug:
        _ensure_unique_slug(data["slug"], product_id=product.id)

    for key, value in data.items():
        setattr(product, key, value)
    product.updated_at = datetime.utcnow()
    try:
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        raise ValidationError("Slug is already in use.", details={"slug": "duplicate"}) from e
    except SQLAlchemyError as e:
        db.session.rollback()
        raise StorageError(f"Could not update product: {e.__class__.__name__}") from e

    logger.info(f"Product {product.id} updated",
                extra={'event': 'product_updated', 'product_id': product.id})
    return product


def delete_product(product_id):
    """Remove a product and its ledger rows; reservation snapshots stay."""
    product = get_product(product_id)
    try:
        db.session.execute(
            update(ReservationItem)
            .where(ReservationItem.product_id == product.id)
            .values(product_id=None)
        )
        db.session.delete(product)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise StorageError(f"Could not delete product: {e.__class__.__name__}") from e

    logger.info(f"Product {product_id} deleted",
                extra={'event': 'product_deleted', 'product_id': product_id})
