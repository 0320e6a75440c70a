import time

from sqlalchemy import or_

from bakery import db
from bakery.middleware.utils import log_performance_metric
from bakery.models import DailyStock, Product, money
from bakery.services.catalog import coerce_category, strip_diacritics


def name_sort_key(name):
    """Spanish-friendly ordering: accents and case do not move a name."""
    plain = strip_diacritics(name or "").casefold()
    return (plain, name or "")


def available_products(day, text_query=None, category=None):
    """Reservable products for ``day``.

    Only ledger rows with units left and an active product make it through;
    ``remaining`` is the ledger value itself. Empty ledger gives an empty list.
    """
    start = time.time()
    query = (
        db.session.query(DailyStock, Product)
        .join(Product, Product.id == DailyStock.product_id)
        .filter(
            DailyStock.date == day,
            DailyStock.available_quantity > 0,
            Product.active.is_(True),
        )
    )
    if category:
        query = query.filter(Product.category == coerce_category(category))
    if text_query:
        pattern = f"%{text_query.strip()}%"
        query = query.filter(or_(Product.name.ilike(pattern), Product.slug.ilike(pattern)))

    results = [
        {
            "product_id": product.id,
            "name": product.name,
            "slug": product.slug,
            "description": product.description,
            "price": str(money(product.price)),
            "category": product.category.value,
            "image_url": product.image_url,
            "tags": list(product.tags or []),
            "featured": product.featured,
            "remaining": entry.available_quantity,
        }
        for entry, product in query.all()
    ]
    results.sort(key=lambda row: name_sort_key(row["name"]))

    log_performance_metric("availability_query", round((time.time() - start) * 1000, 2))
    return results
