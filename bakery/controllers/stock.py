from flask_smorest import Blueprint
from flask.views import MethodView
from datetime import date

from bakery.errors import ValidationError
from bakery.models import Product
from bakery.schemas import DateQuerySchema, StockUpsertSchema
from bakery.services import stock_ledger
from bakery.services.auth import require_admin
from bakery.services.helper import shop_today


blp = Blueprint("Stock", __name__, url_prefix="/api/admin/stock",
                description="Daily stock editor")


def _parse_day(value):
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"Invalid date '{value}'.", details={"date": "expected YYYY-MM-DD"})


@blp.route("")
class StockSheet(MethodView):
    @blp.arguments(DateQuerySchema, location="query")
    def get(self, args):
        """Every product with its ledger value for the day; null when not offered."""
        require_admin()
        day = args.get("date") or shop_today()
        entries = {entry.product_id: entry for entry in stock_ledger.list_for_date(day)}
        rows = []
        for product in Product.query.order_by(Product.name).all():
            entry = entries.get(product.id)
            rows.append({
                "product_id": product.id,
                "name": product.name,
                "active": product.active,
                "available_quantity": entry.available_quantity if entry else None,
                "updated_at": entry.updated_at.isoformat() if entry and entry.updated_at else None,
            })
        return {"date": day.isoformat(), "stock": rows}, 200


@blp.route("/<int:product_id>/<string:day>")
class StockEntry(MethodView):
    @blp.arguments(StockUpsertSchema)
    def put(self, stock_data, product_id, day):
        """Set the absolute quantity for a product and day (negative becomes 0)."""
        require_admin()
        entry = stock_ledger.upsert(product_id, _parse_day(day), stock_data["quantity"])
        return {"message": "Stock updated", "stock": entry.to_dict()}, 200
