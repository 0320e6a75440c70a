from flask_smorest import Blueprint
from flask.views import MethodView

from bakery.schemas import DateQuerySchema
from bakery.services.availability import available_products
from bakery.services.helper import shop_today


blp = Blueprint("Availability", __name__, url_prefix="/api/availability",
                description="Reservable products for a pickup date")


@blp.route("")
class Availability(MethodView):
    @blp.arguments(DateQuerySchema, location="query")
    def get(self, args):
        day = args.get("date") or shop_today()
        products = available_products(day, text_query=args.get("q"),
                                      category=args.get("category"))
        return {"date": day.isoformat(), "products": products}, 200
