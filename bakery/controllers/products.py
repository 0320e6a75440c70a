from flask_smorest import Blueprint
from flask.views import MethodView

from bakery.schemas import ProductSchema, ProductUpdateSchema, ProductQuerySchema
from bakery.services.auth import current_profile, require_admin
from bakery.services import catalog


blp = Blueprint("Products", __name__, url_prefix="/api/products",
                description="Product catalog")


def _caller_is_admin():
    profile = current_profile()
    return profile is not None and profile.is_admin


@blp.route("")
class ProductList(MethodView):
    @blp.arguments(ProductQuerySchema, location="query")
    def get(self, args):
        """List products, most recently updated first.

        Inactive products are only listed for admins asking for them.
        """
        if args.get("include_inactive"):
            require_admin()
        products = catalog.list_products(
            active_only=not args.get("include_inactive"),
            category=args.get("category"),
            text_query=args.get("q"),
            featured=args.get("featured"),
        )
        return {"products": [p.to_dict() for p in products], "total": len(products)}, 200

    @blp.arguments(ProductSchema)
    def post(self, product_data):
        """Create a product (admin only)."""
        require_admin()
        auto_slug = product_data.pop("auto_slug", True)
        product = catalog.create_product(product_data, auto_slug=auto_slug)
        return {"message": "Product created successfully", "product": product.to_dict()}, 201


@blp.route("/featured")
class FeaturedProducts(MethodView):
    def get(self):
        """Active products flagged for the homepage."""
        products = catalog.list_products(active_only=True, featured=True)
        return {"products": [p.to_dict() for p in products]}, 200


@blp.route("/<int:product_id>")
class ProductDetail(MethodView):
    def get(self, product_id):
        product = catalog.get_product(product_id, active_only=not _caller_is_admin())
        return {"product": product.to_dict()}, 200

    @blp.arguments(ProductUpdateSchema)
    def patch(self, product_data, product_id):
        """Partially update a product (admin only)."""
        require_admin()
        auto_slug = product_data.pop("auto_slug", False)
        product = catalog.update_product(product_id, product_data, auto_slug=auto_slug)
        return {"message": "Product updated successfully", "product": product.to_dict()}, 200

    def delete(self, product_id):
        """Delete a product; past reservations keep their snapshots (admin only)."""
        require_admin()
        catalog.delete_product(product_id)
        return {"message": "Product deleted successfully"}, 200
