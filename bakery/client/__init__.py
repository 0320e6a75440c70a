"""Python storefront client: the cart, the reservation builder and the
admin stock editor, talking to the API over HTTP."""
from .api import StorefrontClient
from .cart import Cart, CartLine
from .builder import ReservationBuilder
from .stock_editor import EditState, StockCell, StockEditor

__all__ = [
    "StorefrontClient", "Cart", "CartLine", "ReservationBuilder",
    "EditState", "StockCell", "StockEditor",
]
