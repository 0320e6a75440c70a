from decimal import Decimal


def _product_id(product):
    return product["product_id"] if isinstance(product, dict) else int(product)


class CartLine:
    """One product in the cart with the price and name seen when it was added."""

    def __init__(self, product_id, display_name, unit_price, known_remaining, quantity=0):
        self.product_id = product_id
        self.display_name = display_name
        self.unit_price = Decimal(str(unit_price))
        self.known_remaining = max(0, int(known_remaining))
        self.quantity = quantity

    @property
    def subtotal(self):
        return self.unit_price * self.quantity

    def __repr__(self):
        return f"<CartLine {self.product_id} x{self.quantity}/{self.known_remaining}>"


class Cart:
    """Candidate reservation kept on the client until it is submitted.

    ``known_remaining`` is only a bound for the UI. Every mutation keeps
    ``quantity <= known_remaining``; the server check at submit is the
    authoritative one.
    """

    def __init__(self):
        self._lines = {}

    @property
    def lines(self):
        return list(self._lines.values())

    def quantity_of(self, product):
        line = self._lines.get(_product_id(product))
        return line.quantity if line else 0

    def _line_for(self, product):
        """Existing line, or a fresh one built from an availability row."""
        line = self._lines.get(_product_id(product))
        if line is None and isinstance(product, dict):
            line = CartLine(product["product_id"], product["name"],
                            product["price"], product["remaining"])
        return line

    def _store(self, line):
        if line.quantity <= 0:
            self._lines.pop(line.product_id, None)
        else:
            self._lines[line.product_id] = line

    def increment(self, product):
        """Add one unit; silently capped at the known remaining stock."""
        line = self._line_for(product)
        if line is None:
            return 0
        if line.quantity < line.known_remaining:
            line.quantity += 1
        self._store(line)
        return line.quantity

    def decrement(self, product):
        line = self._lines.get(_product_id(product))
        if line is None:
            return 0
        line.quantity -= 1
        self._store(line)
        return line.quantity

    def set_quantity(self, product, quantity):
        """Clamp ``quantity`` into [0, known_remaining]; 0 removes the line."""
        line = self._line_for(product)
        if line is None:
            return 0
        line.quantity = min(max(0, int(quantity)), line.known_remaining)
        self._store(line)
        return line.quantity

    def update_remaining(self, product_id, remaining):
        """Lower (or raise) the bound for a line after fresh stock news."""
        line = self._lines.get(product_id)
        if line is None:
            return 0
        line.known_remaining = max(0, int(remaining))
        line.quantity = min(line.quantity, line.known_remaining)
        self._store(line)
        return line.quantity

    def total(self):
        return sum((line.subtotal for line in self._lines.values()), Decimal("0.00"))

    def count(self):
        return sum(line.quantity for line in self._lines.values())

    def is_empty(self):
        return not self._lines

    def clear(self):
        self._lines.clear()

    def to_payload(self):
        return [{"product_id": line.product_id, "quantity": line.quantity}
                for line in self._lines.values()]
