import random
from decimal import Decimal

from bakery.client.cart import Cart


def product(product_id=1, name="Pan rústico", price="3.40", remaining=3):
    return {"product_id": product_id, "name": name, "price": price, "remaining": remaining}


class TestCart:

    def test_increment_is_capped_at_remaining(self):
        cart = Cart()
        pan = product(remaining=2)
        assert [cart.increment(pan) for _ in range(4)] == [1, 2, 2, 2]

    def test_nothing_left_adds_nothing(self):
        cart = Cart()
        assert cart.increment(product(remaining=0)) == 0
        assert cart.is_empty()

    def test_decrement_to_zero_removes_line(self):
        cart = Cart()
        pan = product()
        cart.increment(pan)
        assert cart.decrement(pan) == 0
        assert cart.is_empty()
        assert cart.decrement(pan) == 0

    def test_set_quantity_clamps(self):
        cart = Cart()
        pan = product(remaining=3)
        assert cart.set_quantity(pan, 10) == 3
        assert cart.set_quantity(pan, -4) == 0
        assert cart.is_empty()

    def test_total_follows_every_change(self):
        cart = Cart()
        pan = product(1, price="3.40", remaining=5)
        tarta = product(2, "Tarta", price="18.00", remaining=1)
        cart.set_quantity(pan, 2)
        cart.increment(tarta)
        assert cart.total() == Decimal("24.80")
        cart.decrement(pan)
        assert cart.total() == Decimal("21.40")
        assert cart.count() == 2

    def test_update_remaining_lowers_quantity(self):
        cart = Cart()
        pan = product(remaining=5)
        cart.set_quantity(pan, 4)
        assert cart.update_remaining(1, 1) == 1
        assert cart.increment(pan) == 1
        assert cart.update_remaining(1, 0) == 0
        assert cart.is_empty()

    def test_payload(self):
        cart = Cart()
        cart.set_quantity(product(1), 2)
        cart.set_quantity(product(2, "Chapata"), 1)
        assert cart.to_payload() == [
            {"product_id": 1, "quantity": 2},
            {"product_id": 2, "quantity": 1},
        ]
        cart.clear()
        assert cart.to_payload() == []

    def test_quantity_never_exceeds_remaining(self):
        rng = random.Random(7)
        cart = Cart()
        products = [product(i, f"P{i}", remaining=rng.randint(0, 4)) for i in range(1, 5)]
        for _ in range(500):
            target = rng.choice(products)
            op = rng.choice(["inc", "dec", "set", "remaining"])
            if op == "inc":
                cart.increment(target)
            elif op == "dec":
                cart.decrement(target)
            elif op == "set":
                cart.set_quantity(target, rng.randint(-2, 8))
            else:
                cart.update_remaining(target["product_id"], rng.randint(0, 4))
            for line in cart.lines:
                assert 0 < line.quantity <= line.known_remaining
