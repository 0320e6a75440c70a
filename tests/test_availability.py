from datetime import timedelta

from bakery.services import catalog, stock_ledger
from bakery.services.availability import available_products


class TestAvailableProducts:

    def test_empty_ledger(self, app, today):
        assert available_products(today) == []

    def test_remaining_is_the_ledger_value(self, make_product, today):
        product = make_product("Pan rústico", price="3.20", stock=5)
        [row] = available_products(today)
        assert row["product_id"] == product.id
        assert row["remaining"] == 5
        assert row["price"] == "3.20"

    def test_zero_stock_is_hidden_even_when_active(self, make_product, today):
        make_product("Pan rústico", stock=0)
        assert available_products(today) == []

    def test_inactive_products_are_hidden(self, make_product, today):
        product = make_product("Pan rústico", stock=5)
        catalog.update_product(product.id, {"active": False})
        assert available_products(today) == []

    def test_other_days_do_not_leak(self, make_product, today):
        make_product("Pan rústico", stock=5, day=today + timedelta(days=1))
        assert available_products(today) == []

    def test_sorted_ignoring_accents_and_case(self, make_product, today):
        for name in ["magdalena", "Ensaimada", "Éclair", "Bizcocho"]:
            make_product(name, stock=3)
        names = [row["name"] for row in available_products(today)]
        assert names == ["Bizcocho", "Éclair", "Ensaimada", "magdalena"]

    def test_search_and_category(self, make_product, today):
        make_product("Pan rústico", category="BREAD", stock=3)
        make_product("Ensaimada", category="PASTRY", stock=3)
        # Matches through the slug, which has no accent
        assert [r["name"] for r in available_products(today, text_query="rust")] == ["Pan rústico"]
        assert [r["name"] for r in available_products(today, text_query="pan")] == ["Pan rústico"]
        assert [r["name"] for r in available_products(today, category="PASTRY")] == ["Ensaimada"]

    def test_decrement_shows_up_immediately(self, make_product, today):
        product = make_product("Pan rústico", stock=5)
        stock_ledger.decrement(product.id, today, 2)
        assert available_products(today)[0]["remaining"] == 3


class TestAvailabilityEndpoint:

    def test_anyone_can_read(self, client, make_product, today):
        make_product("Pan rústico", stock=4)
        response = client.get(f"/api/availability?date={today.isoformat()}")
        assert response.status_code == 200
        data = response.get_json()
        assert data["date"] == today.isoformat()
        assert data["products"][0]["remaining"] == 4

    def test_defaults_to_shop_today(self, client, make_product, today):
        make_product("Pan rústico", stock=4)
        data = client.get("/api/availability").get_json()
        assert data["date"] == today.isoformat()

    def test_bad_date(self, client, app):
        response = client.get("/api/availability?date=mañana")
        assert response.status_code in (400, 422)
        assert "error" in response.get_json()
