class TestProductEndpoints:

    def test_admin_creates_with_auto_slug(self, client, admin):
        response = client.post("/api/products", headers=admin["headers"], json={
            "name": "Baguette de masa madre", "price": "2.80", "category": "BREAD",
            "tags": ["vegano"]})
        assert response.status_code == 201
        product = response.get_json()["product"]
        assert product["slug"] == "baguette-de-masa-madre"
        assert product["price"] == "2.80"
        assert product["tags"] == ["vegano"]

    def test_manual_slug_requires_a_slug(self, client, admin):
        response = client.post("/api/products", headers=admin["headers"], json={
            "name": "Chapata", "price": "1.00", "category": "BREAD", "auto_slug": False})
        assert response.status_code == 422

    def test_negative_price_rejected(self, client, admin):
        response = client.post("/api/products", headers=admin["headers"], json={
            "name": "Chapata", "price": "-1.00", "category": "BREAD"})
        assert response.status_code == 422

    def test_customer_cannot_mutate(self, client, customer, make_product):
        product = make_product("Chapata")
        headers = customer["headers"]
        assert client.post("/api/products", headers=headers, json={
            "name": "Chapata", "price": "1.00", "category": "BREAD"}).status_code == 403
        assert client.patch(f"/api/products/{product.id}", headers=headers,
                            json={"price": "0.10"}).status_code == 403
        assert client.delete(f"/api/products/{product.id}", headers=headers).status_code == 403

    def test_anonymous_cannot_mutate(self, client, app):
        response = client.post("/api/products", json={
            "name": "Chapata", "price": "1.00", "category": "BREAD"})
        assert response.status_code == 401

    def test_public_listing_hides_inactive(self, client, admin, make_product):
        make_product("Chapata")
        make_product("Tarta vieja", active=False)

        public = client.get("/api/products").get_json()["products"]
        assert [p["name"] for p in public] == ["Chapata"]

        everything = client.get("/api/products?include_inactive=true",
                                headers=admin["headers"]).get_json()["products"]
        assert {p["name"] for p in everything} == {"Chapata", "Tarta vieja"}

    def test_featured(self, client, make_product):
        make_product("Chapata")
        make_product("Roscón", category="SPECIAL", featured=True)
        make_product("Roscón viejo", category="SPECIAL", featured=True, active=False)
        featured = client.get("/api/products/featured").get_json()["products"]
        assert [p["name"] for p in featured] == ["Roscón"]

    def test_inactive_detail_is_hidden_from_public(self, client, admin, make_product):
        product = make_product("Tarta vieja", active=False)
        assert client.get(f"/api/products/{product.id}").status_code == 404
        assert client.get(f"/api/products/{product.id}",
                          headers=admin["headers"]).status_code == 200

    def test_update_and_delete(self, client, admin, make_product):
        product = make_product("Chapata")
        product_id = product.id
        response = client.patch(f"/api/products/{product_id}", headers=admin["headers"],
                                json={"name": "Chapata integral", "auto_slug": True})
        assert response.get_json()["product"]["slug"] == "chapata-integral"

        assert client.delete(f"/api/products/{product_id}",
                             headers=admin["headers"]).status_code == 200
        response = client.get(f"/api/products/{product_id}")
        assert response.status_code == 404
        assert response.get_json()["error"]["type"] == "Not Found"


class TestStockEndpoints:

    def test_negative_is_clamped(self, client, admin, make_product, today):
        product = make_product("Chapata")
        response = client.put(f"/api/admin/stock/{product.id}/{today}",
                              headers=admin["headers"], json={"quantity": -5})
        assert response.status_code == 200
        assert response.get_json()["stock"]["available_quantity"] == 0

    def test_sheet_lists_every_product(self, client, admin, make_product, today):
        make_product("Chapata", stock=6)
        make_product("Ensaimada")
        sheet = client.get(f"/api/admin/stock?date={today}",
                           headers=admin["headers"]).get_json()["stock"]
        assert {row["name"]: row["available_quantity"] for row in sheet} == {
            "Chapata": 6, "Ensaimada": None}

    def test_customer_forbidden(self, client, customer, make_product, today):
        product = make_product("Chapata")
        response = client.put(f"/api/admin/stock/{product.id}/{today}",
                              headers=customer["headers"], json={"quantity": 5})
        assert response.status_code == 403

    def test_bad_date(self, client, admin, make_product):
        product = make_product("Chapata")
        response = client.put(f"/api/admin/stock/{product.id}/hoy",
                              headers=admin["headers"], json={"quantity": 5})
        assert response.status_code == 400

    def test_unknown_product(self, client, admin, today):
        response = client.put(f"/api/admin/stock/999/{today}",
                              headers=admin["headers"], json={"quantity": 5})
        assert response.status_code == 404


class TestAuthEndpoints:

    def test_register_roles(self, admin, customer):
        assert admin["profile"]["role"] == "admin"
        assert customer["profile"]["role"] == "customer"
        assert "password" not in customer["profile"]

    def test_me_and_logout(self, client, customer):
        me = client.get("/api/auth/me", headers=customer["headers"])
        assert me.get_json()["profile"]["email"] == "lucia@example.com"

        assert client.post("/api/auth/logout", headers=customer["headers"]).status_code == 200
        assert client.get("/api/auth/me", headers=customer["headers"]).status_code == 401

    def test_bad_password(self, client, customer):
        response = client.post("/api/auth/login",
                               json={"email": "lucia@example.com", "password": "nope-nope"})
        assert response.status_code == 401
