from urllib.parse import urlsplit

import pytest

from bakery import create_app, db
from bakery.client import StorefrontClient
from bakery.services import catalog, stock_ledger
from bakery.services.helper import shop_today
from config import TestingConfig

ADMIN_EMAIL = "admin@obrador.test"
PASSWORD = "masa-madre-123"


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def today(app):
    return shop_today()


def register(client, email, name="Cliente"):
    response = client.post("/api/auth/register",
                           json={"email": email, "name": name, "password": PASSWORD})
    assert response.status_code == 201, response.get_json()
    data = response.get_json()
    data["headers"] = {"Authorization": f"Bearer {data['access_token']}"}
    return data


@pytest.fixture
def admin(client):
    return register(client, ADMIN_EMAIL, "Obrador")


@pytest.fixture
def customer(client):
    return register(client, "lucia@example.com", "Lucía")


@pytest.fixture
def other_customer(client):
    return register(client, "marcos@example.com", "Marcos")


@pytest.fixture
def make_product(app):
    """Create a product and, when ``stock`` is given, its ledger row for ``day``."""
    def _make(name, price="2.50", category="BREAD", stock=None, day=None, **fields):
        product = catalog.create_product(
            dict(name=name, price=price, category=category, **fields))
        if stock is not None:
            stock_ledger.upsert(product.id, day or shop_today(), stock)
        return product
    return _make


class FlaskResponse:
    def __init__(self, response):
        self.status_code = response.status_code
        self._response = response

    def json(self):
        data = self._response.get_json(silent=True)
        if data is None:
            raise ValueError("Response body is not JSON")
        return data


class FlaskTestSession:
    """Stands in for ``requests.Session`` by routing through the Flask test client."""

    def __init__(self, test_client):
        self.test_client = test_client
        self.calls = []

    def request(self, method, url, params=None, json=None, headers=None, timeout=None):
        path = urlsplit(url).path
        self.calls.append((method, path))
        response = self.test_client.open(path, method=method, query_string=params,
                                         json=json, headers=headers or {})
        return FlaskResponse(response)


@pytest.fixture
def api_client(client):
    return StorefrontClient("http://obrador.test", session=FlaskTestSession(client))


@pytest.fixture
def admin_api_client(client):
    return StorefrontClient("http://obrador.test", session=FlaskTestSession(client))
