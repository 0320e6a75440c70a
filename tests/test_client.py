import pytest
import requests

from bakery.client import ReservationBuilder, StorefrontClient
from bakery.errors import (
    AlreadyBooked, AuthRequired, NotFound, Oversold, StorageError, UncertainOutcome,
    ValidationError,
)
from bakery.services import catalog, stock_ledger

from conftest import ADMIN_EMAIL, PASSWORD


class FakeResponse:
    def __init__(self, status_code, payload):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        if self._payload is None:
            raise ValueError("no body")
        return self._payload


class ScriptedSession:
    """Returns (or raises) the scripted outcomes in order."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def make_client(*outcomes):
    sleeps = []
    session = ScriptedSession(*outcomes)
    client = StorefrontClient("http://obrador.test/", session=session, sleep=sleeps.append)
    return client, session, sleeps


OK = FakeResponse(200, {"products": []})


class LostReply:
    """Delivers the request but loses the answer."""

    def __init__(self, session):
        self.session = session

    def request(self, method, url, **kwargs):
        self.session.request(method, url, **kwargs)
        raise requests.exceptions.ReadTimeout("reply lost")


class NeverArrives:
    def request(self, method, url, **kwargs):
        raise requests.exceptions.ReadTimeout("request lost")


class TestReadRetries:

    def test_retries_network_errors_with_growing_delay(self):
        client, session, sleeps = make_client(
            requests.exceptions.ConnectionError("down"),
            requests.exceptions.ReadTimeout("slow"),
            FakeResponse(503, {"error": {"type": "Storage Error", "message": "db"}}),
            OK,
        )
        assert client.featured_products() == []
        assert len(session.calls) == 4
        assert sleeps == pytest.approx([0.6, 1.2, 1.8])

    def test_gives_up_after_five_attempts(self):
        client, session, sleeps = make_client(
            *[requests.exceptions.ConnectionError("down")] * 5)
        with pytest.raises(StorageError):
            client.featured_products()
        assert len(session.calls) == 5
        assert len(sleeps) == 4

    def test_client_errors_are_not_retried(self):
        client, session, _ = make_client(
            FakeResponse(404, {"error": {"type": "Not Found", "message": "gone"}}))
        with pytest.raises(NotFound, match="gone"):
            client.get_product(9)
        assert len(session.calls) == 1

    def test_every_call_has_a_timeout(self):
        client, session, _ = make_client(OK)
        client.featured_products()
        assert session.calls[0][2]["timeout"] == 6
        assert session.calls[0][1] == "http://obrador.test/api/products/featured"


class TestWrites:

    def test_timeout_is_uncertain_and_not_retried(self):
        client, session, sleeps = make_client(requests.exceptions.ReadTimeout("slow"))
        with pytest.raises(UncertainOutcome):
            client.set_stock(1, "2024-06-01", 5)
        assert len(session.calls) == 1
        assert sleeps == []

    def test_uncertain_outcome_is_a_storage_error(self):
        client, _, _ = make_client(requests.exceptions.ReadTimeout("slow"))
        with pytest.raises(StorageError):
            client.submit_reservation("2024-06-01", [{"product_id": 1, "quantity": 1}])

    def test_connection_refused_is_a_plain_failure(self):
        client, _, _ = make_client(requests.exceptions.ConnectionError("refused"))
        with pytest.raises(StorageError) as exc:
            client.cancel_reservation(3)
        assert not isinstance(exc.value, UncertainOutcome)

    def test_server_errors_are_not_retried(self):
        client, session, _ = make_client(
            FakeResponse(503, {"error": {"type": "Storage Error", "message": "db"}}))
        with pytest.raises(StorageError):
            client.cancel_reservation(3)
        assert len(session.calls) == 1

    def test_oversold_details_survive(self):
        shortage = {"product_id": 1, "requested": 4, "available": 1}
        client, _, _ = make_client(FakeResponse(409, {"error": {
            "type": "Oversold", "message": "short", "details": [shortage]}}))
        with pytest.raises(Oversold) as exc:
            client.submit_reservation("2024-06-01", [{"product_id": 1, "quantity": 4}])
        assert exc.value.shortages == [shortage]

    def test_non_domain_payload_maps_by_status(self):
        client, _, _ = make_client(
            FakeResponse(401, {"message": "The token has expired.", "error": "token_expired"}))
        with pytest.raises(AuthRequired, match="expired"):
            client.cancel_reservation(3)


class TestAuthState:

    def test_listeners_follow_login_and_logout(self, api_client, customer):
        seen = []
        unsubscribe = api_client.on_auth_change(seen.append)

        user = api_client.login("lucia@example.com", PASSWORD)
        assert user["email"] == "lucia@example.com"
        assert api_client.current_user() == user

        api_client.logout()
        assert api_client.current_user() is None
        assert seen == [user, None]

        unsubscribe()
        api_client.login("lucia@example.com", PASSWORD)
        assert len(seen) == 2

    def test_bad_credentials(self, api_client, customer):
        with pytest.raises(AuthRequired):
            api_client.login("lucia@example.com", "wrong-password")
        assert api_client.current_user() is None

    def test_failed_profile_read_leaves_client_logged_out(self):
        seen = []
        client, session, _ = make_client(
            FakeResponse(200, {"access_token": "abc.def.ghi"}),
            *[requests.exceptions.ConnectionError("down")] * 5)
        client.on_auth_change(seen.append)

        with pytest.raises(StorageError):
            client.login("lucia@example.com", PASSWORD)

        assert client.token is None
        assert client.current_user() is None
        assert seen == []
        assert len(session.calls) == 6


class TestReservationBuilder:

    def test_submit_clears_cart_then_refreshes(self, api_client, customer, make_product, today):
        pan = make_product("Pan rústico", price="3.40", stock=5)
        api_client.login("lucia@example.com", PASSWORD)
        builder = ReservationBuilder(api_client, today)
        builder.refresh()

        for _ in range(3):
            builder.add(pan.id)
        reservation = builder.submit(notes="Sin cortar")

        assert reservation["total"] == "10.20"
        assert builder.cart.is_empty()
        assert builder.product(pan.id)["remaining"] == 2
        calls = api_client.session.calls
        assert calls[-2][1] == "/api/reservations"
        assert calls[-1][1] == "/api/availability"

    def test_oversold_lowers_cart_and_reraises(self, api_client, customer, make_product, today):
        pan = make_product("Pan rústico", stock=5)
        api_client.login("lucia@example.com", PASSWORD)
        builder = ReservationBuilder(api_client, today)
        builder.refresh()
        builder.set_quantity(pan.id, 4)

        # Someone else takes three units after our availability read
        stock_ledger.decrement(pan.id, today, 3)

        with pytest.raises(Oversold):
            builder.submit()
        assert builder.cart.quantity_of(pan.id) == 2

        reservation = builder.submit()
        assert reservation["items"][0]["quantity"] == 2
        assert stock_ledger.current_quantity(pan.id, today) == 0

    def test_retry_after_uncertain_timeout_books_once(self, api_client, customer,
                                                     make_product, today):
        pan = make_product("Pan rústico", stock=5)
        api_client.login("lucia@example.com", PASSWORD)
        builder = ReservationBuilder(api_client, today)
        builder.refresh()
        builder.set_quantity(pan.id, 2)

        flask_session = api_client.session
        api_client.session = LostReply(flask_session)
        with pytest.raises(UncertainOutcome):
            builder.submit()
        assert builder.cart.count() == 2

        api_client.session = flask_session
        reservation = builder.submit()

        assert reservation["items"][0]["quantity"] == 2
        assert stock_ledger.current_quantity(pan.id, today) == 3
        assert len(api_client.my_reservations()) == 1

    def test_changed_cart_after_uncertain_booking_keeps_new_lines(
            self, api_client, customer, make_product, today):
        pan = make_product("Pan rústico", stock=5)
        croissant = make_product("Croissant", price="1.15", stock=10)
        api_client.login("lucia@example.com", PASSWORD)
        builder = ReservationBuilder(api_client, today)
        builder.refresh()
        builder.set_quantity(pan.id, 2)

        flask_session = api_client.session
        api_client.session = LostReply(flask_session)
        with pytest.raises(UncertainOutcome):
            builder.submit()
        api_client.session = flask_session

        builder.set_quantity(croissant.id, 3)
        with pytest.raises(AlreadyBooked) as exc:
            builder.submit()
        assert [i["product_name"] for i in exc.value.reservation["items"]] == ["Pan rústico"]
        assert builder.cart.quantity_of(pan.id) == 0
        assert builder.cart.quantity_of(croissant.id) == 3

        reservation = builder.submit()
        assert [i["product_name"] for i in reservation["items"]] == ["Croissant"]
        assert stock_ledger.current_quantity(pan.id, today) == 3
        assert stock_ledger.current_quantity(croissant.id, today) == 7
        assert len(api_client.my_reservations()) == 2

    def test_changed_cart_after_lost_request_gets_a_fresh_code(
            self, api_client, customer, make_product, today):
        pan = make_product("Pan rústico", stock=5)
        croissant = make_product("Croissant", price="1.15", stock=10)
        api_client.login("lucia@example.com", PASSWORD)
        builder = ReservationBuilder(api_client, today)
        builder.refresh()
        builder.set_quantity(pan.id, 2)

        flask_session = api_client.session
        api_client.session = NeverArrives()
        with pytest.raises(UncertainOutcome):
            builder.submit()
        first_code = builder.submission_code
        api_client.session = flask_session

        builder.set_quantity(croissant.id, 3)
        reservation = builder.submit()

        assert reservation["code"] != first_code
        assert {i["product_name"]: i["quantity"] for i in reservation["items"]} == {
            "Pan rústico": 2, "Croissant": 3}
        assert len(api_client.my_reservations()) == 1

    def test_withdrawn_product_drops_out_of_cart(self, api_client, customer,
                                                 make_product, today):
        pan = make_product("Pan rústico", stock=5)
        croissant = make_product("Croissant", price="1.15", stock=10)
        api_client.login("lucia@example.com", PASSWORD)
        builder = ReservationBuilder(api_client, today)
        builder.refresh()
        builder.set_quantity(pan.id, 2)
        builder.set_quantity(croissant.id, 3)

        catalog.update_product(croissant.id, {"active": False})

        with pytest.raises(NotFound) as exc:
            builder.submit()
        assert exc.value.details == {"product_id": croissant.id}
        assert builder.cart.quantity_of(croissant.id) == 0
        assert builder.cart.quantity_of(pan.id) == 2
        assert builder.submission_code is None

        reservation = builder.submit()
        assert [i["product_name"] for i in reservation["items"]] == ["Pan rústico"]
        assert stock_ledger.current_quantity(croissant.id, today) == 10

    def test_requires_login(self, api_client, make_product, today):
        make_product("Pan rústico", stock=5)
        builder = ReservationBuilder(api_client, today)
        builder.refresh()
        builder.add(builder.products[0]["product_id"])
        with pytest.raises(AuthRequired):
            builder.submit()

    def test_empty_cart(self, api_client, customer, today):
        api_client.login("lucia@example.com", PASSWORD)
        with pytest.raises(ValidationError):
            ReservationBuilder(api_client, today).submit()

    def test_unknown_product(self, api_client, app, today):
        builder = ReservationBuilder(api_client, today)
        builder.refresh()
        with pytest.raises(NotFound):
            builder.add(42)


class TestAdminThroughClient:

    def test_admin_creates_product_and_sets_stock(self, api_client, admin, today):
        api_client.login(ADMIN_EMAIL, PASSWORD)
        product = api_client.create_product(
            {"name": "Ensaimada", "price": "2.20", "category": "PASTRY"})
        entry = api_client.set_stock(product["id"], today, 8)
        assert entry["available_quantity"] == 8
        assert api_client.availability(today)[0]["remaining"] == 8
