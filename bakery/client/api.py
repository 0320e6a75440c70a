"""HTTP client for the storefront API.

Reads are retried on network failures and 5xx answers, up to
``max_read_attempts`` with a growing pause between tries. Writes are sent
once: a write that times out raises ``UncertainOutcome`` because the server
may have applied it, and the caller decides whether to resend.
"""
import logging
import time

import requests

from bakery.errors import (
    ERRORS_BY_TYPE, AuthRequired, BakeryError, Forbidden, NotFound,
    StorageError, UncertainOutcome, ValidationError,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 6
MAX_READ_ATTEMPTS = 5
READ_BACKOFF = 0.6

ERRORS_BY_STATUS = {
    400: ValidationError,
    401: AuthRequired,
    403: Forbidden,
    404: NotFound,
    422: ValidationError,
}


def _iso(day):
    return day.isoformat() if hasattr(day, "isoformat") else str(day)


def error_from_response(response):
    """Rebuild the domain error the server rendered into ``response``."""
    try:
        payload = response.json()
    except ValueError:
        payload = None

    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict):
        cls = ERRORS_BY_TYPE.get(error.get("type"))
        message = error.get("message")
        details = error.get("details")
    else:
        # JWT callbacks answer {"message": ..., "error": "token_expired"}
        cls = None
        message = payload.get("message") if isinstance(payload, dict) else None
        details = None

    if cls is None:
        if response.status_code >= 500:
            cls = StorageError
        else:
            cls = ERRORS_BY_STATUS.get(response.status_code, BakeryError)
    return cls(message or f"HTTP {response.status_code}", details=details)


class StorefrontClient:
    def __init__(self, base_url, timeout=DEFAULT_TIMEOUT, session=None,
                 max_read_attempts=MAX_READ_ATTEMPTS, backoff=READ_BACKOFF, sleep=time.sleep):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.max_read_attempts = max_read_attempts
        self.backoff = backoff
        self._sleep = sleep
        self.token = None
        self.user = None
        self._listeners = []

    # Auth state

    def on_auth_change(self, listener):
        """Call ``listener(user_or_none)`` on every login and logout.

        Returns a function that unsubscribes it.
        """
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _set_auth(self, token, user):
        self.token = token
        self.user = user
        for listener in list(self._listeners):
            listener(user)

    def current_user(self):
        return self.user

    def _headers(self):
        if self.token:
            return {"Authorization": f"Bearer {self.token}"}
        return {}

    # Transport

    def _url(self, path):
        return f"{self.base_url}{path}"

    def _parse(self, response):
        if response.status_code >= 400:
            raise error_from_response(response)
        return response.json()

    def _read(self, path, params=None):
        last_error = None
        for attempt in range(1, self.max_read_attempts + 1):
            try:
                response = self.session.request(
                    "GET", self._url(path), params=params,
                    headers=self._headers(), timeout=self.timeout)
            except requests.exceptions.RequestException as e:
                last_error = StorageError(f"Service unavailable: {e}")
            else:
                if response.status_code < 500:
                    return self._parse(response)
                last_error = error_from_response(response)

            logger.warning(f"GET {path} failed (attempt {attempt}/{self.max_read_attempts}): "
                           f"{last_error.message}")
            if attempt < self.max_read_attempts:
                self._sleep(self.backoff * attempt)
        raise last_error

    def _write(self, method, path, json=None):
        try:
            response = self.session.request(
                method, self._url(path), json=json,
                headers=self._headers(), timeout=self.timeout)
        except requests.exceptions.ConnectTimeout as e:
            raise StorageError(f"Service unavailable: {e}") from e
        except requests.exceptions.Timeout as e:
            raise UncertainOutcome(
                f"{method} {path} timed out; it may or may not have been applied.") from e
        except requests.exceptions.RequestException as e:
            raise StorageError(f"Service unavailable: {e}") from e
        return self._parse(response)

    # Auth

    def register(self, email, name, password, phone=None):
        payload = {"email": email, "name": name, "password": password}
        if phone:
            payload["phone"] = phone
        data = self._write("POST", "/api/auth/register", json=payload)
        self._set_auth(data["access_token"], data["profile"])
        return self.user

    def login(self, email, password):
        data = self._write("POST", "/api/auth/login",
                           json={"email": email, "password": password})
        # The profile read needs the token; keep it only if that read works
        self.token = data["access_token"]
        try:
            profile = self._read("/api/auth/me")["profile"]
        except BakeryError:
            self.token = None
            raise
        self._set_auth(self.token, profile)
        return self.user

    def logout(self):
        try:
            if self.token:
                self._write("POST", "/api/auth/logout")
        finally:
            self._set_auth(None, None)

    # Catalog

    def list_products(self, category=None, q=None, featured=None, include_inactive=False):
        params = {"category": category, "q": q, "featured": featured}
        if include_inactive:
            params["include_inactive"] = "true"
        params = {k: v for k, v in params.items() if v is not None}
        return self._read("/api/products", params=params)["products"]

    def featured_products(self):
        return self._read("/api/products/featured")["products"]

    def get_product(self, product_id):
        return self._read(f"/api/products/{product_id}")["product"]

    def create_product(self, fields):
        return self._write("POST", "/api/products", json=fields)["product"]

    def update_product(self, product_id, fields):
        return self._write("PATCH", f"/api/products/{product_id}", json=fields)["product"]

    def delete_product(self, product_id):
        return self._write("DELETE", f"/api/products/{product_id}")

    # Availability and stock

    def availability(self, day, q=None, category=None):
        params = {"date": _iso(day)}
        if q:
            params["q"] = q
        if category:
            params["category"] = category
        return self._read("/api/availability", params=params)["products"]

    def stock_sheet(self, day):
        return self._read("/api/admin/stock", params={"date": _iso(day)})["stock"]

    def set_stock(self, product_id, day, quantity):
        return self._write("PUT", f"/api/admin/stock/{product_id}/{_iso(day)}",
                           json={"quantity": quantity})["stock"]

    # Reservations

    def submit_reservation(self, pickup_date, items, pickup_timeslot=None, notes=None, code=None):
        payload = {"pickup_date": _iso(pickup_date), "items": items}
        if pickup_timeslot:
            payload["pickup_timeslot"] = pickup_timeslot
        if notes:
            payload["notes"] = notes
        if code:
            payload["code"] = code
        return self._write("POST", "/api/reservations", json=payload)

    def my_reservations(self, scope="active"):
        return self._read("/api/reservations/mine", params={"scope": scope})["reservations"]

    def reservation_by_code(self, code):
        return self._read(f"/api/reservations/code/{code}")["reservation"]

    def cancel_reservation(self, reservation_id):
        return self._write("PATCH", f"/api/reservations/{reservation_id}/cancel")["reservation"]

    # Staff

    def admin_reservations(self, status=None, scope=None, date_from=None, date_to=None, q=None):
        params = {"status": status, "scope": scope, "q": q,
                  "from": _iso(date_from) if date_from else None,
                  "to": _iso(date_to) if date_to else None}
        params = {k: v for k, v in params.items() if v is not None}
        return self._read("/api/admin/reservations", params=params)["reservations"]

    def advance_status(self, reservation_id, status):
        return self._write("PATCH", f"/api/admin/reservations/{reservation_id}/status",
                           json={"status": status})["reservation"]

    def reconciliation(self, day):
        return self._read("/api/admin/reports/reconciliation", params={"date": _iso(day)})
