import logging
from decimal import Decimal

from bakery import db
from bakery.models import Profile, Reservation, ReservationItem, ReservationStatus
from bakery.services import aggregator, reservations


def reserve(customer, day, lines):
    profile = db.session.get(Profile, customer["profile"]["user_id"])
    reservation, _ = reservations.submit_reservation(
        profile, day, [{"product_id": p.id, "quantity": q} for p, q in lines])
    return reservation


class TestReservedTotals:

    def test_sums_per_product(self, customer, make_product, today):
        pan = make_product("Pan rústico", stock=10)
        tarta = make_product("Tarta de Santiago", stock=10)
        reserve(customer, today, [(pan, 2), (tarta, 1)])
        reserve(customer, today, [(pan, 3)])
        assert aggregator.reserved_totals(today) == {pan.id: 5, tarta.id: 1}

    def test_cancelled_excluded_unless_asked(self, customer, make_product, today):
        pan = make_product("Pan rústico", stock=10)
        reserve(customer, today, [(pan, 2)])
        cancelled = reserve(customer, today, [(pan, 3)])
        reservations.cancel_reservation(cancelled.user, cancelled.id)

        assert aggregator.reserved_totals(today) == {pan.id: 2}
        assert aggregator.reserved_totals(today, include_cancelled=True) == {pan.id: 5}

    def test_empty_day(self, app, today):
        assert aggregator.reserved_totals(today) == {}


class TestPartialCommits:

    def _header(self, customer, today, code, total):
        reservation = Reservation(code=code, user_id=customer["profile"]["user_id"],
                                  pickup_date=today, pickup_timeslot="08:00",
                                  status=ReservationStatus.PENDING, total=Decimal(total))
        db.session.add(reservation)
        db.session.commit()
        return reservation

    def test_clean_commits_report_nothing(self, customer, make_product, today):
        pan = make_product("Pan rústico", stock=10)
        reserve(customer, today, [(pan, 2)])
        assert aggregator.find_partial_commits(today) == []

    def test_header_without_items(self, customer, today, caplog):
        self._header(customer, today, "PAN-ORPHAN01", "5.00")
        with caplog.at_level(logging.ERROR):
            [finding] = aggregator.find_partial_commits(today)
        assert finding["kind"] == "no_items"
        assert finding["code"] == "PAN-ORPHAN01"
        assert any(getattr(r, "event", None) == "partial_commit_detected" for r in caplog.records)

    def test_total_mismatch(self, customer, make_product, today):
        pan = make_product("Pan rústico", price="2.00")
        reservation = self._header(customer, today, "PAN-MISMATCH", "9.99")
        db.session.add(ReservationItem(reservation_id=reservation.id, product_id=pan.id,
                                       product_name=pan.name, quantity=2,
                                       unit_price=Decimal("2.00"), subtotal=Decimal("4.00")))
        db.session.commit()

        [finding] = aggregator.find_partial_commits()
        assert finding["kind"] == "total_mismatch"
        assert finding["stored_total"] == "9.99"
        assert finding["items_total"] == "4.00"


class TestReconciliation:

    def test_report_rows(self, customer, make_product, today):
        pan = make_product("Pan rústico", stock=10)
        make_product("Chapata", stock=4)
        reserve(customer, today, [(pan, 3)])

        report = aggregator.reconciliation_report(today)

        rows = {row["product_name"]: row for row in report["rows"]}
        assert rows["Pan rústico"]["remaining"] == 7
        assert rows["Pan rústico"]["reserved"] == 3
        assert rows["Pan rústico"]["implied_capacity"] == 10
        assert rows["Chapata"]["reserved"] == 0
        assert report["partial_commits"] == []

    def test_endpoint_is_admin_only(self, client, admin, customer, make_product, today):
        make_product("Pan rústico", stock=10)
        url = f"/api/admin/reports/reconciliation?date={today}"
        assert client.get(url, headers=customer["headers"]).status_code == 403
        response = client.get(url, headers=admin["headers"])
        assert response.status_code == 200
        assert response.get_json()["date"] == today.isoformat()
