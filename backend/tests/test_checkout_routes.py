"""
HTTP-level tests for the checkout and transaction blueprints.
"""

from cashier.models import Product, Transaction, User


def _body(*lines, **extra):
    data = {
        "lines": [{"product_id": product.id, "quantity": qty} for product, qty in lines],
        "payment_method": "cash",
    }
    data.update(extra)
    return data


class TestIdentity:

    def test_missing_header(self, client, db_session, tea):
        resp = client.post("/api/checkout", json=_body((tea, 1)))
        assert resp.status_code == 401

    def test_inactive_cashier(self, client, db_session, store, tea):
        user = User(store_id=store.id, username="gone", is_active=False)
        db_session.add(user)
        db_session.commit()
        resp = client.post("/api/checkout", json=_body((tea, 1)), headers={"X-User-Id": str(user.id)})
        assert resp.status_code == 401


class TestCheckout:

    def test_validate_reports_shortfalls_without_writing(self, client, db_session, tea, bread, cashier_headers):
        resp = client.post("/api/checkout/validate", json=_body((tea, 2), (bread, 4)), headers=cashier_headers)
        data = resp.get_json()

        assert resp.status_code == 200
        assert data["checkout"]["subtotal_cents"] == 3800
        assert data["stock"]["ok"] is False
        assert [s["product_id"] for s in data["stock"]["shortfalls"]] == [bread.id]
        assert db_session.query(Transaction).count() == 0

    def test_commit_returns_transaction_and_receipt(self, client, db_session, tea, cashier_headers):
        resp = client.post("/api/checkout", json=_body((tea, 2)), headers=cashier_headers)
        data = resp.get_json()

        assert resp.status_code == 201
        assert data["replayed"] is False
        assert data["transaction"]["status"] == "completed"
        assert data["transaction"]["total_cents"] == 2220
        assert data["transaction"]["items"][0]["name"] == "Teh Botol"
        assert "Total: Rp 22.20" in data["receipt"]["text"]
        assert db_session.get(Product, tea.id, populate_existing=True).stock == 3

    def test_replay_with_idempotency_header(self, client, db_session, tea, cashier_headers):
        headers = dict(cashier_headers, **{"Idempotency-Key": "till-1-0042"})
        first = client.post("/api/checkout", json=_body((tea, 2)), headers=headers)
        second = client.post("/api/checkout", json=_body((tea, 2)), headers=headers)

        assert first.status_code == 201
        assert second.status_code == 200
        assert second.get_json()["replayed"] is True
        assert second.get_json()["transaction"]["id"] == first.get_json()["transaction"]["id"]
        assert db_session.get(Product, tea.id, populate_existing=True).stock == 3

    def test_retry_after_last_unit_sold_replays(self, client, db_session, product_factory, cashier_headers):
        last = product_factory(sku="LAST-1", name="Last One", price_cents=1000, stock=1)
        headers = dict(cashier_headers, **{"Idempotency-Key": "till-9"})

        first = client.post("/api/checkout", json=_body((last, 1)), headers=headers)
        retry = client.post("/api/checkout", json=_body((last, 1)), headers=headers)

        assert first.status_code == 201
        assert retry.status_code == 200
        assert retry.get_json()["replayed"] is True
        assert retry.get_json()["transaction"]["id"] == first.get_json()["transaction"]["id"]
        assert db_session.get(Product, last.id, populate_existing=True).stock == 0
        assert db_session.query(Transaction).count() == 1

    def test_retry_after_product_deactivated_or_repriced_replays(self, client, db_session, tea, cashier_headers):
        headers = dict(cashier_headers, **{"Idempotency-Key": "till-10"})
        first = client.post("/api/checkout", json=_body((tea, 2)), headers=headers)

        product = db_session.get(Product, tea.id, populate_existing=True)
        product.is_active = False
        product.price_cents = 1500
        db_session.commit()

        retry = client.post("/api/checkout", json=_body((tea, 2)), headers=headers)
        assert first.status_code == 201
        assert retry.status_code == 200
        assert retry.get_json()["transaction"]["total_cents"] == 2220

    def test_retry_with_extra_unknown_product_is_duplicate(self, client, db_session, tea, other_store,
                                                           product_factory, cashier_headers):
        foreign = product_factory(store_id=other_store.id, sku="F-2", name="Foreign", price_cents=100, stock=9)
        headers = dict(cashier_headers, **{"Idempotency-Key": "till-11"})
        client.post("/api/checkout", json=_body((tea, 1)), headers=headers)

        resp = client.post("/api/checkout", json=_body((tea, 1), (foreign, 1)), headers=headers)
        assert resp.status_code == 409

    def test_reused_key_for_other_cart(self, client, db_session, tea, cashier_headers):
        client.post("/api/checkout", json=_body((tea, 2), idempotency_key="k-1"), headers=cashier_headers)
        resp = client.post("/api/checkout", json=_body((tea, 1), idempotency_key="k-1"), headers=cashier_headers)
        assert resp.status_code == 409

    def test_insufficient_stock(self, client, db_session, tea, cashier_headers):
        resp = client.post("/api/checkout", json=_body((tea, 6)), headers=cashier_headers)
        data = resp.get_json()

        assert resp.status_code == 409
        assert data["details"]["items"] == [
            {"product_id": tea.id, "requested_quantity": 6, "available": 5},
        ]

    def test_empty_cart(self, client, db_session, cashier_headers):
        resp = client.post("/api/checkout", json={"lines": [], "payment_method": "cash"}, headers=cashier_headers)
        assert resp.status_code == 400

    def test_discount_above_subtotal(self, client, db_session, tea, cashier_headers):
        resp = client.post("/api/checkout", json=_body((tea, 1), discount_cents=1001), headers=cashier_headers)
        assert resp.status_code == 400

    def test_unknown_payment_method(self, client, db_session, tea, cashier_headers):
        resp = client.post("/api/checkout", json=_body((tea, 1), payment_method="barter"), headers=cashier_headers)
        assert resp.status_code == 400

    def test_zero_quantity(self, client, db_session, tea, cashier_headers):
        resp = client.post("/api/checkout", json=_body((tea, 0)), headers=cashier_headers)
        assert resp.status_code == 400

    def test_product_of_other_store(self, client, db_session, other_store, product_factory, cashier_headers):
        foreign = product_factory(store_id=other_store.id, sku="F-1", name="Foreign", price_cents=100, stock=9)
        resp = client.post("/api/checkout", json=_body((foreign, 1)), headers=cashier_headers)
        assert resp.status_code == 404

    def test_customer_id_must_be_integer(self, client, db_session, tea, cashier_headers):
        resp = client.post("/api/checkout", json=_body((tea, 1), customer_id="7"), headers=cashier_headers)
        assert resp.status_code == 400


class TestTransactions:

    def _checkout(self, client, headers, product, qty=1):
        resp = client.post("/api/checkout", json=_body((product, qty)), headers=headers)
        assert resp.status_code == 201
        return resp.get_json()["transaction"]

    def test_list_and_get(self, client, db_session, tea, cashier_headers):
        first = self._checkout(client, cashier_headers, tea)
        second = self._checkout(client, cashier_headers, tea)

        listed = client.get("/api/transactions", headers=cashier_headers).get_json()["transactions"]
        assert {tx["id"] for tx in listed} == {first["id"], second["id"]}
        assert "items" not in listed[0]

        resp = client.get(f"/api/transactions/{first['id']}", headers=cashier_headers)
        assert resp.status_code == 200
        assert resp.get_json()["transaction"]["transaction_number"] == first["transaction_number"]

    def test_negative_limit_rejected(self, client, db_session, cashier_headers):
        resp = client.get("/api/transactions?limit=-1", headers=cashier_headers)
        assert resp.status_code == 400

    def test_bad_date_filter(self, client, db_session, cashier_headers):
        resp = client.get("/api/transactions?start=yesterday", headers=cashier_headers)
        assert resp.status_code == 400

    def test_receipt_text_reprint(self, client, db_session, tea, cashier_headers):
        tx = self._checkout(client, cashier_headers, tea, qty=2)

        first = client.get(f"/api/transactions/{tx['id']}/receipt?format=text", headers=cashier_headers)
        second = client.get(f"/api/transactions/{tx['id']}/receipt?format=text", headers=cashier_headers)

        assert first.status_code == 200
        assert first.mimetype == "text/plain"
        assert first.get_data(as_text=True).startswith("TOKO MAJU\n")
        assert first.get_data() == second.get_data()

    def test_other_store_transaction_is_not_found(self, client, db_session, other_store, tea, cashier_headers):
        tx = self._checkout(client, cashier_headers, tea)
        outsider = User(store_id=other_store.id, username="lain", is_active=True)
        db_session.add(outsider)
        db_session.commit()

        headers = {"X-User-Id": str(outsider.id)}
        assert client.get(f"/api/transactions/{tx['id']}", headers=headers).status_code == 404
        assert client.get(f"/api/transactions/{tx['id']}/receipt", headers=headers).status_code == 404

    def test_completed_cannot_be_cancelled(self, client, db_session, tea, cashier_headers):
        tx = self._checkout(client, cashier_headers, tea)
        resp = client.post(
            f"/api/transactions/{tx['id']}/status", json={"status": "cancelled"}, headers=cashier_headers
        )
        assert resp.status_code == 409

    def test_missing_transaction(self, client, db_session, cashier_headers):
        resp = client.get("/api/transactions/does-not-exist", headers=cashier_headers)
        assert resp.status_code == 404


def test_health(client, db_session):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.get_json()["checks"]["database"]["status"] == "healthy"
