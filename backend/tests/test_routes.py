"""
API route tests.

Verifies:
- Live selling flow over HTTP (session, cart, checkout, group edit, export)
- Error mapping (400 validation, 404 missing, 409 sold out / open session)
- Device gate and CORS headers
"""

import pytest

from balepos.models import DeviceStatus
from balepos.services import device_service


HEADERS = {"X-Device-Id": "route-device"}


def _device_pk(device_id):
    return device_service.find_by_device_id(device_id).id


# =============================================================================
# SYSTEM
# =============================================================================


class TestSystem:

    def test_health(self, client, db_session):
        resp = client.get("/api/system/health")
        assert resp.status_code == 200
        assert resp.json["checks"]["database"]["status"] == "healthy"
        assert resp.json["checks"]["mirror"]["status"] == "disabled"

    def test_data_version_moves_on_checkout(self, client, db_session, bale, live_session):
        before = client.get("/api/system/data-version").json["data_version"]
        client.patch("/api/live/cart", json={
            "session_key": str(live_session.id), "username": "pawlover_jen", "selected_bale_id": bale.id,
        }, headers=HEADERS)
        client.post("/api/live/cart/items", json={"price_cents": 10_000}, headers=HEADERS)
        assert client.post("/api/live/checkout", headers=HEADERS).status_code == 201
        assert client.get("/api/system/data-version").json["data_version"] == before + 1

    def test_cors_for_allowed_origin(self, client, db_session):
        resp = client.get("/api/system/version", headers={"Origin": "http://localhost:5173"})
        assert resp.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"
        assert "X-Device-Id" in resp.headers["Access-Control-Allow-Headers"]

        resp = client.get("/api/system/version", headers={"Origin": "https://evil.test"})
        assert "Access-Control-Allow-Origin" not in resp.headers


# =============================================================================
# LIVE FLOW
# =============================================================================


class TestLiveFlow:

    def test_full_flow(self, client, db_session, small_bale):
        resp = client.post("/api/live/sessions", json={"name": "Sunday Live"}, headers=HEADERS)
        assert resp.status_code == 201
        key = str(resp.json["session"]["id"])

        assert client.post("/api/live/sessions", json={}, headers=HEADERS).status_code == 409

        resp = client.patch("/api/live/cart", json={
            "session_key": key, "username": "pawlover_jen", "selected_bale_id": small_bale.id,
        }, headers=HEADERS)
        assert resp.status_code == 200

        for _ in range(2):
            resp = client.post("/api/live/cart/items", json={"price_cents": 25_000}, headers=HEADERS)
            assert resp.status_code == 201
        assert resp.json["cart"]["totals"]["cart_total_cents"] == 50_000

        resp = client.get("/api/live/availability", headers=HEADERS)
        assert resp.json["items"][0]["remaining"] == 0

        resp = client.post("/api/live/cart/items", json={"price_cents": 25_000}, headers=HEADERS)
        assert resp.status_code == 409
        assert resp.json["details"] == {"name": "Tiny Lot", "total": 2, "sold": 2}

        resp = client.post("/api/live/checkout", headers=HEADERS)
        assert resp.status_code == 201
        assert resp.json["final_total_cents"] == 50_000

        resp = client.get(f"/api/orders/sessions/{key}/groups", headers=HEADERS)
        group = resp.json["items"][0]
        assert group["customer_username"] == "pawlover_jen"
        assert group["quantity"] == 2

        resp = client.patch("/api/orders/groups", json={
            "ids": group["ids"], "changes": {"payment_status": "Paid", "payment_method": "GCash"},
        }, headers=HEADERS)
        assert resp.status_code == 200
        assert resp.json["group"]["payment_status"] == "Paid"
        assert len(resp.json["group"]["logs"]) == 1

        resp = client.get("/api/reports/export/Sales", headers=HEADERS)
        assert resp.status_code == 200
        assert resp.mimetype == "text/csv"
        assert "attachment;" in resp.headers["Content-Disposition"]
        assert resp.get_data(as_text=True).splitlines()[0].startswith("Order ID,Date,Session")

        resp = client.post(f"/api/live/sessions/{key}/end", headers=HEADERS)
        assert resp.status_code == 200
        assert resp.json["summary"]["total_sales_cents"] == 50_000

    def test_add_without_bale_is_400(self, client, db_session):
        resp = client.post("/api/live/cart/items", json={"price_cents": 100}, headers=HEADERS)
        assert resp.status_code == 400

    def test_blacklisted_is_403(self, client, db_session, bale, live_session, blacklisted_customer):
        client.patch("/api/live/cart", json={
            "session_key": str(live_session.id),
            "username": blacklisted_customer.username,
            "selected_bale_id": bale.id,
        }, headers=HEADERS)
        resp = client.post("/api/live/cart/items", json={"price_cents": 100}, headers=HEADERS)
        assert resp.status_code == 403

    def test_unknown_session_groups_404(self, client, db_session):
        assert client.get("/api/orders/sessions/999/groups", headers=HEADERS).status_code == 404

    def test_group_payload_errors(self, client, db_session):
        resp = client.patch("/api/orders/groups", json={"ids": [], "changes": {}}, headers=HEADERS)
        assert resp.status_code == 400

        resp = client.patch("/api/orders/groups", json={"ids": [404], "changes": {}}, headers=HEADERS)
        assert resp.status_code == 404
        assert resp.json["details"] == {"missing_ids": [404]}


# =============================================================================
# CATALOG AND SETTINGS
# =============================================================================


class TestCatalog:

    def test_bale_crud(self, client, db_session):
        resp = client.post("/api/bales", json={"name": "Korean Knit", "cost_cents": 1_500_000, "item_count": 250})
        assert resp.status_code == 201
        bale_id = resp.json["bale"]["id"]

        resp = client.post("/api/bales", json={"name": "Bad", "cost_cents": -1, "item_count": 1})
        assert resp.status_code == 400

        resp = client.get("/api/bales")
        assert resp.json["count"] == 1
        assert resp.json["items"][0]["stats"]["remaining"] == 250

        assert client.delete(f"/api/bales/{bale_id}").status_code == 200
        assert client.get(f"/api/bales/{bale_id}").status_code == 404

    def test_settings(self, client, db_session):
        resp = client.patch("/api/settings", json={"preset_prices": [20_000, 10_000]})
        assert resp.status_code == 200
        assert resp.json["settings"]["preset_prices"] == [10_000, 20_000]

        assert client.patch("/api/settings", json={"theme": "dark"}).status_code == 400

    def test_ledger_entry(self, client, db_session):
        resp = client.post("/api/accounting/transactions", json={
            "type": "Expense", "amount_cents": 12_000, "wallet": "GCash", "category": "Packaging",
        })
        assert resp.status_code == 201
        tx_id = resp.json["transaction"]["id"]

        resp = client.get(f"/api/accounting/transactions/{tx_id}")
        assert resp.status_code == 200
        assert resp.json["transaction"]["amount_cents"] == 12_000
        assert client.get("/api/accounting/transactions/9999").status_code == 404


# =============================================================================
# DEVICE GATE
# =============================================================================


@pytest.fixture
def gate_on(app):
    app.config['DEVICE_GATE_ENABLED'] = True
    yield
    app.config['DEVICE_GATE_ENABLED'] = False


class TestDeviceGate:

    def test_pending_device_blocked_until_approved(self, client, db_session, gate_on):
        assert client.get("/api/settings").status_code == 403

        resp = client.post("/api/devices/register", json={"device_id": "tablet-1"})
        assert resp.status_code == 200
        assert resp.json["device"]["status"] == DeviceStatus.PENDING

        resp = client.get("/api/settings", headers={"X-Device-Id": "tablet-1"})
        assert resp.status_code == 403
        assert resp.json["status"] == DeviceStatus.PENDING

        device_service.set_status(_device_pk("tablet-1"), DeviceStatus.APPROVED)
        assert client.get("/api/settings", headers={"X-Device-Id": "tablet-1"}).status_code == 200

    def test_register_requires_id(self, client, db_session):
        assert client.post("/api/devices/register", json={}).status_code == 400
